"""
Account Management Module

Accounts carry a unique human-facing account number and a running balance.
The balance is only ever changed by the ledger service; this module owns
provisioning, lookups and persistence of account records.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional
import random
import uuid

from .storage import IntegrityViolation, StorageInterface, StorageRecord
from .customers import CustomerManager
from .errors import CustomerNotFound, ValidationError
from .money import ZERO, to_amount, format_amount
from .logging_config import get_logger, log_action


@dataclass
class Account(StorageRecord):
    """Bank account with a non-negative Decimal balance"""
    account_number: str
    customer_id: str
    balance: Decimal = ZERO

    def __post_init__(self):
        self.balance = to_amount(self.balance)
        if self.balance < ZERO:
            raise ValidationError(f"Account {self.account_number} balance cannot be negative")

    def to_dict(self) -> Dict:
        result = super().to_dict()
        result['balance'] = format_amount(self.balance)
        return result


class AccountManager:
    """
    Account store: lookup by id or number, provisioning and saving.
    """

    def __init__(self, storage: StorageInterface, customer_manager: Optional[CustomerManager] = None):
        self.storage = storage
        self.customer_manager = customer_manager
        self.table_name = "accounts"
        self.logger = get_logger("bank_ledger.accounts")

    def create_account(
        self,
        customer_id: str,
        account_number: Optional[str] = None,
        opening_balance: Decimal = ZERO
    ) -> Account:
        """
        Provision a new account.

        Args:
            customer_id: ID of account owner
            account_number: Specific account number (generated if not provided)
            opening_balance: Initial balance, must not be negative

        Returns:
            Created Account object

        Raises:
            CustomerNotFound: If a customer manager is attached and the owner is unknown
            ValidationError: If the account number is already taken
        """
        try:
            with self.storage.atomic():
                if self.customer_manager and not self.customer_manager.get_customer(customer_id):
                    raise CustomerNotFound(customer_id)

                if account_number is None:
                    account_number = self._generate_account_number()
                elif self.get_account_by_number(account_number):
                    raise ValidationError(f"Account number {account_number} already exists")

                now = datetime.now(timezone.utc)
                account = Account(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    account_number=account_number,
                    customer_id=customer_id,
                    balance=opening_balance
                )
                self.storage.save(self.table_name, account.id, account.to_dict())
        except IntegrityViolation as e:
            # Another writer took the number between the check and the insert
            raise ValidationError(f"Account number {account_number} already exists") from e

        log_action(
            self.logger, "info", "Account created",
            action="create_account", resource=f"account:{account.id}",
            extra={"account_number": account_number, "opening_balance": format_amount(account.balance)}
        )
        return account

    def get_account(self, account_id: str, for_update: bool = False) -> Optional[Account]:
        """Get account by ID; for_update locks the row inside an atomic unit"""
        data = self.storage.load(self.table_name, account_id, for_update=for_update)
        if data:
            return Account.from_dict(data)
        return None

    def get_account_by_number(self, account_number: str) -> Optional[Account]:
        """Get account by its unique account number"""
        found = self.storage.find(self.table_name, {"account_number": account_number})
        if found:
            return Account.from_dict(found[0])
        return None

    def get_customer_accounts(self, customer_id: str) -> List[Account]:
        found = self.storage.find(self.table_name, {"customer_id": customer_id})
        return [Account.from_dict(data) for data in found]

    def save_account(self, account: Account) -> None:
        """Persist the account, stamping updated_at"""
        if account.balance < ZERO:
            raise ValidationError(f"Account {account.account_number} balance cannot be negative")
        account.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.table_name, account.id, account.to_dict())

    def _generate_account_number(self) -> str:
        """Generate a unique 9-digit account number"""
        while True:
            candidate = f"{random.randint(100000000, 999999999)}"
            if not self.get_account_by_number(candidate):
                return candidate
