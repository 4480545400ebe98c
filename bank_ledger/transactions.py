"""
Transaction Log Module

Transactions are the append-only audit trail of every balance change.
A record is written once, in the same atomic unit as the balance update
it describes, and is never updated or deleted afterwards.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord
from .errors import ValidationError
from .money import ZERO, to_amount, format_amount


class TransactionKind(Enum):
    """Types of ledger transactions"""
    DEPOSIT = "deposit"        # Money enters an account from outside
    WITHDRAWAL = "withdrawal"  # Money leaves an account to outside
    TRANSFER = "transfer"      # Money moves between two accounts


@dataclass
class Transaction(StorageRecord):
    """
    Immutable ledger entry.

    Deposits reference only a destination, withdrawals only a source and
    transfers both. A missing side is None, never a sentinel id.
    """
    kind: TransactionKind
    amount: Decimal
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None

    def __post_init__(self):
        self.amount = to_amount(self.amount)
        if self.amount <= ZERO:
            raise ValidationError("Transaction amount must be positive")

        if self.kind == TransactionKind.DEPOSIT:
            if not self.to_account_id or self.from_account_id:
                raise ValidationError("Deposit must reference only a destination account")
        elif self.kind == TransactionKind.WITHDRAWAL:
            if not self.from_account_id or self.to_account_id:
                raise ValidationError("Withdrawal must reference only a source account")
        elif self.kind == TransactionKind.TRANSFER:
            if not self.from_account_id or not self.to_account_id:
                raise ValidationError("Transfer must reference a source and a destination account")
        else:
            raise ValidationError(f"Unsupported transaction kind: {self.kind}")

    @classmethod
    def create(
        cls,
        kind: TransactionKind,
        amount: Decimal,
        from_account_id: Optional[str] = None,
        to_account_id: Optional[str] = None
    ) -> 'Transaction':
        now = datetime.now(timezone.utc)
        return cls(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            kind=kind,
            amount=amount,
            from_account_id=from_account_id,
            to_account_id=to_account_id
        )

    def involves(self, account_id: str) -> bool:
        return account_id in (self.from_account_id, self.to_account_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'from_account_id': self.from_account_id,
            'to_account_id': self.to_account_id,
            'transaction_type': self.kind.value,
            'amount': format_amount(self.amount),
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        created_at = data['created_at']
        updated_at = data['updated_at']
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(created_at) if isinstance(created_at, str) else created_at,
            updated_at=datetime.fromisoformat(updated_at) if isinstance(updated_at, str) else updated_at,
            kind=TransactionKind(data['transaction_type']),
            amount=Decimal(str(data['amount'])),
            from_account_id=data.get('from_account_id'),
            to_account_id=data.get('to_account_id')
        )


class TransactionLog:
    """
    Transaction store: append and query the immutable log.
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "transactions"

    def append_transaction(self, transaction: Transaction) -> None:
        """Append a new record; existing records are never overwritten"""
        if self.storage.exists(self.table_name, transaction.id):
            raise ValidationError(f"Transaction {transaction.id} already recorded")
        self.storage.save(self.table_name, transaction.id, transaction.to_dict())

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        data = self.storage.load(self.table_name, transaction_id)
        if data:
            return Transaction.from_dict(data)
        return None

    def get_account_transactions(self, account_id: str, chronological: bool = True) -> List[Transaction]:
        """
        Get every transaction where the account is source or destination.

        Args:
            account_id: Account ID
            chronological: Sort by creation time ascending (ties keep
                insertion order); when False the storage's native
                insertion order is returned untouched

        Returns:
            List of Transaction objects
        """
        found = self.storage.find(
            self.table_name,
            {"from_account_id": account_id, "to_account_id": account_id},
            match_any=True
        )
        transactions = [Transaction.from_dict(data) for data in found]
        if chronological:
            # sort() is stable, so equal timestamps stay in insertion order
            transactions.sort(key=lambda t: t.created_at)
        return transactions

    def count(self) -> int:
        return self.storage.count(self.table_name)
