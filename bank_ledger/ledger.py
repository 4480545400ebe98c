"""
Ledger Service Module

Executes deposits, withdrawals and transfers as indivisible units: the
account balance update(s) and the matching transaction record are written
in one atomic storage unit, so either all of them become visible or none.

Balances are always read inside the unit, with the account rows locked,
which keeps two concurrent operations on the same account from both acting
on a stale balance.
"""

from decimal import Decimal
from contextlib import contextmanager
from typing import Iterator

from .storage import StorageInterface
from .accounts import Account, AccountManager
from .transactions import Transaction, TransactionKind, TransactionLog
from .errors import AccountNotFound, InsufficientFunds, LedgerError, StorageFailure, ValidationError
from .money import AmountLike, check_balance_limit, to_positive_amount, format_amount
from .logging_config import get_logger, log_action


class LedgerService:
    """
    Balance-affecting operations over the account and transaction stores
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_manager: AccountManager,
        transaction_log: TransactionLog,
        allow_self_transfer: bool = True
    ):
        self.storage = storage
        self.account_manager = account_manager
        self.transaction_log = transaction_log
        self.allow_self_transfer = allow_self_transfer
        self.logger = get_logger("bank_ledger.ledger")

    @contextmanager
    def _atomic_unit(self, operation: str) -> Iterator[None]:
        """
        Run the body as one atomic unit.

        Domain errors propagate unchanged after the rollback; anything else
        means the unit could not be committed and surfaces as StorageFailure.
        """
        try:
            with self.storage.atomic():
                yield
        except LedgerError as e:
            log_action(
                self.logger, "warning", f"{operation} rejected: {e}",
                action=operation, extra={"error": type(e).__name__}
            )
            raise
        except Exception as e:
            log_action(
                self.logger, "error", f"{operation} could not be committed",
                action=operation, exc_info=e
            )
            raise StorageFailure(f"{operation} could not be committed: {e}") from e

    def _load_account(self, account_id: str) -> Account:
        account = self.account_manager.get_account(account_id, for_update=True)
        if not account:
            raise AccountNotFound(account_id)
        return account

    @staticmethod
    def _check_funds(account: Account, amount: Decimal) -> None:
        if account.balance < amount:
            raise InsufficientFunds(account.id, format_amount(account.balance), format_amount(amount))

    def deposit(self, account_id: str, amount: AmountLike) -> Transaction:
        """
        Credit an account.

        Raises:
            ValidationError: If amount is not positive or the balance would exceed MAX_AMOUNT
            AccountNotFound: If the account does not exist
            StorageFailure: If the unit could not be committed
        """
        amount = to_positive_amount(amount)

        with self._atomic_unit("deposit"):
            account = self._load_account(account_id)
            account.balance += amount
            check_balance_limit(account.id, account.balance)
            transaction = Transaction.create(
                TransactionKind.DEPOSIT, amount, to_account_id=account.id
            )
            self.account_manager.save_account(account)
            self.transaction_log.append_transaction(transaction)

        log_action(
            self.logger, "info", "Deposit committed",
            action="deposit", resource=f"account:{account_id}",
            extra={
                "transaction_id": transaction.id,
                "amount": format_amount(amount),
                "balance": format_amount(account.balance)
            }
        )
        return transaction

    def withdraw(self, account_id: str, amount: AmountLike) -> Transaction:
        """
        Debit an account.

        Raises:
            ValidationError: If amount is not positive
            AccountNotFound: If the account does not exist
            InsufficientFunds: If the balance is lower than amount
            StorageFailure: If the unit could not be committed
        """
        amount = to_positive_amount(amount)

        with self._atomic_unit("withdraw"):
            account = self._load_account(account_id)
            self._check_funds(account, amount)
            account.balance -= amount
            transaction = Transaction.create(
                TransactionKind.WITHDRAWAL, amount, from_account_id=account.id
            )
            self.account_manager.save_account(account)
            self.transaction_log.append_transaction(transaction)

        log_action(
            self.logger, "info", "Withdrawal committed",
            action="withdraw", resource=f"account:{account_id}",
            extra={
                "transaction_id": transaction.id,
                "amount": format_amount(amount),
                "balance": format_amount(account.balance)
            }
        )
        return transaction

    def transfer(self, from_account_id: str, to_account_id: str, amount: AmountLike) -> Transaction:
        """
        Move money between two accounts.

        A transfer to the same account is allowed unless disabled: it needs
        sufficient funds, leaves the balance unchanged and is still logged.

        Raises:
            ValidationError: If amount is not positive, a self-transfer is disabled,
                or the destination balance would exceed MAX_AMOUNT
            AccountNotFound: If either account does not exist
            InsufficientFunds: If the source balance is lower than amount
            StorageFailure: If the unit could not be committed
        """
        amount = to_positive_amount(amount)
        if from_account_id == to_account_id and not self.allow_self_transfer:
            raise ValidationError("Cannot transfer to the same account")

        with self._atomic_unit("transfer"):
            # Lock rows in a stable order so opposite transfers cannot deadlock
            locked = {}
            for account_id in sorted({from_account_id, to_account_id}):
                locked[account_id] = self._load_account(account_id)
            source = locked[from_account_id]
            destination = locked[to_account_id]

            self._check_funds(source, amount)
            source.balance -= amount
            destination.balance += amount
            check_balance_limit(destination.id, destination.balance)
            transaction = Transaction.create(
                TransactionKind.TRANSFER, amount,
                from_account_id=source.id, to_account_id=destination.id
            )
            for account in locked.values():
                self.account_manager.save_account(account)
            self.transaction_log.append_transaction(transaction)

        log_action(
            self.logger, "info", "Transfer committed",
            action="transfer", resource=f"account:{from_account_id}",
            extra={
                "transaction_id": transaction.id,
                "to_account": to_account_id,
                "amount": format_amount(amount)
            }
        )
        return transaction
