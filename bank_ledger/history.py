"""
Account History Module

Replays an account's transaction log into a balance-annotated timeline.

The running balance starts from the account's *current* stored balance and
applies each record with the same sign rules used for live mutations. The
resulting values are therefore not the account's true historical balances;
this mirrors the established behaviour of the history endpoint and is kept
as-is until the intended semantics are settled.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List
from enum import Enum

from .accounts import AccountManager
from .transactions import Transaction, TransactionKind, TransactionLog
from .errors import AccountNotFound
from .money import format_amount


class HistoryOrder(Enum):
    """Order in which transaction records are replayed"""
    CHRONOLOGICAL = "chronological"  # created_at ascending
    STORE = "store"                  # storage-native insertion order


@dataclass
class HistoryEntry:
    """One replayed transaction with the running balance after it"""
    kind: TransactionKind
    amount: Decimal
    date: datetime
    balance: Decimal
    direction: str  # "in" or "out" relative to the account

    @property
    def label(self) -> str:
        if self.kind == TransactionKind.TRANSFER:
            return f"Transfer {self.direction}"
        return self.kind.value.capitalize()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_type": self.kind.value,
            "amount": format_amount(self.amount),
            "date": self.date.date().isoformat(),
            "balance": format_amount(self.balance),
            "direction": self.direction
        }


@dataclass
class AccountHistory:
    account_number: str
    entries: List[HistoryEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_number": self.account_number,
            "history": [entry.to_dict() for entry in self.entries]
        }

    def to_text(self) -> str:
        """Plain-text report, one line per entry"""
        lines = [f"Account Number: {self.account_number}"]
        for entry in self.entries:
            lines.append(
                f"{entry.label} {format_amount(entry.amount)} on "
                f"{entry.date.date().isoformat()}, Balance: {format_amount(entry.balance)}"
            )
        return "\n".join(lines) + "\n"


def apply_transaction(balance: Decimal, transaction: Transaction, account_id: str) -> tuple:
    """
    Apply one record to a running balance from the account's point of view.

    Returns:
        (new_balance, direction)
    """
    if transaction.kind == TransactionKind.DEPOSIT:
        return balance + transaction.amount, "in"
    if transaction.kind == TransactionKind.WITHDRAWAL:
        return balance - transaction.amount, "out"
    if transaction.kind == TransactionKind.TRANSFER:
        # Source is checked first, so a self-transfer counts as outgoing
        if transaction.from_account_id == account_id:
            return balance - transaction.amount, "out"
        return balance + transaction.amount, "in"
    raise ValueError(f"Unsupported transaction kind: {transaction.kind}")


class HistoryEngine:
    """Builds account histories from the transaction log"""

    def __init__(
        self,
        account_manager: AccountManager,
        transaction_log: TransactionLog,
        order: HistoryOrder = HistoryOrder.CHRONOLOGICAL
    ):
        self.account_manager = account_manager
        self.transaction_log = transaction_log
        self.order = order

    def get_history(self, account_number: str) -> AccountHistory:
        """
        Replay the account's transactions into a timeline.

        Raises:
            AccountNotFound: If no account has this number
        """
        account = self.account_manager.get_account_by_number(account_number)
        if not account:
            raise AccountNotFound(account_number)

        transactions = self.transaction_log.get_account_transactions(
            account.id, chronological=self.order == HistoryOrder.CHRONOLOGICAL
        )

        history = AccountHistory(account_number=account.account_number)
        balance = account.balance
        for transaction in transactions:
            balance, direction = apply_transaction(balance, transaction, account.id)
            history.entries.append(HistoryEntry(
                kind=transaction.kind,
                amount=transaction.amount,
                date=transaction.created_at,
                balance=balance,
                direction=direction
            ))
        return history
