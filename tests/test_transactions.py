"""
Tests for transaction records and the transaction log
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone, timedelta

from bank_ledger.storage import InMemoryStorage
from bank_ledger.transactions import Transaction, TransactionKind, TransactionLog
from bank_ledger.errors import ValidationError


def make_transaction(kind, amount="10.00", source=None, destination=None, created_at=None):
    created_at = created_at or datetime.now(timezone.utc)
    return Transaction(
        id=f"txn-{kind.value}-{created_at.timestamp()}-{source}-{destination}",
        created_at=created_at,
        updated_at=created_at,
        kind=kind,
        amount=Decimal(amount),
        from_account_id=source,
        to_account_id=destination
    )


class TestTransaction:
    """Construction rules for transaction records"""

    def test_deposit_references_destination_only(self):
        """Test deposit side rules"""
        txn = Transaction.create(TransactionKind.DEPOSIT, Decimal('300'), to_account_id="a1")
        assert txn.from_account_id is None
        assert txn.to_account_id == "a1"
        assert txn.amount == Decimal('300.00')

        with pytest.raises(ValidationError):
            Transaction.create(TransactionKind.DEPOSIT, Decimal('1'), from_account_id="a1")

    def test_withdrawal_references_source_only(self):
        """Test withdrawal side rules"""
        with pytest.raises(ValidationError):
            Transaction.create(TransactionKind.WITHDRAWAL, Decimal('1'), from_account_id="a1", to_account_id="a2")
        txn = Transaction.create(TransactionKind.WITHDRAWAL, Decimal('1'), from_account_id="a1")
        assert txn.involves("a1")
        assert not txn.involves("a2")

    def test_transfer_requires_both_sides(self):
        """Test transfer side rules"""
        with pytest.raises(ValidationError):
            Transaction.create(TransactionKind.TRANSFER, Decimal('1'), from_account_id="a1")
        txn = Transaction.create(TransactionKind.TRANSFER, Decimal('1'), from_account_id="a1", to_account_id="a2")
        assert txn.involves("a2")

    @pytest.mark.parametrize("amount", [Decimal('0'), Decimal('-5'), Decimal('0.001')])
    def test_amount_must_be_positive(self, amount):
        """Test that non-positive amounts are rejected at construction"""
        with pytest.raises(ValidationError, match="must be positive"):
            Transaction.create(TransactionKind.DEPOSIT, amount, to_account_id="a1")

    def test_storage_layout(self):
        """Test the stored column layout"""
        txn = Transaction.create(TransactionKind.DEPOSIT, Decimal('12.5'), to_account_id="a1")
        data = txn.to_dict()
        assert data["transaction_type"] == "deposit"
        assert data["amount"] == "12.50"
        assert data["from_account_id"] is None
        assert Transaction.from_dict(data) == txn


class TestTransactionLog:
    """Test the append-only transaction log"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.log = TransactionLog(self.storage)

    def test_append_and_get(self):
        """Test appending and reading back a record"""
        txn = Transaction.create(TransactionKind.DEPOSIT, Decimal('5'), to_account_id="a1")
        self.log.append_transaction(txn)
        assert self.log.get_transaction(txn.id) == txn
        assert self.log.count() == 1

    def test_records_are_never_overwritten(self):
        """Test that an existing record cannot be replaced"""
        txn = Transaction.create(TransactionKind.DEPOSIT, Decimal('5'), to_account_id="a1")
        self.log.append_transaction(txn)
        with pytest.raises(ValidationError, match="already recorded"):
            self.log.append_transaction(txn)

    def test_account_transactions_cover_both_sides(self):
        """Test account query matches source or destination"""
        deposit = Transaction.create(TransactionKind.DEPOSIT, Decimal('5'), to_account_id="a1")
        outgoing = Transaction.create(TransactionKind.TRANSFER, Decimal('1'), from_account_id="a1", to_account_id="a2")
        incoming = Transaction.create(TransactionKind.TRANSFER, Decimal('2'), from_account_id="a3", to_account_id="a1")
        unrelated = Transaction.create(TransactionKind.DEPOSIT, Decimal('9'), to_account_id="a3")
        for txn in (deposit, outgoing, incoming, unrelated):
            self.log.append_transaction(txn)

        ids = [t.id for t in self.log.get_account_transactions("a1")]
        assert ids == [deposit.id, outgoing.id, incoming.id]

    def test_chronological_versus_store_order(self):
        """Test both retrieval orders"""
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        late = make_transaction(TransactionKind.DEPOSIT, destination="a1", created_at=base + timedelta(days=2))
        early = make_transaction(TransactionKind.DEPOSIT, destination="a1", created_at=base)
        self.log.append_transaction(late)
        self.log.append_transaction(early)

        assert [t.id for t in self.log.get_account_transactions("a1")] == [early.id, late.id]
        assert [t.id for t in self.log.get_account_transactions("a1", chronological=False)] == [late.id, early.id]

    def test_equal_timestamps_keep_insertion_order(self):
        """Test ties in created_at keep insertion order"""
        stamp = datetime(2024, 1, 1, tzinfo=timezone.utc)
        first = make_transaction(TransactionKind.DEPOSIT, "1.00", destination="a1", created_at=stamp)
        second = make_transaction(TransactionKind.WITHDRAWAL, "1.00", source="a1", created_at=stamp)
        self.log.append_transaction(first)
        self.log.append_transaction(second)
        assert [t.id for t in self.log.get_account_transactions("a1")] == [first.id, second.id]
