"""
Tests for customer and account management
"""

import pytest
from decimal import Decimal

from bank_ledger.storage import InMemoryStorage, IntegrityViolation, SQLiteStorage
from bank_ledger.migrations import MigrationManager
from bank_ledger.customers import CustomerManager
from bank_ledger.accounts import Account, AccountManager
from bank_ledger.errors import CustomerNotFound, ValidationError


class TestCustomerManager:
    """Test customer creation and lookup"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.customer_manager = CustomerManager(self.storage)

    def test_create_and_get_customer(self):
        """Test customer creation and lookup by ID"""
        customer = self.customer_manager.create_customer(
            first_name="John",
            last_name="Doe",
            phone_number="1234567890",
            email="john.doe@example.com"
        )

        loaded = self.customer_manager.get_customer(customer.id)
        assert loaded == customer
        assert loaded.full_name == "John Doe"
        assert self.customer_manager.get_customer("missing") is None

    def test_list_customers(self):
        """Test listing customers in creation order"""
        self.customer_manager.create_customer("John", "Doe")
        self.customer_manager.create_customer("Jane", "Smith")
        names = [c.first_name for c in self.customer_manager.list_customers()]
        assert names == ["John", "Jane"]


class TestAccountManager:
    """Test account provisioning and persistence"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.customer_manager = CustomerManager(self.storage)
        self.account_manager = AccountManager(self.storage, self.customer_manager)
        self.customer = self.customer_manager.create_customer("John", "Doe")

    def test_create_account_with_number(self):
        """Test account creation with a chosen number"""
        account = self.account_manager.create_account(
            customer_id=self.customer.id,
            account_number="123456789",
            opening_balance=Decimal('1000')
        )

        assert account.balance == Decimal('1000.00')
        assert self.account_manager.get_account(account.id) == account
        assert self.account_manager.get_account_by_number("123456789") == account
        assert self.account_manager.get_account_by_number("000000000") is None

    def test_generated_account_number(self):
        """Test generated nine-digit account numbers"""
        account = self.account_manager.create_account(customer_id=self.customer.id)
        assert len(account.account_number) == 9
        assert account.account_number.isdigit()
        assert account.balance == Decimal('0.00')

    def test_duplicate_account_number_rejected(self):
        """Test that a taken account number is rejected"""
        self.account_manager.create_account(self.customer.id, account_number="111")
        with pytest.raises(ValidationError, match="already exists"):
            self.account_manager.create_account(self.customer.id, account_number="111")

    def test_unknown_customer_rejected(self):
        """Test account creation for a missing customer"""
        with pytest.raises(CustomerNotFound):
            self.account_manager.create_account("no-such-customer")

    def test_negative_opening_balance_rejected(self):
        """Test that a negative opening balance is rejected"""
        with pytest.raises(ValidationError, match="cannot be negative"):
            self.account_manager.create_account(self.customer.id, opening_balance=Decimal('-1'))

    def test_customer_accounts(self):
        """Test listing a customer's accounts"""
        first = self.account_manager.create_account(self.customer.id)
        second = self.account_manager.create_account(self.customer.id)
        other = self.customer_manager.create_customer("Jane", "Smith")
        self.account_manager.create_account(other.id)

        ids = [a.id for a in self.account_manager.get_customer_accounts(self.customer.id)]
        assert ids == [first.id, second.id]

    def test_save_account_persists_balance_and_stamps_update(self):
        """Test saving a balance stamps updated_at"""
        account = self.account_manager.create_account(self.customer.id)
        created = account.updated_at
        account.balance = Decimal('42.10')
        self.account_manager.save_account(account)

        loaded = self.account_manager.get_account(account.id)
        assert loaded.balance == Decimal('42.10')
        assert loaded.updated_at >= created

    def test_save_account_rejects_negative_balance(self):
        """Test that a negative balance is never saved"""
        account = self.account_manager.create_account(self.customer.id)
        account.balance = Decimal('-0.01')
        with pytest.raises(ValidationError):
            self.account_manager.save_account(account)
        assert self.account_manager.get_account(account.id).balance == Decimal('0.00')

    def test_account_round_trip_keeps_decimal(self):
        """Test balances are stored as two-decimal strings"""
        account = self.account_manager.create_account(self.customer.id, opening_balance=Decimal('0.1'))
        stored = self.storage.load("accounts", account.id)
        assert stored["balance"] == "0.10"
        assert Account.from_dict(stored).balance == Decimal('0.10')


class StaleLookupAccountManager(AccountManager):
    """Never sees existing numbers, like a writer racing another process"""

    def get_account_by_number(self, account_number):
        return None


class TestAccountManagerOnSQLite:
    """Test account number uniqueness enforced by the database"""

    def setup_method(self):
        self.storage = SQLiteStorage(":memory:")
        MigrationManager(self.storage).migrate_up()
        self.customer_manager = CustomerManager(self.storage)
        self.customer = self.customer_manager.create_customer("John", "Doe")

    def teardown_method(self):
        self.storage.close()

    def test_duplicate_number_rejected(self):
        """Test duplicate numbers on SQLite"""
        manager = AccountManager(self.storage, self.customer_manager)
        manager.create_account(self.customer.id, account_number="111")
        with pytest.raises(ValidationError, match="already exists"):
            manager.create_account(self.customer.id, account_number="111")
        assert self.storage.count("accounts") == 1

    def test_constraint_violation_becomes_validation_error(self):
        """Test a unique constraint violation surfaces as a validation error"""
        manager = StaleLookupAccountManager(self.storage, self.customer_manager)
        manager.create_account(self.customer.id, account_number="111")

        with pytest.raises(ValidationError, match="already exists") as exc_info:
            manager.create_account(self.customer.id, account_number="111")

        assert isinstance(exc_info.value.__cause__, IntegrityViolation)
        assert self.storage.count("accounts") == 1

        # The connection is usable after the rolled back unit
        manager.create_account(self.customer.id, account_number="222")
        assert self.storage.count("accounts") == 2

    def test_failed_creation_writes_nothing(self):
        """Test that a rejected account leaves no row behind"""
        manager = AccountManager(self.storage, self.customer_manager)
        with pytest.raises(ValidationError):
            manager.create_account(self.customer.id, account_number="111", opening_balance="1e30")
        assert self.storage.count("accounts") == 0
