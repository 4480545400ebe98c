"""
Customer Management Module

Customers own accounts. They are immutable once created in this system.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import List, Optional
import uuid

from .storage import StorageInterface, StorageRecord
from .logging_config import get_logger, log_action


@dataclass
class Customer(StorageRecord):
    """Account owner identity"""
    first_name: str
    last_name: str
    phone_number: Optional[str] = None
    email: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class CustomerManager:
    """Creates and looks up customers"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "customers"
        self.logger = get_logger("bank_ledger.customers")

    def create_customer(
        self,
        first_name: str,
        last_name: str,
        phone_number: Optional[str] = None,
        email: Optional[str] = None
    ) -> Customer:
        now = datetime.now(timezone.utc)
        customer = Customer(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            first_name=first_name,
            last_name=last_name,
            phone_number=phone_number,
            email=email
        )
        self.storage.save(self.table_name, customer.id, customer.to_dict())

        log_action(
            self.logger, "info", "Customer created",
            action="create_customer", resource=f"customer:{customer.id}"
        )
        return customer

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        data = self.storage.load(self.table_name, customer_id)
        if data:
            return Customer.from_dict(data)
        return None

    def list_customers(self) -> List[Customer]:
        return [Customer.from_dict(data) for data in self.storage.load_all(self.table_name)]
