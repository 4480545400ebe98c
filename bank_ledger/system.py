"""
Ledger system wiring: storage, stores and services built from configuration
"""

from typing import Optional

from .config import LedgerConfig, get_config
from .storage import StorageInterface, create_storage
from .migrations import MigrationManager
from .customers import CustomerManager
from .accounts import AccountManager
from .transactions import TransactionLog
from .ledger import LedgerService
from .history import HistoryEngine
from .seed import seed_data
from .logging_config import get_logger


class LedgerSystem:
    """Ledger system with all components initialized"""

    def __init__(self, config: Optional[LedgerConfig] = None, storage: Optional[StorageInterface] = None):
        self.config = config or get_config()
        self.logger = get_logger("bank_ledger.system")

        self.storage = storage or create_storage(self.config.database_url)
        if self.config.auto_migrate:
            MigrationManager(self.storage).migrate_up()

        self.customer_manager = CustomerManager(self.storage)
        self.account_manager = AccountManager(self.storage, self.customer_manager)
        self.transaction_log = TransactionLog(self.storage)
        self.ledger = LedgerService(
            self.storage, self.account_manager, self.transaction_log,
            allow_self_transfer=self.config.allow_self_transfer
        )
        self.history = HistoryEngine(
            self.account_manager, self.transaction_log,
            order=self.config.history_order
        )

        if self.config.seed_on_startup:
            seed_data(self)

    def close(self) -> None:
        self.storage.close()
