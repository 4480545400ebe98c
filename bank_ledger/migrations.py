"""
Database Migration System

Simple migration system for managing the relational schema of the ledger
without external dependencies. Supports SQLite and PostgreSQL; the in-memory
backend has no schema and only records which versions were applied.
"""

from typing import List, Optional, Dict, Any
from datetime import datetime, timezone
import hashlib
import logging

from .storage import StorageInterface


logger = logging.getLogger(__name__)


MIGRATION_TABLE_DDL = {
    "sqlite": """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            id TEXT PRIMARY KEY,
            version INTEGER NOT NULL,
            name TEXT NOT NULL,
            checksum TEXT NOT NULL,
            applied_at TEXT NOT NULL
        )
    """,
    "postgresql": """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            seq BIGSERIAL,
            id TEXT PRIMARY KEY,
            version INTEGER NOT NULL,
            name TEXT NOT NULL,
            checksum TEXT NOT NULL,
            applied_at TEXT NOT NULL
        )
    """,
}


class Migration:
    """Represents a single database migration with SQL per dialect"""

    def __init__(self, version: int, name: str, up_sql: Dict[str, str]):
        self.version = version
        self.name = name
        self.up_sql = up_sql
        self.applied_at: Optional[datetime] = None

    def sql_for(self, dialect: str) -> str:
        return self.up_sql.get(dialect, "")

    def __str__(self) -> str:
        return f"Migration v{self.version:03d}: {self.name}"

    def __repr__(self) -> str:
        return f"Migration(version={self.version}, name='{self.name}')"


class MigrationManager:
    """Manages database migrations"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.migrations: List[Migration] = []
        self._migration_table = "schema_migrations"
        self._init_migrations()
        self._ensure_migration_table()

    def _init_migrations(self) -> None:
        """Initialize built-in migrations"""

        # v001: customers, accounts and the append-only transaction log
        self.add_migration(1, "Create ledger tables", {
            "sqlite": """
                CREATE TABLE IF NOT EXISTS customers (
                    id TEXT PRIMARY KEY,
                    first_name TEXT NOT NULL,
                    last_name TEXT NOT NULL,
                    phone_number TEXT,
                    email TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS accounts (
                    id TEXT PRIMARY KEY,
                    account_number TEXT NOT NULL UNIQUE,
                    balance TEXT NOT NULL,
                    customer_id TEXT NOT NULL REFERENCES customers(id),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS transactions (
                    id TEXT PRIMARY KEY,
                    from_account_id TEXT REFERENCES accounts(id),
                    to_account_id TEXT REFERENCES accounts(id),
                    transaction_type TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """,
            "postgresql": """
                CREATE TABLE IF NOT EXISTS customers (
                    seq BIGSERIAL,
                    id TEXT PRIMARY KEY,
                    first_name TEXT NOT NULL,
                    last_name TEXT NOT NULL,
                    phone_number TEXT,
                    email TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS accounts (
                    seq BIGSERIAL,
                    id TEXT PRIMARY KEY,
                    account_number TEXT NOT NULL UNIQUE,
                    balance NUMERIC(18, 2) NOT NULL CHECK (balance >= 0),
                    customer_id TEXT NOT NULL REFERENCES customers(id),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS transactions (
                    seq BIGSERIAL,
                    id TEXT PRIMARY KEY,
                    from_account_id TEXT REFERENCES accounts(id),
                    to_account_id TEXT REFERENCES accounts(id),
                    transaction_type TEXT NOT NULL,
                    amount NUMERIC(18, 2) NOT NULL CHECK (amount > 0),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """,
        })

        # v002: lookups by either side of a transaction
        self.add_migration(2, "Index transaction accounts", {
            "sqlite": """
                CREATE INDEX IF NOT EXISTS idx_transactions_from_account ON transactions(from_account_id);
                CREATE INDEX IF NOT EXISTS idx_transactions_to_account ON transactions(to_account_id);
                CREATE INDEX IF NOT EXISTS idx_accounts_customer ON accounts(customer_id)
            """,
            "postgresql": """
                CREATE INDEX IF NOT EXISTS idx_transactions_from_account ON transactions(from_account_id);
                CREATE INDEX IF NOT EXISTS idx_transactions_to_account ON transactions(to_account_id);
                CREATE INDEX IF NOT EXISTS idx_accounts_customer ON accounts(customer_id)
            """,
        })

    def _ensure_migration_table(self) -> None:
        """Ensure the migration tracking table exists"""
        ddl = MIGRATION_TABLE_DDL.get(self.storage.dialect)
        if ddl:
            self.storage.execute_script(ddl)

    def add_migration(self, version: int, name: str, up_sql: Dict[str, str]) -> None:
        """Add a migration to the manager"""
        self.migrations.append(Migration(version, name, up_sql))
        self.migrations.sort(key=lambda m: m.version)

    def get_applied_migrations(self) -> List[Dict[str, Any]]:
        """Get list of applied migration records"""
        return self.storage.load_all(self._migration_table)

    def get_current_version(self) -> int:
        """Get the current database version"""
        versions = [int(m["version"]) for m in self.get_applied_migrations()]
        return max(versions) if versions else 0

    def get_pending_migrations(self, target_version: Optional[int] = None) -> List[Migration]:
        """Get list of pending migrations"""
        current_version = self.get_current_version()
        max_version = target_version or max((m.version for m in self.migrations), default=0)
        return [m for m in self.migrations if current_version < m.version <= max_version]

    def migrate_up(self, target_version: Optional[int] = None) -> List[Migration]:
        """Apply pending migrations up to target version"""
        pending = self.get_pending_migrations(target_version)
        applied = []

        if not pending:
            logger.info("No pending migrations to apply")
            return applied

        logger.info(f"Applying {len(pending)} pending migrations")

        for migration in pending:
            try:
                logger.info(f"Applying {migration}")
                sql = migration.sql_for(self.storage.dialect)

                with self.storage.atomic():
                    if sql.strip():
                        self.storage.execute_script(sql)

                    self.storage.save(self._migration_table, f"v{migration.version:03d}", {
                        "version": migration.version,
                        "name": migration.name,
                        "checksum": self._calculate_checksum(sql),
                        "applied_at": datetime.now(timezone.utc).isoformat()
                    })

                migration.applied_at = datetime.now(timezone.utc)
                applied.append(migration)

            except Exception as e:
                logger.error(f"Failed to apply {migration}: {e}")
                raise RuntimeError(f"Migration failed: {migration}") from e

        logger.info(f"Successfully applied {len(applied)} migrations")
        return applied

    @staticmethod
    def _calculate_checksum(sql: str) -> str:
        """Calculate checksum for migration SQL"""
        return hashlib.md5(sql.encode()).hexdigest()

    def validate_migrations(self) -> bool:
        """Validate that applied migrations match expected checksums"""
        for applied_migration in self.get_applied_migrations():
            version = int(applied_migration["version"])
            migration = next((m for m in self.migrations if m.version == version), None)
            if not migration:
                logger.warning(f"Applied migration v{version} not found in definitions")
                continue

            expected = self._calculate_checksum(migration.sql_for(self.storage.dialect))
            if applied_migration.get("checksum") != expected:
                logger.error(f"Checksum mismatch for v{version}: expected {expected}, got {applied_migration.get('checksum')}")
                return False

        return True

    def get_migration_status(self) -> Dict[str, Any]:
        """Get detailed migration status"""
        pending = self.get_pending_migrations()
        return {
            "current_version": self.get_current_version(),
            "latest_version": max((m.version for m in self.migrations), default=0),
            "pending_count": len(pending),
            "applied_count": len(self.get_applied_migrations()),
            "pending_migrations": [
                {"version": m.version, "name": m.name} for m in pending
            ],
            "needs_migration": len(pending) > 0
        }
