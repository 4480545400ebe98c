"""
Sample data for demos and manual testing.

Creates two customers with one account each and records a short sample
log against account 123456789. The log records are written directly, like
imported history, so they do not change the stored balances.

Run with: python -m bank_ledger.seed
"""

from decimal import Decimal

from .transactions import Transaction, TransactionKind
from .logging_config import get_logger, setup_logging


PRIMARY_ACCOUNT_NUMBER = "123456789"
SECONDARY_ACCOUNT_NUMBER = "987654321"

logger = get_logger("bank_ledger.seed")


def seed_data(system) -> bool:
    """
    Seed customers, accounts and sample transactions.

    Returns:
        False when the sample account already exists and nothing was written
    """
    with system.storage.atomic():
        # Checked inside the unit so concurrent seeders cannot both proceed
        if system.account_manager.get_account_by_number(PRIMARY_ACCOUNT_NUMBER):
            logger.info("Seed data already present, skipping")
            return False

        john = system.customer_manager.create_customer(
            first_name="John",
            last_name="Doe",
            phone_number="1234567890",
            email="john.doe@example.com"
        )
        jane = system.customer_manager.create_customer(
            first_name="Jane",
            last_name="Smith",
            phone_number="0987654321",
            email="jane.smith@example.com"
        )

        primary = system.account_manager.create_account(
            customer_id=john.id,
            account_number=PRIMARY_ACCOUNT_NUMBER,
            opening_balance=Decimal('1000.00')
        )
        secondary = system.account_manager.create_account(
            customer_id=jane.id,
            account_number=SECONDARY_ACCOUNT_NUMBER,
            opening_balance=Decimal('500.00')
        )

        for kind, amount, source, destination in [
            (TransactionKind.DEPOSIT, Decimal('300.00'), None, primary.id),
            (TransactionKind.DEPOSIT, Decimal('200.00'), None, primary.id),
            (TransactionKind.WITHDRAWAL, Decimal('50.00'), primary.id, None),
            (TransactionKind.TRANSFER, Decimal('100.00'), primary.id, secondary.id),
        ]:
            system.transaction_log.append_transaction(Transaction.create(
                kind, amount, from_account_id=source, to_account_id=destination
            ))

    logger.info("Seed data created")
    return True


def main() -> None:
    from .config import get_config
    from .system import LedgerSystem

    config = get_config()
    setup_logging(config.log_level, config.log_format, config.log_file)
    system = LedgerSystem(config)
    try:
        seed_data(system)
    finally:
        system.close()


if __name__ == "__main__":
    main()
