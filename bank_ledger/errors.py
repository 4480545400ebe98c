"""
Ledger Error Taxonomy

Domain exceptions raised by the ledger engine. Callers map them to
user-facing responses; the engine itself never retries.
"""


class LedgerError(Exception):
    """Base class for all ledger errors"""
    pass


class AccountNotFound(LedgerError):
    """Raised when an account id or account number does not exist"""
    
    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Account {identifier} not found")


class CustomerNotFound(LedgerError):
    """Raised when a customer id does not exist"""
    
    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(f"Customer {customer_id} not found")


class InsufficientFunds(LedgerError):
    """
    Raised when a withdrawal or transfer would take the balance below zero.
    No state is changed when this is raised.
    """
    
    def __init__(self, account_id: str, available, requested):
        self.account_id = account_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient funds in account {account_id}: "
            f"available {available}, requested {requested}"
        )


class ValidationError(LedgerError):
    """Raised for malformed input such as a non-positive amount"""
    pass


class StorageFailure(LedgerError):
    """
    Raised when an atomic unit could not be committed.
    The data model is left exactly as it was before the call.
    """
    pass
