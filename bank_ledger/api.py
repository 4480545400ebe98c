"""
FastAPI REST API Module

HTTP surface over the ledger engine: account history, deposits,
withdrawals and transfers addressed by account number, plus customer and
account provisioning. Handlers are plain functions, so FastAPI runs each
request on its own worker thread.
"""

import threading
from typing import Optional, Union
from fastapi import FastAPI, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import uvicorn

from .system import LedgerSystem
from .errors import (
    AccountNotFound, CustomerNotFound, InsufficientFunds,
    LedgerError, StorageFailure, ValidationError
)
from .money import to_amount, format_amount
from .logging_config import get_logger


logger = get_logger("bank_ledger.api")


# Pydantic models for API requests
class CreateCustomerRequest(BaseModel):
    first_name: str
    last_name: str
    phone_number: Optional[str] = None
    email: Optional[str] = None


class CreateAccountRequest(BaseModel):
    customer_id: str
    account_number: Optional[str] = None
    opening_balance: Union[str, float] = Field("0.00", description="Decimal amount, preferably as string")


class AmountRequest(BaseModel):
    amount: Union[str, float] = Field(..., description="Decimal amount, preferably as string")


_ledger_system: Optional[LedgerSystem] = None
_ledger_system_lock = threading.Lock()


def get_ledger_system() -> LedgerSystem:
    """Get the process-wide ledger system, creating it on first use"""
    global _ledger_system
    if _ledger_system is None:
        # Handlers run on a threadpool; build exactly one system
        with _ledger_system_lock:
            if _ledger_system is None:
                _ledger_system = LedgerSystem()
    return _ledger_system


ERROR_STATUS = [
    (AccountNotFound, status.HTTP_404_NOT_FOUND),
    (CustomerNotFound, status.HTTP_404_NOT_FOUND),
    (InsufficientFunds, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (StorageFailure, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code = code
            break
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content={"error": str(exc)})


def _resolve_account(system: LedgerSystem, account_number: str):
    account = system.account_manager.get_account_by_number(account_number)
    if not account:
        raise AccountNotFound(account_number)
    return account


def create_app(system: Optional[LedgerSystem] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        system: Ledger system to serve; the process-wide one when omitted
    """
    app = FastAPI(
        title="Bank Ledger API",
        description="Atomic deposits, withdrawals and transfers with account history",
        version="1.0.0"
    )
    app.add_exception_handler(LedgerError, ledger_error_handler)

    if system is not None:
        app.dependency_overrides[get_ledger_system] = lambda: system

    @app.get("/health")
    def health_check():
        return {"status": "healthy", "service": "bank_ledger"}

    @app.post("/customers", status_code=status.HTTP_201_CREATED)
    def create_customer(request: CreateCustomerRequest,
                        system: LedgerSystem = Depends(get_ledger_system)):
        customer = system.customer_manager.create_customer(
            first_name=request.first_name,
            last_name=request.last_name,
            phone_number=request.phone_number,
            email=request.email
        )
        return {"customer_id": customer.id, "message": "Customer created successfully"}

    @app.post("/accounts", status_code=status.HTTP_201_CREATED)
    def create_account(request: CreateAccountRequest,
                       system: LedgerSystem = Depends(get_ledger_system)):
        account = system.account_manager.create_account(
            customer_id=request.customer_id,
            account_number=request.account_number,
            opening_balance=to_amount(request.opening_balance)
        )
        return {
            "account_id": account.id,
            "account_number": account.account_number,
            "message": "Account created successfully"
        }

    @app.get("/accounts/{account_number}")
    def get_account(account_number: str,
                    system: LedgerSystem = Depends(get_ledger_system)):
        account = _resolve_account(system, account_number)
        return {
            "id": account.id,
            "account_number": account.account_number,
            "customer_id": account.customer_id,
            "balance": format_amount(account.balance),
            "created_at": account.created_at.isoformat(),
            "updated_at": account.updated_at.isoformat()
        }

    @app.get("/accounts/{account_number}/history")
    def get_account_history(account_number: str,
                            system: LedgerSystem = Depends(get_ledger_system)):
        return system.history.get_history(account_number).to_dict()

    @app.post("/accounts/{account_number}/deposit")
    def deposit(account_number: str, request: AmountRequest,
                system: LedgerSystem = Depends(get_ledger_system)):
        account = _resolve_account(system, account_number)
        transaction = system.ledger.deposit(account.id, request.amount)
        return {"message": "deposit successful", "transaction_id": transaction.id}

    @app.post("/accounts/{account_number}/withdraw")
    def withdraw(account_number: str, request: AmountRequest,
                 system: LedgerSystem = Depends(get_ledger_system)):
        account = _resolve_account(system, account_number)
        transaction = system.ledger.withdraw(account.id, request.amount)
        return {"message": "withdrawal successful", "transaction_id": transaction.id}

    @app.post("/accounts/{from_account_number}/transfer/{to_account_number}")
    def transfer(from_account_number: str, to_account_number: str, request: AmountRequest,
                 system: LedgerSystem = Depends(get_ledger_system)):
        source = _resolve_account(system, from_account_number)
        destination = _resolve_account(system, to_account_number)
        transaction = system.ledger.transfer(source.id, destination.id, request.amount)
        return {"message": "transfer successful", "transaction_id": transaction.id}

    return app


def run_server(host: str = "0.0.0.0", port: int = 8080, log_level: str = "info"):
    """Run the API server"""
    uvicorn.run(create_app(), host=host, port=port, log_level=log_level)
