"""
Monetary Amount Helpers

All balances and amounts are Decimal values quantized to two fractional
digits. NEVER uses float for monetary values.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from typing import Union

from .errors import ValidationError

# High precision for intermediate results
getcontext().prec = 28

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

# Largest value a NUMERIC(18, 2) column holds
MAX_AMOUNT = Decimal('9999999999999999.99')

AmountLike = Union[Decimal, str, int, float]


def to_amount(value: AmountLike) -> Decimal:
    """
    Convert a value to a Decimal rounded to cents.
    
    Floats are converted through their string form so 0.1 stays 0.10.
    
    Raises:
        ValidationError: If the value is not a finite number or its
            magnitude exceeds MAX_AMOUNT
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Invalid amount: {value!r}")
    if not value.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    if abs(value) > MAX_AMOUNT:
        raise ValidationError(f"Amount {value} exceeds the maximum of {MAX_AMOUNT}")
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {value!r}")


def check_balance_limit(account_id: str, balance: Decimal) -> None:
    """Reject a credit that would take a balance past MAX_AMOUNT"""
    if balance > MAX_AMOUNT:
        raise ValidationError(
            f"Balance of account {account_id} would exceed the maximum of {MAX_AMOUNT}"
        )


def to_positive_amount(value: AmountLike) -> Decimal:
    """Convert to a cent amount and reject zero or negative values"""
    amount = to_amount(value)
    if amount <= ZERO:
        raise ValidationError(f"Amount must be greater than zero, got {amount}")
    return amount


def format_amount(amount: Decimal) -> str:
    """Format for display and serialization, e.g. 1300.00"""
    return f"{amount:.2f}"
