"""
Monetary Amount Helpers

Single-currency amounts are plain Decimals rounded to cents. NEVER uses
float arithmetic for balances.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Union

# Set global decimal context for financial precision
getcontext().prec = 28

CENTS = Decimal('0.01')
ZERO = Decimal('0.00')

# Largest single amount accepted from callers
MAX_AMOUNT = Decimal('999999999999.99')

AmountLike = Union[Decimal, int, float, str]


def round_amount(value: Decimal) -> Decimal:
    """
    Round a computed value (a balance, an average) to cents, half up.

    Raises:
        ValueError: If the result does not fit the decimal context
    """
    try:
        return value.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"Amount out of range: {value!r}")


def parse_amount(value: AmountLike) -> Decimal:
    """
    Convert user input to a Decimal with exactly two places.

    Floats go through ``str`` so 0.1 becomes Decimal('0.10') rather than
    its binary expansion. Fractions of a cent are rejected, not rounded.

    Raises:
        ValueError: If the value is not a finite number, has more than two
            decimal places or exceeds MAX_AMOUNT in magnitude
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    if abs(amount) > MAX_AMOUNT:
        raise ValueError(f"Amount exceeds {MAX_AMOUNT}: {value!r}")

    rounded = round_amount(amount)
    if rounded != amount:
        raise ValueError(f"Amount has fractions of a cent: {value!r}")
    return rounded


def format_amount(amount: Decimal) -> str:
    """Format for display, e.g. 1,234.56"""
    return f"{amount:,.2f}"


def mask_account_number(digits: str, visible: int = 4) -> str:
    """Mask an account number, showing only the trailing digits"""
    return "****" + digits[-visible:]
