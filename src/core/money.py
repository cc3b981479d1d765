"""
Money helpers.

Every amount is an int count of minor currency units. Products with a
quantity or a rate go through Decimal and are rounded half-up back to an
int, so no float ever touches a total.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from enum import Enum
from typing import Union

from core.errors import InvalidQuantityError, MoneyOverflowError

# amounts are persisted as sqlite INTEGER, so keep them within int64
MAX_MINOR = 2**63 - 1
MIN_MINOR = -(2**63)

Number = Union[int, str, Decimal, float]


class RoundingMode(Enum):
    HALF_UP = ROUND_HALF_UP


def check_range(amount: int) -> int:
    if not MIN_MINOR <= amount <= MAX_MINOR:
        raise MoneyOverflowError(f"Amount {amount} is outside the representable range.")
    return amount


def round_minor(amount: Number, mode: RoundingMode = RoundingMode.HALF_UP) -> int:
    """Round an amount of minor units to an int. 2.5 -> 3, -2.5 -> -3."""
    if isinstance(amount, float):
        amount = str(amount)
    with localcontext() as ctx:
        ctx.prec = 60
        rounded = Decimal(amount).quantize(Decimal(1), rounding=mode.value)
    return check_range(int(rounded))


def add(*amounts: int) -> int:
    total = 0
    for amount in amounts:
        total = check_range(total + check_range(amount))
    return total


def subtract(a: int, b: int) -> int:
    return check_range(check_range(a) - check_range(b))


def multiply(amount: int, factor: Number) -> int:
    with localcontext() as ctx:
        ctx.prec = 60
        product = Decimal(check_range(amount)) * to_decimal(factor)
    return round_minor(product)


def line_total(unit_price: int, quantity: Number) -> int:
    return multiply(unit_price, quantity)


def apply_rate(amount: int, rate: Number) -> int:
    return multiply(amount, rate)


def to_decimal(value: Number) -> Decimal:
    # floats go through str() so 0.1 stays 0.1
    if isinstance(value, float):
        value = str(value)
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidQuantityError(f"Not a number: {value!r}") from None
    if not result.is_finite():
        raise InvalidQuantityError(f"Not a finite number: {value!r}")
    return result


def to_quantity(value: Number) -> Decimal:
    return to_decimal(value)


def is_integral(value: Decimal) -> bool:
    return value == value.to_integral_value()


def parse_quantity(text: str) -> Decimal:
    """Operator input -> quantity; a decimal comma is accepted."""
    return to_decimal(text.strip().replace(",", "."))


def parse_amount(text: str, exponent: int = 2) -> int:
    """Operator input in major units -> minor units, e.g. '15.5' -> 1550."""
    return round_minor(to_decimal(text.strip().replace(",", ".")).scaleb(exponent))


def format_amount(amount: int, symbol: str = "₡", exponent: int = 2) -> str:
    """Render minor units for display, e.g. 339000 -> '₡3,390.00'."""
    sign = "-" if amount < 0 else ""
    if exponent <= 0:
        return f"{sign}{symbol}{abs(amount):,}"
    major, minor = divmod(abs(amount), 10**exponent)
    return f"{sign}{symbol}{major:,}.{minor:0{exponent}d}"
