from decimal import Decimal, ROUND_HALF_UP

from ..config import settings

CENTS = Decimal("0.01")


def as_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    if isinstance(value, Decimal):
        return value.quantize(CENTS, rounding=ROUND_HALF_UP)
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def format_amount(value) -> str:
    return f"{settings.currency_symbol}{as_decimal(value):.2f}"
