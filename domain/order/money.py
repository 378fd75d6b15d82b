"""
Money helpers - amounts are carried as integer minor units inside the domain.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation

from domain.common.exceptions import DomainValidationException


# Currencies without a fractional unit; everything else uses 2 decimals.
ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW"})


def currency_exponent(currency: str) -> int:
    return 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2


def to_minor_units(amount: Decimal | int | str, currency: str, *, field: str = "amount") -> int:
    """Convert a decimal amount to minor units, refusing sub-unit precision."""
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise DomainValidationException(f"Invalid amount: {amount}", field=field)
    if value < 0:
        raise DomainValidationException(f"Amount must not be negative: {amount}", field=field)
    scaled = value * (Decimal(10) ** currency_exponent(currency))
    if scaled != scaled.to_integral_value():
        raise DomainValidationException(
            f"Amount {amount} has more precision than {currency.upper()} allows",
            field=field,
        )
    return int(scaled)


def from_minor_units(minor: int, currency: str) -> Decimal:
    exponent = currency_exponent(currency)
    return (Decimal(minor) / (Decimal(10) ** exponent)).quantize(Decimal(1).scaleb(-exponent))
