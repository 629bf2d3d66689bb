"""
Module: workforce_kernel.db.types
Responsibility: Annotated column aliases and normalization helpers for the
    amounts, hours and codes carried by contracts, invoices, timesheets and
    remittances.
Architecture position: Kernel > DB.  May be imported by models/, domain/ and
    services/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for money or hours.  Amounts use Money (Numeric(38, 9)).
    - Currency codes are three upper-case letters; country codes two.

Failure modes:
    - ValidationError on malformed currency or country codes.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any

from sqlalchemy import Numeric, String

from workforce_kernel.exceptions import ValidationError

# 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Timesheet hours, two decimal places are enough for quarter-hour entries
Hours = Annotated[Decimal, Numeric(10, 2)]

# ISO 4217 currency code (e.g., "USD", "EUR", "GBP")
Currency = Annotated[str, String(3)]

# ISO 3166-1 alpha-2 country code
CountryCode = Annotated[str, String(2)]

# Stable lowercase snake_case state and type names
ShortCode = Annotated[str, String(40)]

LongText = Annotated[str, String(4000)]

MONEY_DECIMAL_PLACES = 2

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")
_COUNTRY_RE = re.compile(r"^[A-Z]{2}$")


def to_decimal(value: Any, field: str) -> Decimal:
    """Coerce an int, str or Decimal to Decimal; floats are rejected."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float) or isinstance(value, bool):
        raise ValidationError(f"{field} must be a Decimal, not {type(value).__name__}", field=field)
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field} is not a number: {value!r}", field=field) from exc


def round_money(value: Decimal, decimal_places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """Round a monetary value half-up to the given number of places."""
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=ROUND_HALF_UP)


def validate_currency(currency: str) -> str:
    """Return the upper-cased currency code or raise ValidationError."""
    normalized = (currency or "").strip().upper()
    if not _CURRENCY_RE.match(normalized):
        raise ValidationError(f"Invalid currency code: '{currency}'", field="currency")
    return normalized


def validate_country(country_code: str) -> str:
    """Return the upper-cased country code or raise ValidationError."""
    normalized = (country_code or "").strip().upper()
    if not _COUNTRY_RE.match(normalized):
        raise ValidationError(
            f"Invalid country code: '{country_code}'", field="country_code"
        )
    return normalized
