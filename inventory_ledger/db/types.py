"""
Module: inventory_ledger.db.types
Responsibility: Annotated type aliases and quantity helpers.  Centralizes the
    ledger's precision and rounding so that every model and service uses
    identical definitions.
Architecture position: DB layer.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Stock quantities carry exactly 2 decimal places.
    - Conversion ratios carry 4 decimal places.
    - No floats: ``to_quantity`` goes through ``str`` so binary float noise
      never reaches the ledger.

Failure modes:
    - InvalidQuantityError on non-numeric input, NaN/infinity, or a value
      with more precision than the ledger stores.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric, String

from inventory_ledger.exceptions import InvalidQuantityError

# Stock quantity: 14 digits total, 2 decimal places
Quantity = Annotated[Decimal, Numeric(14, 2)]

# Repacking conversion ratio: 4 decimal places
Ratio = Annotated[Decimal, Numeric(14, 4)]

# Percentage with 2 decimal places (e.g. loss percentage)
Percentage = Annotated[Decimal, Numeric(7, 2)]

# Generated document numbers, e.g. TRX-20260310-001
DocumentNumber = Annotated[str, String(50)]

# Short free-form identifiers (batch numbers, reference numbers)
ShortCode = Annotated[str, String(100)]


QUANTITY_DECIMAL_PLACES = 2
RATIO_DECIMAL_PLACES = 4
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0.00")


def quantize(value: Decimal, decimal_places: int = QUANTITY_DECIMAL_PLACES) -> Decimal:
    """Round ``value`` to ``decimal_places`` using ROUND_HALF_UP."""
    return value.quantize(Decimal(1).scaleb(-decimal_places), rounding=DEFAULT_ROUNDING)


def to_quantity(value: object, field: str = "quantity") -> Decimal:
    """
    Convert caller input to a ledger quantity.

    Accepts Decimal, int, float or numeric string.  The value must be
    representable at 2 decimal places without rounding.

    Args:
        value: The raw quantity.
        field: Field name used in error messages.

    Returns:
        Decimal quantized to 2 decimal places.

    Raises:
        InvalidQuantityError: If the value is not a finite number or has
            more than 2 decimal places.
    """
    if isinstance(value, bool):
        raise InvalidQuantityError(field, value, "not a number")
    try:
        dec = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise InvalidQuantityError(field, value, "not a number") from exc

    if not dec.is_finite():
        raise InvalidQuantityError(field, value, "not a finite number")

    rounded = quantize(dec)
    if rounded != dec:
        raise InvalidQuantityError(
            field, value, f"more than {QUANTITY_DECIMAL_PLACES} decimal places"
        )
    return rounded


def to_positive_quantity(value: object, field: str = "quantity") -> Decimal:
    """Like ``to_quantity`` but rejects zero and negative values."""
    qty = to_quantity(value, field)
    if qty <= 0:
        raise InvalidQuantityError(field, value, "must be greater than zero")
    return qty
