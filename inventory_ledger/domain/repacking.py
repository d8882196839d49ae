"""
Repacking Calculator -- pure conversion arithmetic.

Responsibility:
    Computes the conversion ratio, expected target quantity and loss figures
    for converting a quantity of one product (e.g. 1 L bottles) into another
    (e.g. 250 mL bottles).

Architecture position:
    Domain -- pure function, no I/O.  Called by the transaction recorder
    before any ledger mutation.

Invariants enforced:
    - ratio = source / target, quantized to 4 decimal places.
    - expected = source / ratio, quantized to 2 decimal places.
    - loss = expected - target; loss % = loss / source * 100 (2 dp).
    - Because expected is derived from the ratio, loss is zero except for
      rounding.  Callers that need real yield loss record it as waste.

Failure modes:
    - InvalidRepackingError when either quantity is zero or negative.
"""

from dataclasses import dataclass
from decimal import Decimal

from inventory_ledger.db.types import RATIO_DECIMAL_PLACES, quantize
from inventory_ledger.exceptions import InvalidRepackingError


@dataclass(frozen=True)
class RepackingCalculation:
    """Result of a repacking calculation.  All values are Decimals."""

    source_quantity: Decimal
    target_quantity: Decimal
    conversion_ratio: Decimal
    expected_target_quantity: Decimal
    loss_quantity: Decimal
    loss_percentage: Decimal


def calculate_repacking(source_quantity: Decimal, target_quantity: Decimal) -> RepackingCalculation:
    """
    Compute repacking figures.

    Args:
        source_quantity: Quantity consumed from the source product (> 0).
        target_quantity: Quantity produced of the target product (> 0).

    Returns:
        RepackingCalculation with ratio (4 dp) and expected/loss values (2 dp).

    Raises:
        InvalidRepackingError: If either quantity is not positive.
    """
    if target_quantity <= 0:
        raise InvalidRepackingError(
            f"target quantity must be greater than zero, got {target_quantity}"
        )
    if source_quantity <= 0:
        raise InvalidRepackingError(
            f"source quantity must be greater than zero, got {source_quantity}"
        )

    ratio = quantize(source_quantity / target_quantity, RATIO_DECIMAL_PLACES)
    if ratio <= 0:
        raise InvalidRepackingError(
            f"conversion ratio {source_quantity}/{target_quantity} rounds to zero"
        )
    expected = quantize(source_quantity / ratio)
    loss = quantize(expected - target_quantity)
    loss_pct = quantize(loss / source_quantity * 100)

    return RepackingCalculation(
        source_quantity=source_quantity,
        target_quantity=target_quantity,
        conversion_ratio=ratio,
        expected_target_quantity=expected,
        loss_quantity=loss,
        loss_percentage=loss_pct,
    )
