"""
Module: ledger_engines.amounts
Responsibility:
    Compute the tax and total of a priced line (quantity x unit price plus a
    percentage tax) with exact decimal arithmetic.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Decimal-only arithmetic; floats are converted through ``str()`` so
      binary noise never enters a monetary value.
    - tax >= 0: negative quantities and prices are rejected, and a rate of
      zero or below yields no tax.
    - total = round_half_up(subtotal + tax, 2); tax is kept at 4 places.
    - Idempotent: identical inputs always produce identical outputs.

Failure modes:
    - Missing quantity or unit price is not an error; both amounts are zero.
    - ValueError for inputs that are not finite numbers, and for a negative
      quantity or unit price.

Usage:
    from ledger_engines.amounts import compute_amounts

    tax, total = compute_amounts(10, "100", 5)
    # (Decimal("50.0000"), Decimal("1050.00"))
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import NamedTuple, Union

from ledger_engines.tracer import traced_engine
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.amounts")

Number = Union[int, float, str, Decimal]

ZERO = Decimal("0")
HUNDRED = Decimal("100")
TAX_QUANTUM = Decimal("0.0001")
MONEY_QUANTUM = Decimal("0.01")


class LineAmounts(NamedTuple):
    """Tax and total of one priced line.  Compares equal to ``(tax, total)``."""

    tax_amount: Decimal
    total_amount: Decimal


def to_decimal(value: Number | None) -> Decimal | None:
    """Convert a numeric input to Decimal; None passes through."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Not a numeric amount: {value!r}")
    if isinstance(value, float):
        value = str(value)
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a numeric amount: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a numeric amount: {value!r}")
    return result


def _pricing(
    quantity: Number | None, unit_price: Number | None,
) -> tuple[Decimal | None, Decimal | None]:
    qty = to_decimal(quantity)
    price = to_decimal(unit_price)
    if qty is not None and qty < ZERO:
        raise ValueError(f"Quantity must not be negative: {quantity!r}")
    if price is not None and price < ZERO:
        raise ValueError(f"Unit price must not be negative: {unit_price!r}")
    return qty, price


def line_subtotal(quantity: Number | None, unit_price: Number | None) -> Decimal:
    """Subtotal of one item line rounded half-up to 2 places (zero if unpriced)."""
    qty, price = _pricing(quantity, unit_price)
    if qty is None or price is None:
        return ZERO
    return (qty * price).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


@traced_engine(
    "amounts", "1.0",
    fingerprint_fields=("quantity", "unit_price", "tax_rate_percent"),
)
def compute_amounts(
    quantity: Number | None,
    unit_price: Number | None,
    tax_rate_percent: Number | None,
) -> LineAmounts:
    """
    Compute (tax_amount, total_amount) for a priced line.

    Preconditions:
        Inputs are numbers (int, str, Decimal or float) or None.
        Quantity and unit price are not negative.

    Postconditions:
        - quantity or unit_price None -> (0, 0).
        - subtotal = unit_price * quantity, unrounded.
        - tax = subtotal * rate / 100 rounded half-up to 4 places when the
          rate is above zero, else 0.
        - total = subtotal + tax rounded half-up to 2 places.

    Raises:
        ValueError: an input is not a finite number, or quantity or unit
            price is negative.
    """
    qty, price = _pricing(quantity, unit_price)
    rate = to_decimal(tax_rate_percent)

    if qty is None or price is None:
        logger.debug(
            "amounts_missing_pricing",
            extra={"quantity": qty, "unit_price": price},
        )
        return LineAmounts(ZERO, ZERO)

    subtotal = price * qty

    tax = ZERO
    if rate is not None and rate > ZERO:
        tax = (subtotal * rate / HUNDRED).quantize(TAX_QUANTUM, rounding=ROUND_HALF_UP)

    total = (subtotal + tax).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)
    return LineAmounts(tax, total)


def sum_amounts(lines: Iterable[LineAmounts | tuple[Decimal, Decimal]]) -> LineAmounts:
    """Total several lines: sums of tax and of total, without re-rounding."""
    tax = ZERO
    total = ZERO
    for line_tax, line_total in lines:
        tax += line_tax
        total += line_total
    return LineAmounts(tax, total)
