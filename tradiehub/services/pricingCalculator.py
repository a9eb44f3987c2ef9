"""
Quote Pricing Calculator.

Computes line totals, GST and the grand total for a list of quote items::

    line_total   = quantity * unit_price           (2 dp, half-up)
    subtotal     = sum(line_total)
    gst_amount   = subtotal * GST_RATE if gst_enabled else 0
    total_amount = subtotal + gst_amount

Pure and side-effect free. Used standalone by the calculate endpoint and
internally whenever a quote's items change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional, Sequence

from tradiehub.core.config import settings
from tradiehub.core.errors import FieldError, ValidationError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

MIN_QUANTITY = Decimal("0.01")
MAX_QUANTITY = Decimal("99999.99")
MAX_UNIT_PRICE = Decimal("999999.99")


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LineItem:
    """The pricing-relevant part of a quote item."""
    quantity: Decimal
    unit_price: Decimal
    description: str = ""
    item_type: str = "other"
    unit: str = "each"


@dataclass(frozen=True)
class QuoteCalculation:
    subtotal: Decimal
    gst_amount: Decimal
    total_amount: Decimal
    gst_rate: Decimal
    line_totals: list[Decimal] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _read(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def validate_items(items: Sequence[Any]) -> list[tuple[Decimal, Decimal]]:
    """Validate quantities and unit prices, returning them as Decimals.

    Raises ``ValidationError`` listing every offending field.
    """
    if not items:
        raise ValidationError.for_field("items", "At least one item is required.")

    max_items = settings.quote_max_items
    if len(items) > max_items:
        raise ValidationError.for_field(
            "items", f"A quote cannot have more than {max_items} items."
        )

    errors: list[FieldError] = []
    parsed: list[tuple[Decimal, Decimal]] = []
    for index, item in enumerate(items):
        quantity = _to_decimal(_read(item, "quantity"))
        unit_price = _to_decimal(_read(item, "unit_price"))

        if quantity is None or not quantity.is_finite():
            errors.append(FieldError(f"items[{index}].quantity", "Quantity must be a number."))
        elif quantity <= 0:
            errors.append(FieldError(f"items[{index}].quantity", "Quantity must be greater than 0."))
        elif quantity < MIN_QUANTITY or quantity > MAX_QUANTITY:
            errors.append(FieldError(
                f"items[{index}].quantity",
                f"Quantity must be between {MIN_QUANTITY} and {MAX_QUANTITY}.",
            ))

        if unit_price is None or not unit_price.is_finite():
            errors.append(FieldError(f"items[{index}].unit_price", "Unit price must be a number."))
        elif unit_price < 0:
            errors.append(FieldError(f"items[{index}].unit_price", "Unit price cannot be negative."))
        elif unit_price > MAX_UNIT_PRICE:
            errors.append(FieldError(
                f"items[{index}].unit_price",
                f"Unit price cannot exceed {MAX_UNIT_PRICE}.",
            ))

        parsed.append((quantity, unit_price))

    if errors:
        raise ValidationError("Invalid quote items.", errors=errors)
    return parsed


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def calculate_line_total(quantity: Decimal, unit_price: Decimal) -> Decimal:
    return round_money(quantity * unit_price)


def calculate_gst(subtotal: Decimal, gst_enabled: bool, gst_rate: Optional[Decimal] = None) -> Decimal:
    if not gst_enabled:
        return ZERO
    rate = settings.gst_rate if gst_rate is None else gst_rate
    return round_money(subtotal * rate)


def calculate_quote(
    items: Sequence[Any],
    gst_enabled: bool,
    gst_rate: Optional[Decimal] = None,
) -> QuoteCalculation:
    """Price a list of items.

    ``items`` may be ``LineItem`` instances, request schemas, ORM
    ``QuoteItem`` rows or plain dicts; only ``quantity`` and ``unit_price``
    are read.

    Raises:
        ValidationError: if items is empty, too long, or any item has a
            non-positive quantity or a negative unit price.
    """
    parsed = validate_items(items)
    rate = settings.gst_rate if gst_rate is None else gst_rate

    line_totals = [calculate_line_total(q, p) for q, p in parsed]
    subtotal = round_money(sum(line_totals, ZERO))
    gst_amount = calculate_gst(subtotal, gst_enabled, rate)

    return QuoteCalculation(
        subtotal=subtotal,
        gst_amount=gst_amount,
        total_amount=round_money(subtotal + gst_amount),
        gst_rate=rate if gst_enabled else ZERO,
        line_totals=line_totals,
    )
