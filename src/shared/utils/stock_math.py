"""Balance and valuation arithmetic for stock rows and ledger entries.

Pure functions only; the services call these so the formulas live in one place.
"""

from collections.abc import Iterable
from decimal import Decimal

from src.shared.utils.money import Number, round_money, round_quantity, to_decimal

ZERO = Decimal("0")


def available_stock(current: Number, reserved: Number) -> Decimal:
    """available = current - reserved."""
    return round_quantity(to_decimal(current) - to_decimal(reserved))


def line_total(quantity: Number, unit_cost: Number) -> Decimal:
    return round_money(to_decimal(quantity) * to_decimal(unit_cost))


def closing_stock(
    opening: Number,
    stock_in: Number = ZERO,
    transfer_in: Number = ZERO,
    adjustment_in: Number = ZERO,
    stock_out: Number = ZERO,
    transfer_out: Number = ZERO,
    adjustment_out: Number = ZERO,
) -> Decimal:
    """opening + inflows - outflows."""
    inflows = to_decimal(stock_in) + to_decimal(transfer_in) + to_decimal(adjustment_in)
    outflows = to_decimal(stock_out) + to_decimal(transfer_out) + to_decimal(adjustment_out)
    return round_quantity(to_decimal(opening) + inflows - outflows)


def closing_value(closing: Number, average_cost: Number) -> Decimal:
    return round_money(to_decimal(closing) * to_decimal(average_cost))


def weighted_average_cost(lines: Iterable[tuple[Number, Number]]) -> Decimal | None:
    """Weighted average unit cost of ``(quantity, total_cost)`` lines.

    Lines with a non-positive quantity are ignored. Returns None when nothing is left
    so the caller can pick its own fallback.
    """
    total_value = ZERO
    total_quantity = ZERO
    for quantity, total_cost in lines:
        quantity = to_decimal(quantity)
        if quantity <= 0:
            continue
        total_quantity += quantity
        total_value += to_decimal(total_cost)
    if total_quantity <= 0:
        return None
    return round_money(total_value / total_quantity)


def split_signed(quantity: Number) -> tuple[Decimal, Decimal]:
    """Split a signed movement into ``(inbound, outbound)`` magnitudes."""
    quantity = to_decimal(quantity)
    if quantity > 0:
        return quantity, ZERO
    return ZERO, -quantity
