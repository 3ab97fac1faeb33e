"""Net revenue calculation.

Money stays in Decimal end to end. Every amount is held at a fixed
scale of six places and bounded in magnitude, so sums never round and
aggregation is exact and independent of row order.
"""
from decimal import ROUND_HALF_EVEN, Context, Decimal, localcontext


MONEY_QUANTUM = Decimal("0.000001")

# Largest accepted adjusted exponent for a single row value (< 10**16)
MAX_MAGNITUDE = 15

MONEY_CONTEXT = Context(prec=34, rounding=ROUND_HALF_EVEN)

_ONE_HUNDRED = Decimal("100")


def money_context():
    """Arithmetic context for folding money amounts."""
    return localcontext(MONEY_CONTEXT)


def to_money(amount: Decimal) -> Decimal:
    """Quantize an already bounded amount to the money scale."""
    with money_context():
        return amount.quantize(MONEY_QUANTUM)


def calculate_net_revenue(gross_revenue: Decimal, revenue_share_percent: Decimal) -> Decimal:
    """Owner's contractual share of gross revenue.

    Args:
        gross_revenue: Row-level gross revenue (>= 0, money scale)
        revenue_share_percent: Owner share, 0-100

    Returns:
        gross * (share / 100), rounded half-even to the money scale
    """
    with money_context():
        net = gross_revenue * (Decimal(revenue_share_percent) / _ONE_HUNDRED)
        return net.quantize(MONEY_QUANTUM)
