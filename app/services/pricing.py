"""Spot price and market cap from fixed-point balances.

Market cap is defined as TVL across the whole service. ``price * supply``
can differ from TVL because the bonding curve keeps pooled and locked
balances apart; callers must not substitute one for the other.
"""

from decimal import Decimal

WAD = 10**18


def to_decimal(amount: int) -> float:
    """Convert an 18-decimal fixed-point integer to a float."""
    return float(Decimal(amount) / WAD)


def compute_price(tvl: float, total_supply: int) -> float:
    if total_supply <= 0:
        return 0.0
    return tvl / to_decimal(total_supply)


def compute_market_cap(tvl: float) -> float:
    return tvl
