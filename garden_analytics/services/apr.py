"""
APR arithmetic shared by the fee and emission aggregators.

Fee distribution on DFK swaps:
    Total swap fee: 0.30%
    - 0.20% -> liquidity providers (the only part counted in fee APR)
    - 0.10% -> Jeweler / quest fund / dev / burn

All APRs are returned as percentages (Decimal('36.5') means 36.5%) and
extrapolate one day of observations to 365 days.
"""
from decimal import Decimal
from typing import Optional

# LP share of swap volume (0.20% of the 0.30% total swap fee)
LP_FEE_SHARE = Decimal('0.002')

DAYS_PER_YEAR = Decimal(365)
HUNDRED = Decimal(100)


def fees_from_volume(volume_usd: Optional[Decimal], lp_fee_share: Decimal = LP_FEE_SHARE) -> Optional[Decimal]:
    """LP fee revenue for a day of volume; None stays None"""
    if volume_usd is None:
        return None
    return volume_usd * lp_fee_share


def annualize_pct(daily_usd: Optional[Decimal], base_usd: Optional[Decimal]) -> Optional[Decimal]:
    """
    daily * 365 / base * 100.

    Returns None if either input is unavailable and 0 if either is zero, so a
    missing figure is never reported as a 0% APR and nothing divides by zero.
    """
    if daily_usd is None or base_usd is None:
        return None
    if base_usd <= 0 or daily_usd <= 0:
        return Decimal(0)
    return daily_usd * DAYS_PER_YEAR / base_usd * HUNDRED


def fee_apr_pct(fees_24h_usd: Optional[Decimal], total_pool_tvl_usd: Optional[Decimal]) -> Optional[Decimal]:
    """Fee APR over the whole pool's TVL (V1 and V2 liquidity both earn fees)."""
    return annualize_pct(fees_24h_usd, total_pool_tvl_usd)


def emission_apr_pct(rewards_24h_usd: Optional[Decimal], v2_staked_tvl_usd: Optional[Decimal]) -> Optional[Decimal]:
    """Emission APR over V2-staked TVL only; legacy V1 deposits get no emissions."""
    return annualize_pct(rewards_24h_usd, v2_staked_tvl_usd)
