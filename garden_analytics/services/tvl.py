"""
Pool TVL, split into the V2-staked share and the legacy V1 remainder.

Only LP tokens staked in the V2 staking contract earn emissions; everything
else in the pair (V1 deposits, unstaked LP) still earns swap fees. The split
uses an integer ratio with 6 decimal places so it is exact and reproducible
regardless of how large the raw supplies are.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from garden_analytics.adapters.dfk.lp_pairs import LPPairInfo
from garden_analytics.adapters.dfk.price_graph import PriceGraph

logger = logging.getLogger(__name__)

RATIO_PRECISION = 10 ** 6


@dataclass
class TVLBreakdown:
    total_pool_tvl_usd: Optional[Decimal]
    v1_tvl_usd: Optional[Decimal]
    v2_staked_tvl_usd: Optional[Decimal]
    staked_ratio: Decimal
    staked_ratio_scaled: int


def staked_ratio_scaled(total_staked: int, total_supply: int) -> int:
    """total_staked / total_supply in millionths, floored; 0 for an empty pair"""
    if total_supply <= 0:
        return 0
    return total_staked * RATIO_PRECISION // total_supply


def pair_tvl_usd(pair: LPPairInfo, price_graph: PriceGraph) -> Optional[Decimal]:
    """reserve0 * price0 + reserve1 * price1, or None if either token is unpriced"""
    price0 = price_graph.price_of(pair.token0.address)
    price1 = price_graph.price_of(pair.token1.address)
    if price0 is None or price1 is None:
        return None
    amount0, amount1 = pair.reserve_amounts()
    return amount0 * price0 + amount1 * price1


def calculate_tvl(pair: LPPairInfo, price_graph: PriceGraph, total_staked: int) -> TVLBreakdown:
    """
    Args:
        pair: Resolved LP pair
        price_graph: Completed price graph of this run
        total_staked: Raw LP amount staked in the V2 staking contract

    Returns:
        TVLBreakdown; USD fields are None when a token is unpriced, the
        staked ratio is always computed
    """
    ratio_scaled = staked_ratio_scaled(total_staked, pair.total_supply)
    ratio = Decimal(ratio_scaled) / RATIO_PRECISION

    total = pair_tvl_usd(pair, price_graph)
    if total is None:
        logger.debug("%s: TVL unavailable, token unpriced", pair.pair_name)
        return TVLBreakdown(None, None, None, ratio, ratio_scaled)

    v2_staked = total * ratio_scaled / RATIO_PRECISION
    return TVLBreakdown(
        total_pool_tvl_usd=total,
        v1_tvl_usd=total - v2_staked,
        v2_staked_tvl_usd=v2_staked,
        staked_ratio=ratio,
        staked_ratio_scaled=ratio_scaled,
    )
