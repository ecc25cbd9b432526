"""DFK Chain garden contracts: pools, pairs, prices, windows and events"""
from garden_analytics.adapters.dfk.pool_registry import DegradedPool, Pool, PoolRegistry, PoolStaker, StakeActivity
from garden_analytics.adapters.dfk.lp_pairs import LPPairInfo, LPPairResolver, TokenInfo
from garden_analytics.adapters.dfk.price_graph import PriceGraph, PriceGraphBuilder, PriceGraphEdge
from garden_analytics.adapters.dfk.time_window import TimeWindow, TimeWindowResolver
from garden_analytics.adapters.dfk.log_scanner import LogScanner
from garden_analytics.adapters.dfk.swap_volume import SwapVolumeAggregator, VolumeRecord
from garden_analytics.adapters.dfk.emissions import EmissionAggregator, EmissionRecord

__all__ = [
    'Pool',
    'DegradedPool',
    'PoolRegistry',
    'PoolStaker',
    'StakeActivity',
    'TokenInfo',
    'LPPairInfo',
    'LPPairResolver',
    'PriceGraph',
    'PriceGraphEdge',
    'PriceGraphBuilder',
    'TimeWindow',
    'TimeWindowResolver',
    'LogScanner',
    'SwapVolumeAggregator',
    'VolumeRecord',
    'EmissionAggregator',
    'EmissionRecord',
]
