"""Garden analytics orchestration.

Runs the full pipeline for one pool or for every pool of the staking
contract: pool discovery, price graph, previous-UTC-day window, then per pool
the pair, TVL, swap-fee and emission aggregation, and the quest boost range.

The service holds configuration and a Web3 instance only. Pools and prices of
a run live in its SharedAnalyticsContext, so two runs never share them unless
the caller hands the same context to both. The time window is resolved afresh
by every call.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from web3 import Web3

from garden_analytics.adapters.dfk.emissions import EmissionAggregator
from garden_analytics.adapters.dfk.log_scanner import DEFAULT_MAX_BLOCKS_PER_QUERY, LogScanner
from garden_analytics.adapters.dfk.lp_pairs import LPPairInfo, LPPairResolver
from garden_analytics.adapters.dfk.pool_registry import DegradedPool, Pool, PoolRegistry, PoolStaker
from garden_analytics.adapters.dfk.price_graph import PriceGraph, PriceGraphBuilder
from garden_analytics.adapters.dfk.swap_volume import SwapVolumeAggregator
from garden_analytics.adapters.dfk.time_window import TimeWindow, TimeWindowResolver
from garden_analytics.errors import (
    ConfigError,
    PoolNotFound,
    RpcUnavailable,
    ScanTimeout,
    UnpricedToken,
)
from garden_analytics.retry_policy import RetryConfig
from garden_analytics.services.apr import LP_FEE_SHARE, emission_apr_pct, fee_apr_pct
from garden_analytics.services.quest_boost import calculate_quest_boost
from garden_analytics.services.tvl import calculate_tvl

logger = logging.getLogger(__name__)

REQUIRED_ADDRESSES = ('staking', 'factory', 'quest_core', 'quest_reward', 'anchor_token')
DEFAULT_MAX_WORKERS = 6


@dataclass
class SharedAnalyticsContext:
    """Snapshot computed once per run and shared by every pool of the run."""
    all_pools: List[Pool]
    price_graph: PriceGraph
    reward_token_price: Optional[Decimal]
    total_alloc_point: int
    # Set by the caller to pin the scan window; never filled in by the service
    time_window: Optional[TimeWindow] = None
    degraded_pools: List[DegradedPool] = field(default_factory=list)
    # Pairs resolved while building the price graph, keyed by lower-cased address
    lp_pairs: Dict[str, LPPairInfo] = field(default_factory=dict)

    def find_pool(self, pid: int) -> Optional[Pool]:
        for pool in self.all_pools:
            if pool.pid == pid:
                return pool
        return None


@dataclass
class PoolAnalytics:
    """Analytics for one garden pool. Percentages are in percent units."""
    pid: int
    lp_token: str
    pair: Optional[str] = None
    fee_apr_pct: Optional[Decimal] = None
    emission_apr_pct: Optional[Decimal] = None
    quest_boost_apr_range: Optional[Tuple[Decimal, Decimal]] = None
    total_tvl: Optional[Decimal] = None
    v1_tvl: Optional[Decimal] = None
    v2_tvl: Optional[Decimal] = None
    volume_24h: Optional[Decimal] = None
    fees_24h: Optional[Decimal] = None
    rewards_24h: Optional[Decimal] = None
    token_prices: Dict[str, Optional[Decimal]] = field(default_factory=dict)

    alloc_point: int = 0
    alloc_share_pct: Optional[Decimal] = None
    staked_ratio: Optional[Decimal] = None
    swap_count: int = 0
    reward_event_count: int = 0
    reward_token_price: Optional[Decimal] = None
    time_window: Optional[TimeWindow] = None
    errors: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.errors)

    @property
    def total_apr_pct(self) -> Decimal:
        """Fee + emission + best quest boost; unavailable parts count as 0."""
        total = Decimal(0)
        for part in (self.fee_apr_pct, self.emission_apr_pct):
            if part is not None:
                total += part
        if self.quest_boost_apr_range is not None:
            total += self.quest_boost_apr_range[1]
        return total

    def to_dict(self) -> Dict[str, Any]:
        def fmt(value: Optional[Decimal]) -> Optional[str]:
            return None if value is None else str(value)

        window = None
        if self.time_window is not None:
            window = {
                "from_block": self.time_window.from_block,
                "to_block": self.time_window.to_block,
                "from_timestamp": self.time_window.from_timestamp,
                "to_timestamp": self.time_window.to_timestamp,
                "estimated": self.time_window.estimated,
            }
        boost = None
        if self.quest_boost_apr_range is not None:
            boost = [fmt(self.quest_boost_apr_range[0]), fmt(self.quest_boost_apr_range[1])]

        return {
            "pid": self.pid,
            "pair": self.pair,
            "lp_token": self.lp_token,
            "fee_apr_pct": fmt(self.fee_apr_pct),
            "emission_apr_pct": fmt(self.emission_apr_pct),
            "quest_boost_apr_range": boost,
            "total_apr_pct": fmt(self.total_apr_pct),
            "total_tvl": fmt(self.total_tvl),
            "v1_tvl": fmt(self.v1_tvl),
            "v2_tvl": fmt(self.v2_tvl),
            "volume_24h": fmt(self.volume_24h),
            "fees_24h": fmt(self.fees_24h),
            "rewards_24h": fmt(self.rewards_24h),
            "token_prices": {symbol: fmt(price) for symbol, price in self.token_prices.items()},
            "alloc_point": self.alloc_point,
            "alloc_share_pct": fmt(self.alloc_share_pct),
            "staked_ratio": fmt(self.staked_ratio),
            "swap_count": self.swap_count,
            "reward_event_count": self.reward_event_count,
            "reward_token_price": fmt(self.reward_token_price),
            "time_window": window,
            "errors": list(self.errors),
        }


@dataclass
class _RunState:
    """Per-run collaborators that cache RPC results for the run's duration"""
    resolver: LPPairResolver
    emissions: EmissionAggregator


class GardenAnalyticsService:
    """Computes fee, emission and quest APR plus TVL for garden pools."""

    def __init__(self, web3: Web3, gardens_config: Dict, rpc_config: Optional[Dict] = None,
                 block_time_seconds: float = 2):
        """
        Args:
            web3: Web3 instance connected to DFK Chain
            gardens_config: `protocols.gardens` block of chains.yaml
            rpc_config: `rpc` block of chains.yaml (workers, chunk size, retry)
            block_time_seconds: Average block time, for the window fallback

        Raises:
            ConfigError: if a required contract address is missing
        """
        missing = [key for key in REQUIRED_ADDRESSES if not gardens_config.get(key)]
        reward_token = gardens_config.get('reward_token') or {}
        if not reward_token.get('address'):
            missing.append('reward_token.address')
        if missing:
            raise ConfigError(f"Gardens config is missing: {', '.join(missing)}")

        rpc_config = rpc_config or {}
        self.web3 = web3
        self.config = gardens_config
        self.staking_address = gardens_config['staking']
        self.factory_address = gardens_config['factory']
        self.quest_core_address = gardens_config['quest_core']
        self.quest_reward_address = gardens_config['quest_reward']
        self.anchor_token = gardens_config['anchor_token']
        self.reward_token_address = reward_token['address']
        self.reward_token_symbol = reward_token.get('symbol', 'CRYSTAL')
        self.reward_token_decimals = int(reward_token.get('decimals', 18))
        self.priority_pairs = list(gardens_config.get('priority_pairs') or [])
        self.lp_fee_share = Decimal(str(gardens_config.get('lp_fee_share', LP_FEE_SHARE)))

        self.max_workers = max(1, int(rpc_config.get('max_workers', DEFAULT_MAX_WORKERS)))
        self.max_blocks_per_query = int(rpc_config.get('max_blocks_per_query', DEFAULT_MAX_BLOCKS_PER_QUERY))
        self.block_time_seconds = block_time_seconds
        self.retry_config = RetryConfig.from_config(rpc_config)

    # ============================================
    # Pipeline stages
    # ============================================

    def _pool_registry(self) -> PoolRegistry:
        return PoolRegistry(
            self.web3, self.staking_address, self.max_workers, self.retry_config, self.max_blocks_per_query
        )

    def _new_run(self) -> _RunState:
        scanner = LogScanner(self.web3, self.max_blocks_per_query, self.retry_config)
        return _RunState(
            resolver=LPPairResolver(self.web3, self.retry_config),
            emissions=EmissionAggregator(
                self.web3, scanner, self.quest_reward_address, self.quest_core_address,
                reward_decimals=self.reward_token_decimals, retry_config=self.retry_config
            ),
        )

    def discover_pools(self) -> Tuple[List[Pool], List[DegradedPool]]:
        return self._pool_registry().discover_pools()

    def build_price_graph(self, anchor: Optional[str] = None,
                          resolver: Optional[LPPairResolver] = None) -> PriceGraph:
        if resolver is None:
            resolver = LPPairResolver(self.web3, self.retry_config)
        builder = PriceGraphBuilder(
            self.web3, self.factory_address, resolver,
            priority_pairs=self.priority_pairs,
            max_workers=self.max_workers,
            retry_config=self.retry_config,
        )
        return builder.build_price_graph(anchor or self.anchor_token)

    def get_previous_utc_day_block_range(self, now_timestamp: Optional[int] = None) -> TimeWindow:
        resolver = TimeWindowResolver(self.web3, self.block_time_seconds, self.retry_config)
        return resolver.get_previous_utc_day_block_range(now_timestamp)

    def build_shared_context(self, resolver: Optional[LPPairResolver] = None) -> SharedAnalyticsContext:
        """
        Pools, price graph, reward price and total alloc point.

        The returned context carries no time window: every analytics call
        resolves the previous UTC day itself unless the caller sets
        `time_window` on the context explicitly.

        Raises:
            RpcUnavailable: if any batch-wide stage failed
        """
        if resolver is None:
            resolver = LPPairResolver(self.web3, self.retry_config)

        registry = self._pool_registry()
        pools, degraded = registry.discover_pools()
        total_alloc_point = registry.get_total_alloc_point()
        price_graph = self.build_price_graph(resolver=resolver)
        reward_price = price_graph.price_of(self.reward_token_address)
        if reward_price is None:
            logger.warning("Reward token %s is unpriced, emission APRs unavailable", self.reward_token_symbol)
        return SharedAnalyticsContext(
            all_pools=pools,
            price_graph=price_graph,
            reward_token_price=reward_price,
            total_alloc_point=total_alloc_point,
            degraded_pools=degraded,
            lp_pairs=resolver.snapshot(),
        )

    def _resolve_window(self, context: SharedAnalyticsContext) -> TimeWindow:
        if context.time_window is not None:
            return context.time_window
        return self.get_previous_utc_day_block_range()

    # ============================================
    # Per-pool analytics
    # ============================================

    def _analyze_pool(self, pool: Pool, context: SharedAnalyticsContext, run: _RunState,
                      window: TimeWindow, deadline: Optional[float]) -> PoolAnalytics:
        result = PoolAnalytics(
            pid=pool.pid,
            lp_token=pool.lp_token,
            alloc_point=pool.alloc_point,
            reward_token_price=context.reward_token_price,
            time_window=window,
        )
        if context.total_alloc_point > 0:
            result.alloc_share_pct = Decimal(pool.alloc_point) * 100 / Decimal(context.total_alloc_point)

        pair = context.lp_pairs.get(pool.lp_token.lower())
        if pair is None:
            try:
                pair = run.resolver.resolve(pool.lp_token)
            except RpcUnavailable as e:
                logger.warning("Pool %d: could not resolve LP token %s: %s", pool.pid, pool.lp_token, e)
                result.errors.append(f"pair: {e}")
                return result
        result.pair = pair.pair_name

        graph = context.price_graph
        for token in (pair.token0, pair.token1):
            price = graph.price_of(token.address)
            result.token_prices[token.symbol] = price
            if price is None:
                result.errors.append(str(UnpricedToken(token.address)))

        tvl = calculate_tvl(pair, graph, pool.total_staked)
        result.total_tvl = tvl.total_pool_tvl_usd
        result.v1_tvl = tvl.v1_tvl_usd
        result.v2_tvl = tvl.v2_staked_tvl_usd
        result.staked_ratio = tvl.staked_ratio

        volume_aggregator = SwapVolumeAggregator(
            LogScanner(self.web3, self.max_blocks_per_query, self.retry_config), self.lp_fee_share
        )
        try:
            volume = volume_aggregator.aggregate(pair, graph, window, deadline=deadline)
            result.volume_24h = volume.total_usd_volume
            result.fees_24h = volume.fees_usd
            result.swap_count = volume.swap_count
            result.fee_apr_pct = fee_apr_pct(volume.fees_usd, tvl.total_pool_tvl_usd)
        except (ScanTimeout, RpcUnavailable) as e:
            logger.warning("Pool %d (%s): swap volume unavailable: %s", pool.pid, pair.pair_name, e)
            result.errors.append(f"volume: {e}")

        try:
            emission = run.emissions.aggregate(
                pool.pid, self.reward_token_address, context.reward_token_price, window, deadline=deadline
            )
            result.rewards_24h = emission.total_usd_rewards
            result.reward_event_count = emission.event_count
            result.emission_apr_pct = emission_apr_pct(emission.total_usd_rewards, tvl.v2_staked_tvl_usd)
        except (ScanTimeout, RpcUnavailable) as e:
            logger.warning("Pool %d (%s): emissions unavailable: %s", pool.pid, pair.pair_name, e)
            result.errors.append(f"emissions: {e}")

        boost = calculate_quest_boost(result.emission_apr_pct)
        result.quest_boost_apr_range = boost.apr_range

        logger.debug(
            "Pool %d (%s): fee APR %s%%, emission APR %s%%, TVL %s",
            pool.pid, pair.pair_name, result.fee_apr_pct, result.emission_apr_pct, result.total_tvl
        )
        return result

    def get_pool_analytics(self, pid: int, shared_context: Optional[SharedAnalyticsContext] = None,
                           deadline: Optional[float] = None) -> PoolAnalytics:
        """
        Analytics for a single pool.

        Args:
            pid: Pool id on the staking contract
            shared_context: Snapshot from build_shared_context; built if omitted
            deadline: time.monotonic() cut-off for the event scans

        Raises:
            PoolNotFound: if the pid does not exist on the staking contract
            RpcUnavailable: if a batch-wide stage failed while building the context
        """
        run = self._new_run()
        context = shared_context or self.build_shared_context(resolver=run.resolver)
        window = self._resolve_window(context)

        pool = context.find_pool(pid)
        if pool is None:
            for degraded in context.degraded_pools:
                if degraded.pid == pid:
                    return PoolAnalytics(pid=pid, lp_token='', errors=[f"pool info: {degraded.reason}"])
            raise PoolNotFound(pid)

        return self._analyze_pool(pool, context, run, window, deadline)

    def get_all_pool_analytics(self, shared_context: Optional[SharedAnalyticsContext] = None,
                               timeout: Optional[float] = None) -> List[PoolAnalytics]:
        """
        Analytics for every pool, sorted by total APR (highest first).

        A failure inside one pool degrades that pool's entry only. Failures
        while building the shared context abort the whole batch.

        Args:
            shared_context: Snapshot from build_shared_context; built if omitted
            timeout: Seconds allowed for the event scans of the whole batch
        """
        deadline = time.monotonic() + timeout if timeout is not None else None
        run = self._new_run()
        context = shared_context or self.build_shared_context(resolver=run.resolver)
        window = self._resolve_window(context)

        results: List[PoolAnalytics] = [
            PoolAnalytics(pid=d.pid, lp_token='', errors=[f"pool info: {d.reason}"])
            for d in context.degraded_pools
        ]
        if context.all_pools:
            workers = min(self.max_workers, len(context.all_pools))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {
                    executor.submit(self._analyze_pool, pool, context, run, window, deadline): pool
                    for pool in context.all_pools
                }
                for future in as_completed(futures):
                    pool = futures[future]
                    try:
                        results.append(future.result())
                    except Exception as e:
                        logger.error("Pool %d analytics failed: %s", pool.pid, e, exc_info=True)
                        results.append(PoolAnalytics(
                            pid=pool.pid, lp_token=pool.lp_token, alloc_point=pool.alloc_point,
                            time_window=window, errors=[f"unexpected: {e}"],
                        ))

        results.sort(key=lambda r: (-r.total_apr_pct, r.pid))
        logger.info(
            "Computed analytics for %d pools (%d degraded)",
            len(results), sum(1 for r in results if r.degraded)
        )
        return results

    def get_user_pending_rewards(self, wallet_address: str,
                                 pids: Optional[Iterable[int]] = None) -> Dict[int, Decimal]:
        """
        Unclaimed reward tokens per pool for a wallet, in token units.

        Pools whose call fails are left out and logged.
        """
        registry = self._pool_registry()
        if pids is None:
            pids = range(registry.get_pool_length())

        scale = Decimal(10) ** self.reward_token_decimals
        rewards: Dict[int, Decimal] = {}
        for pid in pids:
            try:
                raw = registry.get_pending_rewards(pid, wallet_address)
            except RpcUnavailable as e:
                logger.warning("Pending rewards for pool %d unavailable: %s", pid, e)
                continue
            if raw > 0:
                rewards[pid] = Decimal(raw) / scale
        return rewards

    def get_pool_stakers(self, pid: int, from_block: Optional[int] = None,
                         timeout: Optional[float] = None) -> List[PoolStaker]:
        """Wallets currently staking in a pool, largest stake first."""
        deadline = time.monotonic() + timeout if timeout is not None else None
        return self._pool_registry().get_pool_stakers(pid, from_block=from_block, deadline=deadline)
