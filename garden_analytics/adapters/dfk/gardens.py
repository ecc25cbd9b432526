"""
DeFi Kingdoms Gardens protocol adapter.

Gardens are Uniswap V2 pairs whose LP tokens are staked in the LP staking
contract for reward-token emissions. An asset here is a garden pool, named
by its pair ("CRYSTAL-USDC"). All figures are computed on-chain by
GardenAnalyticsService; this adapter only plugs them into the chain/protocol
adapter interface.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional

from web3 import Web3

from garden_analytics.adapters.base import ProtocolAdapter
from garden_analytics.adapters.dfk.lp_pairs import LPPairResolver
from garden_analytics.errors import RpcUnavailable
from garden_analytics.services.analytics_service import GardenAnalyticsService, PoolAnalytics

logger = logging.getLogger(__name__)


def pool_name(analytics: PoolAnalytics) -> str:
    return analytics.pair or f"pid-{analytics.pid}"


class GardensAdapter(ProtocolAdapter):
    """Adapter for DFK Gardens liquidity pools"""

    def __init__(self, protocol_name: str, config: Dict, rpc_config: Optional[Dict] = None,
                 block_time_seconds: float = 2):
        super().__init__(protocol_name, config)
        self.rpc_config = rpc_config or {}
        self.block_time_seconds = block_time_seconds
        self.web3: Optional[Web3] = None
        self._service: Optional[GardenAnalyticsService] = None

    def set_web3_instance(self, web3: Web3):
        """Set Web3 instance for on-chain queries"""
        self.web3 = web3
        self._service = None

    @property
    def service(self) -> GardenAnalyticsService:
        if self._service is None:
            if self.web3 is None:
                raise RuntimeError("Web3 instance not set. Call set_web3_instance() first.")
            self._service = GardenAnalyticsService(
                self.web3, self.config, self.rpc_config, self.block_time_seconds
            )
        return self._service

    def get_pool_analytics(self) -> List[PoolAnalytics]:
        return self.service.get_all_pool_analytics(timeout=self.config.get('scan_timeout'))

    def get_supported_assets(self) -> List[str]:
        """Names of all live garden pools"""
        pools, _degraded = self.service.discover_pools()
        resolver = LPPairResolver(self.service.web3, self.service.retry_config)
        names = []
        for pool in pools:
            try:
                names.append(resolver.resolve(pool.lp_token).pair_name)
            except RpcUnavailable as e:
                logger.warning("Could not resolve pool %d: %s", pool.pid, e)
                names.append(f"pid-{pool.pid}")
        return names

    def get_supply_apr(self, asset: str) -> Optional[Decimal]:
        """
        Fee + emission APR of one pool as a fraction (0.05 = 5%).

        Args:
            asset: Pool name as returned by get_supported_assets()
        """
        for analytics in self.get_pool_analytics():
            if pool_name(analytics) == asset:
                return self._to_fraction(analytics)
        logger.warning("Garden pool %s not found", asset)
        return None

    def collect_aprs(self) -> Dict[str, Optional[Decimal]]:
        """APR of every pool from a single analytics run"""
        return {pool_name(a): self._to_fraction(a) for a in self.get_pool_analytics()}

    @staticmethod
    def _to_fraction(analytics: PoolAnalytics) -> Optional[Decimal]:
        if analytics.fee_apr_pct is None and analytics.emission_apr_pct is None:
            return None
        base = (analytics.fee_apr_pct or Decimal(0)) + (analytics.emission_apr_pct or Decimal(0))
        return base / 100
