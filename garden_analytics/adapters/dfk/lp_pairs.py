"""LP pair resolution: constituents, reserves, LP supply and token metadata"""
import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional, Tuple

from web3 import Web3

from garden_analytics.adapters.dfk.abis import get_abi
from garden_analytics.errors import RpcUnavailable
from garden_analytics.retry_policy import RetryConfig, call_contract

logger = logging.getLogger(__name__)

DEFAULT_DECIMALS = 18
UNKNOWN_SYMBOL = 'UNKNOWN'


@dataclass(frozen=True)
class TokenInfo:
    address: str
    symbol: str
    decimals: int

    def to_units(self, raw_amount: int) -> Decimal:
        """Raw integer amount to token units"""
        return Decimal(raw_amount) / (Decimal(10) ** self.decimals)


@dataclass(frozen=True)
class LPPairInfo:
    """State of one AMM pair at the time it was resolved."""
    pair_address: str
    token0: TokenInfo
    token1: TokenInfo
    reserve0: int
    reserve1: int
    total_supply: int

    @property
    def symbol0(self) -> str:
        return self.token0.symbol

    @property
    def symbol1(self) -> str:
        return self.token1.symbol

    @property
    def decimals0(self) -> int:
        return self.token0.decimals

    @property
    def decimals1(self) -> int:
        return self.token1.decimals

    @property
    def pair_name(self) -> str:
        return f"{self.symbol0}-{self.symbol1}"

    def reserve_amounts(self) -> Tuple[Decimal, Decimal]:
        """Reserves adjusted by each token's decimals"""
        return self.token0.to_units(self.reserve0), self.token1.to_units(self.reserve1)

    def has_liquidity(self) -> bool:
        return self.reserve0 > 0 and self.reserve1 > 0


class LPPairResolver:
    """
    Resolves LP token addresses into LPPairInfo.

    One resolver serves exactly one analytics run: pair and token results are
    cached on the instance so a pair that is both staked and part of the price
    graph is only read once. Safe to share between worker threads.
    """

    def __init__(self, web3: Web3, retry_config: Optional[RetryConfig] = None):
        self.web3 = web3
        self.retry_config = retry_config
        self._pair_cache: Dict[str, LPPairInfo] = {}
        self._token_cache: Dict[str, TokenInfo] = {}
        self._lock = threading.Lock()

    def resolve(self, pair_address: str) -> LPPairInfo:
        """
        Get token0/token1, reserves, total supply and token metadata for a pair.

        Raises:
            RpcUnavailable: if any pair-level call failed
        """
        key = pair_address.lower()
        with self._lock:
            cached = self._pair_cache.get(key)
        if cached is not None:
            return cached

        pair_contract = self.web3.eth.contract(
            address=Web3.to_checksum_address(pair_address),
            abi=get_abi('uniswap_v2_pair')
        )
        token0_address = call_contract(pair_contract.functions.token0(), self.retry_config, 'token0')
        token1_address = call_contract(pair_contract.functions.token1(), self.retry_config, 'token1')
        reserves = call_contract(pair_contract.functions.getReserves(), self.retry_config, 'getReserves')
        total_supply = call_contract(pair_contract.functions.totalSupply(), self.retry_config, 'totalSupply')

        pair = LPPairInfo(
            pair_address=pair_address,
            token0=self.get_token_info(token0_address),
            token1=self.get_token_info(token1_address),
            reserve0=int(reserves[0]),
            reserve1=int(reserves[1]),
            total_supply=int(total_supply),
        )
        logger.debug(
            "Resolved pair %s (%s): r0=%d r1=%d supply=%d",
            pair_address, pair.pair_name, pair.reserve0, pair.reserve1, pair.total_supply
        )

        with self._lock:
            self._pair_cache.setdefault(key, pair)
            return self._pair_cache[key]

    def get_token_info(self, token_address: str) -> TokenInfo:
        """Get token symbol and decimals, with caching."""
        key = token_address.lower()
        with self._lock:
            cached = self._token_cache.get(key)
        if cached is not None:
            return cached

        token_contract = self.web3.eth.contract(
            address=Web3.to_checksum_address(token_address),
            abi=get_abi('erc20')
        )
        try:
            symbol = call_contract(token_contract.functions.symbol(), self.retry_config, 'symbol')
        except RpcUnavailable as e:
            logger.warning("Error fetching symbol for %s: %s", token_address, e)
            symbol = UNKNOWN_SYMBOL
        try:
            decimals = int(call_contract(token_contract.functions.decimals(), self.retry_config, 'decimals'))
        except RpcUnavailable as e:
            logger.warning("Error fetching decimals for %s, assuming %d: %s", token_address, DEFAULT_DECIMALS, e)
            decimals = DEFAULT_DECIMALS

        info = TokenInfo(address=token_address, symbol=symbol, decimals=decimals)
        with self._lock:
            self._token_cache.setdefault(key, info)
            return self._token_cache[key]

    def snapshot(self) -> Dict[str, LPPairInfo]:
        """Copy of every pair resolved so far, keyed by lower-cased address"""
        with self._lock:
            return dict(self._pair_cache)
