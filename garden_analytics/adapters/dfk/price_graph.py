"""
On-chain token price graph for DFK Chain.

Every token is priced in USD by walking Uniswap V2 pairs breadth-first from a
stable anchor token (USDC, price 1). No oracle or off-chain feed is involved:
the exchange rate along an edge is the ratio of the pair's reserves.

Rate direction: moving from an already-priced token T to its counter-token U
in the same pair,

    price(U) = price(T) * reserveT / reserveU

because a pool holding more U per unit of T makes U cheaper relative to T.
"""
import logging
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from web3 import Web3

from garden_analytics.adapters.dfk.abis import get_abi
from garden_analytics.adapters.dfk.lp_pairs import LPPairInfo, LPPairResolver
from garden_analytics.errors import RpcUnavailable, UnpricedToken
from garden_analytics.retry_policy import RetryConfig, call_contract

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceGraphEdge:
    """Exchange rate from a priced token to its counter-token in one pair."""
    from_token: str
    to_token: str
    pair_address: str
    rate: Decimal  # units of from_token per unit of to_token


class PriceGraph:
    """
    Token address -> USD price, as discovered by BFS from the anchor.

    Addresses are compared lower-cased. A token that appears here was reached;
    anything else is unpriced and must not be valued.
    """

    def __init__(
        self,
        anchor: str,
        prices: Dict[str, Decimal],
        edges: Dict[str, List[PriceGraphEdge]],
        hops: Dict[str, int]
    ):
        self.anchor = anchor.lower()
        self._prices = prices
        self.edges = edges
        self.hops = hops

    def price_of(self, token_address: str) -> Optional[Decimal]:
        return self._prices.get(token_address.lower())

    def require_price(self, token_address: str) -> Decimal:
        """
        Raises:
            UnpricedToken: if the BFS never reached the token
        """
        price = self.price_of(token_address)
        if price is None:
            raise UnpricedToken(token_address)
        return price

    def items(self) -> Iterator[Tuple[str, Decimal]]:
        return iter(self._prices.items())

    def as_dict(self) -> Dict[str, Decimal]:
        return dict(self._prices)

    def __contains__(self, token_address: str) -> bool:
        return token_address.lower() in self._prices

    def __len__(self) -> int:
        return len(self._prices)

    def __repr__(self) -> str:
        return f"PriceGraph(anchor={self.anchor}, priced={len(self._prices)})"


def build_edges(pairs: Iterable[LPPairInfo]) -> Dict[str, List[PriceGraphEdge]]:
    """
    Adjacency lists in pair order. Pairs with an empty side are skipped since
    they carry no exchange rate.
    """
    edges: Dict[str, List[PriceGraphEdge]] = {}
    for pair in pairs:
        if not pair.has_liquidity():
            logger.debug("Skipping %s (%s) - zero reserves", pair.pair_address, pair.pair_name)
            continue

        token0 = pair.token0.address.lower()
        token1 = pair.token1.address.lower()
        amount0, amount1 = pair.reserve_amounts()

        edges.setdefault(token0, []).append(
            PriceGraphEdge(token0, token1, pair.pair_address, amount0 / amount1)
        )
        edges.setdefault(token1, []).append(
            PriceGraphEdge(token1, token0, pair.pair_address, amount1 / amount0)
        )
    return edges


def propagate_prices(anchor_token: str, edges: Dict[str, List[PriceGraphEdge]]) -> PriceGraph:
    """
    BFS from the anchor. Each token is priced once, at its shortest hop
    distance; among equal distances the first edge in insertion order wins.
    """
    anchor = anchor_token.lower()
    prices: Dict[str, Decimal] = {anchor: Decimal(1)}
    hops: Dict[str, int] = {anchor: 0}
    queue = deque([anchor])

    while queue:
        current = queue.popleft()
        current_price = prices[current]
        for edge in edges.get(current, []):
            if edge.to_token in prices:
                continue
            prices[edge.to_token] = current_price * edge.rate
            hops[edge.to_token] = hops[current] + 1
            queue.append(edge.to_token)

    return PriceGraph(anchor, prices, edges, hops)


def build_price_graph_from_pairs(anchor_token: str, pairs: Iterable[LPPairInfo]) -> PriceGraph:
    """Price graph from already-resolved pairs (no RPC)."""
    graph = propagate_prices(anchor_token, build_edges(pairs))
    logger.info("Price graph built: %d tokens priced", len(graph))
    return graph


class PriceGraphBuilder:
    """Builds the price graph from every pair the AMM factory knows about"""

    def __init__(
        self,
        web3: Web3,
        factory_address: str,
        resolver: LPPairResolver,
        priority_pairs: Sequence[str] = (),
        max_workers: int = 6,
        retry_config: Optional[RetryConfig] = None
    ):
        """
        Args:
            web3: Web3 instance for DFK Chain
            factory_address: Uniswap V2 factory contract
            resolver: pair resolver of the current analytics run
            priority_pairs: pairs whose edges are inserted first (direct anchor
                pairs), so they win ties at equal BFS distance
            max_workers: bound on concurrent RPC calls
            retry_config: retry policy for factory calls
        """
        self.web3 = web3
        self.factory_address = factory_address
        self.resolver = resolver
        self.priority_pairs = list(priority_pairs)
        self.max_workers = max(1, max_workers)
        self.retry_config = retry_config
        self._factory_contract = None

    @property
    def factory_contract(self):
        if self._factory_contract is None:
            self._factory_contract = self.web3.eth.contract(
                address=Web3.to_checksum_address(self.factory_address),
                abi=get_abi('uniswap_v2_factory')
            )
        return self._factory_contract

    def enumerate_all_pairs(self) -> List[str]:
        """
        Every pair address registered on the factory, in factory order,
        whether or not it is staked.

        Raises:
            RpcUnavailable: if allPairsLength failed
        """
        pairs_length = int(call_contract(
            self.factory_contract.functions.allPairsLength(), self.retry_config, 'allPairsLength'
        ))
        logger.info("Enumerating %d LP pairs from factory...", pairs_length)

        def fetch(index: int) -> Optional[str]:
            try:
                return call_contract(self.factory_contract.functions.allPairs(index), self.retry_config, f'allPairs({index})')
            except RpcUnavailable as e:
                logger.warning("Error fetching pair %d: %s", index, e)
                return None

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            addresses = list(executor.map(fetch, range(pairs_length)))

        return [address for address in addresses if address]

    def _ordered_pair_addresses(self, factory_pairs: Sequence[str]) -> List[str]:
        seen = set()
        ordered = []
        for address in list(self.priority_pairs) + list(factory_pairs):
            key = address.lower()
            if key in seen:
                continue
            seen.add(key)
            ordered.append(address)
        return ordered

    def _resolve_all(self, addresses: Sequence[str]) -> List[LPPairInfo]:
        def resolve(address: str) -> Optional[LPPairInfo]:
            try:
                return self.resolver.resolve(address)
            except RpcUnavailable as e:
                logger.warning("Skipping pair %s in price graph: %s", address, e)
                return None

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            resolved = list(executor.map(resolve, addresses))
        return [pair for pair in resolved if pair is not None]

    def build_price_graph(self, anchor_token: str) -> PriceGraph:
        """
        Enumerate all pairs, resolve them, and propagate USD prices from the
        anchor. Completes fully before any caller converts amounts.

        Raises:
            RpcUnavailable: if the factory could not be enumerated
        """
        addresses = self._ordered_pair_addresses(self.enumerate_all_pairs())
        pairs = self._resolve_all(addresses)
        logger.info("Building price graph from %d of %d pairs", len(pairs), len(addresses))
        return build_price_graph_from_pairs(anchor_token, pairs)
