"""Price graph BFS and factory-driven graph building"""
from decimal import Decimal

import pytest

from conftest import (
    CRYSTAL, CRYSTAL_USDC, FACTORY, JEWEL, JEWEL_CRYSTAL, NO_RETRY, ORPHAN_A, ORPHAN_B, ORPHAN_PAIR, USDC,
    addr, pair_info, token,
)
from garden_analytics.adapters.dfk.lp_pairs import LPPairResolver
from garden_analytics.adapters.dfk.price_graph import (
    PriceGraphBuilder,
    build_edges,
    build_price_graph_from_pairs,
)
from garden_analytics.errors import RpcUnavailable, UnpricedToken

USDC_T = token(USDC, 'USDC', 6)
CRYSTAL_T = token(CRYSTAL, 'CRYSTAL')
JEWEL_T = token(JEWEL, 'JEWEL')


def test_direct_anchor_pair_prices_counter_token():
    # 100 USDC against 50 X: X is worth 2 USDC
    pair = pair_info(CRYSTAL_USDC, USDC_T, CRYSTAL_T, 100 * 10 ** 6, 50 * 10 ** 18)
    graph = build_price_graph_from_pairs(USDC, [pair])

    assert graph.price_of(USDC) == Decimal(1)
    assert graph.price_of(CRYSTAL) == Decimal(2)
    assert graph.hops[CRYSTAL.lower()] == 1


def test_rate_direction_does_not_depend_on_token_order():
    pair = pair_info(CRYSTAL_USDC, CRYSTAL_T, USDC_T, 50 * 10 ** 18, 100 * 10 ** 6)
    graph = build_price_graph_from_pairs(USDC, [pair])
    assert graph.price_of(CRYSTAL) == Decimal(2)


def test_two_hop_price():
    pairs = [
        pair_info(CRYSTAL_USDC, USDC_T, CRYSTAL_T, 100 * 10 ** 6, 50 * 10 ** 18),
        pair_info(JEWEL_CRYSTAL, JEWEL_T, CRYSTAL_T, 400 * 10 ** 18, 100 * 10 ** 18),
    ]
    graph = build_price_graph_from_pairs(USDC, pairs)
    # 1 JEWEL = 0.25 CRYSTAL = 0.5 USDC
    assert graph.price_of(JEWEL) == Decimal('0.5')
    assert graph.hops[JEWEL.lower()] == 2


def test_unreachable_token_is_unpriced():
    pairs = [
        pair_info(CRYSTAL_USDC, USDC_T, CRYSTAL_T, 100 * 10 ** 6, 50 * 10 ** 18),
        pair_info(ORPHAN_PAIR, token(ORPHAN_A, 'A'), token(ORPHAN_B, 'B'), 10 ** 18, 10 ** 18),
    ]
    graph = build_price_graph_from_pairs(USDC, pairs)

    assert graph.price_of(ORPHAN_A) is None
    assert ORPHAN_A not in graph
    assert len(graph) == 2
    with pytest.raises(UnpricedToken) as exc_info:
        graph.require_price(ORPHAN_B)
    assert exc_info.value.token == ORPHAN_B


def test_first_discovery_wins_at_equal_distance():
    other_pair = addr(0xCF)
    pairs = [
        pair_info(CRYSTAL_USDC, USDC_T, CRYSTAL_T, 100 * 10 ** 6, 50 * 10 ** 18),  # CRYSTAL = 2
        pair_info(other_pair, USDC_T, CRYSTAL_T, 300 * 10 ** 6, 100 * 10 ** 18),    # CRYSTAL = 3
    ]
    assert build_price_graph_from_pairs(USDC, pairs).price_of(CRYSTAL) == Decimal(2)
    assert build_price_graph_from_pairs(USDC, list(reversed(pairs))).price_of(CRYSTAL) == Decimal(3)


def test_shorter_path_wins_over_earlier_edge():
    # JEWEL-CRYSTAL is listed first but the direct JEWEL-USDC pair is one hop closer
    jewel_usdc = addr(0xCE)
    pairs = [
        pair_info(JEWEL_CRYSTAL, JEWEL_T, CRYSTAL_T, 400 * 10 ** 18, 100 * 10 ** 18),
        pair_info(CRYSTAL_USDC, USDC_T, CRYSTAL_T, 100 * 10 ** 6, 50 * 10 ** 18),
        pair_info(jewel_usdc, USDC_T, JEWEL_T, 70 * 10 ** 6, 100 * 10 ** 18),
    ]
    graph = build_price_graph_from_pairs(USDC, pairs)
    assert graph.price_of(JEWEL) == Decimal('0.7')


def test_cycles_terminate():
    jewel_usdc = addr(0xCE)
    pairs = [
        pair_info(CRYSTAL_USDC, USDC_T, CRYSTAL_T, 100 * 10 ** 6, 50 * 10 ** 18),
        pair_info(JEWEL_CRYSTAL, JEWEL_T, CRYSTAL_T, 400 * 10 ** 18, 100 * 10 ** 18),
        pair_info(jewel_usdc, JEWEL_T, USDC_T, 100 * 10 ** 18, 50 * 10 ** 6),
    ]
    graph = build_price_graph_from_pairs(USDC, pairs)
    assert len(graph) == 3
    assert graph.price_of(USDC) == Decimal(1)


def test_zero_reserve_pairs_carry_no_edges():
    pairs = [pair_info(CRYSTAL_USDC, USDC_T, CRYSTAL_T, 0, 50 * 10 ** 18)]
    assert build_edges(pairs) == {}
    assert build_price_graph_from_pairs(USDC, pairs).price_of(CRYSTAL) is None


def test_lookups_ignore_address_case():
    pair = pair_info(CRYSTAL_USDC, USDC_T, CRYSTAL_T, 100 * 10 ** 6, 50 * 10 ** 18)
    graph = build_price_graph_from_pairs(USDC.upper().replace('0X', '0x'), [pair])
    assert graph.price_of(CRYSTAL.upper().replace('0X', '0x')) == Decimal(2)


def test_builder_walks_factory_and_puts_priority_pairs_first(garden_chain, web3):
    builder = PriceGraphBuilder(
        web3, FACTORY, LPPairResolver(web3, NO_RETRY),
        priority_pairs=[CRYSTAL_USDC], max_workers=2, retry_config=NO_RETRY
    )
    assert builder.enumerate_all_pairs() == [JEWEL_CRYSTAL, CRYSTAL_USDC, ORPHAN_PAIR]
    assert builder._ordered_pair_addresses(builder.enumerate_all_pairs()) == [
        CRYSTAL_USDC, JEWEL_CRYSTAL, ORPHAN_PAIR
    ]

    graph = builder.build_price_graph(USDC)
    assert graph.price_of(CRYSTAL) == Decimal(2)
    assert graph.price_of(JEWEL) == Decimal(1)
    assert graph.price_of(ORPHAN_A) is None


def test_builder_skips_pairs_the_factory_cannot_return(garden_chain, web3):
    garden_chain.set_factory(FACTORY, [JEWEL_CRYSTAL, CRYSTAL_USDC, ORPHAN_PAIR], failing_indexes={0})
    builder = PriceGraphBuilder(web3, FACTORY, LPPairResolver(web3, NO_RETRY), retry_config=NO_RETRY)

    assert builder.enumerate_all_pairs() == [CRYSTAL_USDC, ORPHAN_PAIR]
    graph = builder.build_price_graph(USDC)
    assert graph.price_of(CRYSTAL) == Decimal(2)
    assert graph.price_of(JEWEL) is None


def test_builder_fails_when_factory_length_unavailable(garden_chain, web3):
    garden_chain.add_contract(FACTORY, allPairsLength=ConnectionError("rpc down"))
    builder = PriceGraphBuilder(web3, FACTORY, LPPairResolver(web3, NO_RETRY), retry_config=NO_RETRY)

    with pytest.raises(RpcUnavailable):
        builder.build_price_graph(USDC)
