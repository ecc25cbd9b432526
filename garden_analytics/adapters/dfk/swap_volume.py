"""24h swap volume and LP fee revenue from a pair's Swap events"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from garden_analytics.adapters.dfk.abis import SWAP_EVENT_SIGNATURE, event_topic
from garden_analytics.adapters.dfk.log_scanner import LogScanner, decode_words
from garden_analytics.adapters.dfk.lp_pairs import LPPairInfo
from garden_analytics.adapters.dfk.price_graph import PriceGraph
from garden_analytics.adapters.dfk.time_window import TimeWindow
from garden_analytics.errors import EventDecodeError
from garden_analytics.services.apr import LP_FEE_SHARE, fees_from_volume

logger = logging.getLogger(__name__)

SWAP_TOPIC = event_topic(SWAP_EVENT_SIGNATURE)


@dataclass
class VolumeRecord:
    pair_address: str
    total_usd_volume: Optional[Decimal] = None  # None when a leg is unpriced
    fees_usd: Optional[Decimal] = None
    swap_count: int = 0
    skipped_events: int = 0
    unpriced_token: Optional[str] = None


@dataclass(frozen=True)
class SwapAmounts:
    amount0_in: int
    amount1_in: int
    amount0_out: int
    amount1_out: int


def decode_swap(log) -> SwapAmounts:
    """
    Swap(address indexed sender, uint256 amount0In, uint256 amount1In,
         uint256 amount0Out, uint256 amount1Out, address indexed to)

    Raises:
        EventDecodeError: on short data or a swap with no single output leg
    """
    amount0_in, amount1_in, amount0_out, amount1_out = decode_words(log, 4)
    if (amount0_out > 0) == (amount1_out > 0):
        raise EventDecodeError(
            f"Swap in block {log.get('blockNumber')} has ambiguous output legs "
            f"({amount0_out}, {amount1_out})"
        )
    return SwapAmounts(amount0_in, amount1_in, amount0_out, amount1_out)


class SwapVolumeAggregator:
    """
    Sums USD swap volume for a pair over a time window.

    Each swap is valued at its output leg: exactly one of amount0Out /
    amount1Out is non-zero for a plain V2 swap, and that amount times the
    output token's graph price is the swap's notional.
    """

    def __init__(self, scanner: LogScanner, lp_fee_share: Decimal = LP_FEE_SHARE):
        self.scanner = scanner
        self.lp_fee_share = lp_fee_share

    def aggregate(
        self,
        pair: LPPairInfo,
        price_graph: PriceGraph,
        window: TimeWindow,
        deadline: Optional[float] = None
    ) -> VolumeRecord:
        """
        Args:
            pair: Resolved pair
            price_graph: Completed price graph of this run
            window: Previous-UTC-day block range
            deadline: time.monotonic() cut-off for the log scan

        Returns:
            VolumeRecord; total_usd_volume and fees_usd are None if either
            token has no price

        Raises:
            ScanTimeout: deadline passed mid-scan
            RpcUnavailable: a log chunk could not be fetched
        """
        record = VolumeRecord(pair_address=pair.pair_address)

        price0 = price_graph.price_of(pair.token0.address)
        price1 = price_graph.price_of(pair.token1.address)
        if price0 is None or price1 is None:
            record.unpriced_token = pair.token0.address if price0 is None else pair.token1.address
            logger.warning(
                "%s: token %s is unpriced, volume unavailable",
                pair.pair_name, record.unpriced_token
            )
            return record

        total_volume = Decimal(0)
        for log in self.scanner.iter_logs(
            pair.pair_address, [SWAP_TOPIC], window.from_block, window.to_block, deadline=deadline
        ):
            try:
                swap = decode_swap(log)
            except EventDecodeError as e:
                record.skipped_events += 1
                logger.warning("%s: skipping swap event: %s", pair.pair_name, e)
                continue

            if swap.amount0_out > 0:
                total_volume += pair.token0.to_units(swap.amount0_out) * price0
            else:
                total_volume += pair.token1.to_units(swap.amount1_out) * price1
            record.swap_count += 1

        record.total_usd_volume = total_volume
        record.fees_usd = fees_from_volume(total_volume, self.lp_fee_share)
        logger.debug(
            "%s: %d swaps, volume $%.2f, fees $%.2f (%d skipped)",
            pair.pair_name, record.swap_count, total_volume, record.fees_usd, record.skipped_events
        )
        return record
