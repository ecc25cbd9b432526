"""
Previous-UTC-day block range resolution.

The analytics window is the previous UTC calendar day, 00:00:00 to 23:59:59,
never "now minus 24h". Two callers on the same UTC day therefore scan the
exact same blocks and get identical figures.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

from web3 import Web3

from garden_analytics.retry_policy import RetryConfig, retry_with_backoff

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class TimeWindow:
    from_block: int
    to_block: int
    from_timestamp: int
    to_timestamp: int
    # True when the block range was estimated from block time instead of searched
    estimated: bool = False

    @property
    def block_count(self) -> int:
        return self.to_block - self.from_block + 1

    @property
    def day(self) -> str:
        return datetime.fromtimestamp(self.from_timestamp, tz=timezone.utc).strftime('%Y-%m-%d')


def previous_utc_day_bounds(now_timestamp: int) -> Tuple[int, int]:
    """
    Unix timestamps of yesterday 00:00:00 and 23:59:59 UTC relative to now.

    Args:
        now_timestamp: Any unix timestamp within "today"

    Returns:
        (day_start, day_end), day_end = day_start + 86399
    """
    now = datetime.fromtimestamp(int(now_timestamp), tz=timezone.utc)
    today_start = datetime(now.year, now.month, now.day, tzinfo=timezone.utc)
    day_start = int((today_start - timedelta(days=1)).timestamp())
    return day_start, day_start + SECONDS_PER_DAY - 1


class TimeWindowResolver:
    """Maps calendar time to block numbers by binary search on block timestamps"""

    def __init__(self, web3: Web3, block_time_seconds: float = 2, retry_config: Optional[RetryConfig] = None):
        self.web3 = web3
        self.block_time_seconds = block_time_seconds
        self.retry_config = retry_config

    def get_latest_block_number(self) -> int:
        return int(retry_with_backoff(
            lambda: self.web3.eth.block_number, config=self.retry_config, description='eth_blockNumber'
        ))

    def get_block_timestamp(self, block_number: int, cache: Optional[Dict[int, int]] = None) -> int:
        if cache is not None and block_number in cache:
            return cache[block_number]
        block = retry_with_backoff(
            self.web3.eth.get_block, block_number,
            config=self.retry_config, description=f'eth_getBlockByNumber({block_number})'
        )
        timestamp = int(block['timestamp'])
        if cache is not None:
            cache[block_number] = timestamp
        return timestamp

    def find_block_at_or_after(
        self,
        target_timestamp: int,
        latest_block: int,
        cache: Optional[Dict[int, int]] = None
    ) -> Optional[int]:
        """First block whose timestamp is >= target, or None if there is none."""
        low, high = 0, latest_block
        result = None
        while low <= high:
            mid = (low + high) // 2
            if self.get_block_timestamp(mid, cache) >= target_timestamp:
                result = mid
                high = mid - 1
            else:
                low = mid + 1
        return result

    def find_block_at_or_before(
        self,
        target_timestamp: int,
        latest_block: int,
        cache: Optional[Dict[int, int]] = None
    ) -> Optional[int]:
        """Last block whose timestamp is <= target, or None if there is none."""
        low, high = 0, latest_block
        result = None
        while low <= high:
            mid = (low + high) // 2
            if self.get_block_timestamp(mid, cache) <= target_timestamp:
                result = mid
                low = mid + 1
            else:
                high = mid - 1
        return result

    def _estimate_window(self, day_start: int, day_end: int, latest_block: int, latest_timestamp: int) -> TimeWindow:
        blocks_to_start = int((latest_timestamp - day_start) // self.block_time_seconds)
        blocks_to_end = int((latest_timestamp - day_end) // self.block_time_seconds)
        from_block = min(max(0, latest_block - blocks_to_start), latest_block)
        to_block = min(max(from_block, latest_block - blocks_to_end), latest_block)
        logger.warning(
            "Binary search gave no valid range for %d-%d, using estimated blocks %d-%d",
            day_start, day_end, from_block, to_block
        )
        return TimeWindow(from_block, to_block, day_start, day_end, estimated=True)

    def get_previous_utc_day_block_range(self, now_timestamp: Optional[int] = None) -> TimeWindow:
        """
        Block range covering yesterday (UTC).

        Args:
            now_timestamp: Reference time; defaults to the latest block's timestamp

        Returns:
            TimeWindow with from_block = first block >= 00:00:00 and
            to_block = last block <= 23:59:59

        Raises:
            RpcUnavailable: if the latest block or a searched block could not be read
        """
        timestamps: Dict[int, int] = {}
        latest_block = self.get_latest_block_number()
        latest_timestamp = self.get_block_timestamp(latest_block, timestamps)
        if now_timestamp is None:
            now_timestamp = latest_timestamp

        day_start, day_end = previous_utc_day_bounds(now_timestamp)

        from_block = self.find_block_at_or_after(day_start, latest_block, timestamps)
        to_block = self.find_block_at_or_before(day_end, latest_block, timestamps)

        if from_block is None or to_block is None or from_block > to_block:
            return self._estimate_window(day_start, day_end, latest_block, latest_timestamp)

        window = TimeWindow(from_block, to_block, day_start, day_end)
        logger.info(
            "Previous UTC day %s: blocks %d to %d (%d blocks, %d block reads)",
            window.day, from_block, to_block, window.block_count, len(timestamps)
        )
        return window
