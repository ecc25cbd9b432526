"""Chunked eth_getLogs scanning and raw log decoding"""
import logging
import time
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from web3 import Web3

from garden_analytics.errors import EventDecodeError, ScanTimeout
from garden_analytics.retry_policy import RetryConfig, retry_with_backoff

logger = logging.getLogger(__name__)

# DFK Chain RPC rejects getLogs spans above 2048 blocks
DEFAULT_MAX_BLOCKS_PER_QUERY = 2048

WORD_SIZE = 32


def iter_block_ranges(from_block: int, to_block: int, max_span: int) -> Iterator[Tuple[int, int]]:
    """Inclusive [start, end] sub-ranges of at most max_span blocks, ascending."""
    if max_span < 1:
        raise ValueError("max_span must be positive")
    current_block = from_block
    while current_block <= to_block:
        chunk_end = min(current_block + max_span - 1, to_block)
        yield current_block, chunk_end
        current_block = chunk_end + 1


class LogScanner:
    """
    Lazily yields logs for one address/topic filter over a block range.

    Chunks are fetched one after another in block order, so the yielded
    sequence is ordered and sums over it are deterministic.
    """

    def __init__(
        self,
        web3: Web3,
        max_blocks_per_query: int = DEFAULT_MAX_BLOCKS_PER_QUERY,
        retry_config: Optional[RetryConfig] = None
    ):
        self.web3 = web3
        self.max_blocks_per_query = max_blocks_per_query
        self.retry_config = retry_config

    def iter_logs(
        self,
        address: str,
        topics: Sequence[Optional[str]],
        from_block: int,
        to_block: int,
        deadline: Optional[float] = None
    ) -> Iterator[Dict[str, Any]]:
        """
        Args:
            address: Emitting contract
            topics: Topic filter (None = wildcard)
            from_block: First block, inclusive
            to_block: Last block, inclusive
            deadline: time.monotonic() value after which no new chunk is fetched

        Raises:
            ScanTimeout: if the deadline passed before the scan finished
            RpcUnavailable: if a chunk could not be fetched after retries
        """
        checksum_address = Web3.to_checksum_address(address)
        for chunk_start, chunk_end in iter_block_ranges(from_block, to_block, self.max_blocks_per_query):
            if deadline is not None and time.monotonic() > deadline:
                raise ScanTimeout(
                    f"Deadline reached scanning {address} at block {chunk_start} of {from_block}-{to_block}"
                )
            chunk_logs = retry_with_backoff(
                self.web3.eth.get_logs,
                {
                    'fromBlock': chunk_start,
                    'toBlock': chunk_end,
                    'address': checksum_address,
                    'topics': list(topics),
                },
                config=self.retry_config,
                description=f'eth_getLogs({chunk_start}-{chunk_end})'
            )
            logger.debug("Queried blocks %d-%d: found %d events", chunk_start, chunk_end, len(chunk_logs))
            for log in sorted(chunk_logs, key=_log_position):
                yield log

    def get_logs(self, *args, **kwargs) -> List[Dict[str, Any]]:
        return list(self.iter_logs(*args, **kwargs))


def _log_position(log: Dict[str, Any]) -> Tuple[int, int]:
    return int(log.get('blockNumber', 0)), int(log.get('logIndex', 0))


def log_data_bytes(log: Dict[str, Any]) -> bytes:
    """Log data as bytes whether the provider returned HexBytes or a hex string"""
    data = log.get('data', b'')
    if isinstance(data, str):
        return bytes.fromhex(data[2:] if data.startswith('0x') else data)
    return bytes(data)


def decode_words(log: Dict[str, Any], count: int) -> List[int]:
    """
    Split non-indexed event data into uint256 words.

    Raises:
        EventDecodeError: if the data is shorter than count words
    """
    data = log_data_bytes(log)
    if len(data) < count * WORD_SIZE:
        raise EventDecodeError(
            f"Expected {count} words of event data, got {len(data)} bytes "
            f"(block {log.get('blockNumber')}, log {log.get('logIndex')})"
        )
    return [int.from_bytes(data[i * WORD_SIZE:(i + 1) * WORD_SIZE], 'big') for i in range(count)]


def topic_int(log: Dict[str, Any], index: int) -> int:
    """
    Raises:
        EventDecodeError: if the topic is missing
    """
    topics = log.get('topics') or []
    if len(topics) <= index:
        raise EventDecodeError(f"Log has {len(topics)} topics, expected at least {index + 1}")
    topic = topics[index]
    if isinstance(topic, str):
        return int(topic, 16)
    return int.from_bytes(bytes(topic), 'big')


def topic_address(log: Dict[str, Any], index: int) -> str:
    return '0x' + format(topic_int(log, index), '040x')[-40:]
