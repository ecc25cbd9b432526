"""
Reward-token emissions per garden pool from quest RewardMinted events.

Gardening quests mint the pool's reward token to the player when the quest
completes. The event carries the quest id but not the pool, so each quest is
looked up once in the quest core contract: its questType is the garden pid.
"""
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional, Tuple

from web3 import Web3

from garden_analytics.adapters.dfk.abis import (
    QUEST_TYPE_INDEX,
    REWARD_MINTED_EVENT_SIGNATURE,
    address_topic,
    event_topic,
    get_abi,
)
from garden_analytics.adapters.dfk.log_scanner import LogScanner, decode_words, topic_int
from garden_analytics.adapters.dfk.time_window import TimeWindow
from garden_analytics.errors import EventDecodeError, RpcUnavailable, ScanTimeout
from garden_analytics.retry_policy import RetryConfig, call_contract

logger = logging.getLogger(__name__)

REWARD_MINTED_TOPIC = event_topic(REWARD_MINTED_EVENT_SIGNATURE)


@dataclass
class EmissionRecord:
    pid: int
    reward_token: str
    total_reward_raw: int = 0
    total_usd_rewards: Optional[Decimal] = None  # None when the reward token is unpriced
    event_count: int = 0
    skipped_events: int = 0


@dataclass
class _EmissionScan:
    """Raw totals of one window scan, bucketed by pid"""
    amounts: Dict[int, int]
    counts: Dict[int, int]
    skipped: int


class EmissionAggregator:
    """
    Sums reward mints attributed to each pool over a time window.

    The window is scanned once per aggregator and bucketed by pid, so
    aggregating every pool of a run costs one log scan. A scan that fails is
    reported to every pool without being repeated. Create one aggregator per
    analytics run.
    """

    def __init__(
        self,
        web3: Web3,
        scanner: LogScanner,
        quest_reward_address: str,
        quest_core_address: str,
        reward_decimals: int = 18,
        retry_config: Optional[RetryConfig] = None
    ):
        self.web3 = web3
        self.scanner = scanner
        self.quest_reward_address = quest_reward_address
        self.quest_core_address = quest_core_address
        self.reward_decimals = reward_decimals
        self.retry_config = retry_config
        self._quest_core = None
        self._quest_types: Dict[int, int] = {}
        self._scans: Dict[Tuple[str, int, int], _EmissionScan] = {}
        # A failed scan is not retried by later pools of the same run
        self._failures: Dict[Tuple[str, int, int], Exception] = {}
        self._lock = threading.Lock()

    @property
    def quest_core(self):
        if self._quest_core is None:
            self._quest_core = self.web3.eth.contract(
                address=Web3.to_checksum_address(self.quest_core_address),
                abi=get_abi('quest_core')
            )
        return self._quest_core

    def get_quest_pid(self, quest_id: int) -> int:
        """Garden pid a quest was run on (its questType), cached per quest id"""
        if quest_id in self._quest_types:
            return self._quest_types[quest_id]
        quest = call_contract(
            self.quest_core.functions.getQuest(quest_id), self.retry_config, f'getQuest({quest_id})'
        )
        pid = int(quest[QUEST_TYPE_INDEX])
        self._quest_types[quest_id] = pid
        return pid

    def _scan(self, reward_token: str, window: TimeWindow, deadline: Optional[float]) -> _EmissionScan:
        amounts: Dict[int, int] = defaultdict(int)
        counts: Dict[int, int] = defaultdict(int)
        skipped = 0
        topics = [REWARD_MINTED_TOPIC, None, None, address_topic(reward_token)]

        for log in self.scanner.iter_logs(
            self.quest_reward_address, topics, window.from_block, window.to_block, deadline=deadline
        ):
            try:
                quest_id = topic_int(log, 1)
                _hero_id, amount, _data = decode_words(log, 3)
                pid = self.get_quest_pid(quest_id)
            except (EventDecodeError, RpcUnavailable) as e:
                skipped += 1
                logger.warning("Skipping RewardMinted event in block %s: %s", log.get('blockNumber'), e)
                continue
            amounts[pid] += amount
            counts[pid] += 1

        logger.info(
            "Scanned reward mints for blocks %d-%d: %d events across %d pools (%d skipped)",
            window.from_block, window.to_block, sum(counts.values()), len(counts), skipped
        )
        return _EmissionScan(dict(amounts), dict(counts), skipped)

    def _get_scan(self, reward_token: str, window: TimeWindow, deadline: Optional[float]) -> _EmissionScan:
        key = (reward_token.lower(), window.from_block, window.to_block)
        # Held for the whole scan so concurrent pools wait for one scan
        with self._lock:
            if key in self._failures:
                raise self._failures[key]
            if key not in self._scans:
                try:
                    self._scans[key] = self._scan(reward_token, window, deadline)
                except (RpcUnavailable, ScanTimeout) as e:
                    self._failures[key] = e
                    raise
            return self._scans[key]

    def aggregate(
        self,
        pid: int,
        reward_token: str,
        reward_price: Optional[Decimal],
        window: TimeWindow,
        deadline: Optional[float] = None
    ) -> EmissionRecord:
        """
        Reward tokens minted to players questing in pool `pid` during window.

        Args:
            pid: Garden pool id
            reward_token: Reward token address (CRYSTAL on DFK Chain)
            reward_price: USD price of the reward token, None if unpriced
            window: Previous-UTC-day block range
            deadline: time.monotonic() cut-off for the log scan

        Raises:
            ScanTimeout: deadline passed mid-scan
            RpcUnavailable: a log chunk could not be fetched
        """
        scan = self._get_scan(reward_token, window, deadline)
        record = EmissionRecord(
            pid=pid,
            reward_token=reward_token,
            total_reward_raw=scan.amounts.get(pid, 0),
            event_count=scan.counts.get(pid, 0),
            skipped_events=scan.skipped,
        )
        if reward_price is not None:
            amount = Decimal(record.total_reward_raw) / (Decimal(10) ** self.reward_decimals)
            record.total_usd_rewards = amount * reward_price
        return record
