"""
Garden pool registry backed by the LP staking (Master Gardener V2) contract.

Pools are read straight from contract state on every call; the registry
keeps no pool list between calls. Stakers of a pool are found from the
contract's Deposit/Withdraw events and confirmed with getUserInfo.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from web3 import Web3

from garden_analytics.adapters.dfk.abis import (
    DEPOSIT_EVENT_SIGNATURE,
    WITHDRAW_EVENT_SIGNATURE,
    event_topic,
    get_abi,
    uint_topic,
)
from garden_analytics.adapters.dfk.log_scanner import (
    DEFAULT_MAX_BLOCKS_PER_QUERY,
    LogScanner,
    decode_words,
    topic_address,
)
from garden_analytics.errors import EventDecodeError, RpcUnavailable
from garden_analytics.retry_policy import RetryConfig, call_contract, retry_with_backoff

logger = logging.getLogger(__name__)

DEPOSIT_TOPIC = event_topic(DEPOSIT_EVENT_SIGNATURE)
WITHDRAW_TOPIC = event_topic(WITHDRAW_EVENT_SIGNATURE)

# ~7 days of 2s blocks
DEFAULT_STAKER_LOOKBACK_BLOCKS = 43200 * 7

LP_DECIMALS = 18


@dataclass(frozen=True)
class Pool:
    """Snapshot of one staking pool (getPoolInfo)."""
    pid: int
    lp_token: str
    alloc_point: int
    total_staked: int  # raw LP units, 18 decimals
    last_reward_block: int = 0
    acc_reward_per_share: int = 0


@dataclass(frozen=True)
class DegradedPool:
    """A pool whose getPoolInfo call failed during discovery."""
    pid: int
    reason: str


@dataclass(frozen=True)
class StakeActivity:
    """Most recent Deposit or Withdraw of a wallet in a pool."""
    kind: str  # 'Deposit' or 'Withdraw'
    amount: int
    block_number: int
    log_index: int = 0
    tx_hash: Any = None


@dataclass(frozen=True)
class PoolStaker:
    wallet: str
    staked_lp_raw: int
    last_deposit_timestamp: int
    last_activity: StakeActivity

    @property
    def staked_lp(self) -> Decimal:
        return Decimal(self.staked_lp_raw) / (Decimal(10) ** LP_DECIMALS)


class PoolRegistry:
    """Enumerates staking pools and their allocation weights"""

    def __init__(
        self,
        web3: Web3,
        staking_address: str,
        max_workers: int = 6,
        retry_config: Optional[RetryConfig] = None,
        max_blocks_per_query: int = DEFAULT_MAX_BLOCKS_PER_QUERY
    ):
        self.web3 = web3
        self.staking_address = staking_address
        self.max_workers = max(1, max_workers)
        self.retry_config = retry_config
        self.max_blocks_per_query = max_blocks_per_query
        self._contract = None

    @property
    def contract(self):
        if self._contract is None:
            self._contract = self.web3.eth.contract(
                address=Web3.to_checksum_address(self.staking_address),
                abi=get_abi('lp_staking')
            )
        return self._contract

    def get_pool_length(self) -> int:
        return int(call_contract(self.contract.functions.getPoolLength(), self.retry_config, 'getPoolLength'))

    def get_pool_info(self, pid: int) -> Pool:
        """
        Fetch one pool.

        Raises:
            RpcUnavailable: if the call failed after retries
        """
        info = call_contract(self.contract.functions.getPoolInfo(pid), self.retry_config, f'getPoolInfo({pid})')
        lp_token, alloc_point, last_reward_block, acc_reward_per_share, total_staked = info
        return Pool(
            pid=pid,
            lp_token=lp_token,
            alloc_point=int(alloc_point),
            total_staked=int(total_staked),
            last_reward_block=int(last_reward_block),
            acc_reward_per_share=int(acc_reward_per_share),
        )

    def discover_pools(self) -> Tuple[List[Pool], List[DegradedPool]]:
        """
        Discover every pool registered on the staking contract.

        getPoolInfo calls run concurrently, bounded by max_workers. A pool
        whose call fails is reported as degraded instead of failing the batch.

        Returns:
            (pools ordered by pid, degraded pools ordered by pid)

        Raises:
            RpcUnavailable: if getPoolLength itself failed
        """
        pool_length = self.get_pool_length()
        logger.info("Staking contract reports %d pools", pool_length)

        pools: List[Pool] = []
        degraded: List[DegradedPool] = []
        if pool_length == 0:
            return pools, degraded

        with ThreadPoolExecutor(max_workers=min(self.max_workers, pool_length)) as executor:
            futures = {executor.submit(self.get_pool_info, pid): pid for pid in range(pool_length)}
            for future in as_completed(futures):
                pid = futures[future]
                try:
                    pools.append(future.result())
                except RpcUnavailable as e:
                    logger.warning("Pool %d skipped: %s", pid, e)
                    degraded.append(DegradedPool(pid=pid, reason=str(e)))

        pools.sort(key=lambda p: p.pid)
        degraded.sort(key=lambda d: d.pid)
        logger.info("Discovered %d pools (%d degraded)", len(pools), len(degraded))
        return pools, degraded

    def get_total_alloc_point(self) -> int:
        return int(call_contract(self.contract.functions.getTotalAllocPoint(), self.retry_config, 'getTotalAllocPoint'))

    def get_pending_rewards(self, pid: int, wallet_address: str) -> int:
        """Unclaimed reward-token amount (raw units) for a wallet in a pool."""
        return int(call_contract(
            self.contract.functions.getPendingRewards(pid, Web3.to_checksum_address(wallet_address)),
            self.retry_config,
            f'getPendingRewards({pid})'
        ))

    def get_user_info(self, pid: int, wallet_address: str) -> Tuple[int, int]:
        """(staked LP raw amount, last deposit timestamp) of a wallet in a pool"""
        info = call_contract(
            self.contract.functions.getUserInfo(pid, Web3.to_checksum_address(wallet_address)),
            self.retry_config,
            f'getUserInfo({pid})'
        )
        amount, _reward_debt, last_deposit_timestamp = info
        return int(amount), int(last_deposit_timestamp)

    def _latest_stake_activity(self, pid: int, from_block: int, to_block: int,
                               deadline: Optional[float]) -> Dict[str, StakeActivity]:
        scanner = LogScanner(self.web3, self.max_blocks_per_query, self.retry_config)
        activity: Dict[str, StakeActivity] = {}
        skipped = 0
        for kind, topic in (('Deposit', DEPOSIT_TOPIC), ('Withdraw', WITHDRAW_TOPIC)):
            for log in scanner.iter_logs(
                self.staking_address, [topic, None, uint_topic(pid)], from_block, to_block, deadline=deadline
            ):
                try:
                    wallet = topic_address(log, 1)
                    (amount,) = decode_words(log, 1)
                except EventDecodeError as e:
                    skipped += 1
                    logger.warning("Skipping %s event in block %s: %s", kind, log.get('blockNumber'), e)
                    continue
                event = StakeActivity(
                    kind=kind,
                    amount=amount,
                    block_number=int(log.get('blockNumber', 0)),
                    log_index=int(log.get('logIndex', 0)),
                    tx_hash=log.get('transactionHash'),
                )
                previous = activity.get(wallet)
                if previous is None or (event.block_number, event.log_index) > (
                        previous.block_number, previous.log_index):
                    activity[wallet] = event

        logger.info(
            "Pool %d: %d wallets with stake activity in blocks %d-%d (%d events skipped)",
            pid, len(activity), from_block, to_block, skipped
        )
        return activity

    def get_pool_stakers(self, pid: int, from_block: Optional[int] = None,
                         deadline: Optional[float] = None) -> List[PoolStaker]:
        """
        Wallets currently staking in a pool, largest stake first.

        Candidate wallets come from Deposit/Withdraw events between from_block
        and the latest block; a wallet that staked before from_block and has
        not touched the pool since is not found. Current balances are read
        with getUserInfo, concurrently and bounded by max_workers. Wallets
        whose balance could not be read are logged and left out.

        Args:
            pid: Pool id
            from_block: First block to scan; defaults to about 7 days back
            deadline: time.monotonic() cut-off for the event scans

        Raises:
            RpcUnavailable: if the latest block or an event chunk could not be fetched
            ScanTimeout: if the deadline passed mid-scan
        """
        latest_block = int(retry_with_backoff(
            lambda: self.web3.eth.block_number, config=self.retry_config, description='eth_blockNumber'
        ))
        if from_block is None:
            from_block = max(0, latest_block - DEFAULT_STAKER_LOOKBACK_BLOCKS)
        activity = self._latest_stake_activity(pid, from_block, latest_block, deadline)

        stakers: List[PoolStaker] = []
        if not activity:
            return stakers

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(activity))) as executor:
            futures = {
                executor.submit(self.get_user_info, pid, wallet): wallet
                for wallet in activity
            }
            for future in as_completed(futures):
                wallet = futures[future]
                try:
                    amount, last_deposit_timestamp = future.result()
                except RpcUnavailable as e:
                    logger.warning("Pool %d: user info for %s unavailable: %s", pid, wallet, e)
                    continue
                if amount > 0:
                    stakers.append(PoolStaker(wallet, amount, last_deposit_timestamp, activity[wallet]))

        stakers.sort(key=lambda s: (-s.staked_lp_raw, s.wallet))
        logger.info("Pool %d: %d wallets currently staking", pid, len(stakers))
        return stakers
