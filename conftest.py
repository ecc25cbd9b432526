"""In-memory DFK Chain for tests.

FakeWeb3 implements the slice of web3.py the engine touches:
`eth.contract(address=..., abi=...).functions.<name>(*args).call()`,
`eth.block_number`, `eth.get_block(n)` and `eth.get_logs(filter)`.
Contracts are keyed by lower-cased address.
"""
import threading

import pytest

from garden_analytics.adapters.dfk.abis import (
    DEPOSIT_EVENT_SIGNATURE,
    QUEST_TYPE_INDEX,
    REWARD_MINTED_EVENT_SIGNATURE,
    SWAP_EVENT_SIGNATURE,
    WITHDRAW_EVENT_SIGNATURE,
    address_topic,
    event_topic,
)
from garden_analytics.adapters.dfk.lp_pairs import LPPairInfo, TokenInfo
from garden_analytics.retry_policy import RetryConfig

SWAP_TOPIC = event_topic(SWAP_EVENT_SIGNATURE)
REWARD_MINTED_TOPIC = event_topic(REWARD_MINTED_EVENT_SIGNATURE)
STAKE_TOPICS = {
    'Deposit': event_topic(DEPOSIT_EVENT_SIGNATURE),
    'Withdraw': event_topic(WITHDRAW_EVENT_SIGNATURE),
}

# 2024-01-01 00:00:00 UTC
DAY_START = 1704067200
DAY_END = DAY_START + 86399
# Block 500 is mined exactly at DAY_START with 2s blocks
GENESIS_TIMESTAMP = DAY_START - 1000
# 2024-01-02 01:00:00 UTC
LATEST_BLOCK = 45500
WINDOW_FROM_BLOCK = 500
WINDOW_TO_BLOCK = 43699

NO_RETRY = RetryConfig(max_attempts=1, initial_delay=0, jitter=False)


def addr(n: int) -> str:
    return '0x' + format(n, '040x')


def words(*values: int) -> bytes:
    return b''.join(int(v).to_bytes(32, 'big') for v in values)


def uint_topic(value: int) -> str:
    return '0x' + format(value, '064x')


USDC = addr(0xA1)
CRYSTAL = addr(0xA2)
JEWEL = addr(0xA3)
ORPHAN_A = addr(0xA4)
ORPHAN_B = addr(0xA5)

STAKING = addr(0xB1)
FACTORY = addr(0xB2)
QUEST_CORE = addr(0xB3)
QUEST_REWARD = addr(0xB4)

CRYSTAL_USDC = addr(0xC1)
JEWEL_CRYSTAL = addr(0xC2)
ORPHAN_PAIR = addr(0xC3)


def token(address: str, symbol: str, decimals: int = 18) -> TokenInfo:
    return TokenInfo(address=address, symbol=symbol, decimals=decimals)


def pair_info(pair_address, token0, token1, reserve0, reserve1, total_supply=10 ** 18) -> LPPairInfo:
    return LPPairInfo(pair_address, token0, token1, reserve0, reserve1, total_supply)


class FakeCall:
    def __init__(self, chain, address, fn_name, impl, args):
        self.chain = chain
        self.address = address
        self.fn_name = fn_name
        self.impl = impl
        self.args = args

    def call(self):
        self.chain.record(self.address, self.fn_name, self.args)
        impl = self.impl
        if isinstance(impl, Exception):
            raise impl
        if callable(impl):
            return impl(*self.args)
        return impl


class FakeFunctions:
    def __init__(self, chain, address, methods):
        self._chain = chain
        self._address = address
        self._methods = methods

    def __getattr__(self, name):
        if name not in self._methods:
            raise AttributeError(f"Fake contract {self._address} has no function {name}")

        def bind(*args):
            return FakeCall(self._chain, self._address, name, self._methods[name], args)
        return bind


class FakeContract:
    def __init__(self, chain, address, methods):
        self.address = address
        self.functions = FakeFunctions(chain, address, methods)


class FakeEth:
    def __init__(self, chain):
        self._chain = chain

    @property
    def block_number(self):
        return self._chain.latest_block

    def contract(self, address, abi=None):
        key = address.lower()
        if key not in self._chain.contracts:
            raise ValueError(f"No fake contract at {address}")
        return FakeContract(self._chain, key, self._chain.contracts[key])

    def get_block(self, block_number):
        self._chain.record(None, 'get_block', (block_number,))
        if block_number < 0 or block_number > self._chain.latest_block:
            raise ValueError(f"Block {block_number} not found")
        return {'number': block_number, 'timestamp': self._chain.timestamp_of(block_number)}

    def get_logs(self, filter_params):
        address = filter_params['address'].lower()
        self._chain.record(address, 'get_logs', (filter_params['fromBlock'], filter_params['toBlock']))
        if self._chain.get_logs_error is not None:
            raise self._chain.get_logs_error
        failing_block = self._chain.failing_log_blocks.get(address)
        if failing_block is not None and filter_params['fromBlock'] <= failing_block <= filter_params['toBlock']:
            raise ConnectionError(f"eth_getLogs({filter_params['fromBlock']}-{filter_params['toBlock']}) timed out")
        wanted = filter_params.get('topics') or []
        matched = []
        for log in self._chain.logs:
            if log['address'].lower() != address:
                continue
            if not filter_params['fromBlock'] <= log['blockNumber'] <= filter_params['toBlock']:
                continue
            topics = log['topics']
            if any(
                expected is not None and (i >= len(topics) or topics[i].lower() != expected.lower())
                for i, expected in enumerate(wanted)
            ):
                continue
            matched.append(log)
        # Providers do not promise order within a response
        return list(reversed(matched))


class FakeChain:
    """Contracts, blocks and logs of an in-memory chain"""

    def __init__(self, latest_block=LATEST_BLOCK, genesis_timestamp=GENESIS_TIMESTAMP, block_time=2):
        self.latest_block = latest_block
        self.genesis_timestamp = genesis_timestamp
        self.block_time = block_time
        self.contracts = {}
        self.logs = []
        self.calls = []
        self.get_logs_error = None
        # lower-cased address -> block whose log chunk always fails
        self.failing_log_blocks = {}
        self._lock = threading.Lock()

    def timestamp_of(self, block_number):
        return self.genesis_timestamp + block_number * self.block_time

    def record(self, address, fn_name, args):
        with self._lock:
            self.calls.append((address, fn_name, args))

    def count(self, fn_name, address=None):
        return sum(
            1 for a, name, _ in self.calls
            if name == fn_name and (address is None or a == address.lower())
        )

    def add_contract(self, address, **methods):
        self.contracts.setdefault(address.lower(), {}).update(methods)

    def add_token(self, address, symbol, decimals=18):
        self.add_contract(address, symbol=symbol, decimals=decimals)

    def add_pair(self, address, token0, token1, reserve0, reserve1, total_supply=10 ** 18):
        self.add_contract(
            address,
            token0=token0,
            token1=token1,
            getReserves=(reserve0, reserve1, 0),
            totalSupply=total_supply,
        )

    def set_factory(self, address, pairs, failing_indexes=()):
        def all_pairs(index):
            if index in failing_indexes:
                raise ConnectionError(f"allPairs({index}) timed out")
            return pairs[index]
        self.add_contract(address, allPairsLength=len(pairs), allPairs=all_pairs)

    def set_staking(self, address, pools, failing_pids=(), pending=None, user_info=None, failing_users=()):
        """
        pools: list of (lp_token, alloc_point, total_staked)
        user_info: {(pid, wallet): (amount, last_deposit_timestamp)}
        """
        def pool_info(pid):
            if pid in failing_pids:
                raise ConnectionError(f"getPoolInfo({pid}) timed out")
            lp_token, alloc_point, total_staked = pools[pid]
            return (lp_token, alloc_point, 0, 0, total_staked)

        def pending_rewards(pid, wallet):
            return (pending or {}).get(pid, 0)

        def get_user_info(pid, wallet):
            wallet = wallet.lower()
            if wallet in failing_users:
                raise ConnectionError(f"getUserInfo({pid}, {wallet}) timed out")
            amount, last_deposit_timestamp = (user_info or {}).get((pid, wallet), (0, 0))
            return (amount, 0, last_deposit_timestamp)

        self.add_contract(
            address,
            getPoolLength=len(pools),
            getPoolInfo=pool_info,
            getTotalAllocPoint=sum(p[1] for p in pools),
            getPendingRewards=pending_rewards,
            getUserInfo=get_user_info,
        )

    def set_quests(self, address, quest_pids, failing_quests=()):
        def get_quest(quest_id):
            if quest_id in failing_quests:
                raise ConnectionError(f"getQuest({quest_id}) timed out")
            quest = [0] * (QUEST_TYPE_INDEX + 3)
            quest[0] = quest_id
            quest[QUEST_TYPE_INDEX] = quest_pids[quest_id]
            return tuple(quest)
        self.add_contract(address, getQuest=get_quest)

    def add_log(self, address, topics, data, block_number, log_index=0):
        self.logs.append({
            'address': address,
            'topics': list(topics),
            'data': data,
            'blockNumber': block_number,
            'logIndex': log_index,
            'transactionHash': '0x' + format(len(self.logs), '064x'),
        })

    def add_swap(self, pair, block_number, amount0_in=0, amount1_in=0, amount0_out=0, amount1_out=0,
                 log_index=0):
        self.add_log(
            pair,
            [SWAP_TOPIC, address_topic(addr(0xE1)), address_topic(addr(0xE2))],
            words(amount0_in, amount1_in, amount0_out, amount1_out),
            block_number,
            log_index,
        )

    def add_reward_mint(self, quest_id, reward_token, amount, block_number, log_index=0,
                        player=None, hero_id=1):
        self.add_log(
            QUEST_REWARD,
            [REWARD_MINTED_TOPIC, uint_topic(quest_id), address_topic(player or addr(0xE3)),
             address_topic(reward_token)],
            words(hero_id, amount, 0),
            block_number,
            log_index,
        )

    def add_stake_event(self, kind, user, pid, amount, block_number, log_index=0):
        """kind: 'Deposit' or 'Withdraw' on the staking contract"""
        self.add_log(
            STAKING,
            [STAKE_TOPICS[kind], address_topic(user), uint_topic(pid)],
            words(amount),
            block_number,
            log_index,
        )


class FakeWeb3:
    def __init__(self, chain):
        self.chain = chain
        self.eth = FakeEth(chain)


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def web3(chain):
    return FakeWeb3(chain)


@pytest.fixture
def gardens_config():
    return {
        'enabled': True,
        'staking': STAKING,
        'factory': FACTORY,
        'quest_core': QUEST_CORE,
        'quest_reward': QUEST_REWARD,
        'anchor_token': USDC,
        'reward_token': {'symbol': 'CRYSTAL', 'address': CRYSTAL, 'decimals': 18},
        'priority_pairs': [CRYSTAL_USDC],
        'lp_fee_share': '0.002',
    }


@pytest.fixture
def rpc_config():
    return {
        'max_workers': 4,
        'max_blocks_per_query': 2048,
        'retry': {'max_attempts': 1, 'initial_delay': 0, 'jitter': False},
    }


@pytest.fixture
def garden_chain(chain):
    """
    Three gardens on a fake DFK Chain:

    pid 0  CRYSTAL-USDC   1,000,000 USDC / 500,000 CRYSTAL  -> CRYSTAL = $2
    pid 1  JEWEL-CRYSTAL  100,000 JEWEL / 50,000 CRYSTAL    -> JEWEL = $1
    pid 2  ORPHAN pair    no path to USDC
    """
    chain.add_token(USDC, 'USDC', 6)
    chain.add_token(CRYSTAL, 'CRYSTAL', 18)
    chain.add_token(JEWEL, 'JEWEL', 18)
    chain.add_token(ORPHAN_A, 'ORPA', 18)
    chain.add_token(ORPHAN_B, 'ORPB', 18)

    chain.add_pair(CRYSTAL_USDC, USDC, CRYSTAL, 1_000_000 * 10 ** 6, 500_000 * 10 ** 18, 4 * 10 ** 18)
    chain.add_pair(JEWEL_CRYSTAL, JEWEL, CRYSTAL, 100_000 * 10 ** 18, 50_000 * 10 ** 18, 10 ** 18)
    chain.add_pair(ORPHAN_PAIR, ORPHAN_A, ORPHAN_B, 10 ** 21, 10 ** 21, 10 ** 21)

    chain.set_factory(FACTORY, [JEWEL_CRYSTAL, CRYSTAL_USDC, ORPHAN_PAIR])
    chain.set_staking(STAKING, [
        (CRYSTAL_USDC, 300, 2 * 10 ** 18),  # half of the LP supply staked
        (JEWEL_CRYSTAL, 100, 10 ** 18),      # all staked
        (ORPHAN_PAIR, 100, 10 ** 20),
    ])
    chain.set_quests(QUEST_CORE, {1: 0, 2: 1, 3: 2})
    return chain



@pytest.fixture
def active_gardens(garden_chain):
    """
    Previous-day activity on top of garden_chain:

    pid 0: $1M of USDC bought (fees $2,000 on $2M TVL -> 36.5%),
           500 CRYSTAL minted ($1,000 on $1M staked -> 36.5%)
    pid 1: no swaps, 1,000 CRYSTAL minted ($2,000 on $200k staked -> 365%)
    pid 2: unpriced pair, 10 CRYSTAL minted
    """
    unit = 10 ** 18
    garden_chain.add_swap(CRYSTAL_USDC, 1000, amount1_in=500_000 * unit, amount0_out=1_000_000 * 10 ** 6)
    garden_chain.add_swap(CRYSTAL_USDC, WINDOW_TO_BLOCK + 10, amount0_out=10 ** 12)
    garden_chain.add_swap(ORPHAN_PAIR, 2000, amount0_out=unit)

    garden_chain.add_reward_mint(1, CRYSTAL, 500 * unit, 3000)
    garden_chain.add_reward_mint(2, CRYSTAL, 600 * unit, 4000)
    garden_chain.add_reward_mint(2, CRYSTAL, 400 * unit, WINDOW_TO_BLOCK)
    garden_chain.add_reward_mint(3, CRYSTAL, 10 * unit, 5000)
    garden_chain.add_reward_mint(1, CRYSTAL, 999 * unit, WINDOW_FROM_BLOCK - 1)
    garden_chain.add_reward_mint(1, JEWEL, 999 * unit, 3001)
    return garden_chain
