"""Minimal ABIs for the DFK Chain garden contracts, with local-file overrides"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from eth_utils import keccak, to_bytes, to_hex

logger = logging.getLogger(__name__)

ABIS_DIR = Path(__file__).parent.parent.parent.parent / "abis"


# LP staking (Master Gardener V2) - only what the analytics read
LP_STAKING_ABI = [
    {
        "inputs": [],
        "name": "getPoolLength",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"internalType": "uint256", "name": "_pid", "type": "uint256"}],
        "name": "getPoolInfo",
        "outputs": [
            {
                "components": [
                    {"internalType": "address", "name": "lpToken", "type": "address"},
                    {"internalType": "uint256", "name": "allocPoint", "type": "uint256"},
                    {"internalType": "uint256", "name": "lastRewardBlock", "type": "uint256"},
                    {"internalType": "uint256", "name": "accRewardPerShare", "type": "uint256"},
                    {"internalType": "uint256", "name": "totalStaked", "type": "uint256"}
                ],
                "internalType": "struct PoolInfo",
                "name": "",
                "type": "tuple"
            }
        ],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "getTotalAllocPoint",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [
            {"internalType": "uint256", "name": "_pid", "type": "uint256"},
            {"internalType": "address", "name": "_user", "type": "address"}
        ],
        "name": "getPendingRewards",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [
            {"internalType": "uint256", "name": "_pid", "type": "uint256"},
            {"internalType": "address", "name": "_user", "type": "address"}
        ],
        "name": "getUserInfo",
        "outputs": [
            {"internalType": "uint256", "name": "amount", "type": "uint256"},
            {"internalType": "int256", "name": "rewardDebt", "type": "int256"},
            {"internalType": "uint256", "name": "lastDepositTimestamp", "type": "uint256"}
        ],
        "stateMutability": "view",
        "type": "function"
    }
]

# Uniswap V2 Factory ABI (enumeration only)
UNISWAP_V2_FACTORY_ABI = [
    {
        "inputs": [],
        "name": "allPairsLength",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "name": "allPairs",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function"
    }
]

# Uniswap V2 Pair ABI (reserves, constituents, LP supply)
UNISWAP_V2_PAIR_ABI = [
    {
        "inputs": [],
        "name": "getReserves",
        "outputs": [
            {"internalType": "uint112", "name": "_reserve0", "type": "uint112"},
            {"internalType": "uint112", "name": "_reserve1", "type": "uint112"},
            {"internalType": "uint32", "name": "_blockTimestampLast", "type": "uint32"}
        ],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "token0",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "token1",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "totalSupply",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    }
]

ERC20_ABI = [
    {
        "inputs": [],
        "name": "symbol",
        "outputs": [{"type": "string", "name": ""}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"type": "uint8", "name": ""}],
        "stateMutability": "view",
        "type": "function"
    }
]

# QuestCoreV3.getQuest - questType is the garden pid for gardening quests
QUEST_CORE_ABI = [
    {
        "inputs": [{"internalType": "uint256", "name": "_questId", "type": "uint256"}],
        "name": "getQuest",
        "outputs": [
            {
                "components": [
                    {"internalType": "uint256", "name": "id", "type": "uint256"},
                    {"internalType": "uint256", "name": "questInstanceId", "type": "uint256"},
                    {"internalType": "uint8", "name": "level", "type": "uint8"},
                    {"internalType": "uint256[]", "name": "heroes", "type": "uint256[]"},
                    {"internalType": "address", "name": "player", "type": "address"},
                    {"internalType": "uint256", "name": "startBlock", "type": "uint256"},
                    {"internalType": "uint256", "name": "startAtTime", "type": "uint256"},
                    {"internalType": "uint256", "name": "completeAtTime", "type": "uint256"},
                    {"internalType": "uint8", "name": "attempts", "type": "uint8"},
                    {"internalType": "uint8", "name": "status", "type": "uint8"},
                    {"internalType": "uint8", "name": "questType", "type": "uint8"}
                ],
                "internalType": "struct Quest",
                "name": "",
                "type": "tuple"
            }
        ],
        "stateMutability": "view",
        "type": "function"
    }
]

# Index of questType inside the getQuest tuple
QUEST_TYPE_INDEX = 10

# Event signatures (decoded by hand from raw logs)
SWAP_EVENT_SIGNATURE = "Swap(address,uint256,uint256,uint256,uint256,address)"
REWARD_MINTED_EVENT_SIGNATURE = "RewardMinted(uint256,address,uint256,address,uint256,uint256)"
# Staking events: user and pid indexed, amount in data
DEPOSIT_EVENT_SIGNATURE = "Deposit(address,uint256,uint256)"
WITHDRAW_EVENT_SIGNATURE = "Withdraw(address,uint256,uint256)"

_MINIMAL_ABIS = {
    'lp_staking': LP_STAKING_ABI,
    'uniswap_v2_factory': UNISWAP_V2_FACTORY_ABI,
    'uniswap_v2_pair': UNISWAP_V2_PAIR_ABI,
    'erc20': ERC20_ABI,
    'quest_core': QUEST_CORE_ABI,
}


def event_topic(signature: str) -> str:
    """keccak256 topic0 for an event signature, as 0x-prefixed hex"""
    return to_hex(keccak(to_bytes(text=signature)))


def address_topic(address: str) -> str:
    """Left-pad an address into a 32-byte indexed topic"""
    return '0x' + address.lower().replace('0x', '').zfill(64)


def uint_topic(value: int) -> str:
    """uint256 indexed topic"""
    return '0x' + format(int(value), '064x')


def load_abi_from_file(contract_name: str) -> Optional[List[Dict[str, Any]]]:
    """
    Load ABI from a local file if one was extracted manually.

    Args:
        contract_name: Name of contract (e.g., 'lp_staking', 'quest_core')

    Returns:
        ABI as a list, or None if the file doesn't exist or can't be parsed
    """
    abi_file = ABIS_DIR / f"{contract_name.lower()}_abi.json"
    if not abi_file.exists():
        return None
    try:
        with open(abi_file, 'r') as f:
            abi = json.load(f)
        logger.info("Loaded ABI from local file: %s", abi_file)
        return abi
    except (OSError, ValueError) as e:
        logger.warning("Error loading ABI from %s: %s", abi_file, e)
        return None


def get_abi(contract_name: str) -> List[Dict[str, Any]]:
    """Local ABI file if present, otherwise the bundled minimal ABI."""
    if contract_name not in _MINIMAL_ABIS:
        raise KeyError(f"Unknown contract ABI: {contract_name}")
    return load_abi_from_file(contract_name) or _MINIMAL_ABIS[contract_name]
