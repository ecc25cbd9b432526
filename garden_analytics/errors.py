"""Error kinds raised by the garden analytics engine"""
from typing import Optional


class GardenAnalyticsError(Exception):
    """Base class for all engine errors"""


class ConfigError(GardenAnalyticsError):
    """Required configuration is missing or malformed"""


class RpcUnavailable(GardenAnalyticsError):
    """
    A JSON-RPC call failed or timed out.

    Raised after the retry policy has given up. Fatal for batch-wide steps
    (pool length, factory enumeration, latest block), per-pool otherwise.
    """

    def __init__(self, message: str, method: Optional[str] = None):
        super().__init__(message)
        self.method = method


class UnpricedToken(GardenAnalyticsError):
    """The price graph BFS never reached this token"""

    def __init__(self, token: str):
        super().__init__(f"No price path from anchor to token {token}")
        self.token = token


class EventDecodeError(GardenAnalyticsError):
    """A log did not have the layout of the event it was filtered for"""


class ScanTimeout(GardenAnalyticsError):
    """The caller's deadline expired while a log scan was in flight"""


class PoolNotFound(GardenAnalyticsError):
    """No staking pool with this pid"""

    def __init__(self, pid: int):
        super().__init__(f"Pool {pid} not found")
        self.pid = pid
