"""On-chain yield analytics for DeFi Kingdoms garden pools"""
from garden_analytics.errors import (
    ConfigError,
    EventDecodeError,
    GardenAnalyticsError,
    PoolNotFound,
    RpcUnavailable,
    ScanTimeout,
    UnpricedToken,
)
from garden_analytics.logging_config import configure_logging
from garden_analytics.services.analytics_service import (
    GardenAnalyticsService,
    PoolAnalytics,
    SharedAnalyticsContext,
)

__version__ = "0.1.0"

__all__ = [
    'GardenAnalyticsService',
    'PoolAnalytics',
    'SharedAnalyticsContext',
    'configure_logging',
    'GardenAnalyticsError',
    'ConfigError',
    'RpcUnavailable',
    'UnpricedToken',
    'EventDecodeError',
    'ScanTimeout',
    'PoolNotFound',
]
