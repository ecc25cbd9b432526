"""DFK Chain adapter implementation"""
from typing import Dict
from web3 import Web3
from garden_analytics.adapters.base import ChainAdapter
from garden_analytics.errors import ConfigError

DEFAULT_RPC_TIMEOUT = 20


class DFKChainAdapter(ChainAdapter):
    """Adapter for DeFi Kingdoms Chain (Avalanche subnet)"""

    def __init__(self, config: Dict):
        super().__init__("dfk", config)
        self.web3_instance = None
        self.initialize_protocols()

    @property
    def rpc_config(self) -> Dict:
        return self.config.get('rpc') or {}

    def initialize_protocols(self):
        """Initialize DFK protocol adapters"""
        from garden_analytics.adapters.dfk.gardens import GardensAdapter

        if 'gardens' in self.config.get('protocols', {}):
            gardens_config = self.config['protocols']['gardens']
            if gardens_config.get('enabled', False):
                gardens_adapter = GardensAdapter(
                    'gardens', gardens_config,
                    rpc_config=self.rpc_config,
                    block_time_seconds=self.config.get('block_time_seconds', 2),
                )
                gardens_adapter.set_web3_instance(self.get_web3_instance())
                self.protocols['gardens'] = gardens_adapter

    def get_web3_instance(self):
        """Get web3.py instance for DFK Chain"""
        if self.web3_instance is None:
            if not self.rpc_url:
                raise ConfigError("RPC URL not configured for DFK Chain")
            timeout = self.rpc_config.get('timeout', DEFAULT_RPC_TIMEOUT)
            self.web3_instance = Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={'timeout': timeout}))
        return self.web3_instance
