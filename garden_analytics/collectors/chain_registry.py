"""Chain registry for managing chain adapters from config/chains.yaml"""
import logging
import os
import yaml
from typing import Dict, List, Optional
from pathlib import Path
from garden_analytics.adapters.base import ChainAdapter
from garden_analytics.adapters.dfk.chain_adapter import DFKChainAdapter
from garden_analytics.errors import ConfigError

logger = logging.getLogger(__name__)

# Environment variables that override a chain's rpc_url
RPC_URL_ENV_VARS = {
    'dfk': 'GARDEN_RPC_URL',
}


class ChainRegistry:
    """Registry for managing blockchain adapters"""

    def __init__(self, config_path: Optional[str] = None):
        if config_path is None:
            config_path = Path(__file__).parent.parent.parent / "config" / "chains.yaml"
        self.config_path = Path(config_path)
        self.chains: Dict[str, ChainAdapter] = {}
        self.load_config()

    def load_config(self):
        """Load chain configuration from YAML file"""
        if not self.config_path.exists():
            raise ConfigError(f"Chain config not found: {self.config_path}")

        with open(self.config_path, 'r') as f:
            try:
                config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid chain config {self.config_path}: {e}") from e

        self.chain_configs = config.get('chains') or {}

        for chain_name, env_var in RPC_URL_ENV_VARS.items():
            rpc_url = os.getenv(env_var)
            if rpc_url and chain_name in self.chain_configs:
                logger.info("Using %s for %s RPC", env_var, chain_name)
                self.chain_configs[chain_name]['rpc_url'] = rpc_url

    def get_chain_config(self, chain_name: str) -> Dict:
        chain_config = self.chain_configs.get(chain_name)
        if not chain_config:
            raise ConfigError(f"Chain '{chain_name}' not found in config")
        return chain_config

    def get_protocol_config(self, chain_name: str, protocol_name: str) -> Dict:
        protocol_config = self.get_chain_config(chain_name).get('protocols', {}).get(protocol_name)
        if not protocol_config:
            raise ConfigError(f"Protocol '{protocol_name}' not configured for chain '{chain_name}'")
        return protocol_config

    def get_chain(self, chain_name: str) -> Optional[ChainAdapter]:
        """Get a chain adapter by name; None if the chain is disabled"""
        if chain_name not in self.chains:
            self._initialize_chain(chain_name)
        return self.chains.get(chain_name)

    def _initialize_chain(self, chain_name: str):
        """Initialize a chain adapter"""
        chain_config = self.get_chain_config(chain_name)

        if not chain_config.get('enabled', False):
            return None

        # Map chain names to adapter classes
        chain_adapters = {
            'dfk': DFKChainAdapter,
        }

        adapter_class = chain_adapters.get(chain_name)
        if not adapter_class:
            raise ConfigError(f"No adapter available for chain '{chain_name}'")

        self.chains[chain_name] = adapter_class(chain_config)

    def get_all_active_chains(self) -> List[str]:
        """Get list of all enabled chain names"""
        return [
            name for name, config in self.chain_configs.items()
            if config.get('enabled', False)
        ]

    def collect_all_aprs(self) -> Dict[str, Dict[str, Dict[str, Optional[float]]]]:
        """
        Collect APR data from all active chains.

        Returns:
            Dict mapping chain_name -> protocol_name -> asset -> APR
        """
        results = {}

        for chain_name in self.get_all_active_chains():
            chain_adapter = self.get_chain(chain_name)
            if chain_adapter:
                try:
                    chain_results = chain_adapter.collect_aprs()
                    # Convert Decimal to float for JSON serialization
                    results[chain_name] = {
                        protocol: {
                            asset: float(apr) if apr is not None else None
                            for asset, apr in assets.items()
                        }
                        for protocol, assets in chain_results.items()
                    }
                except Exception as e:
                    logger.error("Error collecting APRs for %s: %s", chain_name, e, exc_info=True)
                    results[chain_name] = {}

        return results
