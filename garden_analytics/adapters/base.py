"""Base abstract classes for chain and protocol adapters"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from decimal import Decimal


class ProtocolAdapter(ABC):
    """Base class for protocol-specific adapters"""

    def __init__(self, protocol_name: str, config: Dict):
        self.protocol_name = protocol_name
        self.config = config

    @abstractmethod
    def get_supply_apr(self, asset: str) -> Optional[Decimal]:
        """
        Get the yield of a specific asset (a garden pool, for the gardens).

        Args:
            asset: Pool name or token symbol

        Returns:
            APR as Decimal (e.g., 0.05 for 5%), or None if unavailable
        """
        pass

    @abstractmethod
    def get_supported_assets(self) -> List[str]:
        """
        Get list of assets supported by this protocol.

        Returns:
            List of asset names
        """
        pass

    def collect_aprs(self) -> Dict[str, Optional[Decimal]]:
        """
        APR of every supported asset.

        Adapters that compute all assets in one pass should override this
        instead of answering get_supply_apr once per asset.
        """
        return {asset: self.get_supply_apr(asset) for asset in self.get_supported_assets()}


class ChainAdapter(ABC):
    """Base class for chain-specific adapters"""

    def __init__(self, chain_name: str, config: Dict):
        self.chain_name = chain_name
        self.config = config
        self.rpc_url = config.get('rpc_url')
        self.protocols: Dict[str, ProtocolAdapter] = {}

    @abstractmethod
    def initialize_protocols(self):
        """Initialize protocol adapters for this chain"""
        pass

    @abstractmethod
    def get_web3_instance(self):
        """Get web3.py instance for this chain"""
        pass

    def get_protocol(self, protocol_name: str) -> Optional[ProtocolAdapter]:
        """Get a protocol adapter by name"""
        return self.protocols.get(protocol_name)

    def get_all_protocols(self) -> Dict[str, ProtocolAdapter]:
        """Get all protocol adapters for this chain"""
        return self.protocols

    def collect_aprs(self) -> Dict[str, Dict[str, Optional[Decimal]]]:
        """
        Collect APR data from all protocols on this chain.

        Returns:
            Dict mapping protocol_name -> asset -> APR
        """
        return {
            protocol_name: protocol_adapter.collect_aprs()
            for protocol_name, protocol_adapter in self.protocols.items()
        }
