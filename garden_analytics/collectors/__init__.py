"""Configuration-driven chain collection"""
from garden_analytics.collectors.chain_registry import ChainRegistry

__all__ = ['ChainRegistry']
