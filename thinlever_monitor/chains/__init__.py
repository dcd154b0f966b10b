"""Chain clients."""
from .evm import EvmRpcClient

__all__ = ["EvmRpcClient"]
