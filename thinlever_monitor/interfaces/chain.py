"""Chain client protocol — blockchain RPC abstraction."""
from typing import Protocol


class ChainClient(Protocol):
    """Abstract interface for read-only EVM RPC interactions."""

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str: ...
