"""EVM JSON-RPC client with fallback support."""
import logging
import ssl
from typing import Any

import aiohttp
import certifi
from eth_utils import is_0x_prefixed, is_hex

from ..config import PolicyConfig
from ..exceptions import ExecutionReverted, RpcError

logger = logging.getLogger(__name__)

# JSON-RPC error code geth and most providers use for a reverted eth_call
REVERT_ERROR_CODE = 3


def _is_revert(error: Any) -> bool:
    if not isinstance(error, dict):
        return False
    message = str(error.get("message", "")).lower()
    return error.get("code") == REVERT_ERROR_CODE or "execution reverted" in message


class EvmRpcClient:
    """Read-only EVM RPC client with automatic endpoint fallback."""

    def __init__(self, config: PolicyConfig) -> None:
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.current_rpc_index = 0

    async def rpc_call(self, method: str, params: list[Any]) -> Any:
        """Make RPC call with fallback to alternative endpoints."""
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}

        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.post(
                        rpc_url,
                        json=payload,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        result = await response.json(content_type=None)
                        if "error" in result:
                            error = result["error"]
                            if _is_revert(error):
                                raise ExecutionReverted(f"{method} reverted: {error}")
                            raise RpcError(f"RPC Error: {error}")

                        if rpc_index != self.current_rpc_index:
                            logger.info("Switched to RPC endpoint: %s", rpc_url)
                            self.current_rpc_index = rpc_index

                        return result.get("result")
            except ExecutionReverted:
                raise
            except Exception as e:
                last_error = e
                logger.warning("RPC endpoint %s failed: %s", rpc_url, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

        raise RpcError(f"All RPC endpoints failed. Last error: {last_error}")

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        """Execute a read-only contract call and return the raw hex result.

        Nodes answer a call to an address without code, or a call that
        reverted without reason data, with an empty ``0x``; that is raised
        here rather than handed to the ABI decoder.
        """
        result = await self.rpc_call("eth_call", [{"to": to, "data": data}, block])
        if not isinstance(result, str) or not is_0x_prefixed(result) or not is_hex(result):
            raise RpcError(f"Unexpected eth_call result: {result!r}")
        if result == "0x":
            raise RpcError(
                f"eth_call to {to} returned no data (selector {data[:10]}): "
                "no contract at that address or the call reverted"
            )
        return result
