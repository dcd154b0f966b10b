"""ThinLever contract reader — getAccountData() and owner() via eth_call."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import (
    decode_hex,
    encode_hex,
    function_signature_to_4byte_selector,
    to_checksum_address,
)

from ..exceptions import DecodeError
from ..interfaces.chain import ChainClient
from ..models import RawAccountState

logger = logging.getLogger(__name__)

GET_ACCOUNT_DATA_SIGNATURE = "getAccountData()"
GET_ACCOUNT_DATA_OUTPUTS = ["uint256", "uint256", "uint256", "uint256", "uint256"]
OWNER_SIGNATURE = "owner()"
OWNER_OUTPUTS = ["address"]


def encode_call(signature: str) -> str:
    """Calldata for an argument-less function: just its 4-byte selector."""
    return encode_hex(function_signature_to_4byte_selector(signature))


def decode_result(types: list[str], result: str) -> tuple[Any, ...]:
    try:
        return decode(types, decode_hex(result))
    except (DecodingError, ValueError) as e:
        raise DecodeError(f"Cannot decode {types} from {result!r}: {e}") from e


class ThinLeverReader:
    """Reads the monitored ThinLever account through a chain client."""

    def __init__(self, client: ChainClient, contract_address: str) -> None:
        self._client = client
        self._address = contract_address
        self._account_data_call = encode_call(GET_ACCOUNT_DATA_SIGNATURE)
        self._owner_call = encode_call(OWNER_SIGNATURE)

    @property
    def contract_address(self) -> str:
        return self._address

    async def read_account_state(self) -> RawAccountState:
        """Fetch account data and owner concurrently."""
        account_hex, owner_hex = await asyncio.gather(
            self._client.eth_call(self._address, self._account_data_call),
            self._client.eth_call(self._address, self._owner_call),
        )

        collateral, debt, available, threshold, health_factor = decode_result(
            GET_ACCOUNT_DATA_OUTPUTS, account_hex
        )
        (owner,) = decode_result(OWNER_OUTPUTS, owner_hex)

        state = RawAccountState(
            total_collateral=collateral,
            total_debt=debt,
            available_borrows=available,
            liquidation_threshold=threshold,
            health_factor=health_factor,
            owner=to_checksum_address(owner),
        )
        logger.debug("Read account state for %s: %s", self._address, state)
        return state
