"""Subscriber protocol — one connected dashboard client."""
from typing import Any, Protocol


class Subscriber(Protocol):
    """A live update channel. ``send`` raises if the client is gone."""

    async def send(self, event: str, payload: dict[str, Any]) -> None: ...
