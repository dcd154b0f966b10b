"""Account source protocol — the read-current-state capability."""
from typing import Protocol

from ..models import RawAccountState


class AccountSource(Protocol):
    """Anything that can read the monitored account's raw on-chain state."""

    async def read_account_state(self) -> RawAccountState: ...
