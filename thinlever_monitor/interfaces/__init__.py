"""Protocol interfaces for the position monitor."""
from .account_source import AccountSource
from .chain import ChainClient
from .subscriber import Subscriber

__all__ = ["AccountSource", "ChainClient", "Subscriber"]
