"""Shared test fixtures and sample data."""
from __future__ import annotations

import asyncio
import textwrap
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest

from thinlever_monitor.config import AppConfig, PolicyConfig, ServerConfig
from thinlever_monitor.models import RawAccountState

CONTRACT = "0x18D8B7045BbBC2163FF0270b6e4cF8F8Db9624f5"
OWNER = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"

BASE = 10**8
WAD = 10**18


def make_raw(
    collateral: float = 150000,
    debt: float = 100000,
    available: float = 5000,
    threshold_bps: int = 8000,
    health_factor: str = "1.2",
    owner: str = OWNER,
) -> RawAccountState:
    """Build raw contract figures from human-readable values."""
    return RawAccountState(
        total_collateral=int(Decimal(str(collateral)) * BASE),
        total_debt=int(Decimal(str(debt)) * BASE),
        available_borrows=int(Decimal(str(available)) * BASE),
        liquidation_threshold=threshold_bps,
        health_factor=int(Decimal(health_factor) * WAD),
        owner=owner,
    )


class FakeSubscriber:
    """Records every event it is sent; optionally fails on send."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.messages: list[tuple[str, dict[str, Any]]] = []
        self.received = asyncio.Event()

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionResetError("client went away")
        self.messages.append((event, payload))
        self.received.set()


class FakeSource:
    """Account source returning queued results (exceptions are raised)."""

    def __init__(self, *results: Any) -> None:
        self.results = list(results)
        self.calls = 0

    async def read_account_state(self) -> RawAccountState:
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, BaseException):
            raise result
        return result


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def policy() -> PolicyConfig:
    return PolicyConfig(
        contract_address=CONTRACT,
        rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
        rpc_timeout=5,
        target_health_factor=Decimal("1.25"),
        tolerance=Decimal("0.05"),
        poll_interval_seconds=0.01,
        fetch_timeout_seconds=1.0,
    )


@pytest.fixture()
def app_config(policy: PolicyConfig) -> AppConfig:
    return AppConfig(policy=policy, server=ServerConfig(host="127.0.0.1", port=3000))


@pytest.fixture()
def now() -> datetime:
    return datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_raw() -> RawAccountState:
    """HF exactly on the lower bound of 1.25 ± 0.05."""
    return make_raw()


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    contract:
      address: "0x18d8b7045bbbc2163ff0270b6e4cf8f8db9624f5"
    chain:
      rpc_endpoints: ["https://rpc.example.com", "https://backup.example.com"]
      rpc_timeout: 10
    policy:
      target_health_factor: 1.4
      tolerance: 0.1
      poll_interval_seconds: 30
      fetch_timeout_seconds: 5
    server:
      host: 127.0.0.1
      port: 8080
      static_dir: public
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
