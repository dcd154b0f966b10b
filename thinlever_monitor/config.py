"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import copy
import logging
import math
import os
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from eth_utils import is_hex_address, to_checksum_address

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONTRACT_ADDRESS = "0x18D8B7045BbBC2163FF0270b6e4cF8F8Db9624f5"
DEFAULT_RPC_URL = "https://arb1.arbitrum.io/rpc"
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PolicyConfig:
    """Rebalance policy and data-source settings, fixed for the process."""

    contract_address: str = DEFAULT_CONTRACT_ADDRESS
    rpc_endpoints: tuple[str, ...] = (DEFAULT_RPC_URL,)
    rpc_timeout: int = 30
    target_health_factor: Decimal = Decimal("1.25")
    tolerance: Decimal = Decimal("0.05")
    poll_interval_seconds: float = 20.0
    fetch_timeout_seconds: float | None = 15.0

    @property
    def lower_bound(self) -> Decimal:
        return self.target_health_factor - self.tolerance

    @property
    def upper_bound(self) -> Decimal:
        return self.target_health_factor + self.tolerance

    def public_view(self) -> dict[str, Any]:
        """Fields dashboard clients read once to calibrate their display."""
        return {
            "thinLeverAddress": self.contract_address,
            "targetHF": float(self.target_health_factor),
            "tolerance": float(self.tolerance),
            "refreshInterval": self.poll_interval_seconds,
        }


@dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3000
    static_dir: str = ""


@dataclass(frozen=True)
class AppConfig:
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


# Used when no config.yaml is present: every knob is still reachable through
# the environment.
DEFAULT_RAW: dict[str, Any] = {
    "contract": {"address": "${THINLEVER_ADDRESS:-" + DEFAULT_CONTRACT_ADDRESS + "}"},
    "chain": {
        "rpc_endpoints": ["${ARB_RPC_URL:-" + DEFAULT_RPC_URL + "}"],
        "rpc_timeout": 30,
    },
    "policy": {
        "target_health_factor": "${TARGET_HF:-1.25}",
        "tolerance": "${TOLERANCE:-0.05}",
        "poll_interval_seconds": "${REFRESH_INTERVAL:-20}",
        "fetch_timeout_seconds": 15,
    },
    "server": {"host": "0.0.0.0", "port": "${PORT:-3000}", "static_dir": ""},
}

# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} / ${VAR:-default} references."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(
            lambda m: os.environ.get(m.group(1)) or (m.group(2) or ""), value
        )
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def _to_decimal(value: Any, name: str) -> Decimal:
    # str() first so YAML floats keep their written digits
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e


def _to_float(value: Any, name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e


def _to_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from e


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    """A top-level YAML mapping; an empty section (``policy:``) reads as {}."""
    section = raw.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"{name} must be a mapping, got {type(section).__name__}")
    return section


def _build_policy(raw: dict[str, Any]) -> PolicyConfig:
    contract = _section(raw, "contract")
    chain = _section(raw, "chain")
    policy = _section(raw, "policy")

    address = str(contract.get("address") or DEFAULT_CONTRACT_ADDRESS).strip()
    if not is_hex_address(address):
        raise ConfigError(f"Invalid contract address: {address!r}")

    urls = chain.get("rpc_endpoints", [DEFAULT_RPC_URL])
    if urls is None:
        urls = []
    if not isinstance(urls, list):
        raise ConfigError(f"chain.rpc_endpoints must be a list, got {urls!r}")
    endpoints = tuple(
        str(url).strip() for url in urls if url is not None and str(url).strip()
    )

    fetch_timeout = policy.get("fetch_timeout_seconds", 15)
    return PolicyConfig(
        contract_address=to_checksum_address(address),
        rpc_endpoints=endpoints,
        rpc_timeout=_to_int(chain.get("rpc_timeout", 30), "chain.rpc_timeout"),
        target_health_factor=_to_decimal(
            policy.get("target_health_factor", "1.25"), "policy.target_health_factor"
        ),
        tolerance=_to_decimal(policy.get("tolerance", "0.05"), "policy.tolerance"),
        poll_interval_seconds=_to_float(
            policy.get("poll_interval_seconds", 20), "policy.poll_interval_seconds"
        ),
        fetch_timeout_seconds=(
            None
            if fetch_timeout in (None, "", 0)
            else _to_float(fetch_timeout, "policy.fetch_timeout_seconds")
        ),
    )


def _build_server(raw: dict[str, Any]) -> ServerConfig:
    return ServerConfig(
        host=str(raw.get("host", "0.0.0.0")),
        port=_to_int(raw.get("port", 3000), "server.port"),
        static_dir=str(raw.get("static_dir") or ""),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root; when that file is absent the built-in,
            environment-driven defaults are used instead.
    """
    load_dotenv()

    if config_path is None and DEFAULT_CONFIG_PATH.exists():
        config_path = DEFAULT_CONFIG_PATH

    if config_path is None:
        raw = copy.deepcopy(DEFAULT_RAW)
        source = "built-in defaults"
    else:
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        try:
            with open(config_path, encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Error parsing YAML file: {e}") from e
        source = str(config_path)

    if not isinstance(raw, dict):
        raise ConfigError(f"Config root must be a mapping, got {type(raw).__name__}")
    raw = _interpolate_env(raw)

    cfg = AppConfig(
        policy=_build_policy(raw),
        server=_build_server(_section(raw, "server")),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", source)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    policy = cfg.policy
    if not policy.rpc_endpoints:
        raise ConfigError("At least one RPC endpoint must be configured")
    if policy.rpc_timeout <= 0:
        raise ConfigError("chain.rpc_timeout must be positive")
    if not policy.target_health_factor.is_finite() or policy.target_health_factor <= 0:
        raise ConfigError("policy.target_health_factor must be a positive number")
    if not policy.tolerance.is_finite() or policy.tolerance <= 0:
        raise ConfigError("policy.tolerance must be greater than zero")
    if policy.lower_bound <= 0:
        raise ConfigError("policy.tolerance must be smaller than the target health factor")
    # nan compares False against everything, so check finiteness first
    if not math.isfinite(policy.poll_interval_seconds) or policy.poll_interval_seconds <= 0:
        raise ConfigError("policy.poll_interval_seconds must be a positive, finite number")
    fetch_timeout = policy.fetch_timeout_seconds
    if fetch_timeout is not None and (not math.isfinite(fetch_timeout) or fetch_timeout <= 0):
        raise ConfigError("policy.fetch_timeout_seconds must be a positive, finite number")
    if not 0 < cfg.server.port < 65536:
        raise ConfigError(f"server.port out of range: {cfg.server.port}")
