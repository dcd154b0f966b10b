"""Unit tests for config loading, env interpolation, and validation."""
from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest

from eth_utils import to_checksum_address

from thinlever_monitor.config import (
    DEFAULT_CONTRACT_ADDRESS,
    DEFAULT_RPC_URL,
    AppConfig,
    PolicyConfig,
    ServerConfig,
    _interpolate_env,
    load_config,
)
from thinlever_monitor.exceptions import ConfigError

_ENV_VARS = (
    "THINLEVER_ADDRESS",
    "TARGET_HF",
    "TOLERANCE",
    "REFRESH_INTERVAL",
    "ARB_RPC_URL",
    "PORT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # keep a developer's .env out of the tests
    monkeypatch.setattr("thinlever_monitor.config.load_dotenv", lambda: None)


def _write(tmp_path: Path, body: str) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(body)
    return cfg_file


class TestInterpolateEnv:
    def test_simple_substitution(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MY_VAR", "hello")
        assert _interpolate_env("${MY_VAR}") == "hello"

    def test_missing_var_becomes_empty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NONEXISTENT_VAR_XYZ", raising=False)
        assert _interpolate_env("${NONEXISTENT_VAR_XYZ}") == ""

    def test_default_used_when_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NONEXISTENT_VAR_XYZ", raising=False)
        assert _interpolate_env("${NONEXISTENT_VAR_XYZ:-1.25}") == "1.25"

    def test_env_wins_over_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TARGET_HF", "1.5")
        assert _interpolate_env("${TARGET_HF:-1.25}") == "1.5"

    def test_default_with_url(self) -> None:
        assert _interpolate_env("${NOPE_URL:-https://a.b/rpc}") == "https://a.b/rpc"

    def test_nested(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("A", "x")
        result = _interpolate_env({"key": ["${A}", "y"], "plain": 3})
        assert result == {"key": ["x", "y"], "plain": 3}


class TestLoadConfig:
    def test_loads_valid_yaml(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert isinstance(cfg, AppConfig)
        assert cfg.policy.contract_address == to_checksum_address(DEFAULT_CONTRACT_ADDRESS)
        assert cfg.policy.rpc_endpoints == (
            "https://rpc.example.com",
            "https://backup.example.com",
        )
        assert cfg.policy.rpc_timeout == 10
        assert cfg.policy.target_health_factor == Decimal("1.4")
        assert cfg.policy.tolerance == Decimal("0.1")
        assert cfg.policy.poll_interval_seconds == 30.0
        assert cfg.policy.fetch_timeout_seconds == 5.0
        assert cfg.server == ServerConfig(host="127.0.0.1", port=8080, static_dir="public")

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nonexistent.yaml")

    def test_env_interpolation_in_yaml(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TARGET_HF", "1.6")
        monkeypatch.setenv("PORT", "4000")
        cfg_file = _write(tmp_path, """\
policy:
  target_health_factor: "${TARGET_HF:-1.25}"
server:
  port: "${PORT:-3000}"
""")
        cfg = load_config(cfg_file)
        assert cfg.policy.target_health_factor == Decimal("1.6")
        assert cfg.server.port == 4000

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, ""))
        assert cfg.policy == PolicyConfig(
            contract_address=to_checksum_address(DEFAULT_CONTRACT_ADDRESS)
        )
        assert cfg.server == ServerConfig()

    def test_builtin_defaults_without_file(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        monkeypatch.setattr(
            "thinlever_monitor.config.DEFAULT_CONFIG_PATH", tmp_path / "missing.yaml"
        )
        monkeypatch.setenv("REFRESH_INTERVAL", "45")
        monkeypatch.setenv("ARB_RPC_URL", "https://arb.example.com")
        cfg = load_config()
        assert cfg.policy.contract_address == to_checksum_address(DEFAULT_CONTRACT_ADDRESS)
        assert cfg.policy.poll_interval_seconds == 45.0
        assert cfg.policy.rpc_endpoints == ("https://arb.example.com",)
        assert cfg.policy.target_health_factor == Decimal("1.25")
        assert cfg.server.port == 3000

    def test_invalid_yaml_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="parsing YAML"):
            load_config(_write(tmp_path, "policy: [unclosed\n"))


class TestValidation:
    @pytest.mark.parametrize(
        "body, message",
        [
            ('contract:\n  address: "0x123"\n', "Invalid contract address"),
            ("chain:\n  rpc_endpoints: []\n", "RPC endpoint"),
            ("policy:\n  tolerance: 0\n", "tolerance must be greater than zero"),
            ("policy:\n  tolerance: -0.1\n", "tolerance must be greater than zero"),
            ("policy:\n  tolerance: 2\n", "smaller than the target"),
            ("policy:\n  target_health_factor: abc\n", "must be a number"),
            ("policy:\n  poll_interval_seconds: 0\n", "poll_interval_seconds"),
            ("policy:\n  fetch_timeout_seconds: -1\n", "fetch_timeout_seconds"),
            ("policy:\n  poll_interval_seconds: .nan\n", "poll_interval_seconds"),
            ("policy:\n  poll_interval_seconds: .inf\n", "poll_interval_seconds"),
            ("policy:\n  fetch_timeout_seconds: .nan\n", "fetch_timeout_seconds"),
            ("policy:\n  fetch_timeout_seconds: .inf\n", "fetch_timeout_seconds"),
            ("policy:\n  target_health_factor: .nan\n", "target_health_factor"),
            ("policy:\n  tolerance: .inf\n", "tolerance"),
            ("chain:\n  rpc_timeout: .inf\n", "rpc_timeout"),
            ("chain:\n  rpc_timeout: .nan\n", "rpc_timeout"),
            ("chain:\n  rpc_endpoints:\n", "RPC endpoint"),
            ('chain:\n  rpc_endpoints: "https://rpc.example.com"\n', "must be a list"),
            ("policy: [1, 2]\n", "policy must be a mapping"),
            ("- just\n- a list\n", "root must be a mapping"),
            ("server:\n  port: 70000\n", "port out of range"),
            ("server:\n  port: http\n", "must be an integer"),
        ],
    )
    def test_invalid_values_raise(self, tmp_path: Path, body: str, message: str) -> None:
        with pytest.raises(ConfigError, match=message):
            load_config(_write(tmp_path, body))

    @pytest.mark.parametrize(
        "body",
        [
            "policy:\n",
            "contract:\nchain:\npolicy:\nserver:\n",
            "policy:\n  # target_health_factor: 1.3\n  # tolerance: 0.1\n",
        ],
    )
    def test_empty_sections_use_defaults(self, tmp_path: Path, body: str) -> None:
        cfg = load_config(_write(tmp_path, body))
        assert cfg.policy == PolicyConfig(
            contract_address=to_checksum_address(DEFAULT_CONTRACT_ADDRESS)
        )
        assert cfg.server == ServerConfig()

    def test_config_error_is_value_error(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            load_config(_write(tmp_path, "policy:\n  tolerance: 0\n"))

    def test_fetch_timeout_can_be_disabled(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, "policy:\n  fetch_timeout_seconds: null\n"))
        assert cfg.policy.fetch_timeout_seconds is None


class TestPolicyConfig:
    def test_bounds(self) -> None:
        policy = PolicyConfig(target_health_factor=Decimal("1.25"), tolerance=Decimal("0.05"))
        assert policy.lower_bound == Decimal("1.20")
        assert policy.upper_bound == Decimal("1.30")
        assert policy.lower_bound < policy.target_health_factor < policy.upper_bound

    def test_public_view(self) -> None:
        assert PolicyConfig().public_view() == {
            "thinLeverAddress": DEFAULT_CONTRACT_ADDRESS,
            "targetHF": 1.25,
            "tolerance": 0.05,
            "refreshInterval": 20.0,
        }

    def test_defaults(self) -> None:
        policy = PolicyConfig()
        assert policy.rpc_endpoints == (DEFAULT_RPC_URL,)

    def test_immutable(self) -> None:
        policy = PolicyConfig()
        with pytest.raises(AttributeError):
            policy.tolerance = Decimal("0.2")  # type: ignore[misc]
