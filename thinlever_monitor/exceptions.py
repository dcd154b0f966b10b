"""
Custom exceptions for the position monitor.
"""


class MonitorError(Exception):
    """Base exception for all monitor errors."""


class ConfigError(MonitorError, ValueError):
    """Raised for missing or invalid configuration."""


class RpcError(MonitorError, RuntimeError):
    """Raised when a JSON-RPC request fails on every endpoint."""


class DecodeError(MonitorError):
    """Raised when contract return data cannot be decoded."""


class ExecutionReverted(RpcError):
    """Raised when the node reports that a call reverted; other endpoints would agree."""
