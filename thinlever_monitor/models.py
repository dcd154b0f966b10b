"""Data models — all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any


class Action(str, Enum):
    """Recommended rebalance direction."""

    IN_RANGE = "IN_RANGE"
    LEVER_UP = "LEVER_UP"
    LEVER_DOWN = "LEVER_DOWN"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass(frozen=True)
class RawAccountState:
    """Account data exactly as returned by the contract (native fixed-point)."""

    total_collateral: int
    total_debt: int
    available_borrows: int
    liquidation_threshold: int
    health_factor: int
    owner: str


@dataclass(frozen=True)
class HealthFactorBlock:
    current: Decimal
    target: Decimal
    tolerance: Decimal
    lower_bound: Decimal
    upper_bound: Decimal


@dataclass(frozen=True)
class PositionBlock:
    """USD-normalized position figures."""

    collateral: Decimal
    debt: Decimal
    net_value: Decimal
    available_borrows: Decimal


@dataclass(frozen=True)
class LeverageBlock:
    current: Decimal
    utilization: Decimal
    liquidation_threshold: Decimal
    saturated: bool = False


@dataclass(frozen=True)
class StatusBlock:
    action: Action
    risk_level: RiskLevel
    needs_rebalance: bool
    near_liquidation: bool


@dataclass(frozen=True)
class Snapshot:
    """One evaluated view of the position, the unit sent to dashboard clients."""

    timestamp: datetime
    contract: str
    owner: str
    health_factor: HealthFactorBlock
    position: PositionBlock
    leverage: LeverageBlock
    status: StatusBlock

    def to_dict(self) -> dict[str, Any]:
        """Render the JSON-ready wire format (camelCase keys, plain numbers)."""
        hf = self.health_factor
        pos = self.position
        lev = self.leverage
        st = self.status
        return {
            "timestamp": format_timestamp(self.timestamp),
            "contract": self.contract,
            "owner": self.owner,
            "healthFactor": {
                "current": float(hf.current),
                "target": float(hf.target),
                "tolerance": float(hf.tolerance),
                "lowerBound": float(hf.lower_bound),
                "upperBound": float(hf.upper_bound),
            },
            "position": {
                "collateral": float(pos.collateral),
                "debt": float(pos.debt),
                "netValue": float(pos.net_value),
                "availableBorrows": float(pos.available_borrows),
            },
            "leverage": {
                "current": float(lev.current),
                "utilization": float(lev.utilization),
                "liquidationThreshold": float(lev.liquidation_threshold),
                "saturated": lev.saturated,
            },
            "status": {
                "action": st.action.value,
                "riskLevel": st.risk_level.value,
                "needsRebalance": st.needs_rebalance,
                "nearLiquidation": st.near_liquidation,
            },
        }


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2024-05-01T12:00:00.000Z."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"
