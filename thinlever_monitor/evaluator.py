"""Pure position evaluation — raw contract figures to a Snapshot, no I/O.

Fixed-point values are converted with ``decimal`` in a context wide enough
for the full uint256 range, so rescaling by powers of ten is exact. Derived
ratios are quantized to ``RATIO_PLACES`` decimal places using
ROUND_HALF_EVEN.
"""
from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_EVEN, Context, Decimal

from .config import PolicyConfig
from .models import (
    Action,
    HealthFactorBlock,
    LeverageBlock,
    PositionBlock,
    RawAccountState,
    RiskLevel,
    Snapshot,
    StatusBlock,
)

# Native scales of ThinLever.getAccountData()
BASE_CURRENCY_SCALE = Decimal(10) ** 8
THRESHOLD_SCALE = Decimal(100)
HEALTH_FACTOR_SCALE = Decimal(10) ** 18

RATIO_PLACES = 18
_RATIO_QUANTUM = Decimal(1).scaleb(-RATIO_PLACES)

# 2**256 has 78 digits
_CTX = Context(prec=78, rounding=ROUND_HALF_EVEN)

# Risk policy, independent of the configured target band
HIGH_RISK_BELOW = Decimal("1.15")
MEDIUM_RISK_BELOW = Decimal("1.30")
NEAR_LIQUIDATION_BELOW = Decimal("1.10")

# Reported when collateral <= debt or the true ratio exceeds it
MAX_LEVERAGE = Decimal(100)
# Reported when debt exists but there is no borrowing capacity at all
SATURATED_UTILIZATION = Decimal(100)


def from_fixed_point(raw: int, scale: Decimal) -> Decimal:
    """Convert an on-chain fixed-point integer to a Decimal."""
    return _CTX.divide(Decimal(raw), scale)


def _quantize(value: Decimal) -> Decimal:
    # Values too wide to carry RATIO_PLACES decimals are already rounded to prec.
    if value.adjusted() + RATIO_PLACES >= _CTX.prec:
        return value
    return value.quantize(_RATIO_QUANTUM, context=_CTX)


def calc_leverage(collateral: Decimal, debt: Decimal) -> tuple[Decimal, bool]:
    """Return (leverage, saturated).

    leverage = collateral / (collateral - debt), 1 with no debt, clamped to
    MAX_LEVERAGE.
    """
    if debt <= 0:
        return Decimal(1), False
    equity = _CTX.subtract(collateral, debt)
    if equity <= 0:
        return MAX_LEVERAGE, True
    leverage = _CTX.divide(collateral, equity)
    if leverage > MAX_LEVERAGE:
        return MAX_LEVERAGE, True
    return _quantize(leverage), False


def calc_utilization(
    collateral: Decimal, debt: Decimal, liquidation_threshold: Decimal
) -> Decimal:
    """Debt as a percentage of the collateral's liquidation capacity."""
    if liquidation_threshold <= 0:
        return Decimal(0)
    capacity = _CTX.divide(_CTX.multiply(collateral, liquidation_threshold), THRESHOLD_SCALE)
    if capacity <= 0:
        return SATURATED_UTILIZATION if debt > 0 else Decimal(0)
    return _quantize(_CTX.multiply(_CTX.divide(debt, capacity), Decimal(100)))


def classify_action(current: Decimal, lower: Decimal, upper: Decimal) -> Action:
    """Bounds are inclusive on both ends."""
    if current < lower:
        return Action.LEVER_DOWN
    if current > upper:
        return Action.LEVER_UP
    return Action.IN_RANGE


def classify_risk(current: Decimal) -> RiskLevel:
    if current < HIGH_RISK_BELOW:
        return RiskLevel.HIGH
    if current < MEDIUM_RISK_BELOW:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def evaluate(raw: RawAccountState, policy: PolicyConfig, now: datetime) -> Snapshot:
    """Build a Snapshot from raw account state. Total: never raises on numbers."""
    collateral = from_fixed_point(raw.total_collateral, BASE_CURRENCY_SCALE)
    debt = from_fixed_point(raw.total_debt, BASE_CURRENCY_SCALE)
    available = from_fixed_point(raw.available_borrows, BASE_CURRENCY_SCALE)
    threshold = from_fixed_point(raw.liquidation_threshold, THRESHOLD_SCALE)
    current = from_fixed_point(raw.health_factor, HEALTH_FACTOR_SCALE)

    lower = policy.lower_bound
    upper = policy.upper_bound

    leverage, saturated = calc_leverage(collateral, debt)
    action = classify_action(current, lower, upper)

    return Snapshot(
        timestamp=now,
        contract=policy.contract_address,
        owner=raw.owner,
        health_factor=HealthFactorBlock(
            current=current,
            target=policy.target_health_factor,
            tolerance=policy.tolerance,
            lower_bound=lower,
            upper_bound=upper,
        ),
        position=PositionBlock(
            collateral=collateral,
            debt=debt,
            net_value=_CTX.subtract(collateral, debt),
            available_borrows=available,
        ),
        leverage=LeverageBlock(
            current=leverage,
            utilization=calc_utilization(collateral, debt, threshold),
            liquidation_threshold=threshold,
            saturated=saturated,
        ),
        status=StatusBlock(
            action=action,
            risk_level=classify_risk(current),
            needs_rebalance=action is not Action.IN_RANGE,
            near_liquidation=current < NEAR_LIQUIDATION_BELOW,
        ),
    )
