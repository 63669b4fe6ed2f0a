"""Fee and speed calculation for trade transactions.

All functions are pure computation with no I/O. Network fee statistics are
fetched by the caller (see SolanaRpc.get_priority_fee_stats) and passed in.
"""

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR

import numpy as np

from sniper.errors import ValidationError
from sniper.utils.constants import (
    BASE_FEE_LAMPORTS,
    LAMPORTS_PER_SOL,
    MICRO_LAMPORTS_PER_LAMPORT,
)


# ---------------------------------------------------------------------------
# Network fee statistics
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PriorityFeeStats:
    """Recent priority-fee observations, in micro-lamports per compute unit."""
    min: int
    median: int
    p75: int
    p95: int
    max: int

    @classmethod
    def from_samples(cls, samples) -> "PriorityFeeStats | None":
        """Summarize raw prioritization-fee samples. Returns None when empty."""
        fees = np.sort(np.asarray(list(samples), dtype=np.int64))
        n = len(fees)
        if n == 0:
            return None
        return cls(
            min=int(fees[0]),
            median=int(fees[n // 2]),
            p75=int(fees[int(n * 0.75)]),
            p95=int(fees[int(n * 0.95)]),
            max=int(fees[-1]),
        )


# Used when the network statistics cannot be fetched
DEFAULT_FEE_STATS = PriorityFeeStats(min=1000, median=5000, p75=10000, p95=50000, max=100000)


# ---------------------------------------------------------------------------
# Speed tiers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class _TierPolicy:
    percentile: str
    price_floor: int
    compute_unit_limit: int
    tip_lamports: int
    description: str


TIER_POLICIES: dict[str, _TierPolicy] = {
    "standard": _TierPolicy("median", 1_000, 200_000, 10_000, "Normal speed, low cost"),
    "fast": _TierPolicy("p75", 10_000, 300_000, 50_000, "High priority, moderate cost"),
    "ultra": _TierPolicy("p95", 50_000, 400_000, 100_000, "Maximum speed, highest cost"),
}


@dataclass(frozen=True)
class SpeedPreset:
    speed: str
    compute_unit_price: int  # micro-lamports per CU
    compute_unit_limit: int
    tip_lamports: int
    description: str


def get_speed_preset(speed: str = "standard", stats: PriorityFeeStats | None = None) -> SpeedPreset:
    """Map a speed tier to compute-unit price/limit and protection tip.

    The price is the tier's percentile of recent fees, never below the tier floor.
    """
    policy = TIER_POLICIES.get(speed)
    if policy is None:
        allowed = ", ".join(TIER_POLICIES)
        raise ValidationError(f"Unknown transaction speed '{speed}' (expected one of: {allowed})")

    stats = stats or DEFAULT_FEE_STATS
    observed = getattr(stats, policy.percentile)
    return SpeedPreset(
        speed=speed,
        compute_unit_price=max(observed, policy.price_floor),
        compute_unit_limit=policy.compute_unit_limit,
        tip_lamports=policy.tip_lamports,
        description=policy.description,
    )


# ---------------------------------------------------------------------------
# Cost estimate
# ---------------------------------------------------------------------------

def priority_fee_lamports(compute_unit_price: int, compute_unit_limit: int) -> int:
    """Priority fee charged for a CU price (micro-lamports) and CU budget, rounded up."""
    return math.ceil(compute_unit_price * compute_unit_limit / MICRO_LAMPORTS_PER_LAMPORT)


@dataclass(frozen=True)
class CostEstimate:
    base_fee: int
    priority_fee: int
    protection_tip: int

    @property
    def total_lamports(self) -> int:
        return self.base_fee + self.priority_fee + self.protection_tip

    @property
    def total_sol(self) -> float:
        return self.total_lamports / LAMPORTS_PER_SOL

    def breakdown(self) -> dict[str, str]:
        def _sol(lamports: int) -> str:
            return f"{lamports / LAMPORTS_PER_SOL:.9f} SOL"

        return {
            "base": _sol(self.base_fee),
            "priority": _sol(self.priority_fee),
            "tip": _sol(self.protection_tip),
            "total": _sol(self.total_lamports),
        }


def estimate_transaction_cost(
    speed: str = "standard",
    stats: PriorityFeeStats | None = None,
    use_mev_protection: bool = False,
    compute_unit_limit: int | None = None,
) -> CostEstimate:
    """Estimate the network cost of one trade transaction at a speed tier.

    Passing compute_unit_limit prices every tier on the same budget.
    """
    preset = get_speed_preset(speed, stats)
    units = compute_unit_limit if compute_unit_limit is not None else preset.compute_unit_limit
    return CostEstimate(
        base_fee=BASE_FEE_LAMPORTS,
        priority_fee=priority_fee_lamports(preset.compute_unit_price, units),
        protection_tip=preset.tip_lamports if use_mev_protection else 0,
    )


# ---------------------------------------------------------------------------
# Fee plan for one trade
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FeePlan:
    """Resolved priority-fee directives and tip for one transaction."""
    speed: str
    compute_unit_price: int
    compute_unit_limit: int
    tip_lamports: int  # 0 unless MEV protection is on
    use_mev_protection: bool
    cost: CostEstimate


def resolve_fee_plan(
    speed: str,
    stats: PriorityFeeStats | None = None,
    use_mev_protection: bool = False,
    compute_unit_price: int | None = None,
    compute_unit_limit: int | None = None,
    tip_lamports: int | None = None,
) -> FeePlan:
    """Combine the tier preset with explicit per-user overrides."""
    preset = get_speed_preset(speed, stats)
    price = compute_unit_price if compute_unit_price is not None else preset.compute_unit_price
    units = compute_unit_limit if compute_unit_limit is not None else preset.compute_unit_limit
    tip = 0
    if use_mev_protection:
        tip = tip_lamports if tip_lamports is not None else preset.tip_lamports

    return FeePlan(
        speed=speed,
        compute_unit_price=price,
        compute_unit_limit=units,
        tip_lamports=tip,
        use_mev_protection=use_mev_protection,
        cost=CostEstimate(
            base_fee=BASE_FEE_LAMPORTS,
            priority_fee=priority_fee_lamports(price, units),
            protection_tip=tip,
        ),
    )


# ---------------------------------------------------------------------------
# Platform fee
# ---------------------------------------------------------------------------

def calculate_platform_fee(amount_sol: float, fee_percentage: float) -> float:
    """Platform fee in SOL: amount × fee_percentage / 100."""
    if amount_sol <= 0:
        raise ValidationError(f"Trade amount must be positive, got {amount_sol}")
    if not 0 <= fee_percentage <= 100:
        raise ValidationError(f"Fee percentage must be between 0 and 100, got {fee_percentage}")
    return amount_sol * fee_percentage / 100


def sol_to_lamports(amount_sol: float) -> int:
    """Convert SOL to lamports, rounding down to the nearest lamport."""
    lamports = Decimal(str(amount_sol)) * LAMPORTS_PER_SOL
    return int(lamports.to_integral_value(rounding=ROUND_FLOOR))
