"""Tests for fee, speed tier and cost calculation."""

import pytest

from sniper.errors import ValidationError
from sniper.services.fees import (
    DEFAULT_FEE_STATS,
    PriorityFeeStats,
    calculate_platform_fee,
    estimate_transaction_cost,
    get_speed_preset,
    priority_fee_lamports,
    resolve_fee_plan,
    sol_to_lamports,
)
from sniper.utils.constants import BASE_FEE_LAMPORTS


# ---------------------------------------------------------------------------
# 1. Network fee statistics
# ---------------------------------------------------------------------------

class TestPriorityFeeStats:
    def test_from_samples_picks_by_sorted_index(self):
        stats = PriorityFeeStats.from_samples(range(10, 0, -1))
        assert stats.min == 1
        assert stats.median == 6
        assert stats.p75 == 8
        assert stats.p95 == 10
        assert stats.max == 10

    def test_from_samples_single_value(self):
        stats = PriorityFeeStats.from_samples([7])
        assert stats == PriorityFeeStats(7, 7, 7, 7, 7)

    def test_from_samples_empty_is_none(self):
        assert PriorityFeeStats.from_samples([]) is None


# ---------------------------------------------------------------------------
# 2. Speed presets
# ---------------------------------------------------------------------------

class TestSpeedPreset:
    def test_fast_uses_floor_when_p75_below_it(self):
        stats = PriorityFeeStats(min=0, median=100, p75=500, p95=900, max=1000)
        preset = get_speed_preset("fast", stats)
        assert preset.compute_unit_price == 10_000

    def test_fast_uses_p75_when_above_floor(self):
        stats = PriorityFeeStats(min=0, median=100, p75=25_000, p95=90_000, max=100_000)
        assert get_speed_preset("fast", stats).compute_unit_price == 25_000

    def test_missing_stats_fall_back_to_defaults(self):
        preset = get_speed_preset("standard", None)
        assert preset.compute_unit_price == max(DEFAULT_FEE_STATS.median, 1_000)

    def test_budgets_widen_with_tier(self):
        limits = [get_speed_preset(s).compute_unit_limit for s in ("standard", "fast", "ultra")]
        assert limits == sorted(limits)
        assert limits[0] < limits[-1]

    def test_unknown_tier_rejected(self):
        with pytest.raises(ValidationError):
            get_speed_preset("ludicrous")


# ---------------------------------------------------------------------------
# 3. Cost estimate
# ---------------------------------------------------------------------------

class TestCostEstimate:
    def test_priority_fee_rounds_up(self):
        assert priority_fee_lamports(5_000, 200_000) == 1_000
        assert priority_fee_lamports(1, 1) == 1

    @pytest.mark.parametrize("stats", [
        None,
        PriorityFeeStats(0, 0, 0, 0, 0),
        PriorityFeeStats(1_000, 80_000, 90_000, 95_000, 200_000),
    ])
    def test_tiers_are_monotonic_for_same_budget(self, stats):
        costs = [
            estimate_transaction_cost(s, stats, use_mev_protection=True, compute_unit_limit=300_000)
            for s in ("standard", "fast", "ultra")
        ]
        assert costs[0].total_lamports <= costs[1].total_lamports <= costs[2].total_lamports

    def test_tip_only_with_protection(self):
        without = estimate_transaction_cost("ultra", None, use_mev_protection=False)
        with_tip = estimate_transaction_cost("ultra", None, use_mev_protection=True)
        assert without.protection_tip == 0
        assert with_tip.protection_tip == 100_000
        assert with_tip.total_lamports - without.total_lamports == 100_000

    def test_breakdown_sums_parts(self):
        cost = estimate_transaction_cost("standard", None, use_mev_protection=True)
        assert cost.base_fee == BASE_FEE_LAMPORTS
        assert cost.total_lamports == cost.base_fee + cost.priority_fee + cost.protection_tip
        breakdown = cost.breakdown()
        assert set(breakdown) == {"base", "priority", "tip", "total"}
        assert breakdown["base"] == "0.000005000 SOL"


# ---------------------------------------------------------------------------
# 4. Fee plan with overrides
# ---------------------------------------------------------------------------

class TestResolveFeePlan:
    def test_preset_values_without_overrides(self):
        plan = resolve_fee_plan("fast", None)
        assert plan.compute_unit_price == 10_000
        assert plan.compute_unit_limit == 300_000
        assert plan.tip_lamports == 0

    def test_overrides_win(self):
        plan = resolve_fee_plan(
            "standard", None, use_mev_protection=True,
            compute_unit_price=7, compute_unit_limit=123_456, tip_lamports=42,
        )
        assert plan.compute_unit_price == 7
        assert plan.compute_unit_limit == 123_456
        assert plan.tip_lamports == 42
        assert plan.cost.protection_tip == 42

    def test_tip_override_ignored_without_protection(self):
        plan = resolve_fee_plan("standard", None, use_mev_protection=False, tip_lamports=42)
        assert plan.tip_lamports == 0


# ---------------------------------------------------------------------------
# 5. Platform fee
# ---------------------------------------------------------------------------

class TestPlatformFee:
    def test_one_percent_of_one_sol(self):
        fee = calculate_platform_fee(1.0, 1.0)
        assert fee == pytest.approx(0.01)
        assert sol_to_lamports(fee) == 10_000_000
        assert sol_to_lamports(1.0) - sol_to_lamports(fee) == 990_000_000

    def test_zero_percent(self):
        assert calculate_platform_fee(2.0, 0) == 0

    @pytest.mark.parametrize("amount,pct", [(0, 1.0), (-1, 1.0), (1.0, -0.5), (1.0, 101)])
    def test_invalid_inputs_rejected(self, amount, pct):
        with pytest.raises(ValidationError):
            calculate_platform_fee(amount, pct)

    def test_sol_to_lamports_floors(self):
        assert sol_to_lamports(0.0000000019) == 1
        assert sol_to_lamports(0.1) == 100_000_000
