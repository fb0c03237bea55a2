"""
Tests for CapacityPlan: generation, resize, normalization, trials
"""
from datetime import datetime, timezone

import pytest

from subplan.domain.capacity import CapacityEntry, CapacityPlan
from subplan.domain.enums import CapacityResizeMode
from subplan.errors import (
    DuplicateMonthError,
    EmptyPlanError,
    InvalidArgumentError,
    InvalidMonthError,
    InvalidRangeError,
    MonthNotFoundError,
    NoCapacityPlanError,
)


def _units(plan: CapacityPlan) -> list:
    return [e.capacity for e in plan.sorted_entries()]


def _months(plan: CapacityPlan) -> list:
    return [e.month for e in plan.sorted_entries()]


@pytest.fixture
def changes():
    """Counts on_change calls"""
    calls = []
    return calls


@pytest.fixture
def plan(changes) -> CapacityPlan:
    return CapacityPlan(
        [
            {"month": "2025-01", "capacity": 100},
            {"month": "2025-02", "capacity": 200, "adjustment": -20},
            {"month": "2025-03", "capacity": 300},
        ],
        on_change=lambda: changes.append(1),
    )


class TestEntry:
    def test_effective_units(self):
        assert CapacityEntry("2025-01", 100).effective_units == 100
        assert CapacityEntry("2025-01", 100, -30).effective_units == 70

    def test_to_dict_omits_missing_adjustment(self):
        assert CapacityEntry("2025-01", 100).to_dict() == {"month": "2025-01", "capacity": 100}
        assert CapacityEntry("2025-01", 100, 5).to_dict()["adjustment"] == 5


class TestConstruction:
    def test_rejects_duplicate_months(self):
        with pytest.raises(DuplicateMonthError):
            CapacityPlan([{"month": "2025-01", "capacity": 1}, {"month": "2025-01", "capacity": 2}])

    def test_rejects_bad_month(self):
        with pytest.raises(InvalidMonthError):
            CapacityPlan([{"month": "2025-13", "capacity": 1}])

    def test_rejects_non_numeric_capacity(self):
        with pytest.raises(InvalidArgumentError):
            CapacityPlan([{"month": "2025-01", "capacity": "ten"}])

    def test_queries(self, plan):
        assert len(plan) == 3
        assert "2025-02" in plan
        assert plan.total_capacity == 580
        assert plan.average_monthly_capacity == pytest.approx(580 / 3)
        assert plan.earliest_month == "2025-01"
        assert plan.latest_month == "2025-03"

    def test_empty_queries(self):
        plan = CapacityPlan()
        assert plan.is_empty()
        assert plan.total_capacity == 0
        assert plan.average_monthly_capacity == 0
        assert plan.max_supply_month is None
        assert plan.earliest_month is None


class TestGenerate:
    def test_flat_plan(self, changes):
        plan = CapacityPlan(on_change=lambda: changes.append(1))
        plan.generate(3, 100, 0, "2025-11")

        assert _months(plan) == ["2025-11", "2025-12", "2026-01"]
        assert _units(plan) == [100, 100, 100]
        assert all(e.adjustment is None for e in plan)
        assert len(changes) == 1

    def test_growth_compounds(self):
        plan = CapacityPlan()
        plan.generate(3, 100, 0.1, "2025-01")
        assert _units(plan) == [100, 110, 121]

    def test_growth_rounds_half_up(self):
        plan = CapacityPlan()
        plan.generate(2, 10, 0.05, "2025-01")
        # 10.5 -> 11
        assert _units(plan) == [10, 11]

    def test_replaces_existing_plan(self, plan):
        plan.generate(2, 5, start="2030-06")
        assert _months(plan) == ["2030-06", "2030-07"]

    def test_current_month_is_read_once(self, monkeypatch):
        ticks = [
            datetime(2025, 1, 31, 23, 59, 59, tzinfo=timezone.utc),
            datetime(2025, 2, 1, 0, 0, 1, tzinfo=timezone.utc),
        ]

        class MonthEndClock(datetime):
            @classmethod
            def now(cls, tz=None):
                return ticks.pop(0) if len(ticks) > 1 else ticks[0]

        monkeypatch.setattr("subplan.utils.months.datetime", MonthEndClock)
        plan = CapacityPlan()
        plan.generate(3, 10)
        assert _months(plan) == ["2025-01", "2025-02", "2025-03"]

    def test_start_from_iso_timestamp(self):
        plan = CapacityPlan()
        plan.generate(1, 1, start="2025-03-31T23:30:00-02:00")
        assert _months(plan) == ["2025-04"]

    @pytest.mark.parametrize("months, amount, growth", [
        (0, 100, 0),
        (1.5, 100, 0),
        (3, -1, 0),
        (3, 100, -0.1),
    ])
    def test_invalid_arguments(self, plan, changes, months, amount, growth):
        with pytest.raises(InvalidArgumentError):
            plan.generate(months, amount, growth, "2025-01")
        assert len(plan) == 3
        assert changes == []


class TestSingleEntryMutators:
    def test_add(self, plan, changes):
        plan.add("2025-04", 400, 10)
        assert plan.get("2025-04") == CapacityEntry("2025-04", 400, 10)
        assert len(changes) == 1

    def test_add_duplicate(self, plan):
        with pytest.raises(DuplicateMonthError):
            plan.add("2025-01", 1)

    def test_update_units_keeps_adjustment(self, plan):
        plan.update_units("2025-02", 250)
        assert plan.get("2025-02") == CapacityEntry("2025-02", 250, -20)

    def test_update_adjustment_can_clear(self, plan):
        plan.update_adjustment("2025-02")
        assert plan.get("2025-02").adjustment is None

    def test_unknown_month(self, plan, changes):
        with pytest.raises(MonthNotFoundError):
            plan.update_units("2024-01", 1)
        with pytest.raises(MonthNotFoundError):
            plan.remove("2024-01")
        assert changes == []

    def test_remove(self, plan):
        plan.remove("2025-02")
        assert _months(plan) == ["2025-01", "2025-03"]


class TestNormalize:
    def test_sets_every_month(self, plan):
        plan.normalize_units(50)
        assert _units(plan) == [50, 50, 50]
        # adjustments are kept
        assert plan.get("2025-02").adjustment == -20

    def test_single_entry_is_noop(self, changes):
        plan = CapacityPlan([{"month": "2025-01", "capacity": 7}], on_change=lambda: changes.append(1))
        plan.normalize_units(50)
        assert _units(plan) == [7]
        assert changes == []

    def test_empty_plan(self):
        with pytest.raises(EmptyPlanError):
            CapacityPlan().normalize_units(10)

    def test_negative_amount(self, plan):
        with pytest.raises(InvalidArgumentError):
            plan.normalize_units(-1)


class TestResizePeriod:
    def test_distribute_preserves_total(self, plan):
        plan.resize_period("2025-01", "2025-07", CapacityResizeMode.DISTRIBUTE)

        # 580 over 7 months: 82 each, first 6 get one more
        assert _units(plan) == [83, 83, 83, 83, 83, 83, 82]
        assert plan.total_capacity == 580
        assert all(e.adjustment is None for e in plan)

    def test_distribute_accepts_string_mode(self, plan):
        plan.resize_period("2026-01", "2026-02", "distribute")
        assert _months(plan) == ["2026-01", "2026-02"]
        assert _units(plan) == [290, 290]

    def test_default_pads_with_last_entry(self, plan):
        plan.resize_period("2025-01", "2025-05")

        assert _months(plan) == ["2025-01", "2025-02", "2025-03", "2025-04", "2025-05"]
        assert _units(plan) == [100, 200, 300, 300, 300]
        assert plan.get("2025-02").adjustment == -20

    def test_default_trims(self, plan):
        plan.resize_period("2025-06", "2025-07", CapacityResizeMode.DEFAULT)
        assert _months(plan) == ["2025-06", "2025-07"]
        assert _units(plan) == [100, 200]

    def test_default_copies_in_month_order(self):
        plan = CapacityPlan([
            {"month": "2025-03", "capacity": 3},
            {"month": "2025-01", "capacity": 1},
        ])
        plan.resize_period("2025-01", "2025-02")
        assert _units(plan) == [1, 3]

    @pytest.mark.parametrize("entries, end, expected", [
        ([{"month": "2025-01", "capacity": 2}], "2025-05", [1, 1, 0, 0, 0]),
        ([{"month": "2025-01", "capacity": 7}], "2025-03", [3, 2, 2]),
        ([{"month": "2025-01", "capacity": 2, "adjustment": -5}], "2025-05", [0, 0, -1, -1, -1]),
    ])
    def test_distribute_remainder_goes_to_first_months(self, entries, end, expected):
        plan = CapacityPlan(entries)
        total = plan.total_capacity

        plan.resize_period("2025-01", end, CapacityResizeMode.DISTRIBUTE)

        assert _units(plan) == expected
        assert plan.total_capacity == total

    def test_single_month_period(self, plan):
        plan.resize_period("2025-01", "2025-01", CapacityResizeMode.DISTRIBUTE)
        assert _units(plan) == [580]

    def test_start_after_end(self, plan, changes):
        with pytest.raises(InvalidRangeError):
            plan.resize_period("2025-05", "2025-01")
        assert changes == []

    def test_bad_bounds(self, plan):
        with pytest.raises(InvalidRangeError):
            plan.resize_period("2025-1", "2025-05")

    def test_unknown_mode(self, plan):
        with pytest.raises(InvalidArgumentError):
            plan.resize_period("2025-01", "2025-05", "stretch")

    def test_empty_plan(self):
        with pytest.raises(NoCapacityPlanError):
            CapacityPlan().resize_period("2025-01", "2025-05")


class TestTrial:
    def test_trial_months_keep_only_prior_adjustment(self, plan):
        plan.apply_trial(2)

        assert [e.effective_units for e in plan.sorted_entries()] == [0, -20, 300]
        assert plan.get("2025-01").adjustment == -100
        # existing adjustment is folded in
        assert plan.get("2025-02").adjustment == -220
        assert plan.get("2025-03").adjustment is None

    def test_longer_than_plan(self, plan):
        plan.apply_trial(10)
        assert plan.total_capacity == -20

    def test_empty_plan_is_noop(self, changes):
        plan = CapacityPlan(on_change=lambda: changes.append(1))
        plan.apply_trial(3)
        assert changes == []

    def test_invalid_months(self, plan):
        with pytest.raises(InvalidArgumentError):
            plan.apply_trial(0)


def test_supply_extremes_ties_go_to_first_stored():
    plan = CapacityPlan([
        {"month": "2025-03", "capacity": 50},
        {"month": "2025-01", "capacity": 50},
        {"month": "2025-02", "capacity": 10, "adjustment": 40},
    ])
    assert plan.max_supply_month.month == "2025-03"
    assert plan.min_supply_month.month == "2025-03"


def test_replace_is_atomic(plan, changes):
    with pytest.raises(DuplicateMonthError):
        plan.replace([{"month": "2026-01", "capacity": 1}, {"month": "2026-01", "capacity": 2}])
    assert _months(plan) == ["2025-01", "2025-02", "2025-03"]
    assert changes == []
