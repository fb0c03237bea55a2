"""
Monthly capacity plan (units per month).

Capacity is the number of billable units (subscribers, seats, accounts)
planned for a month. Each entry may carry a signed adjustment (churn,
promos, trials); effective units = capacity + adjustment.

Invariants:
  - at most one entry per month (enforced by add and replace)
  - every mutator validates its input before writing anything
  - on_change is called once after every successful mutation
"""
import logging
import math
import dataclasses
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, Mapping

from subplan.domain.enums import CapacityResizeMode
from subplan.errors import (
    DuplicateMonthError,
    EmptyPlanError,
    InvalidArgumentError,
    InvalidRangeError,
    MonthNotFoundError,
    NoCapacityPlanError,
)
from subplan.utils.months import (
    ensure_month,
    is_valid_month,
    months_in_period,
    normalize_start_date,
    offset_month,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapacityEntry:
    month: str  # YYYY-MM
    capacity: int | float
    adjustment: int | float | None = None

    @property
    def effective_units(self) -> int | float:
        return self.capacity + (self.adjustment or 0)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"month": self.month, "capacity": self.capacity}
        if self.adjustment is not None:
            data["adjustment"] = self.adjustment
        return data


def _is_number(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _require_number(value, label: str) -> None:
    if not _is_number(value):
        raise InvalidArgumentError(f"{label} must be a number, got {value!r}")


def _require_positive_int(value, label: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidArgumentError(f"{label} must be a positive integer, got {value!r}")


def _round_half_up(value: int | float) -> int:
    return int(math.floor(value + 0.5))


def _coerce_entry(raw: CapacityEntry | Mapping[str, Any]) -> CapacityEntry:
    if isinstance(raw, CapacityEntry):
        month, capacity, adjustment = raw.month, raw.capacity, raw.adjustment
    elif isinstance(raw, Mapping):
        month, capacity, adjustment = raw.get("month"), raw.get("capacity"), raw.get("adjustment")
    else:
        raise InvalidArgumentError(f"Invalid capacity entry: {raw!r}")

    ensure_month(month)
    _require_number(capacity, "Capacity")
    if adjustment is not None:
        _require_number(adjustment, "Adjustment")
    return CapacityEntry(month=month, capacity=capacity, adjustment=adjustment)


class CapacityPlan:
    """
    Ordered-by-insertion collection of monthly capacity entries.

    Storage order is not chronological; operations that depend on order
    sort by month first.
    """

    def __init__(
        self,
        entries: Iterable[CapacityEntry | Mapping[str, Any]] | None = None,
        on_change: Callable[[], None] | None = None,
    ):
        self._entries: list[CapacityEntry] = self._validated(entries or [])
        self._on_change = on_change

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CapacityEntry]:
        return iter(tuple(self._entries))

    def __contains__(self, month: object) -> bool:
        return any(e.month == month for e in self._entries)

    def __repr__(self) -> str:
        return f"CapacityPlan({len(self._entries)} months)"

    @property
    def entries(self) -> tuple[CapacityEntry, ...]:
        return tuple(self._entries)

    def is_empty(self) -> bool:
        return not self._entries

    def get(self, month: str) -> CapacityEntry | None:
        for entry in self._entries:
            if entry.month == month:
                return entry
        return None

    def sorted_entries(self) -> list[CapacityEntry]:
        return sorted(self._entries, key=lambda e: e.month)

    def to_list(self) -> list[dict[str, Any]]:
        return [e.to_dict() for e in self._entries]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def total_capacity(self) -> int | float:
        """Sum of effective units over all months."""
        return sum(e.effective_units for e in self._entries)

    @property
    def average_monthly_capacity(self) -> float:
        if not self._entries:
            return 0
        return self.total_capacity / len(self._entries)

    @property
    def earliest_month(self) -> str | None:
        if not self._entries:
            return None
        return min(e.month for e in self._entries)

    @property
    def latest_month(self) -> str | None:
        if not self._entries:
            return None
        return max(e.month for e in self._entries)

    @property
    def max_supply_month(self) -> CapacityEntry | None:
        """Entry with the most effective units; ties go to the first stored."""
        if not self._entries:
            return None
        return max(self._entries, key=lambda e: e.effective_units)

    @property
    def min_supply_month(self) -> CapacityEntry | None:
        """Entry with the fewest effective units; ties go to the first stored."""
        if not self._entries:
            return None
        return min(self._entries, key=lambda e: e.effective_units)

    # ------------------------------------------------------------------
    # Single-entry mutators
    # ------------------------------------------------------------------

    def add(self, month: str, units: int | float, adjustment: int | float | None = None) -> None:
        ensure_month(month)
        _require_number(units, "Units")
        if adjustment is not None:
            _require_number(adjustment, "Adjustment")
        if month in self:
            raise DuplicateMonthError(
                f"Month {month} already exists. Use update_units or update_adjustment"
            )
        self._entries.append(CapacityEntry(month=month, capacity=units, adjustment=adjustment))
        self._changed()

    def update_units(self, month: str, units: int | float) -> None:
        ensure_month(month)
        _require_number(units, "Units")
        index = self._index_of(month)
        self._entries[index] = dataclasses.replace(self._entries[index], capacity=units)
        self._changed()

    def update_adjustment(self, month: str, adjustment: int | float | None = None) -> None:
        ensure_month(month)
        if adjustment is not None:
            _require_number(adjustment, "Adjustment")
        index = self._index_of(month)
        self._entries[index] = dataclasses.replace(self._entries[index], adjustment=adjustment)
        self._changed()

    def remove(self, month: str) -> None:
        ensure_month(month)
        index = self._index_of(month)
        del self._entries[index]
        self._changed()

    # ------------------------------------------------------------------
    # Bulk mutators
    # ------------------------------------------------------------------

    def replace(self, entries: Iterable[CapacityEntry | Mapping[str, Any]]) -> None:
        """Swap in a whole new plan (validated, duplicates rejected)."""
        self._entries = self._validated(entries)
        self._changed()

    def clear(self) -> None:
        self._entries = []
        self._changed()

    def generate(
        self,
        months: int,
        base_amount: int | float,
        growth_rate: int | float = 0,
        start=None,
    ) -> None:
        """
        Replace the plan with `months` consecutive months.

        Month i gets round(base_amount * (1 + growth_rate) ** i); growth
        compounds on the unrounded value.

        Args:
            months: number of months (positive integer)
            base_amount: units for the first month (>= 0)
            growth_rate: monthly growth, e.g. 0.03 = +3% (>= 0)
            start: month key, ISO string, date or datetime; None = current month
        """
        _require_positive_int(months, "Months")
        if not _is_number(base_amount) or base_amount < 0:
            raise InvalidArgumentError("Amount must be a non-negative number")
        if not _is_number(growth_rate) or growth_rate < 0:
            raise InvalidArgumentError("Growth rate cannot be negative")

        first = normalize_start_date(start)
        entries: list[CapacityEntry] = []
        units = base_amount
        for i in range(months):
            entries.append(CapacityEntry(month=offset_month(first, i), capacity=_round_half_up(units)))
            if growth_rate > 0:
                units *= 1 + growth_rate

        logger.info(
            "Capacity plan generated: %d month(s) from %s, base=%s, growth=%s",
            months, entries[0].month, base_amount, growth_rate,
        )
        self.replace(entries)

    def normalize_units(self, amount: int | float) -> None:
        """
        Set every month's capacity to `amount` (adjustments untouched).

        A single-month plan is already normalized and is left as is.
        """
        if not _is_number(amount) or amount < 0:
            raise InvalidArgumentError("Amount must be a non-negative number")
        if not self._entries:
            raise EmptyPlanError("Capacity plan is empty")
        if len(self._entries) == 1:
            return

        self._entries = [dataclasses.replace(e, capacity=amount) for e in self._entries]
        self._changed()

    def resize_period(
        self,
        start: str,
        end: str,
        mode: CapacityResizeMode | str = CapacityResizeMode.DEFAULT,
    ) -> None:
        """
        Rebuild the plan to cover exactly [start, end] (inclusive).

        DEFAULT: month i takes the i-th entry of the chronologically sorted
        plan (capacity and adjustment); extra months repeat the last entry,
        surplus entries are dropped.

        DISTRIBUTE: the total effective capacity is spread evenly as whole
        units; the first (total mod length) months get one extra unit.
        Adjustments are dropped.
        """
        if not is_valid_month(start) or not is_valid_month(end):
            raise InvalidRangeError(f"Invalid period: {start!r}..{end!r}")
        try:
            mode = CapacityResizeMode(mode)
        except ValueError:
            raise InvalidArgumentError(f"Unknown resize mode: {mode!r}") from None
        if not self._entries:
            raise NoCapacityPlanError("No existing capacity plan to recompute")
        if start > end:
            raise InvalidRangeError("Start month must be <= end month")

        length = months_in_period(start, end)

        if mode is CapacityResizeMode.DISTRIBUTE:
            total = _round_half_up(self.total_capacity)
            base, remainder = divmod(total, length)
            new_entries = [
                CapacityEntry(month=offset_month(start, i), capacity=base + (1 if i < remainder else 0))
                for i in range(length)
            ]
        else:
            source = self.sorted_entries()
            new_entries = []
            for i in range(length):
                src = source[i] if i < len(source) else source[-1]
                new_entries.append(
                    CapacityEntry(month=offset_month(start, i), capacity=src.capacity, adjustment=src.adjustment)
                )

        logger.info(
            "Capacity period recomputed: %s..%s (%d months, mode=%s)",
            start, end, length, mode.value,
        )
        self._entries = new_entries
        self._changed()

    def apply_trial(self, months: int) -> None:
        """
        Zero out the first `months` months by subtracting each month's
        capacity from its adjustment. The plan ends up sorted by month.
        """
        _require_positive_int(months, "Trial months")
        if not self._entries:
            return

        ordered = self.sorted_entries()
        for i in range(min(months, len(ordered))):
            entry = ordered[i]
            ordered[i] = dataclasses.replace(entry, adjustment=(entry.adjustment or 0) - entry.capacity)

        logger.info("Trial applied to %d month(s)", min(months, len(ordered)))
        self._entries = ordered
        self._changed()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _index_of(self, month: str) -> int:
        for index, entry in enumerate(self._entries):
            if entry.month == month:
                return index
        raise MonthNotFoundError(f"Month {month} not found")

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    @staticmethod
    def _validated(entries: Iterable[CapacityEntry | Mapping[str, Any]]) -> list[CapacityEntry]:
        result: list[CapacityEntry] = []
        seen: set[str] = set()
        for raw in entries:
            entry = _coerce_entry(raw)
            if entry.month in seen:
                raise DuplicateMonthError(f"Duplicate month in capacity plan: {entry.month}")
            seen.add(entry.month)
            result.append(entry)
        return result
