"""
Finance aggregation for a subscription.

Revenue, COS, profit and margins are derived from three inputs only:
the rate amount, the COS items and the capacity plan.

  gross revenue = sum(rate x effective units) over all months
  gross COS     = unit COS x total effective units
  gross profit  = gross revenue - gross COS

The aggregate snapshot is cached and recomputed lazily: owners call
invalidate() after any change to rate, COS or capacity, and the next
read recomputes the whole snapshot. Net columns of the snapshot equal
the gross columns; deductions exist only on the per-month accessors.

Per-month accessors never touch the cache.

Not thread-safe: one writer, no re-entrant mutation during a read.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, NamedTuple, Sequence
from zoneinfo import ZoneInfo

from subplan.config import get_settings
from subplan.domain.capacity import CapacityEntry
from subplan.domain.cost import CostItem
from subplan.errors import InvalidArgumentError
from subplan.utils.money import Money
from subplan.utils.months import add_months, current_month, ensure_month, month_to_date

logger = logging.getLogger(__name__)


class FinanceInputs(NamedTuple):
    rate_amount: Money
    cost_items: Sequence[CostItem]
    entries: Sequence[CapacityEntry]


# ============================================================================
# Snapshot
# ============================================================================


@dataclass(frozen=True)
class ValueRatio:
    value: Money
    margin_ratio: float

    @classmethod
    def zero(cls, currency: str) -> "ValueRatio":
        return cls(value=Money.zero(currency), margin_ratio=0)

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "margin_ratio": self.margin_ratio}


@dataclass(frozen=True)
class GrossNet:
    gross: ValueRatio
    net: ValueRatio

    @classmethod
    def both(cls, value: ValueRatio) -> "GrossNet":
        return cls(gross=value, net=value)

    def to_dict(self) -> dict[str, Any]:
        return {"gross": self.gross.to_dict(), "net": self.net.to_dict()}


@dataclass(frozen=True)
class FinanceSnapshot:
    revenue: GrossNet
    income: GrossNet
    profit: GrossNet
    cos: GrossNet

    @classmethod
    def empty(cls, currency: str) -> "FinanceSnapshot":
        zero = GrossNet.both(ValueRatio.zero(currency))
        return cls(revenue=zero, income=zero, profit=zero, cos=zero)

    def to_dict(self) -> dict[str, Any]:
        return {
            "revenue": self.revenue.to_dict(),
            "income": self.income.to_dict(),
            "profit": self.profit.to_dict(),
            "cos": self.cos.to_dict(),
        }


# ============================================================================
# Pure computations
# ============================================================================


def unit_cos(cost_items: Sequence[CostItem], currency: str) -> Money:
    """Per-unit COS: sum of all item subtotals."""
    total = Money.zero(currency)
    for item in cost_items:
        total = total.add(item.subtotal)
    return total


def compute_gross_revenue(rate_amount: Money, entries: Sequence[CapacityEntry]) -> Money:
    total = Money.zero(rate_amount.currency)
    for entry in entries:
        total = total.add(rate_amount.multiply(entry.effective_units))
    return total


def compute_gross_cos(
    rate_amount: Money,
    cost_items: Sequence[CostItem],
    entries: Sequence[CapacityEntry],
) -> Money:
    total_units = sum(e.effective_units for e in entries)
    return unit_cos(cost_items, rate_amount.currency).multiply(total_units)


def compute_gross_profit(
    rate_amount: Money,
    cost_items: Sequence[CostItem],
    entries: Sequence[CapacityEntry],
) -> Money:
    return compute_gross_revenue(rate_amount, entries).subtract(
        compute_gross_cos(rate_amount, cost_items, entries)
    )


def compute_snapshot(inputs: FinanceInputs) -> FinanceSnapshot:
    """Full snapshot from scratch (no incremental update)."""
    gross_revenue = compute_gross_revenue(inputs.rate_amount, inputs.entries)
    gross_cos = compute_gross_cos(inputs.rate_amount, inputs.cost_items, inputs.entries)
    gross_profit = gross_revenue.subtract(gross_cos)

    if gross_revenue.is_zero():
        profit_margin = 0
        cos_margin = 0
    else:
        profit_margin = gross_profit.ratio(gross_revenue)
        cos_margin = gross_cos.ratio(gross_revenue)

    profit = GrossNet.both(ValueRatio(gross_profit, profit_margin))
    return FinanceSnapshot(
        revenue=GrossNet.both(ValueRatio(gross_revenue, 1)),
        cos=GrossNet.both(ValueRatio(gross_cos, cos_margin)),
        profit=profit,
        income=profit,
    )


def _billing_timezone():
    name = get_settings().TIMEZONE
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


# ============================================================================
# Engine
# ============================================================================


class FinanceEngine:
    """
    Lazily cached finance view over a subscription's current state.

    Args:
        inputs: callable returning the current FinanceInputs
        snapshot: previously stored snapshot (kept until the first read)
        owner: label used in log messages
    """

    def __init__(
        self,
        inputs: Callable[[], FinanceInputs],
        snapshot: FinanceSnapshot | None = None,
        owner: str = "",
    ):
        self._inputs = inputs
        self._snapshot = snapshot
        self._dirty = True
        self._owner = owner
        self.recompute_count = 0

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def invalidate(self) -> None:
        self._dirty = True

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def snapshot(self) -> FinanceSnapshot:
        if self._dirty or self._snapshot is None:
            self._snapshot = compute_snapshot(self._inputs())
            self._dirty = False
            self.recompute_count += 1
            logger.debug(
                "Finance recomputed for %s (recompute #%d)", self._owner or "subscription", self.recompute_count
            )
        return self._snapshot

    @property
    def cached_snapshot(self) -> FinanceSnapshot | None:
        """Stored snapshot without triggering a recompute (may be stale)."""
        return self._snapshot

    # ------------------------------------------------------------------
    # Aggregates (cached)
    # ------------------------------------------------------------------

    @property
    def gross_revenue(self) -> Money:
        return self.snapshot.revenue.gross.value

    @property
    def gross_cost(self) -> Money:
        return self.snapshot.cos.gross.value

    @property
    def gross_profit(self) -> Money:
        return self.snapshot.profit.gross.value

    @property
    def net_revenue(self) -> Money:
        """Same as gross revenue: the snapshot applies no deductions."""
        return self.snapshot.revenue.net.value

    @property
    def net_profit(self) -> Money:
        """Same as gross profit: the snapshot applies no deductions."""
        return self.snapshot.profit.net.value

    @property
    def average_monthly_revenue(self) -> Money:
        inputs = self._inputs()
        if not inputs.entries:
            return Money.zero(inputs.rate_amount.currency)
        return self.gross_revenue.divide(len(inputs.entries))

    @property
    def average_monthly_profit(self) -> Money:
        inputs = self._inputs()
        if not inputs.entries:
            return Money.zero(inputs.rate_amount.currency)
        return self.gross_profit.divide(len(inputs.entries))

    # ------------------------------------------------------------------
    # Unit economics
    # ------------------------------------------------------------------

    @property
    def unit_cost(self) -> Money:
        inputs = self._inputs()
        return unit_cos(inputs.cost_items, inputs.rate_amount.currency)

    @property
    def unit_profit(self) -> Money:
        return self._inputs().rate_amount.subtract(self.unit_cost)

    @property
    def unit_margin(self) -> float:
        rate_amount = self._inputs().rate_amount
        if rate_amount.is_zero():
            return 0
        return self.unit_profit.ratio(rate_amount)

    @property
    def price(self) -> Money:
        return self._inputs().rate_amount

    # ------------------------------------------------------------------
    # Per month (uncached)
    # ------------------------------------------------------------------

    def _units_for(self, inputs: FinanceInputs, month: str) -> int | float | None:
        for entry in inputs.entries:
            if entry.month == month:
                return entry.effective_units
        return None

    def monthly_revenue(self, month: str) -> Money:
        ensure_month(month)
        inputs = self._inputs()
        units = self._units_for(inputs, month)
        if units is None:
            return Money.zero(inputs.rate_amount.currency)
        return inputs.rate_amount.multiply(units)

    def monthly_cos(self, month: str) -> Money:
        ensure_month(month)
        inputs = self._inputs()
        units = self._units_for(inputs, month)
        if units is None:
            return Money.zero(inputs.rate_amount.currency)
        return unit_cos(inputs.cost_items, inputs.rate_amount.currency).multiply(units)

    monthly_cost = monthly_cos

    def monthly_profit(self, month: str) -> Money:
        return self.monthly_revenue(month).subtract(self.monthly_cos(month))

    def monthly_margin(self, month: str) -> float:
        """Profit / revenue for the month; 0 when there is no revenue."""
        revenue = self.monthly_revenue(month)
        if revenue.is_zero():
            return 0
        return self.monthly_profit(month).ratio(revenue)

    def monthly_net_revenue(
        self,
        month: str,
        discounts: Money | None = None,
        returns: Money | None = None,
        allowances: Money | None = None,
    ) -> Money:
        net = self.monthly_revenue(month)
        for deduction in (discounts, returns, allowances):
            if deduction is not None:
                net = net.subtract(deduction)
        return net

    def monthly_net_profit(
        self,
        month: str,
        operating_expenses: Money | None = None,
        taxes: Money | None = None,
        discounts: Money | None = None,
        returns: Money | None = None,
        allowances: Money | None = None,
    ) -> Money:
        net = self.monthly_net_revenue(month, discounts, returns, allowances)
        for deduction in (operating_expenses, taxes):
            if deduction is not None:
                net = net.subtract(deduction)
        return net

    monthly_net_income = monthly_net_profit

    def monthly_snapshot(self, month: str) -> dict[str, Any]:
        return {
            "month": month,
            "revenue": self.monthly_revenue(month),
            "cos": self.monthly_cos(month),
            "profit": self.monthly_profit(month),
            "margin": self.monthly_margin(month),
            "net_revenue": self.monthly_net_revenue(month),
            "net_income": self.monthly_net_income(month),
        }

    # ------------------------------------------------------------------
    # Forecasting
    # ------------------------------------------------------------------

    def forecast_revenue(self, months: int) -> Money:
        """
        Revenue over the next `months` months, cycling through the
        chronologically sorted plan when it is shorter than the horizon.
        """
        if isinstance(months, bool) or not isinstance(months, int) or months <= 0:
            raise InvalidArgumentError("Forecast months must be a positive integer")
        inputs = self._inputs()
        forecast = Money.zero(inputs.rate_amount.currency)
        if not inputs.entries:
            return forecast

        ordered = sorted(inputs.entries, key=lambda e: e.month)
        for i in range(months):
            entry = ordered[i % len(ordered)]
            forecast = forecast.add(inputs.rate_amount.multiply(entry.effective_units))
        return forecast

    def mrr(self, month: str | None = None, now: datetime | None = None) -> Money:
        """Monthly recurring revenue for `month` (default: current month)."""
        return self.monthly_revenue(month or current_month(now))

    def arr(self, months: int | None = None) -> Money:
        """Annual recurring revenue: forecast over the next ARR_MONTHS months."""
        if months is None:
            months = get_settings().ARR_MONTHS
        return self.forecast_revenue(months)

    def next_billing_date(self, now: datetime | None = None) -> str | None:
        """
        First plan month starting after `now` as an ISO timestamp (UTC).

        Month starts are taken in the billing TIMEZONE. When every plan
        month is in the past, the month after the last one is returned.
        """
        entries = self._inputs().entries
        if not entries:
            return None

        tz = _billing_timezone()
        if now is None:
            now = datetime.now(tz)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=tz)

        ordered = sorted(entries, key=lambda e: e.month)
        for entry in ordered:
            start = month_to_date(entry.month)
            first_of_month = datetime(start.year, start.month, 1, tzinfo=tz)
            if first_of_month > now:
                return first_of_month.astimezone(timezone.utc).isoformat()

        following = add_months(month_to_date(ordered[-1].month), 1)
        return datetime(following.year, following.month, 1, tzinfo=tz).astimezone(timezone.utc).isoformat()
