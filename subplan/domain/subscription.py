"""
Subscription aggregate root.

Owns the rate, the COS items, the capacity plan and the cached finance
snapshot. Every mutator validates first and writes second; mutators that
touch rate, COS or capacity invalidate the finance cache.

Usage:
    rate = Rate(Money.from_major("29.00", "USD"), RateUnit.PER_SUBSCRIBER, BillingCycle.MONTHLY)
    sub = Subscription.initialize("Team Plan", SubscriptionType.RECURRING, rate, "SaaS")
    sub.add_cos("Hosting", Money.from_major("3.00", "USD"))
    sub.generate_capacity_plan(12, 500, start="2025-01")
    sub.finance.gross_profit
"""
import copy
import dataclasses
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

from pydantic import ValidationError

from subplan.config import get_settings
from subplan.domain.capacity import CapacityEntry, CapacityPlan
from subplan.domain.cost import CostItem, validate_cost_fields
from subplan.domain.enums import (
    BillingCycle,
    CapacityResizeMode,
    RateUnit,
    SubscriptionStatus,
    SubscriptionType,
    SubscriptionVisibility,
)
from subplan.domain.finance import (
    FinanceEngine,
    FinanceInputs,
    FinanceSnapshot,
    GrossNet,
    ValueRatio,
)
from subplan.errors import (
    CostItemNotFoundError,
    CurrencyMismatchError,
    InvalidArgumentError,
    MissingFieldError,
)
from subplan.schemas import FinancePayload, SubscriptionPayload
from subplan.utils.ids import generate_id, generate_slug
from subplan.utils.money import Money, deserialize_money, minor_units, serialize_money
from subplan.utils.validation import to_decimal

logger = logging.getLogger(__name__)

TYPE_TAG = "Subscription"
REQUIRED_JSON_FIELDS = ("id", "timestamp", "metadata", "settings")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _require_text(value, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(f"{label} must be a valid non-empty string.")
    return value


def _as_enum(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidArgumentError(f"Invalid {label}: {value!r}") from None


# ============================================================================
# Value objects
# ============================================================================


@dataclass
class Rate:
    """Per-unit price: amount, what a unit is, and how often it is billed."""
    amount: Money
    unit: RateUnit = RateUnit.PER_SUBSCRIBER
    billing_cycle: BillingCycle = BillingCycle.MONTHLY

    @property
    def currency(self) -> str:
        return self.amount.currency

    def to_dict(self) -> dict[str, Any]:
        return {
            "amount": self.amount,
            "unit": self.unit.value,
            "billing_cycle": self.billing_cycle.value,
        }


@dataclass
class Description:
    text: str
    html: str | None = None
    seo: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "html": self.html, "seo": self.seo}


@dataclass
class SystemFlags:
    is_restricted: bool = False
    restricted_until: str | None = None  # ISO timestamp


@dataclass
class SubscriptionSettings:
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    visibility: SubscriptionVisibility = SubscriptionVisibility.PRIVATE
    system: SystemFlags = field(default_factory=SystemFlags)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "visibility": self.visibility.value,
            "system": {
                "is_restricted": self.system.is_restricted,
                "restricted_until": self.system.restricted_until,
            },
        }


@dataclass
class SubscriptionMetadata:
    description: Description
    type: SubscriptionType
    category: str
    rate: Rate
    sku: str | None = None
    photos: list[str] = field(default_factory=list)
    cos: list[CostItem] = field(default_factory=list)


# ============================================================================
# Aggregate
# ============================================================================


class Subscription:
    """
    A subscription offering: metadata, monthly capacity plan, cost
    breakdown and the finance figures derived from them.

    Not thread-safe; callers serialize access to one instance.
    """

    def __init__(
        self,
        id: str | None,
        slug: str | None,
        name: str,
        metadata: SubscriptionMetadata,
        settings: SubscriptionSettings | None = None,
        timestamp: str | None = None,
        last_update: str | None = None,
        capacity_plan: Iterable[CapacityEntry | Mapping[str, Any]] | None = None,
        finance: FinanceSnapshot | None = None,
        id_factory: Callable[[str], str] = generate_id,
    ):
        config = get_settings()
        now = _now_iso()
        self._id_factory = id_factory
        self.id = id or id_factory(config.SUBSCRIPTION_ID_PREFIX)
        self.slug = slug or generate_slug(name)
        self.name = name
        self.metadata = metadata
        self.settings = settings or SubscriptionSettings()
        self.timestamp = timestamp or now
        self.last_update = last_update or now
        self._capacity = CapacityPlan(capacity_plan, on_change=self._on_capacity_change)
        self._finance = FinanceEngine(self._finance_inputs, snapshot=finance, owner=self.id)

    @classmethod
    def initialize(
        cls,
        name: str,
        type: SubscriptionType,
        rate: Rate,
        category: str | None = None,
        description_text: str | None = None,
        sku: str | None = None,
        id_factory: Callable[[str], str] = generate_id,
    ) -> "Subscription":
        """
        Create a new subscription with default settings (Active, Private,
        unrestricted), no COS, no capacity plan and a zeroed finance
        snapshot in the rate's currency.
        """
        config = get_settings()
        if category is None:
            category = config.DEFAULT_CATEGORY
        _require_text(name, "Name")
        _require_text(category, "Category")
        if not isinstance(rate, Rate) or not isinstance(rate.amount, Money):
            raise InvalidArgumentError("Rate must be a Rate with a Money amount")

        metadata = SubscriptionMetadata(
            description=Description(text=description_text or config.DEFAULT_DESCRIPTION),
            type=_as_enum(SubscriptionType, type, "subscription type"),
            category=category,
            rate=dataclasses.replace(
                rate,
                unit=_as_enum(RateUnit, rate.unit, "rate unit"),
                billing_cycle=_as_enum(BillingCycle, rate.billing_cycle, "billing cycle"),
            ),
            sku=sku or None,
        )
        return cls(
            id=None,
            slug=None,
            name=name,
            metadata=metadata,
            settings=SubscriptionSettings(),
            finance=FinanceSnapshot.empty(rate.currency),
            id_factory=id_factory,
        )

    def __repr__(self) -> str:
        return f"Subscription(id={self.id!r}, name={self.name!r})"

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def type(self) -> SubscriptionType:
        return self.metadata.type

    @property
    def category(self) -> str:
        return self.metadata.category

    @property
    def rate(self) -> Rate:
        return self.metadata.rate

    @property
    def currency(self) -> str:
        return self.metadata.rate.currency

    @property
    def status(self) -> SubscriptionStatus:
        return self.settings.status

    @property
    def cos(self) -> tuple[CostItem, ...]:
        return tuple(self.metadata.cos)

    @property
    def capacity_plan(self) -> CapacityPlan:
        return self._capacity

    @property
    def finance(self) -> FinanceEngine:
        return self._finance

    @property
    def seo(self) -> str:
        """SEO text when set, plain description text otherwise."""
        seo = self.metadata.description.seo
        if seo and seo.strip():
            return seo
        return self.metadata.description.text

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _touch(self) -> None:
        self.last_update = _now_iso()

    def _finance_changed(self) -> None:
        self._touch()
        self._finance.invalidate()

    def _on_capacity_change(self) -> None:
        self._finance_changed()

    def _finance_inputs(self) -> FinanceInputs:
        return FinanceInputs(
            rate_amount=self.metadata.rate.amount,
            cost_items=tuple(self.metadata.cos),
            entries=self._capacity.entries,
        )

    def _assert_currency(self, money: Money) -> None:
        if not isinstance(money, Money):
            raise InvalidArgumentError("Expected a Money amount")
        if money.currency != self.currency:
            raise CurrencyMismatchError(
                f"Currency mismatch with subscription rate: {money.currency} != {self.currency}"
            )

    def _cos_index(self, cos_id: str) -> int:
        for index, item in enumerate(self.metadata.cos):
            if item.id == cos_id:
                return index
        raise CostItemNotFoundError(f"COS item {cos_id} not found")

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def set_name(self, name: str) -> None:
        _require_text(name, "Name")
        self.name = name
        self.slug = generate_slug(name)
        self._touch()

    def set_category(self, category: str) -> None:
        _require_text(category, "Category")
        self.metadata.category = category
        self._touch()

    def set_type(self, type: SubscriptionType) -> None:
        self.metadata.type = _as_enum(SubscriptionType, type, "subscription type")
        self._touch()

    def set_description(self, html: str, text: str) -> None:
        _require_text(html, "HTML")
        _require_text(text, "Text")
        self.metadata.description.html = html
        self.metadata.description.text = text
        self._touch()

    def set_description_text(self, text: str) -> None:
        _require_text(text, "Description text")
        self.metadata.description.text = text
        self._touch()

    def set_description_html(self, html: str) -> None:
        _require_text(html, "Description HTML")
        self.metadata.description.html = html
        self._touch()

    def set_description_seo(self, text: str | None) -> None:
        """Set SEO text; a blank value clears it."""
        if not text or not text.strip():
            self.metadata.description.seo = None
        else:
            self.metadata.description.seo = text
        self._touch()

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def set_status(self, status: SubscriptionStatus) -> None:
        self.settings.status = _as_enum(SubscriptionStatus, status, "status")
        self._touch()

    def set_visibility(self, visibility: SubscriptionVisibility) -> None:
        self.settings.visibility = _as_enum(SubscriptionVisibility, visibility, "visibility")
        self._touch()

    def restrict(self, until: datetime | str | None = None) -> None:
        if isinstance(until, datetime):
            until = until.isoformat()
        self.settings.system = SystemFlags(is_restricted=True, restricted_until=until)
        self._touch()

    def lift_restriction(self) -> None:
        self.settings.system = SystemFlags()
        self._touch()

    # ------------------------------------------------------------------
    # Rate
    # ------------------------------------------------------------------

    def set_rate(self, rate: Rate) -> None:
        """
        Replace the whole rate. A new currency is only accepted when no
        COS item is priced in another currency.
        """
        if not isinstance(rate, Rate) or not isinstance(rate.amount, Money):
            raise InvalidArgumentError("Rate must be a Rate with a Money amount")
        for item in self.metadata.cos:
            if item.unit_cost.currency != rate.currency:
                raise CurrencyMismatchError(
                    f"COS item {item.id} is priced in {item.unit_cost.currency}, rate is {rate.currency}"
                )
        self.metadata.rate = dataclasses.replace(
            rate,
            unit=_as_enum(RateUnit, rate.unit, "rate unit"),
            billing_cycle=_as_enum(BillingCycle, rate.billing_cycle, "billing cycle"),
        )
        self._finance_changed()

    def set_rate_unit(self, unit: RateUnit) -> None:
        self.metadata.rate.unit = _as_enum(RateUnit, unit, "rate unit")
        self._finance_changed()

    def set_rate_amount(self, amount) -> None:
        """Set the rate amount in major units of the current currency (must be positive)."""
        places = minor_units(self.currency)
        value = to_decimal(amount, max_decimal_places=places or None)
        if value <= 0:
            raise InvalidArgumentError("Rate amount must be positive")
        self.metadata.rate.amount = Money.from_major(value, self.currency)
        self._finance_changed()

    # ------------------------------------------------------------------
    # COS
    # ------------------------------------------------------------------

    def has_cost_breakdown(self) -> bool:
        return len(self.metadata.cos) > 0

    def add_cos(
        self,
        name: str,
        unit_cost: Money,
        quantity: int | float = 1,
        unit: str | None = None,
    ) -> CostItem:
        """Create a COS item with a generated id and return it."""
        validate_cost_fields(name, quantity)
        self._assert_currency(unit_cost)
        item = CostItem.create(
            id=self._id_factory(get_settings().COST_ITEM_ID_PREFIX),
            item=name,
            unit_cost=unit_cost,
            quantity=quantity,
            unit=unit,
        )
        self.metadata.cos.append(item)
        self._finance_changed()
        return item

    def push_cos(self, item: CostItem) -> None:
        """Append an existing item (subtotal is recomputed)."""
        if not isinstance(item, CostItem):
            raise InvalidArgumentError("Expected a CostItem")
        if not item.id:
            raise InvalidArgumentError("COS item must have an id")
        validate_cost_fields(item.item, item.quantity)
        self._assert_currency(item.unit_cost)
        if any(c.id == item.id for c in self.metadata.cos):
            raise InvalidArgumentError(f"COS item {item.id} already exists")
        self.metadata.cos.append(item.recalculated())
        self._finance_changed()

    def update_cos(
        self,
        cos_id: str,
        *,
        item: str | None = None,
        unit_cost: Money | None = None,
        quantity: int | float | None = None,
        unit: str | None = None,
    ) -> None:
        """Update fields of a COS item; a blank name is ignored."""
        index = self._cos_index(cos_id)
        current = self.metadata.cos[index]

        changes: dict[str, Any] = {}
        if quantity is not None:
            validate_cost_fields(current.item, quantity)
            changes["quantity"] = quantity
        if unit_cost is not None:
            self._assert_currency(unit_cost)
            changes["unit_cost"] = unit_cost
        if item is not None and item.strip():
            changes["item"] = item
        if unit is not None:
            changes["unit"] = unit

        self.metadata.cos[index] = current.recalculated(**changes)
        self._finance_changed()

    def set_cos(self, items: Iterable[CostItem]) -> None:
        """Replace all COS items (validated as a whole before the swap)."""
        new_items: list[CostItem] = []
        seen: set[str] = set()
        for item in items:
            if not isinstance(item, CostItem) or not item.id:
                raise InvalidArgumentError("Each COS item must have id, item, unit_cost and quantity")
            validate_cost_fields(item.item, item.quantity)
            self._assert_currency(item.unit_cost)
            if item.id in seen:
                raise InvalidArgumentError(f"Duplicate COS item id: {item.id}")
            seen.add(item.id)
            new_items.append(item.recalculated())
        self.metadata.cos = new_items
        self._finance_changed()

    def remove_cos(self, cos_id: str) -> None:
        index = self._cos_index(cos_id)
        del self.metadata.cos[index]
        self._finance_changed()

    def clear_cost_breakdown(self) -> None:
        self.metadata.cos = []
        self._finance_changed()

    # ------------------------------------------------------------------
    # Capacity (delegates to CapacityPlan; its change hook invalidates finance)
    # ------------------------------------------------------------------

    def has_capacity(self) -> bool:
        return not self._capacity.is_empty()

    def generate_capacity_plan(self, months: int, amount: int | float, growth_rate: int | float = 0, start=None) -> None:
        self._capacity.generate(months, amount, growth_rate, start)

    def normalize_capacity_units(self, amount: int | float) -> None:
        self._capacity.normalize_units(amount)

    def recompute_capacity_period(
        self,
        start: str,
        end: str,
        mode: CapacityResizeMode | str = CapacityResizeMode.DEFAULT,
    ) -> None:
        self._capacity.resize_period(start, end, mode)

    def set_capacity(self, entries: Iterable[CapacityEntry | Mapping[str, Any]]) -> None:
        self._capacity.replace(entries)

    def add_capacity(self, month: str, units: int | float, adjustment: int | float | None = None) -> None:
        self._capacity.add(month, units, adjustment)

    def update_capacity_units(self, month: str, units: int | float) -> None:
        self._capacity.update_units(month, units)

    def update_capacity_adjustment(self, month: str, adjustment: int | float | None = None) -> None:
        self._capacity.update_adjustment(month, adjustment)

    def remove_capacity(self, month: str) -> None:
        self._capacity.remove(month)

    def clear_capacity(self) -> None:
        self._capacity.clear()

    def apply_trial(self, months: int) -> None:
        self._capacity.apply_trial(months)

    # ------------------------------------------------------------------
    # Validation / serialization
    # ------------------------------------------------------------------

    def validate_self(self, raise_error: bool = False) -> bool:
        """Check required properties; raise or return False on the first gap."""
        required = [
            (self.id, "ID"),
            (self.timestamp, "Timestamp"),
            (self.name, "Subscription Name"),
            (self.metadata.description.text, "Description"),
            (self.metadata.rate.amount, "Rate Amount"),
            (self.metadata.rate.unit, "Rate Unit"),
        ]
        for value, label in required:
            if value is None or value == "":
                if raise_error:
                    raise MissingFieldError(f"Validation failed: missing or invalid property - {label}")
                return False
        return True

    def to_json(self) -> dict[str, Any]:
        """Plain JSON-compatible dict; money values become tagged minor units."""
        metadata = self.metadata
        payload = {
            "__type": TYPE_TAG,
            "__object": "json",
            "id": self.id,
            "slug": self.slug,
            "name": self.name,
            "category": metadata.category,
            "rate": metadata.rate.to_dict(),
            "status": self.settings.status.value,
            "type": metadata.type.value,
            "timestamp": self.timestamp,
            "last_update": self.last_update,
            "metadata": {
                "sku": metadata.sku,
                "description": metadata.description.to_dict(),
                "photos": list(metadata.photos),
                "type": metadata.type.value,
                "category": metadata.category,
                "rate": metadata.rate.to_dict(),
                "cos": [item.to_dict() for item in metadata.cos],
                "capacity_plan": self._capacity.to_list(),
                "finance": self._finance.snapshot.to_dict(),
            },
            "settings": self.settings.to_dict(),
        }
        return serialize_money(payload)

    def to_json_string(self, **kwargs) -> str:
        return json.dumps(self.to_json(), **kwargs)

    def finalize(self) -> dict[str, Any]:
        """JSON form with a freshly generated id."""
        return {**self.to_json(), "id": self._id_factory(get_settings().SUBSCRIPTION_ID_PREFIX)}

    @classmethod
    def parse_from_json(cls, data: str | Mapping[str, Any]) -> "Subscription":
        """
        Rebuild a subscription from to_json() output (dict or JSON string).

        Raises:
            MissingFieldError: id, timestamp, metadata or settings is absent
            InvalidArgumentError: the payload is malformed
        """
        if isinstance(data, str):
            try:
                raw = json.loads(data)
            except json.JSONDecodeError as exc:
                raise InvalidArgumentError(f"Invalid subscription JSON: {exc}") from exc
        elif isinstance(data, Mapping):
            raw = copy.deepcopy(dict(data))
        else:
            raise InvalidArgumentError(f"Cannot parse subscription from {type(data).__name__}")

        if not isinstance(raw, dict):
            raise InvalidArgumentError("Subscription JSON must be an object")

        parsed = deserialize_money(raw)
        for name in REQUIRED_JSON_FIELDS:
            if not parsed.get(name):
                raise MissingFieldError(f"Missing required property: '{name}'")

        try:
            payload = SubscriptionPayload.model_validate(parsed)
        except ValidationError as exc:
            raise InvalidArgumentError(f"Invalid subscription data: {exc}") from exc

        logger.debug("Parsed subscription %s", payload.id)
        return cls._from_payload(payload)

    @classmethod
    def _from_payload(cls, payload: SubscriptionPayload) -> "Subscription":
        meta = payload.metadata
        rate = Rate(
            amount=meta.rate.amount,
            unit=meta.rate.unit,
            billing_cycle=meta.rate.billing_cycle,
        )

        cos_items = []
        for raw in meta.cos:
            if raw.unit_cost.currency != rate.currency:
                raise CurrencyMismatchError(
                    f"COS item {raw.id} is priced in {raw.unit_cost.currency}, rate is {rate.currency}"
                )
            cos_items.append(CostItem.create(
                id=raw.id,
                item=raw.item,
                unit_cost=raw.unit_cost,
                quantity=raw.quantity,
                unit=raw.unit,
            ))

        metadata = SubscriptionMetadata(
            description=Description(
                text=meta.description.text,
                html=meta.description.html,
                seo=meta.description.seo,
            ),
            type=meta.type,
            category=meta.category,
            rate=rate,
            sku=meta.sku,
            photos=list(meta.photos),
            cos=cos_items,
        )
        settings = SubscriptionSettings(
            status=payload.settings.status,
            visibility=payload.settings.visibility,
            system=SystemFlags(
                is_restricted=payload.settings.system.is_restricted,
                restricted_until=payload.settings.system.restricted_until,
            ),
        )

        return cls(
            id=payload.id,
            slug=payload.slug,
            name=payload.name,
            metadata=metadata,
            settings=settings,
            timestamp=payload.timestamp,
            last_update=payload.last_update,
            capacity_plan=[e.model_dump() for e in meta.capacity_plan],
            finance=_snapshot_from_payload(meta.finance) if meta.finance else None,
        )


def _snapshot_from_payload(finance: FinancePayload) -> FinanceSnapshot:
    def _pair(pair) -> GrossNet:
        return GrossNet(
            gross=ValueRatio(pair.gross.value, pair.gross.margin_ratio),
            net=ValueRatio(pair.net.value, pair.net.margin_ratio),
        )

    return FinanceSnapshot(
        revenue=_pair(finance.revenue),
        income=_pair(finance.income),
        profit=_pair(finance.profit),
        cos=_pair(finance.cos),
    )


def is_subscription_json(obj: Any) -> bool:
    return (
        isinstance(obj, Mapping)
        and obj.get("__type") == TYPE_TAG
        and obj.get("__object") == "json"
    )
