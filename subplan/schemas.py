"""
Pydantic models for the JSON form of a subscription.

Used by Subscription.parse_from_json after the money adapter has turned
tagged money dicts back into Money objects.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator

from subplan.domain.enums import (
    BillingCycle,
    RateUnit,
    SubscriptionStatus,
    SubscriptionType,
    SubscriptionVisibility,
)
from subplan.utils.money import Money
from subplan.utils.months import is_valid_month


class _Payload(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, extra="ignore")


# === Rate / COS / capacity ===

class RatePayload(_Payload):
    amount: Money
    unit: RateUnit
    billing_cycle: BillingCycle = BillingCycle.MONTHLY


class CostItemPayload(_Payload):
    id: str = Field(min_length=1)
    item: str = Field(min_length=1)
    unit_cost: Money
    quantity: int | float
    subtotal: Money | None = None
    unit: str | None = None

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: int | float) -> int | float:
        if v <= 0:
            raise ValueError("COS quantity must be greater than zero")
        return v


class CapacityEntryPayload(_Payload):
    month: str
    capacity: int | float
    adjustment: int | float | None = None

    @field_validator("month")
    @classmethod
    def validate_month(cls, v: str) -> str:
        if not is_valid_month(v):
            raise ValueError(f"Invalid month: {v} (expected YYYY-MM)")
        return v


# === Finance snapshot ===

class ValueRatioPayload(_Payload):
    value: Money
    margin_ratio: float


class GrossNetPayload(_Payload):
    gross: ValueRatioPayload
    net: ValueRatioPayload


class FinancePayload(_Payload):
    revenue: GrossNetPayload
    income: GrossNetPayload
    profit: GrossNetPayload
    cos: GrossNetPayload


# === Metadata / settings ===

class DescriptionPayload(_Payload):
    text: str
    html: str | None = None
    seo: str | None = None


class MetadataPayload(_Payload):
    sku: str | None = None
    description: DescriptionPayload
    photos: list[str] = []
    type: SubscriptionType
    category: str
    rate: RatePayload
    cos: list[CostItemPayload] = []
    capacity_plan: list[CapacityEntryPayload] = []
    finance: FinancePayload | None = None


class SystemPayload(_Payload):
    is_restricted: bool = False
    restricted_until: str | None = None


class SettingsPayload(_Payload):
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    visibility: SubscriptionVisibility = SubscriptionVisibility.PRIVATE
    system: SystemPayload = SystemPayload()


class SubscriptionPayload(_Payload):
    id: str
    slug: str | None = None
    name: str = Field(min_length=1)
    timestamp: str
    last_update: str | None = None
    metadata: MetadataPayload
    settings: SettingsPayload
