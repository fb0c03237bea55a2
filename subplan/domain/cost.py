"""
Cost of Subscription (COS) items: per-unit cost components such as
hosting, support or licensing, attributed to every active capacity unit.
"""
import dataclasses
from dataclasses import dataclass
from typing import Any

from subplan.errors import InvalidArgumentError
from subplan.utils.money import Money
from subplan.utils.validation import is_number


def validate_cost_fields(item: str, quantity) -> None:
    if not isinstance(item, str) or not item.strip():
        raise InvalidArgumentError("COS name cannot be empty")
    if not is_number(quantity) or quantity <= 0:
        raise InvalidArgumentError("COS quantity must be greater than zero")


@dataclass(frozen=True)
class CostItem:
    id: str
    item: str
    unit_cost: Money
    quantity: int | float
    subtotal: Money
    unit: str | None = None  # "per user", "per account" ...

    @classmethod
    def create(
        cls,
        id: str,
        item: str,
        unit_cost: Money,
        quantity: int | float = 1,
        unit: str | None = None,
    ) -> "CostItem":
        validate_cost_fields(item, quantity)
        if not isinstance(unit_cost, Money):
            raise InvalidArgumentError("COS unit cost must be Money")
        return cls(
            id=id,
            item=item,
            unit_cost=unit_cost,
            quantity=quantity,
            subtotal=unit_cost.multiply(quantity),
            unit=unit,
        )

    def recalculated(self, **changes) -> "CostItem":
        """Copy with changes applied and subtotal = unit_cost x quantity."""
        updated = dataclasses.replace(self, **changes)
        return dataclasses.replace(updated, subtotal=updated.unit_cost.multiply(updated.quantity))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "item": self.item,
            "unit_cost": self.unit_cost,
            "quantity": self.quantity,
            "subtotal": self.subtotal,
            "unit": self.unit,
        }
