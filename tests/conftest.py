"""
Pytest fixtures for testing
"""
import itertools

import pytest

from subplan.domain.enums import BillingCycle, RateUnit, SubscriptionType
from subplan.domain.subscription import Rate, Subscription
from subplan.utils.money import Money


@pytest.fixture
def id_factory():
    """Deterministic ids: sub-0001, subcost-0002 ..."""
    counter = itertools.count(1)
    return lambda prefix: f"{prefix}-{next(counter):04d}"


@pytest.fixture
def usd_rate():
    return Rate(
        amount=Money.from_major("29.00", "USD"),
        unit=RateUnit.PER_SUBSCRIBER,
        billing_cycle=BillingCycle.MONTHLY,
    )


@pytest.fixture
def subscription(usd_rate, id_factory) -> Subscription:
    """Empty USD subscription at 29.00 per subscriber per month"""
    return Subscription.initialize(
        "Team Plan",
        SubscriptionType.RECURRING,
        usd_rate,
        "SaaS",
        id_factory=id_factory,
    )


@pytest.fixture
def planned_subscription(subscription) -> Subscription:
    """29.00/unit, COS 300.00 + 100.00 per unit, 12 months x 500 units from 2025-01"""
    subscription.add_cos("Hosting", Money.from_major("300.00", "USD"))
    subscription.add_cos("Support", Money.from_major("100.00", "USD"))
    subscription.generate_capacity_plan(12, 500, 0, "2025-01")
    return subscription
