"""
Enumerations shared by the subscription domain
"""
from enum import Enum


class SubscriptionStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    SUSPENDED = "Suspended"
    CANCELLED = "Cancelled"


class SubscriptionType(str, Enum):
    RECURRING = "Recurring"
    ONE_TIME = "One-Time"
    TRIAL = "Trial"


class SubscriptionVisibility(str, Enum):
    PUBLIC = "Public"
    PRIVATE = "Private"


class BillingCycle(str, Enum):
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    YEARLY = "Yearly"


class RateUnit(str, Enum):
    PER_SUBSCRIBER = "Per Subscriber"
    PER_ACCOUNT = "Per Account"
    PER_USER = "Per User"
    PER_MONTH = "Per Month"


class CapacityResizeMode(str, Enum):
    DEFAULT = "default"  # trim or pad, keep per-month units
    DISTRIBUTE = "distribute"  # keep the total, spread it evenly
