"""
Error kinds raised by the subscription model.

All of them are validation failures: raised synchronously, before any
state is written.
"""


class SubscriptionValidationError(ValueError):
    pass


class InvalidArgumentError(SubscriptionValidationError):
    pass


class InvalidMonthError(SubscriptionValidationError):
    pass


class DuplicateMonthError(SubscriptionValidationError):
    pass


class MonthNotFoundError(SubscriptionValidationError):
    pass


class NoCapacityPlanError(SubscriptionValidationError):
    pass


class EmptyPlanError(SubscriptionValidationError):
    pass


class InvalidRangeError(SubscriptionValidationError):
    pass


class CurrencyMismatchError(SubscriptionValidationError):
    pass


class MissingFieldError(SubscriptionValidationError):
    pass


class CostItemNotFoundError(SubscriptionValidationError):
    pass
