"""
Money value object and money formatting for the whole project.

Usage:
    from subplan.utils.money import Money, format_money

    Money.from_major("29.00", "USD") * 500   -> Money(14500.00 USD)
    format_money(15000, "USD")               -> "15,000.00 USD"
    format_money(1200, "JPY")                -> "1,200 JPY"

Amounts are kept as Decimal, quantized to the currency's minor unit.
Arithmetic between different currencies is refused.
"""
import re
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from subplan.errors import CurrencyMismatchError, InvalidArgumentError
from subplan.utils.validation import to_decimal

# Digits after the decimal point; everything not listed uses 2
_MINOR_UNITS = {
    "JPY": 0, "KRW": 0, "VND": 0, "CLP": 0, "ISK": 0,
    "BHD": 3, "KWD": 3, "OMR": 3, "JOD": 3, "TND": 3,
}

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")

# Marker key used by serialize_money / deserialize_money
MONEY_TAG = "__money__"


def minor_units(currency: str) -> int:
    """Number of minor-unit digits for an ISO currency code."""
    return _MINOR_UNITS.get(currency, 2)


def format_money(amount, currency: str = "USD", decimals: int | None = None) -> str:
    """
    Format an amount with thousands separators and the currency code.

    Args:
        amount: int / float / Decimal / str
        currency: ISO currency code (USD, EUR, PHP ...)
        decimals: digits after the point (defaults to the currency's minor unit)

    Returns:
        "15,000.00 USD" / "1,200 JPY"
    """
    if decimals is None:
        decimals = minor_units(currency)
    if isinstance(amount, str):
        amount = Decimal(amount)
    fmt = f"{{:,.{decimals}f}}"
    return f"{fmt.format(amount)} {currency}"


def _quantize(value: Decimal, currency: str) -> Decimal:
    exp = Decimal(1).scaleb(-minor_units(currency))
    result = value.quantize(exp, rounding=ROUND_HALF_UP)
    if result == 0:
        # drop the sign of negative zero
        result = abs(result)
    return result


@dataclass(frozen=True)
class Money:
    """
    Monetary amount in a single currency (immutable).
    """
    amount: Decimal
    currency: str

    def __post_init__(self):
        code = str(self.currency).strip().upper()
        if not _CURRENCY_RE.match(code):
            raise InvalidArgumentError(f"Invalid currency code: {self.currency!r}")
        object.__setattr__(self, "currency", code)
        object.__setattr__(self, "amount", _quantize(to_decimal(self.amount), code))

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def zero(cls, currency: str) -> "Money":
        return cls(Decimal(0), currency)

    @classmethod
    def from_major(cls, amount, currency: str) -> "Money":
        """Build from major units (29.99 USD)."""
        return cls(to_decimal(amount), currency)

    @classmethod
    def from_minor(cls, amount: int, currency: str) -> "Money":
        """Build from minor units (2999 -> 29.99 USD)."""
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidArgumentError(f"Minor amount must be an integer: {amount!r}")
        code = str(currency).strip().upper()
        return cls(Decimal(amount).scaleb(-minor_units(code)), code)

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def _check(self, other: "Money") -> None:
        if not isinstance(other, Money):
            raise InvalidArgumentError(f"Expected Money, got {type(other).__name__}")
        if other.currency != self.currency:
            raise CurrencyMismatchError(
                f"Currency mismatch: {self.currency} vs {other.currency}"
            )

    def add(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.amount + other.amount, self.currency)

    def subtract(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.amount - other.amount, self.currency)

    def multiply(self, factor) -> "Money":
        return Money(self.amount * to_decimal(factor), self.currency)

    def divide(self, divisor) -> "Money":
        d = to_decimal(divisor)
        if d == 0:
            raise InvalidArgumentError("Cannot divide money by zero")
        return Money(self.amount / d, self.currency)

    def ratio(self, other: "Money") -> float:
        """self / other as a plain number."""
        self._check(other)
        if other.is_zero():
            raise InvalidArgumentError("Cannot compute ratio against zero")
        return float(self.amount / other.amount)

    def is_zero(self) -> bool:
        return self.amount == 0

    def is_negative(self) -> bool:
        return self.amount < 0

    def to_major(self) -> Decimal:
        return self.amount

    def to_minor(self) -> int:
        return int(self.amount.scaleb(minor_units(self.currency)))

    def format(self) -> str:
        return format_money(self.amount, self.currency)

    __add__ = add
    __sub__ = subtract
    __mul__ = multiply
    __rmul__ = multiply

    def __neg__(self) -> "Money":
        return Money(-self.amount, self.currency)

    def __str__(self) -> str:
        return self.format()


# ---------------------------------------------------------------------------
# JSON adapter
# ---------------------------------------------------------------------------

def serialize_money(obj: Any) -> Any:
    """
    Return a copy of obj with every Money replaced by a currency-tagged
    minor-unit dict: {"__money__": True, "amount": 2999, "currency": "USD"}.
    """
    if isinstance(obj, Money):
        return {MONEY_TAG: True, "amount": obj.to_minor(), "currency": obj.currency}
    if isinstance(obj, dict):
        return {key: serialize_money(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [serialize_money(value) for value in obj]
    return obj


def deserialize_money(obj: Any) -> Any:
    """Inverse of serialize_money."""
    if isinstance(obj, dict):
        if obj.get(MONEY_TAG) is True:
            if "amount" not in obj or "currency" not in obj:
                raise InvalidArgumentError(f"Malformed money value: {obj!r}")
            return Money.from_minor(obj["amount"], obj["currency"])
        return {key: deserialize_money(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [deserialize_money(value) for value in obj]
    return obj
