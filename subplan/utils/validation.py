"""
Validation utilities for numeric input (amounts, unit counts)
"""
import math
import re
from decimal import Decimal, InvalidOperation
from numbers import Real

from subplan.errors import InvalidArgumentError


def normalize_decimal_input(value: str) -> str:
    """
    Normalize an amount string: strip blanks, replace a decimal comma with a dot

    Example:
        >>> normalize_decimal_input(" 100,50 ")
        "100.50"
    """
    return value.strip().replace(",", ".")


def validate_decimal_amount(value: str, max_decimal_places: int = 2) -> tuple[bool, str | None]:
    """
    Validate an amount string

    Args:
        value: amount as typed by a user ("100.50", "100,50")
        max_decimal_places: maximum digits after the decimal separator

    Returns:
        (is_valid, error_message)

    Example:
        >>> validate_decimal_amount("100.50")
        (True, None)
        >>> validate_decimal_amount("100.505")
        (False, "At most 2 decimal places allowed")
    """
    normalized = normalize_decimal_input(value)

    try:
        decimal_value = Decimal(normalized)
    except (InvalidOperation, ValueError):
        return False, f"Invalid amount: {value!r}"

    if not decimal_value.is_finite():
        return False, f"Invalid amount: {value!r}"

    pattern = rf"^-?\d+(\.\d{{1,{max_decimal_places}}})?$"
    if not re.match(pattern, normalized):
        return False, f"At most {max_decimal_places} decimal places allowed"

    return True, None


def validate_and_normalize_amount(value: str, max_decimal_places: int = 2) -> str:
    """
    Validate and normalize an amount string (raises on failure)

    Raises:
        InvalidArgumentError: if validation fails
    """
    is_valid, error = validate_decimal_amount(value, max_decimal_places)
    if not is_valid:
        raise InvalidArgumentError(error)

    return normalize_decimal_input(value)


def is_number(value) -> bool:
    """True for finite int/float/Decimal values (bool excluded)."""
    if isinstance(value, bool):
        return False
    if isinstance(value, Decimal):
        return value.is_finite()
    if isinstance(value, Real):
        return math.isfinite(value)
    return False


def to_decimal(value, max_decimal_places: int | None = None) -> Decimal:
    """
    Convert int / float / Decimal / str to Decimal.

    Floats go through str() so 0.1 stays 0.1. Strings are normalized and,
    when max_decimal_places is given, checked for precision.
    """
    if isinstance(value, str):
        if max_decimal_places is not None:
            return Decimal(validate_and_normalize_amount(value, max_decimal_places))
        try:
            result = Decimal(normalize_decimal_input(value))
        except (InvalidOperation, ValueError):
            raise InvalidArgumentError(f"Invalid amount: {value!r}") from None
        if not result.is_finite():
            raise InvalidArgumentError(f"Invalid amount: {value!r}")
        return result

    if not is_number(value):
        raise InvalidArgumentError(f"Invalid amount: {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    return Decimal(str(value))
