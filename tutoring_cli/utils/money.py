from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from tutoring_cli.errors import ValidationError

CENTS = Decimal("0.01")


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """Convert user or database input into a two-place Decimal."""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Invalid {field}: {value!r}")
    if not result.is_finite():
        raise ValidationError(f"Invalid {field}: {value!r}")
    try:
        return result.quantize(CENTS)
    except InvalidOperation:
        raise ValidationError(f"Invalid {field}: {value!r}")


def to_optional_decimal(value: Any, field: str = "amount") -> Optional[Decimal]:
    if value is None:
        return None
    return to_decimal(value, field)


def require_positive(value: Any, field: str = "amount") -> Decimal:
    amount = to_decimal(value, field)
    if amount <= 0:
        raise ValidationError(f"{field.capitalize()} must be greater than zero")
    return amount


def require_non_negative(value: Any, field: str = "fee") -> Decimal:
    amount = to_decimal(value, field)
    if amount < 0:
        raise ValidationError(f"{field.capitalize()} cannot be negative")
    return amount
