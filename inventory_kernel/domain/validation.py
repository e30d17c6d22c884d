"""
Pre-flight validation for movement requests and balance queries.

Each validator is a pure function that returns a list of FieldError values
naming the offending field and the reason.  ``validate_movement_request``
composes them into one ValidationResult, and ``require_valid_movement`` is
the single guard the coordinator runs before it opens a transaction.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from inventory_kernel.domain.values import (
    MAX_QUANTITY,
    BalanceKey,
    MovementDirection,
    MovementRequest,
)
from inventory_kernel.exceptions import (
    InvalidDateError,
    InvalidQuantityError,
    InventoryValidationError,
)
from inventory_kernel.logging_config import get_logger

logger = get_logger("domain.validation")

PRODUCT_CODE_PATTERN = re.compile(r"^[A-Z0-9]+$")
ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

MAX_PRODUCT_CODE_LENGTH = 50
MAX_LOT_NUMBER_LENGTH = 50
MAX_NOTE_LENGTH = 2000
MAX_IDEMPOTENCY_KEY_LENGTH = 128
MAX_ACTOR_ID_LENGTH = 100
# Expiry look-ahead, in days; keeps today + window inside the date range
MAX_WINDOW_DAYS = 36_500

INVALID_QUANTITY = "INVALID_QUANTITY"
INVALID_DATE = "INVALID_DATE"


@dataclass(frozen=True)
class FieldError:
    """
    A single validation error.

    Carries a machine-readable code, a human-readable message, the field
    path, and optional details.
    """

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class ValidationResult:
    """Zero or more FieldErrors; valid only when there are none."""

    is_valid: bool
    errors: tuple[FieldError, ...] = field(default_factory=tuple)

    @classmethod
    def success(cls) -> ValidationResult:
        return cls(is_valid=True, errors=())

    @classmethod
    def failure(cls, *errors: FieldError) -> ValidationResult:
        return cls(is_valid=False, errors=tuple(errors))

    @classmethod
    def from_errors(cls, errors: list[FieldError]) -> ValidationResult:
        return cls.failure(*errors) if errors else cls.success()

    def __bool__(self) -> bool:
        return self.is_valid


# ---------------------------------------------------------------------------
# Field validators
# ---------------------------------------------------------------------------


def validate_product_code(value: Any, field_name: str = "product_code") -> list[FieldError]:
    """Product codes are 1-50 upper-case letters and digits (e.g. ZR001)."""
    if not isinstance(value, str) or not value:
        return [FieldError("REQUIRED", "product code is required", field_name)]
    if len(value) > MAX_PRODUCT_CODE_LENGTH:
        return [
            FieldError(
                "TOO_LONG",
                f"product code exceeds {MAX_PRODUCT_CODE_LENGTH} characters",
                field_name,
                {"max_length": MAX_PRODUCT_CODE_LENGTH, "length": len(value)},
            )
        ]
    if not PRODUCT_CODE_PATTERN.fullmatch(value):
        return [
            FieldError(
                "INVALID_FORMAT",
                "product code may only contain upper-case letters and digits",
                field_name,
                {"value": value},
            )
        ]
    return []


def validate_lot_number(value: Any, field_name: str = "lot_number") -> list[FieldError]:
    """Lot numbers are optional; when present they are non-blank strings."""
    if value is None:
        return []
    if not isinstance(value, str):
        return [FieldError("INVALID_TYPE", "lot number must be a string", field_name)]
    if not value.strip():
        return [FieldError("BLANK", "lot number must not be blank", field_name)]
    if len(value) > MAX_LOT_NUMBER_LENGTH:
        return [
            FieldError(
                "TOO_LONG",
                f"lot number exceeds {MAX_LOT_NUMBER_LENGTH} characters",
                field_name,
                {"max_length": MAX_LOT_NUMBER_LENGTH, "length": len(value)},
            )
        ]
    return []


def validate_quantity(value: Any, field_name: str = "quantity") -> list[FieldError]:
    """Quantities are positive integers that fit a BIGINT column."""
    if isinstance(value, bool) or not isinstance(value, int):
        return [
            FieldError(
                INVALID_QUANTITY,
                "quantity must be an integer",
                field_name,
                {"type": type(value).__name__},
            )
        ]
    if value <= 0:
        return [
            FieldError(
                INVALID_QUANTITY,
                "quantity must be at least 1",
                field_name,
                {"value": value},
            )
        ]
    if value > MAX_QUANTITY:
        return [
            FieldError(
                INVALID_QUANTITY,
                f"quantity must not exceed {MAX_QUANTITY}",
                field_name,
                {"value": str(value), "max": MAX_QUANTITY},
            )
        ]
    return []


def parse_date(value: Any, field_name: str) -> tuple[date | None, list[FieldError]]:
    """Parse an optional calendar date given as ``date`` or ``YYYY-MM-DD``."""
    if value is None:
        return None, []
    if isinstance(value, datetime):
        return None, [
            FieldError(INVALID_DATE, "expected a calendar date, not a timestamp", field_name)
        ]
    if isinstance(value, date):
        return value, []
    if isinstance(value, str) and ISO_DATE_PATTERN.fullmatch(value):
        try:
            return date.fromisoformat(value), []
        except ValueError:
            pass
    return None, [
        FieldError(
            INVALID_DATE,
            "date must be in YYYY-MM-DD format",
            field_name,
            {"value": str(value)},
        )
    ]


def parse_direction(value: Any, field_name: str = "direction") -> tuple[MovementDirection | None, list[FieldError]]:
    """Accept a MovementDirection or the strings IN / OUT."""
    if isinstance(value, MovementDirection):
        return value, []
    if isinstance(value, str):
        try:
            return MovementDirection(value.strip().upper()), []
        except ValueError:
            pass
    return None, [
        FieldError(
            "INVALID_DIRECTION",
            "direction must be IN or OUT",
            field_name,
            {"value": str(value)},
        )
    ]


def _validate_optional_text(value: Any, field_name: str, max_length: int) -> list[FieldError]:
    if value is None:
        return []
    if not isinstance(value, str):
        return [FieldError("INVALID_TYPE", f"{field_name} must be a string", field_name)]
    if len(value) > max_length:
        return [
            FieldError(
                "TOO_LONG",
                f"{field_name} exceeds {max_length} characters",
                field_name,
                {"max_length": max_length, "length": len(value)},
            )
        ]
    return []


def validate_idempotency_key(value: Any) -> list[FieldError]:
    errors = _validate_optional_text(value, "idempotency_key", MAX_IDEMPOTENCY_KEY_LENGTH)
    if not errors and value is not None and not value.strip():
        errors.append(FieldError("BLANK", "idempotency key must not be blank", "idempotency_key"))
    return errors


# ---------------------------------------------------------------------------
# Composed guard
# ---------------------------------------------------------------------------


def validate_movement_request(
    product_code: Any,
    direction: Any,
    quantity: Any,
    lot_number: Any = None,
    expiration_date: Any = None,
    note: Any = None,
    idempotency_key: Any = None,
    actor_id: Any = None,
) -> ValidationResult:
    """Run every field validator and collect all errors."""
    errors: list[FieldError] = []
    errors.extend(validate_quantity(quantity))
    errors.extend(validate_product_code(product_code))
    errors.extend(parse_direction(direction)[1])
    errors.extend(validate_lot_number(lot_number))
    errors.extend(parse_date(expiration_date, "expiration_date")[1])
    errors.extend(_validate_optional_text(note, "note", MAX_NOTE_LENGTH))
    errors.extend(validate_idempotency_key(idempotency_key))
    errors.extend(_validate_optional_text(
        None if actor_id is None else str(actor_id), "actor_id", MAX_ACTOR_ID_LENGTH
    ))

    if errors:
        logger.debug(
            "validation_failed",
            extra={
                "error_count": len(errors),
                "error_codes": [e.code for e in errors],
                "fields": [e.field for e in errors],
            },
        )
    return ValidationResult.from_errors(errors)


def raise_for_result(result: ValidationResult) -> None:
    """Raise the most specific validation exception for a failed result.

    A quantity problem wins over a date problem, which wins over the rest;
    every error is carried on the exception regardless.
    """
    if result.is_valid:
        return
    codes = {e.code for e in result.errors}
    if INVALID_QUANTITY in codes:
        raise InvalidQuantityError(result.errors)
    if INVALID_DATE in codes:
        raise InvalidDateError(result.errors)
    raise InventoryValidationError(result.errors)


def require_valid_movement(
    product_code: Any,
    direction: Any,
    quantity: Any,
    lot_number: Any = None,
    expiration_date: Any = None,
    note: Any = None,
    idempotency_key: Any = None,
    actor_id: Any = None,
) -> MovementRequest:
    """The pre-flight guard: validate, then build a normalized request."""
    result = validate_movement_request(
        product_code,
        direction,
        quantity,
        lot_number=lot_number,
        expiration_date=expiration_date,
        note=note,
        idempotency_key=idempotency_key,
        actor_id=actor_id,
    )
    raise_for_result(result)

    parsed_direction, _ = parse_direction(direction)
    parsed_date, _ = parse_date(expiration_date, "expiration_date")
    return MovementRequest(
        key=BalanceKey(product_code, lot_number, parsed_date),
        direction=parsed_direction,
        quantity=quantity,
        note=note,
        idempotency_key=idempotency_key,
        actor_id=None if actor_id is None else str(actor_id),
    )


# ---------------------------------------------------------------------------
# Query validators
# ---------------------------------------------------------------------------


def validate_page(page: Any, limit: Any, max_limit: int) -> list[FieldError]:
    errors: list[FieldError] = []
    if isinstance(page, bool) or not isinstance(page, int) or page < 1:
        errors.append(FieldError("INVALID_PAGE", "page must be an integer >= 1", "page"))
    if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= max_limit:
        errors.append(
            FieldError(
                "INVALID_LIMIT",
                f"limit must be an integer between 1 and {max_limit}",
                "limit",
                {"max_limit": max_limit},
            )
        )
    return errors


def validate_date_range(date_from: date | None, date_to: date | None) -> list[FieldError]:
    if date_from is not None and date_to is not None and date_from > date_to:
        return [
            FieldError(
                INVALID_DATE,
                "expiration_from must not be after expiration_to",
                "expiration_from",
                {"from": date_from.isoformat(), "to": date_to.isoformat()},
            )
        ]
    return []


def validate_window_days(days: Any) -> list[FieldError]:
    if isinstance(days, bool) or not isinstance(days, int) or days < 0:
        return [FieldError("INVALID_WINDOW", "days must be an integer >= 0", "days")]
    if days > MAX_WINDOW_DAYS:
        return [
            FieldError(
                "INVALID_WINDOW",
                f"days must not exceed {MAX_WINDOW_DAYS}",
                "days",
                {"max": MAX_WINDOW_DAYS},
            )
        ]
    return []


def validate_choice(value: Any, allowed: tuple[str, ...], field_name: str) -> list[FieldError]:
    if value not in allowed:
        return [
            FieldError(
                "INVALID_CHOICE",
                f"{field_name} must be one of {', '.join(allowed)}",
                field_name,
                {"value": str(value), "allowed": list(allowed)},
            )
        ]
    return []
