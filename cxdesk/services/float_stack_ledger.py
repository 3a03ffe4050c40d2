"""Float-stack ledger primitives.

``update_count`` and ``apply_directional_delta``/``apply_spend_delta`` are the
only writers of FloatStack counts. Callers own the transaction.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from cxdesk import models

COUNT_FIELDS = (
    "open_count",
    "close_count",
    "midday_count",
    "open_confirmed_dt",
    "close_confirmed_dt",
)

_ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """Parse a stored count/amount. Missing is zero; garbage is NaN."""

    if value is None:
        return _ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        # repr() gives the shortest round-tripping literal (0.1 -> "0.1").
        return Decimal(repr(value))
    s = str(value).strip()
    if not s:
        return _ZERO
    try:
        return Decimal(s)
    except InvalidOperation:
        return Decimal("NaN")


def decimal_to_str(value: Decimal) -> str:
    if value.is_nan():
        return "NaN"
    if value == 0:
        return "0"
    return format(value.normalize(), "f")


def update_count(
    *,
    stack: models.FloatStack,
    fields: Mapping[str, Any],
    now: datetime | None = None,
) -> models.FloatStack:
    """Patch only the provided fields and stamp ``updated_at``.

    No cross-field checks happen here; reconciliation decides what is valid.
    """

    unknown = set(fields) - set(COUNT_FIELDS)
    if unknown:
        raise ValueError(f"unsupported float stack fields: {sorted(unknown)}")

    for name, value in fields.items():
        setattr(stack, name, value)
    stack.updated_at = now or datetime.now(timezone.utc)
    return stack


def current_count(stack: models.FloatStack) -> Decimal:
    """What should physically be present right now."""

    return (
        to_decimal(stack.open_count)
        - to_decimal(stack.spent_during_session)
        - to_decimal(stack.transferred_during_session)
    )


def _signed(count: Decimal, direction: models.BreakdownDirection, *, positive) -> Decimal:
    return count if direction == positive else -count


def apply_directional_delta(
    *,
    stack: models.FloatStack,
    count: Decimal,
    direction: models.BreakdownDirection,
    now: datetime | None = None,
) -> Decimal:
    """Swap/transfer movement: INBOUND adds to ``close_count``, OUTBOUND removes.

    Returns the new close count.
    """

    delta = _signed(count, direction, positive=models.BreakdownDirection.INBOUND)
    new_close = to_decimal(stack.close_count) + delta
    stack.close_count = float(new_close)
    stack.updated_at = now or datetime.now(timezone.utc)
    return new_close


def apply_spend_delta(
    *,
    stack: models.FloatStack,
    count: Decimal,
    direction: models.BreakdownDirection,
    now: datetime | None = None,
) -> Decimal:
    """Order movement: OUTBOUND is spent from the till, INBOUND gives it back."""

    delta = _signed(count, direction, positive=models.BreakdownDirection.OUTBOUND)
    new_spent = to_decimal(stack.spent_during_session) + delta
    stack.spent_during_session = decimal_to_str(new_spent)
    stack.updated_at = now or datetime.now(timezone.utc)
    return new_spent
