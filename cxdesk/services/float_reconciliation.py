"""Reconciliation and aggregation over float stacks.

Pure functions: no database access. Sums are computed with ``Decimal`` and
only formatted (2 places fiat/metal, 8 places crypto) for display.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Iterable, Sequence

from cxdesk import models
from cxdesk.services.float_stack_ledger import current_count, to_decimal
from cxdesk.services.repository_state import RepositoryState

logger = logging.getLogger("cxdesk.float")

CURRENT = "__CURRENT"
SUM_FIELDS = ("last_session_count", "open_count", "midday_count", "close_count")

OFF_BALANCE_THRESHOLD = Decimal("0.01")
_SIGNIFICANT_DIGITS = 4


class FloatState(str, Enum):
    OPEN = "OPEN"
    CLOSE = "CLOSE"
    CURRENT = "CURRENT"
    UNAVAILABLE = "UNAVAILABLE"


class BalanceResult(str, Enum):
    BALANCED = "BALANCED"
    OVER = "OVER"
    SHORT = "SHORT"


@dataclass(frozen=True)
class CurrencyPanelState:
    previous: Decimal
    open: Decimal
    midday: Decimal
    close: Decimal
    current: Decimal


@dataclass(frozen=True)
class OffBalance:
    expected: Decimal
    actual: Decimal
    difference: Decimal
    result: BalanceResult


def count_float_sum(kind: str, stacks: Iterable[models.FloatStack]) -> Decimal:
    """Sum ``count x denominated_value`` over stacks.

    ``kind`` is ``"__CURRENT"`` (derived current count) or one of SUM_FIELDS.
    Terms that are not finite are dropped and logged so a corrupted row cannot
    poison a displayed total.
    """

    if kind != CURRENT and kind not in SUM_FIELDS:
        raise ValueError(f"unknown float sum kind: {kind}")

    total = Decimal("0")
    for stack in stacks:
        if kind == CURRENT:
            count = current_count(stack)
        else:
            count = to_decimal(getattr(stack, kind, None))
        amount = count * to_decimal(stack.denominated_value)
        if not amount.is_finite():
            logger.warning(
                "float_sum_term_skipped",
                extra={"float_stack_id": stack.id, "kind": kind, "amount": str(amount)},
            )
            continue
        total += amount
    return total


def build_currency_panel_state(stacks: Sequence[models.FloatStack]) -> CurrencyPanelState:
    return CurrencyPanelState(
        previous=count_float_sum("last_session_count", stacks),
        open=count_float_sum("open_count", stacks),
        midday=count_float_sum("midday_count", stacks),
        close=count_float_sum("close_count", stacks),
        current=count_float_sum(CURRENT, stacks),
    )


def _state_value(float_state: Any) -> str:
    return str(getattr(float_state, "value", float_state) or "")


def are_float_stacks_confirmed(float_state: Any, stacks: Iterable[models.FloatStack]) -> bool:
    """True iff every stack carries the confirmation for ``float_state``.

    OPEN* states check ``open_confirmed_dt``, CLOSE* states ``close_confirmed_dt``.
    An empty set passes; callers check whether counting is required at all.
    """

    state = _state_value(float_state)

    def _confirmed(stack: models.FloatStack) -> bool:
        if state.startswith("OPEN"):
            return stack.open_confirmed_dt is not None
        if state.startswith("CLOSE"):
            return stack.close_confirmed_dt is not None
        return False

    return all(_confirmed(s) for s in stacks)


def round_significant(value: Decimal, digits: int = _SIGNIFICANT_DIGITS) -> Decimal:
    return Decimal(format(value, f".{digits}g"))


def float_amount_is_within_valid_range(expected: Any, actual: Any) -> bool:
    """Off-balance tolerance check.

    The difference is rounded to four significant digits before being compared
    with the threshold, so float noise just above 0.01 does not register.
    """

    diff = abs(to_decimal(expected) - to_decimal(actual))
    if not diff.is_finite():
        return False
    return round_significant(diff) <= OFF_BALANCE_THRESHOLD


def get_float_state(repository_state: RepositoryState | str) -> FloatState:
    state = _state_value(repository_state)
    if state == RepositoryState.OPEN_START.value:
        return FloatState.OPEN
    if state == RepositoryState.CLOSE_START.value:
        return FloatState.CLOSE
    if state == RepositoryState.OPEN_CONFIRMED.value:
        return FloatState.CURRENT
    return FloatState.UNAVAILABLE


def calculate_off_balance(expected: Any, actual: Any) -> Decimal:
    return to_decimal(actual) - to_decimal(expected)


def classify_balance(balance: Any) -> BalanceResult:
    if float_amount_is_within_valid_range(0, balance):
        return BalanceResult.BALANCED
    return BalanceResult.OVER if to_decimal(balance) > 0 else BalanceResult.SHORT


def off_balance_for(float_state: FloatState, panel: CurrencyPanelState) -> OffBalance | None:
    """Expected vs counted for the counting phase a repository is in.

    Opening compares the count with what the previous session left; closing
    compares it with the derived current balance.
    """

    if float_state == FloatState.OPEN:
        expected, actual = panel.previous, panel.open
    elif float_state == FloatState.CLOSE:
        expected, actual = panel.current, panel.close
    else:
        return None
    difference = calculate_off_balance(expected, actual)
    return OffBalance(
        expected=expected,
        actual=actual,
        difference=difference,
        result=classify_balance(difference),
    )


def currency_decimal_count(currency_type: models.CurrencyType | str | None) -> int:
    return 8 if _state_value(currency_type) == models.CurrencyType.CRYPTO.value else 2


def format_money(amount: Any, decimals: int) -> str:
    value = to_decimal(amount)
    if not value.is_finite():
        return str(value)
    quantum = Decimal(1).scaleb(-decimals)
    return str(value.quantize(quantum, rounding=ROUND_HALF_UP))


def sort_stacks_by_value(stacks: Iterable[models.FloatStack]) -> list[models.FloatStack]:
    return sorted(stacks, key=lambda s: (-(s.denominated_value or 0), s.id or 0))


def expected_balance(stack: models.FloatStack) -> Decimal:
    """Balance a skipped count assumes.

    Until the opening count is confirmed the till should still hold what the
    previous session left; afterwards it is the derived current count.
    """

    if stack.open_confirmed_dt is None:
        return to_decimal(stack.last_session_count)
    return current_count(stack)


def process_skip_float_count(
    stacks: Iterable[models.FloatStack],
    float_state: FloatState | str,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Build per-stack patches that record the expected balance as counted."""

    now = now or datetime.now(timezone.utc)
    state = _state_value(float_state)
    patches: list[dict[str, Any]] = []
    for stack in stacks:
        balance = float(expected_balance(stack))
        if state == FloatState.OPEN.value:
            patches.append({"id": stack.id, "open_count": balance, "open_confirmed_dt": now})
        elif state == FloatState.CLOSE.value:
            patches.append({"id": stack.id, "close_count": balance, "close_confirmed_dt": now})
        else:
            patches.append({"id": stack.id})
    return patches
