"""Breakdown validation and commit for swaps, transfers and orders.

A commit validates every entry up front, then applies the float-stack
movements and breakdown inserts in the order given and writes the activity
record last, all inside one ``atomic_unit``. Recommitting a direction replaces
the rows committed earlier for it. Nothing of a failed commit survives, and a
swap or transfer that is left without any breakdown goes with it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Literal, Sequence

from sqlalchemy.orm import Session

from cxdesk import models
from cxdesk.core.context import CallerContext
from cxdesk.core.errors import (
    BreakdownValidationError,
    CommitFailedError,
    CxDeskError,
    InvalidSessionTransitionError,
    MovementValidationError,
    NotFoundError,
)
from cxdesk.services.activity import record_activity
from cxdesk.services.atomic import atomic_unit
from cxdesk.services.float_stack_ledger import (
    apply_directional_delta,
    apply_spend_delta,
    decimal_to_str,
    to_decimal,
)
from cxdesk.services.session_state import get_session_for_caller, require_active_user

logger = logging.getLogger("cxdesk.breakdowns")

BT = models.BreakableType
Direction = models.BreakdownDirection

ParentType = Literal["CURRENCY_SWAP", "FLOAT_TRANSFER", "ORDER"]

MOVEMENT_STATUSES = (models.SessionStatus.FLOAT_OPEN_COMPLETE,)


@dataclass(frozen=True)
class BreakdownLine:
    count: Decimal
    denomination_value: Decimal
    direction: models.BreakdownDirection


@dataclass(frozen=True)
class BreakdownEntry:
    float_stack_id: int
    denomination_id: int
    count: Decimal
    direction: models.BreakdownDirection


@dataclass(frozen=True)
class CommitResult:
    success: bool
    parent_type: models.BreakableType
    parent_id: int
    breakdown_ids: list[int]


@dataclass(frozen=True)
class _ResolvedEntry:
    entry: BreakdownEntry
    stack: models.FloatStack


def _direction(value: Any) -> models.BreakdownDirection:
    if isinstance(value, models.BreakdownDirection):
        return value
    try:
        return models.BreakdownDirection(str(value))
    except ValueError:
        raise BreakdownValidationError(
            f"Unknown breakdown direction: {value}", reason="invalid_direction"
        ) from None


def _check_count(count: Decimal) -> None:
    if not count.is_finite() or count <= 0:
        raise BreakdownValidationError(
            f"Breakdown count must be a positive number, got {count}",
            reason="invalid_count",
            count=str(count),
        )


def validate_breakdown_sums(
    lines: Iterable[BreakdownLine],
    *,
    inbound_sum: Any,
    outbound_sum: Any,
    directions: Iterable[models.BreakdownDirection] | None = None,
) -> dict[models.BreakdownDirection, Decimal]:
    """Check sum(count * denomination value) per direction against the declared sums.

    Only directions present in ``lines`` are checked unless ``directions`` is
    given. Returns the computed totals.
    """

    lines = list(lines)
    totals: dict[models.BreakdownDirection, Decimal] = {}
    for line in lines:
        direction = _direction(line.direction)
        _check_count(line.count)
        totals[direction] = totals.get(direction, Decimal("0")) + (
            line.count * line.denomination_value
        )

    declared = {
        Direction.INBOUND: to_decimal(inbound_sum),
        Direction.OUTBOUND: to_decimal(outbound_sum),
    }
    to_check = list(directions) if directions is not None else list(totals)
    for direction in to_check:
        expected = declared[direction]
        actual = totals.get(direction, Decimal("0"))
        if not expected.is_finite() or actual != expected:
            raise BreakdownValidationError.sum_mismatch(
                direction, decimal_to_str(expected), decimal_to_str(actual)
            )
    return totals


def _insert_breakdown(
    db: Session,
    *,
    organization_id: int,
    parent_type: models.BreakableType,
    parent_id: int,
    entry: BreakdownEntry,
    user_id: int | None,
) -> models.Breakdown:
    row = models.Breakdown(
        organization_id=organization_id,
        breakable_type=parent_type,
        breakable_id=parent_id,
        float_stack_id=entry.float_stack_id,
        denomination_id=entry.denomination_id,
        count=decimal_to_str(entry.count),
        direction=entry.direction,
        status=models.BreakdownStatus.COMMITTED,
        created_by_user_id=user_id,
    )
    db.add(row)
    db.flush()
    return row


def _resolve_entries(
    db: Session,
    *,
    organization_id: int,
    session_id: int | None,
    entries: Sequence[BreakdownEntry],
    repositories: dict[models.BreakdownDirection, int | None],
    tickers: dict[models.BreakdownDirection, str | None],
) -> list[_ResolvedEntry]:
    resolved: list[_ResolvedEntry] = []
    for entry in entries:
        _check_count(entry.count)
        stack = db.get(models.FloatStack, int(entry.float_stack_id))
        if stack is None or stack.organization_id != organization_id:
            raise NotFoundError("float_stack", entry.float_stack_id)
        if session_id is not None and stack.session_id != session_id:
            raise BreakdownValidationError(
                "Float stack belongs to another session",
                reason="float_stack_session_mismatch",
                float_stack_id=stack.id,
            )
        repository_id = repositories.get(entry.direction)
        if repository_id is not None and stack.repository_id != repository_id:
            raise BreakdownValidationError(
                f"{entry.direction.value} float stack is not in repository {repository_id}",
                reason="float_stack_repository_mismatch",
                float_stack_id=stack.id,
            )
        ticker = tickers.get(entry.direction)
        if ticker is not None and stack.ticker != ticker:
            raise BreakdownValidationError(
                f"{entry.direction.value} float stack holds {stack.ticker}, expected {ticker}",
                reason="float_stack_ticker_mismatch",
                float_stack_id=stack.id,
            )
        if stack.denomination_id != entry.denomination_id:
            raise BreakdownValidationError(
                "Denomination does not match the float stack",
                reason="denomination_mismatch",
                float_stack_id=stack.id,
                denomination_id=entry.denomination_id,
            )
        resolved.append(_ResolvedEntry(entry=entry, stack=stack))
    return resolved


def _lines(resolved: Iterable[_ResolvedEntry]) -> list[BreakdownLine]:
    return [
        BreakdownLine(
            count=r.entry.count,
            denomination_value=to_decimal(r.stack.denominated_value),
            direction=r.entry.direction,
        )
        for r in resolved
    ]


def _apply(
    db: Session,
    *,
    organization_id: int,
    parent_type: models.BreakableType,
    parent_id: int,
    resolved: Sequence[_ResolvedEntry],
    user_id: int | None,
    now: datetime,
) -> list[int]:
    """Mutate stacks and insert breakdowns in caller order. Caller owns the transaction."""

    breakdown_ids: list[int] = []
    for item in resolved:
        if parent_type == BT.ORDER:
            apply_spend_delta(
                stack=item.stack, count=item.entry.count, direction=item.entry.direction, now=now
            )
        else:
            apply_directional_delta(
                stack=item.stack, count=item.entry.count, direction=item.entry.direction, now=now
            )
        row = _insert_breakdown(
            db,
            organization_id=organization_id,
            parent_type=parent_type,
            parent_id=parent_id,
            entry=item.entry,
            user_id=user_id,
        )
        breakdown_ids.append(row.id)
    return breakdown_ids


def _movement_session(db: Session, ctx: CallerContext, session_id: int) -> models.CxSession:
    session = get_session_for_caller(db=db, ctx=ctx, session_id=session_id)
    if session.status not in MOVEMENT_STATUSES:
        raise InvalidSessionTransitionError(session.status, "CREATE_MOVEMENT", MOVEMENT_STATUSES)
    require_active_user(db, ctx)
    return session


def _org_repository(db: Session, organization_id: int, repository_id: int) -> models.Repository:
    repository = db.get(models.Repository, int(repository_id))
    if repository is None or repository.organization_id != organization_id:
        raise NotFoundError("repository", repository_id)
    return repository


def _nonzero_sums(parent: str, inbound_sum: Any, outbound_sum: Any) -> tuple[Decimal, Decimal]:
    inbound = to_decimal(inbound_sum)
    outbound = to_decimal(outbound_sum)
    if not inbound.is_finite() or inbound == 0:
        raise MovementValidationError(f"Inbound sum cannot be 0 for {parent}", field="inbound_sum")
    if not outbound.is_finite() or outbound == 0:
        raise MovementValidationError(f"Outbound sum cannot be 0 for {parent}", field="outbound_sum")
    return inbound, outbound


def _prepare_movement(
    db: Session,
    *,
    ctx: CallerContext,
    session_id: int,
    parent: str,
    inbound_repository_id: int,
    outbound_repository_id: int,
    ticker: str,
    inbound_sum: Any,
    outbound_sum: Any,
    entries: Sequence[BreakdownEntry],
) -> tuple[models.CxSession, list[_ResolvedEntry], Decimal, Decimal]:
    session = _movement_session(db, ctx, session_id)
    inbound, outbound = _nonzero_sums(parent, inbound_sum, outbound_sum)
    _org_repository(db, session.organization_id, inbound_repository_id)
    _org_repository(db, session.organization_id, outbound_repository_id)

    resolved = _resolve_entries(
        db,
        organization_id=session.organization_id,
        session_id=session.id,
        entries=entries,
        repositories={
            Direction.INBOUND: inbound_repository_id,
            Direction.OUTBOUND: outbound_repository_id,
        },
        tickers={Direction.INBOUND: ticker, Direction.OUTBOUND: ticker},
    )
    validate_breakdown_sums(
        _lines(resolved),
        inbound_sum=inbound,
        outbound_sum=outbound,
        directions=(Direction.INBOUND, Direction.OUTBOUND),
    )
    return session, resolved, inbound, outbound


def _commit_failed(exc: Exception, **context: Any) -> CommitFailedError:
    logger.exception("breakdown_commit_failed", extra=context)
    return CommitFailedError()


def create_swap(
    *,
    db: Session,
    ctx: CallerContext,
    session_id: int,
    inbound_repository_id: int,
    outbound_repository_id: int,
    ticker: str,
    inbound_sum: Any,
    outbound_sum: Any,
    entries: Sequence[BreakdownEntry],
    now: datetime | None = None,
) -> models.CurrencySwap:
    """Create a currency swap with its breakdowns in one atomic unit."""

    session, resolved, inbound, outbound = _prepare_movement(
        db,
        ctx=ctx,
        session_id=session_id,
        parent="CurrencySwap",
        inbound_repository_id=inbound_repository_id,
        outbound_repository_id=outbound_repository_id,
        ticker=ticker,
        inbound_sum=inbound_sum,
        outbound_sum=outbound_sum,
        entries=entries,
    )
    currency = (
        db.query(models.Currency)
        .filter(models.Currency.organization_id == session.organization_id)
        .filter(models.Currency.ticker == ticker)
        .first()
    )
    if currency is None:
        raise MovementValidationError(f"Currency not found: {ticker}", field="ticker")

    now = now or datetime.now(timezone.utc)
    swap_id: int | None = None
    try:
        with atomic_unit(db, label="create_swap"):
            swap = models.CurrencySwap(
                organization_id=session.organization_id,
                session_id=session.id,
                user_id=ctx.user_id,
                currency_id=currency.id,
                inbound_repository_id=inbound_repository_id,
                outbound_repository_id=outbound_repository_id,
                inbound_ticker=ticker,
                outbound_ticker=ticker,
                inbound_sum=decimal_to_str(inbound),
                outbound_sum=decimal_to_str(outbound),
                swap_value=decimal_to_str(inbound),
            )
            db.add(swap)
            db.flush()
            swap_id = swap.id
            breakdown_ids = _apply(
                db,
                organization_id=session.organization_id,
                parent_type=BT.CURRENCY_SWAP,
                parent_id=swap.id,
                resolved=resolved,
                user_id=ctx.user_id,
                now=now,
            )
            record_activity(
                db=db,
                organization_id=session.organization_id,
                user_id=ctx.user_id,
                event="SWAP_CREATED",
                session_id=session.id,
                reference_id=swap.id,
                meta={"ticker": ticker, "breakdown_ids": breakdown_ids},
            )
    except CxDeskError:
        raise
    except Exception as exc:
        raise _commit_failed(
            exc,
            parent_type=BT.CURRENCY_SWAP.value,
            parent_id=swap_id,
            session_id=session.id,
            user_id=ctx.user_id,
            entries=len(resolved),
        ) from exc

    db.refresh(swap)
    logger.info(
        "swap_created",
        extra={"swap_id": swap.id, "session_id": session.id, "breakdowns": len(breakdown_ids)},
    )
    return swap


def create_transfer(
    *,
    db: Session,
    ctx: CallerContext,
    session_id: int,
    inbound_repository_id: int,
    outbound_repository_id: int,
    ticker: str,
    inbound_sum: Any,
    outbound_sum: Any,
    entries: Sequence[BreakdownEntry],
    notes: str | None = None,
    now: datetime | None = None,
) -> models.FloatTransfer:
    session, resolved, inbound, outbound = _prepare_movement(
        db,
        ctx=ctx,
        session_id=session_id,
        parent="FloatTransfer",
        inbound_repository_id=inbound_repository_id,
        outbound_repository_id=outbound_repository_id,
        ticker=ticker,
        inbound_sum=inbound_sum,
        outbound_sum=outbound_sum,
        entries=entries,
    )

    now = now or datetime.now(timezone.utc)
    transfer_id: int | None = None
    try:
        with atomic_unit(db, label="create_transfer"):
            transfer = models.FloatTransfer(
                organization_id=session.organization_id,
                session_id=session.id,
                user_id=ctx.user_id,
                inbound_repository_id=inbound_repository_id,
                outbound_repository_id=outbound_repository_id,
                inbound_ticker=ticker,
                outbound_ticker=ticker,
                inbound_sum=decimal_to_str(inbound),
                outbound_sum=decimal_to_str(outbound),
                notes=notes,
            )
            db.add(transfer)
            db.flush()
            transfer_id = transfer.id
            breakdown_ids = _apply(
                db,
                organization_id=session.organization_id,
                parent_type=BT.FLOAT_TRANSFER,
                parent_id=transfer.id,
                resolved=resolved,
                user_id=ctx.user_id,
                now=now,
            )
            record_activity(
                db=db,
                organization_id=session.organization_id,
                user_id=ctx.user_id,
                event="TRANSFER_CREATED",
                session_id=session.id,
                reference_id=transfer.id,
                meta={"ticker": ticker, "breakdown_ids": breakdown_ids},
            )
    except CxDeskError:
        raise
    except Exception as exc:
        raise _commit_failed(
            exc,
            parent_type=BT.FLOAT_TRANSFER.value,
            parent_id=transfer_id,
            session_id=session.id,
            user_id=ctx.user_id,
            entries=len(resolved),
        ) from exc

    db.refresh(transfer)
    logger.info(
        "transfer_created",
        extra={
            "transfer_id": transfer.id,
            "session_id": session.id,
            "breakdowns": len(breakdown_ids),
        },
    )
    return transfer


_PARENT_MODELS = {
    BT.CURRENCY_SWAP: models.CurrencySwap,
    BT.FLOAT_TRANSFER: models.FloatTransfer,
    BT.ORDER: models.Order,
}


def _load_parent(db: Session, ctx: CallerContext, parent_type: models.BreakableType, parent_id: int):
    parent = db.get(_PARENT_MODELS[parent_type], int(parent_id))
    if parent is None or parent.organization_id != ctx.organization_id:
        raise NotFoundError(parent_type.value.lower(), parent_id)
    if parent.session_id is not None:
        # Raises when the caller is not authorized for the parent's session.
        get_session_for_caller(db=db, ctx=ctx, session_id=parent.session_id)
    return parent


def _require_open_float(db: Session, session_ids: Iterable[int | None], action: str) -> None:
    """Stacks of a session whose float is not open are frozen."""

    for session_id in sorted({s for s in session_ids if s is not None}):
        session = db.get(models.CxSession, session_id)
        if session is not None and session.status not in MOVEMENT_STATUSES:
            raise InvalidSessionTransitionError(session.status, action, MOVEMENT_STATUSES)


def _committed_rows(
    db: Session,
    parent_type: models.BreakableType,
    parent_id: int,
    directions: Iterable[models.BreakdownDirection] | None = None,
) -> list[models.Breakdown]:
    query = (
        db.query(models.Breakdown)
        .filter(models.Breakdown.breakable_type == parent_type)
        .filter(models.Breakdown.breakable_id == parent_id)
        .filter(models.Breakdown.status == models.BreakdownStatus.COMMITTED)
    )
    if directions is not None:
        query = query.filter(models.Breakdown.direction.in_(list(directions)))
    return query.order_by(models.Breakdown.id.asc()).all()


def _reverse(
    db: Session,
    parent_type: models.BreakableType,
    rows: Sequence[models.Breakdown],
    now: datetime,
) -> list[int]:
    """Undo the stack movement of committed rows and mark them CANCELLED."""

    move = apply_spend_delta if parent_type == BT.ORDER else apply_directional_delta
    for row in rows:
        stack = db.get(models.FloatStack, row.float_stack_id)
        if stack is None:
            raise NotFoundError("float_stack", row.float_stack_id)
        opposite = Direction.INBOUND if row.direction == Direction.OUTBOUND else Direction.OUTBOUND
        move(stack=stack, count=to_decimal(row.count), direction=opposite, now=now)
        row.status = models.BreakdownStatus.CANCELLED
    db.flush()
    return [row.id for row in rows]


def _remove_parent(db: Session, parent_type: models.BreakableType, parent_id: int) -> None:
    """Drop a swap/transfer left without any movement by a failed commit.

    A parent that already owns breakdown rows stays; its earlier commit is
    still on the stacks and the failed unit was rolled back around it.
    """

    if parent_type == BT.ORDER:
        return
    owned = (
        db.query(models.Breakdown.id)
        .filter(models.Breakdown.breakable_type == parent_type)
        .filter(models.Breakdown.breakable_id == parent_id)
        .first()
    )
    if owned is not None:
        logger.warning(
            "breakdown_parent_kept",
            extra={"parent_type": parent_type.value, "parent_id": parent_id},
        )
        return
    try:
        with atomic_unit(db, label="remove_breakdown_parent"):
            parent = db.get(_PARENT_MODELS[parent_type], parent_id)
            if parent is not None:
                db.delete(parent)
    except Exception:
        logger.exception(
            "breakdown_parent_removal_failed",
            extra={"parent_type": parent_type.value, "parent_id": parent_id},
        )
        return
    logger.warning(
        "breakdown_parent_removed",
        extra={"parent_type": parent_type.value, "parent_id": parent_id},
    )


def commit_breakdowns(
    *,
    db: Session,
    ctx: CallerContext,
    parent_type: ParentType | models.BreakableType,
    parent_id: int,
    entries: Sequence[BreakdownEntry],
    now: datetime | None = None,
) -> CommitResult:
    """Commit breakdowns for an existing parent.

    Swaps and transfers move ``close_count``; orders move ``spent_during_session``.
    Every direction present in the batch replaces the parent's committed
    breakdowns for that direction: the earlier rows are reversed and marked
    CANCELLED first, so the committed total per direction always equals the
    parent's declared sum.
    """

    parent_type = models.BreakableType(getattr(parent_type, "value", parent_type))
    if not entries:
        raise BreakdownValidationError("At least one breakdown is required", reason="empty")

    parent = _load_parent(db, ctx, parent_type, parent_id)
    resolved = _resolve_entries(
        db,
        organization_id=parent.organization_id,
        session_id=parent.session_id,
        entries=entries,
        repositories={
            Direction.INBOUND: parent.inbound_repository_id,
            Direction.OUTBOUND: parent.outbound_repository_id,
        },
        tickers={
            Direction.INBOUND: parent.inbound_ticker,
            Direction.OUTBOUND: parent.outbound_ticker,
        },
    )
    _require_open_float(
        db,
        [parent.session_id, *(r.stack.session_id for r in resolved)],
        "COMMIT_BREAKDOWNS",
    )
    validate_breakdown_sums(
        _lines(resolved), inbound_sum=parent.inbound_sum, outbound_sum=parent.outbound_sum
    )
    directions = {r.entry.direction for r in resolved}

    now = now or datetime.now(timezone.utc)
    try:
        with atomic_unit(db, label="commit_breakdowns"):
            replaced_ids = _reverse(
                db, parent_type, _committed_rows(db, parent_type, parent.id, directions), now
            )
            breakdown_ids = _apply(
                db,
                organization_id=parent.organization_id,
                parent_type=parent_type,
                parent_id=parent.id,
                resolved=resolved,
                user_id=ctx.user_id,
                now=now,
            )
            record_activity(
                db=db,
                organization_id=parent.organization_id,
                user_id=ctx.user_id,
                event=f"{parent_type.value}_BREAKDOWNS_COMMITTED",
                session_id=parent.session_id,
                reference_id=parent.id,
                meta={"breakdown_ids": breakdown_ids, "replaced_breakdown_ids": replaced_ids},
            )
    except Exception as exc:
        _remove_parent(db, parent_type, int(parent_id))
        if isinstance(exc, CxDeskError):
            raise
        raise _commit_failed(
            exc,
            parent_type=parent_type.value,
            parent_id=parent_id,
            user_id=ctx.user_id,
            entries=len(resolved),
        ) from exc

    logger.info(
        "breakdowns_committed",
        extra={
            "parent_type": parent_type.value,
            "parent_id": parent_id,
            "breakdowns": len(breakdown_ids),
            "replaced": len(replaced_ids),
        },
    )
    return CommitResult(
        success=True, parent_type=parent_type, parent_id=int(parent_id), breakdown_ids=breakdown_ids
    )


def uncommit_breakdowns(
    *,
    db: Session,
    ctx: CallerContext,
    parent_type: ParentType | models.BreakableType,
    parent_id: int,
    now: datetime | None = None,
) -> CommitResult:
    """Reverse an order's committed breakdowns and mark them CANCELLED."""

    parent_type = models.BreakableType(getattr(parent_type, "value", parent_type))
    if parent_type != BT.ORDER:
        raise BreakdownValidationError(
            "Only order breakdowns can be uncommitted", reason="unsupported_parent_type"
        )
    order = _load_parent(db, ctx, parent_type, parent_id)
    rows = _committed_rows(db, BT.ORDER, order.id)
    stack_sessions = [
        stack.session_id
        for stack in (db.get(models.FloatStack, row.float_stack_id) for row in rows)
        if stack is not None
    ]
    _require_open_float(db, [order.session_id, *stack_sessions], "UNCOMMIT_BREAKDOWNS")

    now = now or datetime.now(timezone.utc)
    try:
        with atomic_unit(db, label="uncommit_breakdowns"):
            reversed_ids = _reverse(db, BT.ORDER, rows, now)
            record_activity(
                db=db,
                organization_id=order.organization_id,
                user_id=ctx.user_id,
                event="ORDER_UNCOMMITTED",
                session_id=order.session_id,
                reference_id=order.id,
                meta={"breakdown_ids": reversed_ids},
            )
    except CxDeskError:
        raise
    except Exception as exc:
        raise _commit_failed(
            exc, parent_type=parent_type.value, parent_id=parent_id, user_id=ctx.user_id
        ) from exc

    return CommitResult(
        success=True,
        parent_type=parent_type,
        parent_id=order.id,
        breakdown_ids=reversed_ids,
    )


def list_breakdowns(
    *, db: Session, ctx: CallerContext, parent_type: ParentType | models.BreakableType, parent_id: int
) -> list[models.Breakdown]:
    parent_type = models.BreakableType(getattr(parent_type, "value", parent_type))
    _load_parent(db, ctx, parent_type, parent_id)
    return (
        db.query(models.Breakdown)
        .filter(models.Breakdown.breakable_type == parent_type)
        .filter(models.Breakdown.breakable_id == int(parent_id))
        .order_by(models.Breakdown.id.asc())
        .all()
    )


def breakdowns_by_parent(
    db: Session, parent_type: models.BreakableType, parent_ids: Iterable[int]
) -> dict[int, list[models.Breakdown]]:
    ids = list(parent_ids)
    grouped: dict[int, list[models.Breakdown]] = {i: [] for i in ids}
    if not ids:
        return grouped
    for row in (
        db.query(models.Breakdown)
        .filter(models.Breakdown.breakable_type == parent_type)
        .filter(models.Breakdown.breakable_id.in_(ids))
        .order_by(models.Breakdown.id.asc())
    ):
        grouped[row.breakable_id].append(row)
    return grouped


def list_swaps(*, db: Session, ctx: CallerContext, session_id: int) -> list[models.CurrencySwap]:
    session = get_session_for_caller(db=db, ctx=ctx, session_id=session_id)
    return (
        db.query(models.CurrencySwap)
        .filter(models.CurrencySwap.session_id == session.id)
        .order_by(models.CurrencySwap.id.desc())
        .all()
    )


def list_transfers(*, db: Session, ctx: CallerContext, session_id: int) -> list[models.FloatTransfer]:
    session = get_session_for_caller(db=db, ctx=ctx, session_id=session_id)
    return (
        db.query(models.FloatTransfer)
        .filter(models.FloatTransfer.session_id == session.id)
        .order_by(models.FloatTransfer.id.desc())
        .all()
    )
