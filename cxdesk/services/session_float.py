"""Float views and per-repository float operations for a session."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal, Mapping, Sequence

from sqlalchemy.orm import Session

from cxdesk import models
from cxdesk.core.context import CallerContext
from cxdesk.core.errors import (
    FloatAccessDeniedError,
    FloatNotConfirmedError,
    NotAuthorizedForSessionError,
    NotFoundError,
    RepositoryNotCountableError,
)
from cxdesk.services.atomic import atomic_unit
from cxdesk.services.float_reconciliation import (
    CurrencyPanelState,
    FloatState,
    OffBalance,
    are_float_stacks_confirmed,
    build_currency_panel_state,
    currency_decimal_count,
    get_float_state,
    off_balance_for,
    process_skip_float_count,
    sort_stacks_by_value,
)
from cxdesk.services.float_stack_ledger import update_count
from cxdesk.services.repository_state import RepositoryState, derive_repository_state
from cxdesk.services.session_state import FLOAT_READ_STATUSES, get_session_for_caller

logger = logging.getLogger("cxdesk.float")

ValidateAction = Literal["VALIDATE_OPEN", "VALIDATE_CLOSE"]

COUNTABLE_FLOAT_STATES = (FloatState.OPEN, FloatState.CLOSE)


@dataclass(frozen=True)
class CurrencyFloatView:
    ticker: str
    currency_type: models.CurrencyType | None
    decimal_count: int
    float_stacks: list[models.FloatStack]
    panel: CurrencyPanelState
    confirmed: bool
    off_balance: OffBalance | None


@dataclass(frozen=True)
class RepositoryFloatView:
    repository: models.Repository
    state: RepositoryState
    float_state: FloatState
    access_logs: list[models.RepositoryAccessLog]
    currencies: list[CurrencyFloatView]


@dataclass(frozen=True)
class SessionFloatView:
    session: models.CxSession
    repositories: list[RepositoryFloatView]


@dataclass(frozen=True)
class RepositoryValidation:
    repository_id: int
    action: str
    validated_stacks: int


def _readable_session(db: Session, ctx: CallerContext, session_id: int) -> models.CxSession:
    session = get_session_for_caller(db=db, ctx=ctx, session_id=session_id)
    if session.status not in FLOAT_READ_STATUSES:
        raise FloatAccessDeniedError(session.status, FLOAT_READ_STATUSES)
    return session


def _repository_for(
    db: Session, session: models.CxSession, repository_id: int
) -> models.Repository:
    repository = db.get(models.Repository, int(repository_id))
    if repository is None or repository.organization_id != session.organization_id:
        raise NotFoundError("repository", repository_id)
    return repository


def _build_repository_view(
    repository: models.Repository,
    logs: list[models.RepositoryAccessLog],
    stacks: Sequence[models.FloatStack],
    currencies: Mapping[str, models.Currency],
) -> RepositoryFloatView:
    state = derive_repository_state(logs)
    float_state = get_float_state(state)

    by_ticker: dict[str, list[models.FloatStack]] = defaultdict(list)
    for stack in stacks:
        by_ticker[stack.ticker].append(stack)

    # Keep the repository's configured ticker order, then anything unexpected.
    ordered = [t for t in (repository.currency_tickers or []) if t in by_ticker]
    ordered += sorted(t for t in by_ticker if t not in ordered)

    views: list[CurrencyFloatView] = []
    for ticker in ordered:
        ticker_stacks = sort_stacks_by_value(by_ticker[ticker])
        panel = build_currency_panel_state(ticker_stacks)
        currency = currencies.get(ticker)
        currency_type = currency.type_of if currency is not None else None
        views.append(
            CurrencyFloatView(
                ticker=ticker,
                currency_type=currency_type,
                decimal_count=currency_decimal_count(currency_type),
                float_stacks=ticker_stacks,
                panel=panel,
                confirmed=are_float_stacks_confirmed(float_state, ticker_stacks),
                off_balance=off_balance_for(float_state, panel),
            )
        )

    return RepositoryFloatView(
        repository=repository,
        state=state,
        float_state=float_state,
        access_logs=logs,
        currencies=views,
    )


def _currencies_by_ticker(db: Session, organization_id: int) -> dict[str, models.Currency]:
    return {
        c.ticker: c
        for c in db.query(models.Currency)
        .filter(models.Currency.organization_id == organization_id)
        .all()
    }


def _session_repository_views(
    db: Session, session: models.CxSession, repositories: list[models.Repository]
) -> list[RepositoryFloatView]:
    repo_ids = [r.id for r in repositories]
    if not repo_ids:
        return []

    logs_by_repo: dict[int, list[models.RepositoryAccessLog]] = defaultdict(list)
    for log in (
        db.query(models.RepositoryAccessLog)
        .filter(models.RepositoryAccessLog.session_id == session.id)
        .filter(models.RepositoryAccessLog.repository_id.in_(repo_ids))
    ):
        logs_by_repo[log.repository_id].append(log)

    stacks_by_repo: dict[int, list[models.FloatStack]] = defaultdict(list)
    for stack in (
        db.query(models.FloatStack)
        .filter(models.FloatStack.session_id == session.id)
        .filter(models.FloatStack.repository_id.in_(repo_ids))
    ):
        stacks_by_repo[stack.repository_id].append(stack)

    currencies = _currencies_by_ticker(db, session.organization_id)
    return [
        _build_repository_view(r, logs_by_repo.get(r.id, []), stacks_by_repo.get(r.id, []), currencies)
        for r in repositories
    ]


def get_session_float(*, db: Session, ctx: CallerContext, session_id: int) -> SessionFloatView:
    """Float of every active repository, grouped by ticker, largest denomination first.

    Readable while the session is DORMANT through FLOAT_CLOSE_START.
    """

    session = _readable_session(db, ctx, session_id)
    repositories = (
        db.query(models.Repository)
        .filter(models.Repository.organization_id == session.organization_id)
        .filter(models.Repository.active.is_(True))
        .order_by(models.Repository.display_order.asc(), models.Repository.id.asc())
        .all()
    )
    return SessionFloatView(
        session=session, repositories=_session_repository_views(db, session, repositories)
    )


def get_repository_float(
    *, db: Session, ctx: CallerContext, session_id: int, repository_id: int
) -> RepositoryFloatView:
    session = _readable_session(db, ctx, session_id)
    repository = _repository_for(db, session, repository_id)
    return _session_repository_views(db, session, [repository])[0]


def _writable_stack(db: Session, ctx: CallerContext, float_stack_id: int) -> models.FloatStack:
    stack = db.get(models.FloatStack, int(float_stack_id))
    if stack is None or stack.organization_id != ctx.organization_id:
        raise NotFoundError("float_stack", float_stack_id)
    session = db.get(models.CxSession, stack.session_id)
    if session is None:
        raise NotFoundError("cx_session", stack.session_id)
    if ctx.user_key not in (session.authorized_user_ids or []):
        raise NotAuthorizedForSessionError(session.id)
    if session.status not in FLOAT_READ_STATUSES:
        raise FloatAccessDeniedError(session.status, FLOAT_READ_STATUSES)
    return stack


def update_float_stack(
    *,
    db: Session,
    ctx: CallerContext,
    float_stack_id: int,
    fields: Mapping[str, Any],
    now: datetime | None = None,
) -> models.FloatStack:
    stack = _writable_stack(db, ctx, float_stack_id)
    with atomic_unit(db, label="update_float_stack"):
        update_count(stack=stack, fields=fields, now=now)
    db.refresh(stack)
    logger.info(
        "float_stack_updated",
        extra={"float_stack_id": stack.id, "fields": sorted(fields), "user_id": ctx.user_id},
    )
    return stack


def _repository_stacks(
    db: Session, session: models.CxSession, repository: models.Repository
) -> list[models.FloatStack]:
    return (
        db.query(models.FloatStack)
        .filter(models.FloatStack.session_id == session.id)
        .filter(models.FloatStack.repository_id == repository.id)
        .order_by(models.FloatStack.id.asc())
        .all()
    )


def update_repository_float(
    *,
    db: Session,
    ctx: CallerContext,
    session_id: int,
    repository_id: int,
    updates: Sequence[tuple[int, Mapping[str, Any]]],
    now: datetime | None = None,
) -> list[models.FloatStack]:
    """Apply a batch of count patches; every stack must belong to this session and repository."""

    session = _readable_session(db, ctx, session_id)
    repository = _repository_for(db, session, repository_id)
    stacks = {s.id: s for s in _repository_stacks(db, session, repository)}

    missing = [stack_id for stack_id, _ in updates if stack_id not in stacks]
    if missing:
        raise NotFoundError("float_stack", missing[0])

    now = now or datetime.now(timezone.utc)
    with atomic_unit(db, label="update_repository_float"):
        for stack_id, fields in updates:
            update_count(stack=stacks[stack_id], fields=fields, now=now)

    updated = [stacks[stack_id] for stack_id, _ in updates]
    for stack in updated:
        db.refresh(stack)
    return updated


def validate_repository_float(
    *,
    db: Session,
    ctx: CallerContext,
    session_id: int,
    repository_id: int,
    action: ValidateAction,
    now: datetime | None = None,
) -> RepositoryValidation:
    session = _readable_session(db, ctx, session_id)
    repository = _repository_for(db, session, repository_id)

    stacks = _repository_stacks(db, session, repository)
    if not stacks:
        raise NotFoundError("float_stack", None)

    if action == "VALIDATE_OPEN":
        float_state = FloatState.OPEN
    elif action == "VALIDATE_CLOSE":
        float_state = FloatState.CLOSE
    else:
        raise ValueError(f"unsupported validate action: {action}")

    unconfirmed = [
        s.id for s in stacks if not are_float_stacks_confirmed(float_state, [s])
    ]
    if unconfirmed:
        raise FloatNotConfirmedError(float_state, float_stack_ids=unconfirmed)

    now = now or datetime.now(timezone.utc)
    query = (
        db.query(models.RepositoryAccessLog)
        .filter(models.RepositoryAccessLog.session_id == session.id)
        .filter(models.RepositoryAccessLog.repository_id == repository.id)
    )
    with atomic_unit(db, label="validate_repository_float"):
        if float_state == FloatState.OPEN:
            query.filter(models.RepositoryAccessLog.open_confirm_dt.is_(None)).update(
                {"open_confirm_dt": now, "open_confirm_user_id": ctx.user_id},
                synchronize_session=False,
            )
        else:
            query.filter(models.RepositoryAccessLog.close_confirm_dt.is_(None)).update(
                {"close_confirm_dt": now, "close_confirm_user_id": ctx.user_id, "release_dt": now},
                synchronize_session=False,
            )

    logger.info(
        "repository_float_validated",
        extra={
            "session_id": session.id,
            "repository_id": repository.id,
            "action": action,
            "validated_stacks": len(stacks),
        },
    )
    return RepositoryValidation(
        repository_id=repository.id, action=action, validated_stacks=len(stacks)
    )


def skip_repository_count(
    *,
    db: Session,
    ctx: CallerContext,
    session_id: int,
    repository_id: int,
    now: datetime | None = None,
) -> RepositoryFloatView:
    """Record the expected balance as the count for every stack of a repository."""

    session = _readable_session(db, ctx, session_id)
    repository = _repository_for(db, session, repository_id)
    view = _session_repository_views(db, session, [repository])[0]

    if view.float_state not in COUNTABLE_FLOAT_STATES:
        raise RepositoryNotCountableError(repository.id, view.float_state, COUNTABLE_FLOAT_STATES)

    now = now or datetime.now(timezone.utc)
    stacks = [s for c in view.currencies for s in c.float_stacks]
    patches = process_skip_float_count(stacks, view.float_state, now=now)
    by_id = {s.id: s for s in stacks}

    with atomic_unit(db, label="skip_repository_count"):
        for patch in patches:
            fields = {k: v for k, v in patch.items() if k != "id"}
            update_count(stack=by_id[patch["id"]], fields=fields, now=now)

    logger.info(
        "repository_count_skipped",
        extra={
            "session_id": session.id,
            "repository_id": repository.id,
            "float_state": view.float_state.value,
            "stacks": len(patches),
        },
    )
    return get_repository_float(db=db, ctx=ctx, session_id=session.id, repository_id=repository.id)
