"""Session lifecycle.

DORMANT -> FLOAT_OPEN_START -> FLOAT_OPEN_COMPLETE -> FLOAT_CLOSE_START
-> FLOAT_CLOSE_COMPLETE -> CLOSED, with CANCEL_CLOSE stepping back from
FLOAT_CLOSE_START. Every status write is a conditional UPDATE guarded by the
statuses it may leave from, so concurrent operators cannot persist an
out-of-order transition.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Literal

from sqlalchemy.orm import Session

from cxdesk import models
from cxdesk.config import settings
from cxdesk.core.context import CallerContext
from cxdesk.core.errors import (
    FloatNotConfirmedError,
    InvalidSessionTransitionError,
    NotAuthorizedForSessionError,
    NotFoundError,
    SessionCloseBlockedError,
    SessionsNotClosedError,
    UnauthorizedError,
)
from cxdesk.services.activity import emit_activity
from cxdesk.services.atomic import atomic_unit
from cxdesk.services.float_provisioning import ProvisioningResult, provision_session_float
from cxdesk.services.float_reconciliation import FloatState, are_float_stacks_confirmed

logger = logging.getLogger("cxdesk.sessions")

S = models.SessionStatus

CLOSED_STATUSES = (S.FLOAT_CLOSE_COMPLETE, S.CLOSED)
ACTIVE_STATUSES = (S.DORMANT, S.FLOAT_OPEN_START, S.FLOAT_OPEN_COMPLETE, S.FLOAT_CLOSE_START)
FLOAT_READ_STATUSES = ACTIVE_STATUSES
CLOSABLE_STATUSES = (S.FLOAT_CLOSE_START, S.FLOAT_CLOSE_COMPLETE)
SETTLED_ORDER_STATUSES = (models.OrderStatus.COMPLETED, models.OrderStatus.CANCELLED)

# Source statuses per action. START_OPEN may re-run from any active status.
ALLOWED_FROM = {
    "START_OPEN": ACTIVE_STATUSES,
    "CONFIRM_OPEN": (S.FLOAT_OPEN_START,),
    "START_CLOSE": (S.FLOAT_OPEN_COMPLETE,),
    "CANCEL_CLOSE": (S.FLOAT_CLOSE_START,),
    "CONFIRM_CLOSE": (S.FLOAT_CLOSE_START,),
}

StartAction = Literal["START_OPEN", "START_CLOSE", "CANCEL_CLOSE"]
ConfirmAction = Literal["CONFIRM_OPEN", "CONFIRM_CLOSE"]


@dataclass(frozen=True)
class TransitionResult:
    updated: bool
    rowcount: int


@dataclass(frozen=True)
class SessionCreated:
    session: models.CxSession
    provisioning: ProvisioningResult


@dataclass(frozen=True)
class CloseCheck:
    can_close: bool
    error: str | None = None
    blocking_items: list[dict[str, Any]] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def atomic_transition_session_status(
    *,
    db: Session,
    session_id: int,
    to_status: models.SessionStatus,
    allowed_from: Iterable[models.SessionStatus],
    updates: dict[str, Any] | None = None,
) -> TransitionResult:
    """UPDATE cx_sessions SET status = :to ... WHERE id = :id AND status IN (:allowed).

    Callers control commit/rollback.
    """

    values: dict[str, Any] = {"status": to_status}
    if updates:
        values.update(updates)

    rowcount = (
        db.query(models.CxSession)
        .filter(models.CxSession.id == int(session_id))
        .filter(models.CxSession.status.in_(set(allowed_from)))
        .update(values, synchronize_session=False)
    )
    return TransitionResult(updated=rowcount > 0, rowcount=int(rowcount or 0))


def _transition_or_raise(
    db: Session,
    session: models.CxSession,
    *,
    action: str,
    to_status: models.SessionStatus,
    allowed_from: Iterable[models.SessionStatus],
    updates: dict[str, Any] | None = None,
) -> None:
    allowed = tuple(allowed_from)
    result = atomic_transition_session_status(
        db=db, session_id=session.id, to_status=to_status, allowed_from=allowed, updates=updates
    )
    if not result.updated:
        db.refresh(session)
        raise InvalidSessionTransitionError(session.status, action, allowed)


def _ensure_status(session: models.CxSession, action: str, allowed: Iterable[models.SessionStatus]):
    allowed = tuple(allowed)
    if session.status not in allowed:
        raise InvalidSessionTransitionError(session.status, action, allowed)


def get_session_for_caller(
    *,
    db: Session,
    ctx: CallerContext,
    session_id: int,
    require_authorized: bool = True,
) -> models.CxSession:
    session = db.get(models.CxSession, int(session_id))
    # Sessions of other organizations are reported as missing.
    if session is None or session.organization_id != ctx.organization_id:
        raise NotFoundError("cx_session", session_id)
    if require_authorized and ctx.user_key not in (session.authorized_user_ids or []):
        raise NotAuthorizedForSessionError(session.id)
    return session


def require_active_user(db: Session, ctx: CallerContext) -> models.User:
    user = db.get(models.User, ctx.user_id)
    if user is None or not user.active:
        raise UnauthorizedError("User not found or inactive")
    return user


def create_session(
    *,
    db: Session,
    ctx: CallerContext,
    history_window: int | None = None,
    now: datetime | None = None,
) -> SessionCreated:
    """Open a new DORMANT session once the organization's recent sessions are all closed."""

    require_active_user(db, ctx)
    now = now or _utcnow()
    window = history_window or settings.session_history_window

    recent = (
        db.query(models.CxSession)
        .filter(models.CxSession.organization_id == ctx.organization_id)
        .order_by(models.CxSession.created_at.desc(), models.CxSession.id.desc())
        .limit(window)
        .all()
    )
    still_open = [
        {"id": s.id, "status": s.status.value} for s in recent if s.status not in CLOSED_STATUSES
    ]
    if still_open:
        raise SessionsNotClosedError(still_open, CLOSED_STATUSES)

    with atomic_unit(db, label="create_session"):
        session = models.CxSession(
            organization_id=ctx.organization_id,
            status=S.DORMANT,
            authorized_user_ids=[ctx.user_key],
            active_user_id=ctx.user_id,
            created_by_user_id=ctx.user_id,
        )
        db.add(session)
        db.flush()

        provisioning = provision_session_float(
            db=db, session=session, user_id=ctx.user_id, ensure_access_logs=False, now=now
        )
        db.add(
            models.SessionAccessLog(
                session_id=session.id,
                start_dt=now,
                start_owner_id=ctx.user_id,
                user_join_dt=now,
                user_join_id=ctx.user_id,
                authorized_users=[ctx.user_key],
            )
        )

    logger.info(
        "session_created",
        extra={
            "session_id": session.id,
            "organization_id": ctx.organization_id,
            "user_id": ctx.user_id,
            "float_stacks_created": provisioning.created,
        },
    )
    emit_activity(
        "SESSION_CREATED",
        organization_id=ctx.organization_id,
        user_id=ctx.user_id,
        session_id=session.id,
        reference_id=session.id,
        meta={
            "float_stacks_created": provisioning.created,
            "skipped": [asdict(s) for s in provisioning.skipped],
        },
        db=db,
    )
    return SessionCreated(session=session, provisioning=provisioning)


def start_float(
    *,
    db: Session,
    ctx: CallerContext,
    session_id: int,
    action: StartAction,
    now: datetime | None = None,
) -> models.CxSession:
    session = get_session_for_caller(db=db, ctx=ctx, session_id=session_id)
    now = now or _utcnow()
    event: str | None = None
    meta: dict[str, Any] = {}

    if action == "START_OPEN":
        with atomic_unit(db, label="start_float_open"):
            _transition_or_raise(
                db,
                session,
                action=action,
                to_status=S.FLOAT_OPEN_START,
                allowed_from=ALLOWED_FROM[action],
                updates={"open_start_dt": now, "open_start_user_id": ctx.user_id},
            )
            provisioning = provision_session_float(
                db=db, session=session, user_id=ctx.user_id, ensure_access_logs=True, now=now
            )
        event = "FLOAT_OPEN_STARTED"
        meta = {
            "float_stacks_created": provisioning.created,
            "access_logs_created": provisioning.access_logs_created,
        }

    elif action == "START_CLOSE":
        with atomic_unit(db, label="start_float_close"):
            _transition_or_raise(
                db,
                session,
                action=action,
                to_status=S.FLOAT_CLOSE_START,
                allowed_from=ALLOWED_FROM[action],
                updates={"close_start_dt": now, "close_start_user_id": ctx.user_id},
            )
            (
                db.query(models.RepositoryAccessLog)
                .filter(models.RepositoryAccessLog.session_id == session.id)
                .filter(models.RepositoryAccessLog.close_start_dt.is_(None))
                .update(
                    {"close_start_dt": now, "close_start_user_id": ctx.user_id},
                    synchronize_session=False,
                )
            )
        event = "FLOAT_CLOSE_STARTED"

    elif action == "CANCEL_CLOSE":
        with atomic_unit(db, label="cancel_float_close"):
            result = atomic_transition_session_status(
                db=db,
                session_id=session.id,
                to_status=S.FLOAT_OPEN_COMPLETE,
                allowed_from=ALLOWED_FROM[action],
                updates={"close_start_dt": None, "close_start_user_id": None},
            )
            if result.updated:
                (
                    db.query(models.RepositoryAccessLog)
                    .filter(models.RepositoryAccessLog.session_id == session.id)
                    .update(
                        {"close_start_dt": None, "close_start_user_id": None},
                        synchronize_session=False,
                    )
                )
        if result.updated:
            event = "FLOAT_CLOSE_CANCELLED"
        else:
            # Double clicks land here.
            logger.info(
                "float_close_cancel_noop",
                extra={"session_id": session.id, "status": session.status.value},
            )

    else:
        raise ValueError(f"unsupported start action: {action}")

    db.refresh(session)
    if event:
        logger.info(
            "session_transition",
            extra={"session_id": session.id, "action": action, "status": session.status.value},
        )
        emit_activity(
            event,
            organization_id=session.organization_id,
            user_id=ctx.user_id,
            session_id=session.id,
            reference_id=session.id,
            meta=meta or None,
            db=db,
        )
    return session


def unconfirmed_required_repositories(
    db: Session, session: models.CxSession, float_state: FloatState
) -> list[int]:
    """Ids of active, count-required repositories whose stacks lack the confirmation."""

    repositories = (
        db.query(models.Repository)
        .filter(models.Repository.organization_id == session.organization_id)
        .filter(models.Repository.active.is_(True))
        .filter(models.Repository.float_count_required.is_(True))
        .order_by(models.Repository.id.asc())
        .all()
    )
    if not repositories:
        return []

    by_repository: dict[int, list[models.FloatStack]] = defaultdict(list)
    for stack in (
        db.query(models.FloatStack)
        .filter(models.FloatStack.session_id == session.id)
        .filter(models.FloatStack.repository_id.in_([r.id for r in repositories]))
    ):
        by_repository[stack.repository_id].append(stack)

    return [
        r.id
        for r in repositories
        if not are_float_stacks_confirmed(float_state, by_repository.get(r.id, []))
    ]


def confirm_float(
    *,
    db: Session,
    ctx: CallerContext,
    session_id: int,
    action: ConfirmAction,
    now: datetime | None = None,
) -> models.CxSession:
    session = get_session_for_caller(db=db, ctx=ctx, session_id=session_id)
    now = now or _utcnow()

    if action == "CONFIRM_OPEN":
        float_state = FloatState.OPEN
        to_status = S.FLOAT_OPEN_COMPLETE
        session_updates = {"open_confirm_dt": now, "open_confirm_user_id": ctx.user_id}
        log_filter = models.RepositoryAccessLog.open_confirm_dt.is_(None)
        log_updates = {"open_confirm_dt": now, "open_confirm_user_id": ctx.user_id}
        event = "FLOAT_OPEN_CONFIRMED"
    elif action == "CONFIRM_CLOSE":
        float_state = FloatState.CLOSE
        to_status = S.FLOAT_CLOSE_COMPLETE
        session_updates = {"close_confirm_dt": now, "close_confirm_user_id": ctx.user_id}
        log_filter = models.RepositoryAccessLog.close_confirm_dt.is_(None)
        log_updates = {
            "close_confirm_dt": now,
            "close_confirm_user_id": ctx.user_id,
            "release_dt": now,
        }
        event = "FLOAT_CLOSE_CONFIRMED"
    else:
        raise ValueError(f"unsupported confirm action: {action}")

    _ensure_status(session, action, ALLOWED_FROM[action])

    unconfirmed = unconfirmed_required_repositories(db, session, float_state)
    if unconfirmed:
        raise FloatNotConfirmedError(float_state, repository_ids=unconfirmed)

    with atomic_unit(db, label=f"confirm_float_{float_state.value.lower()}"):
        _transition_or_raise(
            db,
            session,
            action=action,
            to_status=to_status,
            allowed_from=ALLOWED_FROM[action],
            updates=session_updates,
        )
        (
            db.query(models.RepositoryAccessLog)
            .filter(models.RepositoryAccessLog.session_id == session.id)
            .filter(log_filter)
            .update(log_updates, synchronize_session=False)
        )

    db.refresh(session)
    logger.info(
        "session_transition",
        extra={"session_id": session.id, "action": action, "status": session.status.value},
    )
    emit_activity(
        event,
        organization_id=session.organization_id,
        user_id=ctx.user_id,
        session_id=session.id,
        reference_id=session.id,
        db=db,
    )
    return session


def join_session(
    *,
    db: Session,
    ctx: CallerContext,
    session_id: int,
    now: datetime | None = None,
) -> models.CxSession:
    session = get_session_for_caller(db=db, ctx=ctx, session_id=session_id, require_authorized=False)
    require_active_user(db, ctx)
    _ensure_status(session, "JOIN", ACTIVE_STATUSES)
    now = now or _utcnow()

    with atomic_unit(db, label="join_session"):
        authorized = list(session.authorized_user_ids or [])
        if ctx.user_key not in authorized:
            session.authorized_user_ids = [*authorized, ctx.user_key]
        session.active_user_id = ctx.user_id

        access_log = (
            db.query(models.SessionAccessLog)
            .filter(models.SessionAccessLog.session_id == session.id)
            .first()
        )
        if access_log is None:
            db.add(
                models.SessionAccessLog(
                    session_id=session.id,
                    start_dt=now,
                    start_owner_id=ctx.user_id,
                    user_join_dt=now,
                    user_join_id=ctx.user_id,
                    authorized_users=[ctx.user_key],
                )
            )
        else:
            access_log.user_join_dt = now
            access_log.user_join_id = ctx.user_id
            users = list(access_log.authorized_users or [])
            if ctx.user_key not in users:
                access_log.authorized_users = [*users, ctx.user_key]

    db.refresh(session)
    emit_activity(
        "SESSION_JOINED",
        organization_id=session.organization_id,
        user_id=ctx.user_id,
        session_id=session.id,
        reference_id=session.id,
        db=db,
    )
    return session


def leave_session(*, db: Session, ctx: CallerContext, session_id: int) -> models.CxSession:
    session = get_session_for_caller(db=db, ctx=ctx, session_id=session_id)

    with atomic_unit(db, label="leave_session"):
        session.authorized_user_ids = [
            u for u in (session.authorized_user_ids or []) if u != ctx.user_key
        ]
        if session.active_user_id == ctx.user_id:
            session.active_user_id = None

    db.refresh(session)
    emit_activity(
        "SESSION_LEFT",
        organization_id=session.organization_id,
        user_id=ctx.user_id,
        session_id=session.id,
        reference_id=session.id,
        db=db,
    )
    return session


def _close_check(db: Session, session: models.CxSession) -> CloseCheck:
    if session.status not in CLOSABLE_STATUSES:
        return CloseCheck(
            can_close=False,
            error="Float must be closing or closed before the session can close",
            blocking_items=[{"type": "SESSION", "id": session.id, "status": session.status.value}],
        )

    blocking: list[dict[str, Any]] = []

    open_orders = (
        db.query(models.Order)
        .filter(models.Order.session_id == session.id)
        .filter(models.Order.status.notin_(SETTLED_ORDER_STATUSES))
        .order_by(models.Order.id.asc())
        .all()
    )
    blocking.extend({"type": "ORDER", "id": o.id, "status": o.status.value} for o in open_orders)

    repositories = (
        db.query(models.Repository)
        .filter(models.Repository.organization_id == session.organization_id)
        .filter(models.Repository.active.is_(True))
        .filter(models.Repository.float_count_required.is_(True))
        .order_by(models.Repository.id.asc())
        .all()
    )
    confirmed_ids = {
        row.repository_id
        for row in db.query(models.RepositoryAccessLog.repository_id)
        .filter(models.RepositoryAccessLog.session_id == session.id)
        .filter(models.RepositoryAccessLog.close_confirm_dt.isnot(None))
    }
    blocking.extend(
        {"type": "REPOSITORY", "id": r.id, "name": r.name}
        for r in repositories
        if r.id not in confirmed_ids
    )

    if not blocking:
        return CloseCheck(can_close=True)
    if open_orders:
        error = "All orders must be completed or cancelled"
    else:
        error = "Every counted repository must confirm its closing float"
    return CloseCheck(can_close=False, error=error, blocking_items=blocking)


def validate_session_can_close(*, db: Session, ctx: CallerContext, session_id: int) -> CloseCheck:
    session = get_session_for_caller(db=db, ctx=ctx, session_id=session_id)
    return _close_check(db, session)


def close_session(
    *,
    db: Session,
    ctx: CallerContext,
    session_id: int,
    now: datetime | None = None,
) -> models.CxSession:
    session = get_session_for_caller(db=db, ctx=ctx, session_id=session_id)
    check = _close_check(db, session)
    if not check.can_close:
        raise SessionCloseBlockedError(check.error or "Session cannot be closed", check.blocking_items)

    now = now or _utcnow()
    with atomic_unit(db, label="close_session"):
        _transition_or_raise(
            db,
            session,
            action="CLOSE",
            to_status=S.CLOSED,
            allowed_from=CLOSABLE_STATUSES,
            updates={"closed_dt": now, "closed_user_id": ctx.user_id},
        )

    db.refresh(session)
    logger.info("session_closed", extra={"session_id": session.id, "user_id": ctx.user_id})
    emit_activity(
        "SESSION_CLOSED",
        organization_id=session.organization_id,
        user_id=ctx.user_id,
        session_id=session.id,
        reference_id=session.id,
        db=db,
    )
    return session
