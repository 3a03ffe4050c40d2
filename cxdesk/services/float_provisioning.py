"""Float provisioning: materialize one float stack per (repository, denomination, ticker).

Safe to run repeatedly for the same session. Duplicate inserts are prevented
twice over: a per-session lock serializes provisioning inside this process and
the ``uq_float_stacks_session_repo_denom_ticker`` constraint rejects a racing
insert from another process, which is then counted as already provisioned.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from cxdesk import models

logger = logging.getLogger("cxdesk.provisioning")

_LOCKS_GUARD = threading.Lock()
_SESSION_LOCKS: dict[int, threading.Lock] = {}


@contextmanager
def session_provisioning_lock(session_id: int) -> Iterator[None]:
    with _LOCKS_GUARD:
        lock = _SESSION_LOCKS.setdefault(int(session_id), threading.Lock())
    with lock:
        yield


@dataclass(frozen=True)
class SkippedProvisioning:
    repository_id: int
    reason: str
    ticker: str | None = None


@dataclass(frozen=True)
class ProvisioningResult:
    session_id: int
    created: int
    existing: int
    access_logs_created: int
    skipped: tuple[SkippedProvisioning, ...] = ()


@dataclass
class _RepositoryOutcome:
    created: int = 0
    existing: int = 0
    access_log_created: bool = False
    skipped: list[SkippedProvisioning] = field(default_factory=list)


def _insert_guarded(db: Session, row) -> bool:
    """Insert in a savepoint; False when a unique constraint says it already exists."""

    try:
        with db.begin_nested():
            db.add(row)
            db.flush()
    except IntegrityError:
        return False
    return True


def _previous_stack(
    db: Session, *, session_id: int, repository_id: int, denomination_id: int, ticker: str
) -> models.FloatStack | None:
    return (
        db.query(models.FloatStack)
        .filter(models.FloatStack.repository_id == repository_id)
        .filter(models.FloatStack.denomination_id == denomination_id)
        .filter(models.FloatStack.ticker == ticker)
        .filter(models.FloatStack.session_id != session_id)
        .order_by(models.FloatStack.created_at.desc(), models.FloatStack.id.desc())
        .first()
    )


def _ensure_access_log(
    db: Session,
    *,
    session: models.CxSession,
    repository: models.Repository,
    user_id: int | None,
    now: datetime,
) -> bool:
    exists = (
        db.query(models.RepositoryAccessLog.id)
        .filter(models.RepositoryAccessLog.session_id == session.id)
        .filter(models.RepositoryAccessLog.repository_id == repository.id)
        .first()
    )
    if exists is not None:
        return False

    log = models.RepositoryAccessLog(
        session_id=session.id,
        repository_id=repository.id,
        open_start_dt=now,
        open_start_user_id=user_id,
        authorized_users=[str(user_id)] if user_id is not None else [],
    )
    return _insert_guarded(db, log)


def _provision_repository(
    db: Session,
    *,
    session: models.CxSession,
    repository: models.Repository,
    currencies: dict[str, models.Currency],
    existing_keys: set[tuple[int, int, str]],
) -> _RepositoryOutcome:
    outcome = _RepositoryOutcome()

    tickers = [str(t).strip() for t in (repository.currency_tickers or []) if str(t or "").strip()]
    if not tickers:
        outcome.skipped.append(SkippedProvisioning(repository.id, "no_currency_tickers"))
        return outcome

    for ticker in tickers:
        currency = currencies.get(ticker)
        if currency is None:
            outcome.skipped.append(SkippedProvisioning(repository.id, "currency_not_found", ticker))
            continue

        denominations = list(currency.denominations)
        if not denominations:
            outcome.skipped.append(SkippedProvisioning(repository.id, "no_denominations", ticker))
            continue

        for denomination in denominations:
            key = (repository.id, denomination.id, ticker)
            if key in existing_keys:
                outcome.existing += 1
                continue

            previous = _previous_stack(
                db,
                session_id=session.id,
                repository_id=repository.id,
                denomination_id=denomination.id,
                ticker=ticker,
            )
            last_count = float(previous.close_count or 0) if previous is not None else 0.0

            stack = models.FloatStack(
                organization_id=session.organization_id,
                session_id=session.id,
                repository_id=repository.id,
                denomination_id=denomination.id,
                ticker=ticker,
                open_count=last_count,
                close_count=0,
                midday_count=0,
                last_session_count=last_count,
                spent_during_session="0",
                transferred_during_session=0,
                denominated_value=denomination.value,
                previous_session_float_stack_id=previous.id if previous is not None else None,
            )
            if _insert_guarded(db, stack):
                outcome.created += 1
            else:
                outcome.existing += 1
            existing_keys.add(key)

    return outcome


def provision_session_float(
    *,
    db: Session,
    session: models.CxSession,
    user_id: int | None,
    ensure_access_logs: bool = False,
    now: datetime | None = None,
) -> ProvisioningResult:
    """Create missing float stacks (and optionally access logs) for every active repository.

    Runs inside the caller's transaction and does not commit. A repository that
    is misconfigured or fails mid-way is skipped and reported, never fatal.
    """

    now = now or datetime.now(timezone.utc)
    created = existing = logs_created = 0
    skipped: list[SkippedProvisioning] = []

    with session_provisioning_lock(session.id):
        repositories = (
            db.query(models.Repository)
            .filter(models.Repository.organization_id == session.organization_id)
            .filter(models.Repository.active.is_(True))
            .order_by(models.Repository.display_order.asc(), models.Repository.id.asc())
            .all()
        )
        currencies = {
            c.ticker: c
            for c in db.query(models.Currency)
            .filter(models.Currency.organization_id == session.organization_id)
            .all()
        }
        existing_keys = {
            (row.repository_id, row.denomination_id, row.ticker)
            for row in db.query(
                models.FloatStack.repository_id,
                models.FloatStack.denomination_id,
                models.FloatStack.ticker,
            ).filter(models.FloatStack.session_id == session.id)
        }

        for repository in repositories:
            try:
                with db.begin_nested():
                    log_created = False
                    if ensure_access_logs:
                        log_created = _ensure_access_log(
                            db, session=session, repository=repository, user_id=user_id, now=now
                        )
                    outcome = _provision_repository(
                        db,
                        session=session,
                        repository=repository,
                        currencies=currencies,
                        existing_keys=existing_keys,
                    )
            except SQLAlchemyError:
                logger.exception(
                    "float_provisioning_repository_failed",
                    extra={"session_id": session.id, "repository_id": repository.id},
                )
                skipped.append(SkippedProvisioning(repository.id, "error"))
                continue

            created += outcome.created
            existing += outcome.existing
            logs_created += int(log_created)
            for skip in outcome.skipped:
                logger.warning(
                    "float_provisioning_skipped",
                    extra={
                        "session_id": session.id,
                        "repository_id": skip.repository_id,
                        "ticker": skip.ticker,
                        "reason": skip.reason,
                    },
                )
            skipped.extend(outcome.skipped)

    logger.info(
        "float_provisioned",
        extra={
            "session_id": session.id,
            "float_stacks_created": created,
            "float_stacks_existing": existing,
            "access_logs_created": logs_created,
            "skipped": len(skipped),
        },
    )
    return ProvisioningResult(
        session_id=session.id,
        created=created,
        existing=existing,
        access_logs_created=logs_created,
        skipped=tuple(skipped),
    )
