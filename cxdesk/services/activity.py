from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cxdesk import models

logger = logging.getLogger("cxdesk.activity")


def record_activity(
    *,
    db: Session,
    organization_id: int,
    user_id: int | None,
    event: str,
    session_id: int | None = None,
    reference_id: Any = None,
    meta: dict[str, Any] | None = None,
) -> models.Activity:
    """Append an activity row inside the caller's unit of work (no commit)."""

    activity = models.Activity(
        organization_id=organization_id,
        user_id=user_id,
        event=event,
        session_id=session_id,
        reference_id=str(reference_id) if reference_id is not None else None,
        meta=meta or None,
    )
    db.add(activity)
    db.flush()
    return activity


def emit_activity(
    event: str,
    *,
    organization_id: int,
    user_id: int | None,
    session_id: int | None = None,
    reference_id: Any = None,
    meta: dict[str, Any] | None = None,
    db: Session | None = None,
) -> Optional[int]:
    """Fire-and-forget activity append.

    Commits on ``db`` (or a fresh session) and never raises; a failed write is
    logged with the event payload. Call it after the business unit committed.
    """

    created_session = False
    session: Session | None = db
    try:
        if session is None:
            from cxdesk.database import SessionLocal

            session = SessionLocal()
            created_session = True

        activity = record_activity(
            db=session,
            organization_id=organization_id,
            user_id=user_id,
            event=event,
            session_id=session_id,
            reference_id=reference_id,
            meta=meta,
        )
        activity_id = activity.id
        session.commit()
        return activity_id
    except SQLAlchemyError:
        if session is not None:
            session.rollback()
        logger.exception(
            "activity_write_failed",
            extra={
                "event": event,
                "organization_id": organization_id,
                "user_id": user_id,
                "session_id": session_id,
                "reference_id": reference_id,
            },
        )
        return None
    finally:
        if created_session and session is not None:
            session.close()
