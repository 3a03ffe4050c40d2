from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

logger = logging.getLogger("cxdesk.db")


@contextmanager
def atomic_unit(db: Session, *, label: str) -> Iterator[Session]:
    """Run a block as one transaction: commit on success, roll back and re-raise on error.

    Everything flushed inside the block (parent rows, ledger mutations,
    breakdowns, activity) lands together or not at all.
    """

    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        logger.warning("atomic_unit_rolled_back", extra={"unit": label})
        raise
