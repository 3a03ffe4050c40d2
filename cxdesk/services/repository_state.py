from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from cxdesk import models


class RepositoryState(str, Enum):
    DORMANT = "DORMANT"
    OPEN_START = "OPEN_START"
    OPEN_CONFIRMED = "OPEN_CONFIRMED"
    CLOSE_START = "CLOSE_START"


def latest_access_log(
    logs: Iterable[models.RepositoryAccessLog],
) -> Optional[models.RepositoryAccessLog]:
    def _key(log: models.RepositoryAccessLog):
        created = log.created_at or datetime.min
        if created.tzinfo is not None:
            created = created.replace(tzinfo=None)
        return (created, log.id or 0)

    return max(logs, key=_key, default=None)


def derive_repository_state(
    logs: Iterable[models.RepositoryAccessLog],
) -> RepositoryState:
    """Compute a repository's sub-state from its latest access log.

    Always derived on read; nothing stores it.
    """

    log = latest_access_log(logs)
    if log is None:
        return RepositoryState.DORMANT
    if log.close_confirm_dt is not None:
        return RepositoryState.DORMANT
    if log.close_start_dt is not None:
        return RepositoryState.CLOSE_START
    if log.open_confirm_dt is not None:
        return RepositoryState.OPEN_CONFIRMED
    if log.open_start_dt is not None:
        return RepositoryState.OPEN_START
    return RepositoryState.DORMANT
