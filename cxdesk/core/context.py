from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CallerContext:
    """Authenticated caller: user U acting inside organization O."""

    user_id: int
    organization_id: int

    @property
    def user_key(self) -> str:
        # Authorized-user sets are stored as strings.
        return str(self.user_id)
