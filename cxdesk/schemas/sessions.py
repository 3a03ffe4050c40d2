from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict

from cxdesk import models


class SessionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    status: models.SessionStatus
    open_start_dt: Optional[datetime] = None
    open_start_user_id: Optional[int] = None
    open_confirm_dt: Optional[datetime] = None
    open_confirm_user_id: Optional[int] = None
    close_start_dt: Optional[datetime] = None
    close_start_user_id: Optional[int] = None
    close_confirm_dt: Optional[datetime] = None
    close_confirm_user_id: Optional[int] = None
    closed_dt: Optional[datetime] = None
    closed_user_id: Optional[int] = None
    authorized_user_ids: list[str] = []
    active_user_id: Optional[int] = None
    created_by_user_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SkippedProvisioningRead(BaseModel):
    repository_id: int
    reason: str
    ticker: Optional[str] = None


class ProvisioningRead(BaseModel):
    created: int
    existing: int
    access_logs_created: int
    skipped: list[SkippedProvisioningRead] = []


class SessionCreatedRead(BaseModel):
    session: SessionRead
    provisioning: ProvisioningRead


class StartFloatRequest(BaseModel):
    action: Literal["START_OPEN", "START_CLOSE", "CANCEL_CLOSE"]


class ConfirmFloatRequest(BaseModel):
    action: Literal["CONFIRM_OPEN", "CONFIRM_CLOSE"]


class CloseCheckRead(BaseModel):
    can_close: bool
    error: Optional[str] = None
    blocking_items: list[dict[str, Any]] = []
