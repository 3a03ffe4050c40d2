from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cxdesk import models
from cxdesk.services.float_stack_ledger import current_count, decimal_to_str


class FloatStackRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    session_id: int
    repository_id: int
    denomination_id: int
    ticker: str
    denominated_value: float
    open_count: float
    close_count: float
    midday_count: float
    last_session_count: float
    spent_during_session: str
    transferred_during_session: float
    # open_count - spent_during_session - transferred_during_session
    current_count: str
    open_spot: Optional[float] = None
    close_spot: Optional[float] = None
    average_spot: Optional[float] = None
    open_confirmed_dt: Optional[datetime] = None
    close_confirmed_dt: Optional[datetime] = None
    previous_session_float_stack_id: Optional[int] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_stack(cls, stack: models.FloatStack) -> "FloatStackRead":
        data = {name: getattr(stack, name) for name in cls.model_fields if name != "current_count"}
        return cls(**data, current_count=decimal_to_str(current_count(stack)))


class FloatStackUpdate(BaseModel):
    """Partial count patch. Only fields present in the request are written."""

    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    open_count: Optional[float] = Field(default=None, ge=0)
    close_count: Optional[float] = Field(default=None, ge=0)
    midday_count: Optional[float] = Field(default=None, ge=0)
    open_confirmed_dt: Optional[datetime] = None
    close_confirmed_dt: Optional[datetime] = None

    @field_validator("open_count", "close_count", "midday_count", mode="before")
    @classmethod
    def reject_null_counts(cls, value):
        # Counts are NOT NULL; confirmation timestamps may be cleared with null.
        if value is None:
            raise ValueError("count fields cannot be null")
        return value


class RepositoryFloatStackUpdate(FloatStackUpdate):
    id: int


class RepositoryFloatUpdate(BaseModel):
    stacks: list[RepositoryFloatStackUpdate] = Field(..., min_length=1)


class ValidateRepositoryFloatRequest(BaseModel):
    action: Literal["VALIDATE_OPEN", "VALIDATE_CLOSE"]


class RepositoryFloatValidationRead(BaseModel):
    repository_id: int
    action: str
    validated_stacks: int


class CurrencyPanelRead(BaseModel):
    previous: str
    open: str
    midday: str
    close: str
    current: str


class OffBalanceRead(BaseModel):
    expected: str
    actual: str
    difference: str
    result: str


class CurrencyFloatRead(BaseModel):
    ticker: str
    currency_type: Optional[models.CurrencyType] = None
    decimal_count: int
    confirmed: bool
    panel: CurrencyPanelRead
    off_balance: Optional[OffBalanceRead] = None
    float_stacks: list[FloatStackRead]


class RepositoryAccessLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    repository_id: int
    open_start_dt: Optional[datetime] = None
    open_start_user_id: Optional[int] = None
    open_confirm_dt: Optional[datetime] = None
    open_confirm_user_id: Optional[int] = None
    close_start_dt: Optional[datetime] = None
    close_start_user_id: Optional[int] = None
    close_confirm_dt: Optional[datetime] = None
    close_confirm_user_id: Optional[int] = None
    release_dt: Optional[datetime] = None
    authorized_users: list[str] = []


class RepositoryFloatRead(BaseModel):
    id: int
    name: str
    state: str
    float_state: str
    float_count_required: bool
    access_logs: list[RepositoryAccessLogRead]
    currencies: list[CurrencyFloatRead]


class SessionFloatRead(BaseModel):
    session_id: int
    status: models.SessionStatus
    repositories: list[RepositoryFloatRead]
