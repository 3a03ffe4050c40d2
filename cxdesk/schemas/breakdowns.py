from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from cxdesk import models


class BreakdownEntryIn(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    float_stack_id: int
    denomination_id: int
    count: Decimal = Field(..., gt=0)
    direction: Literal["INBOUND", "OUTBOUND"]


class BreakdownCommitRequest(BaseModel):
    parent_type: Literal["CURRENCY_SWAP", "FLOAT_TRANSFER", "ORDER"]
    parent_id: int
    breakdowns: list[BreakdownEntryIn] = Field(..., min_length=1)


class BreakdownUncommitRequest(BaseModel):
    parent_type: Literal["ORDER"] = "ORDER"
    parent_id: int


class BreakdownCommitRead(BaseModel):
    success: bool
    parent_type: models.BreakableType
    parent_id: int
    breakdown_ids: list[int]


class BreakdownRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    breakable_type: models.BreakableType
    breakable_id: int
    float_stack_id: int
    denomination_id: int
    count: str
    direction: models.BreakdownDirection
    status: models.BreakdownStatus
    created_by_user_id: Optional[int] = None
    created_at: Optional[datetime] = None


class MovementCreate(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    inbound_repository_id: int
    outbound_repository_id: int
    ticker: str = Field(..., min_length=1, max_length=16)
    inbound_sum: Decimal
    outbound_sum: Decimal
    breakdowns: list[BreakdownEntryIn] = Field(..., min_length=1)


class SwapCreate(MovementCreate):
    pass


class TransferCreate(MovementCreate):
    notes: Optional[str] = None


class SwapRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    session_id: int
    user_id: int
    currency_id: int
    inbound_repository_id: int
    outbound_repository_id: int
    inbound_ticker: str
    outbound_ticker: str
    inbound_sum: str
    outbound_sum: str
    swap_value: str
    status: str
    created_at: Optional[datetime] = None
    breakdowns: list[BreakdownRead] = []


class TransferRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    session_id: int
    user_id: int
    inbound_repository_id: int
    outbound_repository_id: int
    inbound_ticker: str
    outbound_ticker: str
    inbound_sum: str
    outbound_sum: str
    status: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    breakdowns: list[BreakdownRead] = []
