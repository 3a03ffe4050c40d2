from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from cxdesk.api.deps import get_current_context
from cxdesk.api.routes.movements import to_entries
from cxdesk.core.context import CallerContext
from cxdesk.database import get_db
from cxdesk.schemas.breakdowns import (
    BreakdownCommitRead,
    BreakdownCommitRequest,
    BreakdownRead,
    BreakdownUncommitRequest,
)
from cxdesk.services import breakdown_validator

router = APIRouter(prefix="/breakdowns", tags=["breakdowns"])

_DB_DEP = Depends(get_db)
_CTX_DEP = Depends(get_current_context)


def _commit_read(result: breakdown_validator.CommitResult) -> BreakdownCommitRead:
    return BreakdownCommitRead(
        success=result.success,
        parent_type=result.parent_type,
        parent_id=result.parent_id,
        breakdown_ids=result.breakdown_ids,
    )


@router.get("", response_model=list[BreakdownRead])
def list_breakdowns(
    parent_type: Literal["CURRENCY_SWAP", "FLOAT_TRANSFER", "ORDER"] = Query(...),
    parent_id: int = Query(...),
    db: Session = _DB_DEP,
    ctx: CallerContext = _CTX_DEP,
):
    return breakdown_validator.list_breakdowns(
        db=db, ctx=ctx, parent_type=parent_type, parent_id=parent_id
    )


@router.post("/commit", response_model=BreakdownCommitRead)
def commit_breakdowns(
    payload: BreakdownCommitRequest,
    db: Session = _DB_DEP,
    ctx: CallerContext = _CTX_DEP,
):
    result = breakdown_validator.commit_breakdowns(
        db=db,
        ctx=ctx,
        parent_type=payload.parent_type,
        parent_id=payload.parent_id,
        entries=to_entries(payload.breakdowns),
    )
    return _commit_read(result)


@router.post("/uncommit", response_model=BreakdownCommitRead)
def uncommit_breakdowns(
    payload: BreakdownUncommitRequest,
    db: Session = _DB_DEP,
    ctx: CallerContext = _CTX_DEP,
):
    result = breakdown_validator.uncommit_breakdowns(
        db=db, ctx=ctx, parent_type=payload.parent_type, parent_id=payload.parent_id
    )
    return _commit_read(result)
