"""Currency swaps and float transfers of a session."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from cxdesk import models
from cxdesk.api.deps import get_current_context
from cxdesk.core.context import CallerContext
from cxdesk.database import get_db
from cxdesk.schemas.breakdowns import (
    BreakdownEntryIn,
    BreakdownRead,
    SwapCreate,
    SwapRead,
    TransferCreate,
    TransferRead,
)
from cxdesk.services import breakdown_validator
from cxdesk.services.breakdown_validator import BreakdownEntry

router = APIRouter(prefix="/cx-sessions", tags=["movements"])

_DB_DEP = Depends(get_db)
_CTX_DEP = Depends(get_current_context)


def to_entries(items: list[BreakdownEntryIn]) -> list[BreakdownEntry]:
    return [
        BreakdownEntry(
            float_stack_id=item.float_stack_id,
            denomination_id=item.denomination_id,
            count=item.count,
            direction=models.BreakdownDirection(item.direction),
        )
        for item in items
    ]


def _swap_read(swap: models.CurrencySwap, breakdowns: list[models.Breakdown]) -> SwapRead:
    read = SwapRead.model_validate(swap)
    read.breakdowns = [BreakdownRead.model_validate(b) for b in breakdowns]
    return read


def _transfer_read(
    transfer: models.FloatTransfer, breakdowns: list[models.Breakdown]
) -> TransferRead:
    read = TransferRead.model_validate(transfer)
    read.breakdowns = [BreakdownRead.model_validate(b) for b in breakdowns]
    return read


@router.get("/{session_id}/swaps", response_model=list[SwapRead])
def list_swaps(session_id: int, db: Session = _DB_DEP, ctx: CallerContext = _CTX_DEP):
    swaps = breakdown_validator.list_swaps(db=db, ctx=ctx, session_id=session_id)
    grouped = breakdown_validator.breakdowns_by_parent(
        db, models.BreakableType.CURRENCY_SWAP, [s.id for s in swaps]
    )
    return [_swap_read(s, grouped[s.id]) for s in swaps]


@router.post("/{session_id}/swaps", response_model=SwapRead, status_code=status.HTTP_201_CREATED)
def create_swap(
    session_id: int,
    payload: SwapCreate,
    db: Session = _DB_DEP,
    ctx: CallerContext = _CTX_DEP,
):
    swap = breakdown_validator.create_swap(
        db=db,
        ctx=ctx,
        session_id=session_id,
        inbound_repository_id=payload.inbound_repository_id,
        outbound_repository_id=payload.outbound_repository_id,
        ticker=payload.ticker,
        inbound_sum=payload.inbound_sum,
        outbound_sum=payload.outbound_sum,
        entries=to_entries(payload.breakdowns),
    )
    grouped = breakdown_validator.breakdowns_by_parent(
        db, models.BreakableType.CURRENCY_SWAP, [swap.id]
    )
    return _swap_read(swap, grouped[swap.id])


@router.get("/{session_id}/transfers", response_model=list[TransferRead])
def list_transfers(session_id: int, db: Session = _DB_DEP, ctx: CallerContext = _CTX_DEP):
    transfers = breakdown_validator.list_transfers(db=db, ctx=ctx, session_id=session_id)
    grouped = breakdown_validator.breakdowns_by_parent(
        db, models.BreakableType.FLOAT_TRANSFER, [t.id for t in transfers]
    )
    return [_transfer_read(t, grouped[t.id]) for t in transfers]


@router.post(
    "/{session_id}/transfers", response_model=TransferRead, status_code=status.HTTP_201_CREATED
)
def create_transfer(
    session_id: int,
    payload: TransferCreate,
    db: Session = _DB_DEP,
    ctx: CallerContext = _CTX_DEP,
):
    transfer = breakdown_validator.create_transfer(
        db=db,
        ctx=ctx,
        session_id=session_id,
        inbound_repository_id=payload.inbound_repository_id,
        outbound_repository_id=payload.outbound_repository_id,
        ticker=payload.ticker,
        inbound_sum=payload.inbound_sum,
        outbound_sum=payload.outbound_sum,
        entries=to_entries(payload.breakdowns),
        notes=payload.notes,
    )
    grouped = breakdown_validator.breakdowns_by_parent(
        db, models.BreakableType.FLOAT_TRANSFER, [transfer.id]
    )
    return _transfer_read(transfer, grouped[transfer.id])
