from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from cxdesk.api.deps import get_current_context
from cxdesk.core.context import CallerContext
from cxdesk.database import get_db
from cxdesk.schemas.float import (
    CurrencyFloatRead,
    CurrencyPanelRead,
    FloatStackRead,
    OffBalanceRead,
    RepositoryAccessLogRead,
    RepositoryFloatRead,
    RepositoryFloatUpdate,
    RepositoryFloatValidationRead,
    SessionFloatRead,
    ValidateRepositoryFloatRequest,
)
from cxdesk.schemas.sessions import (
    CloseCheckRead,
    ConfirmFloatRequest,
    ProvisioningRead,
    SessionCreatedRead,
    SessionRead,
    StartFloatRequest,
)
from cxdesk.services import session_float, session_state
from cxdesk.services.float_stack_ledger import decimal_to_str

router = APIRouter(prefix="/cx-sessions", tags=["cx-sessions"])

_DB_DEP = Depends(get_db)
_CTX_DEP = Depends(get_current_context)


def _currency_read(view: session_float.CurrencyFloatView) -> CurrencyFloatRead:
    panel = view.panel
    off = view.off_balance
    return CurrencyFloatRead(
        ticker=view.ticker,
        currency_type=view.currency_type,
        decimal_count=view.decimal_count,
        confirmed=view.confirmed,
        panel=CurrencyPanelRead(
            previous=decimal_to_str(panel.previous),
            open=decimal_to_str(panel.open),
            midday=decimal_to_str(panel.midday),
            close=decimal_to_str(panel.close),
            current=decimal_to_str(panel.current),
        ),
        off_balance=(
            OffBalanceRead(
                expected=decimal_to_str(off.expected),
                actual=decimal_to_str(off.actual),
                difference=decimal_to_str(off.difference),
                result=off.result.value,
            )
            if off is not None
            else None
        ),
        float_stacks=[FloatStackRead.from_stack(s) for s in view.float_stacks],
    )


def _repository_read(view: session_float.RepositoryFloatView) -> RepositoryFloatRead:
    return RepositoryFloatRead(
        id=view.repository.id,
        name=view.repository.name,
        state=view.state.value,
        float_state=view.float_state.value,
        float_count_required=view.repository.float_count_required,
        access_logs=[RepositoryAccessLogRead.model_validate(log) for log in view.access_logs],
        currencies=[_currency_read(c) for c in view.currencies],
    )


@router.post("", response_model=SessionCreatedRead, status_code=status.HTTP_201_CREATED)
def create_session(db: Session = _DB_DEP, ctx: CallerContext = _CTX_DEP):
    created = session_state.create_session(db=db, ctx=ctx)
    result = created.provisioning
    return SessionCreatedRead(
        session=SessionRead.model_validate(created.session),
        provisioning=ProvisioningRead(
            created=result.created,
            existing=result.existing,
            access_logs_created=result.access_logs_created,
            skipped=[
                {"repository_id": s.repository_id, "reason": s.reason, "ticker": s.ticker}
                for s in result.skipped
            ],
        ),
    )


@router.get("/{session_id}", response_model=SessionRead)
def get_session(session_id: int, db: Session = _DB_DEP, ctx: CallerContext = _CTX_DEP):
    return session_state.get_session_for_caller(db=db, ctx=ctx, session_id=session_id)


@router.post("/{session_id}/join", response_model=SessionRead)
def join_session(session_id: int, db: Session = _DB_DEP, ctx: CallerContext = _CTX_DEP):
    return session_state.join_session(db=db, ctx=ctx, session_id=session_id)


@router.post("/{session_id}/leave", response_model=SessionRead)
def leave_session(session_id: int, db: Session = _DB_DEP, ctx: CallerContext = _CTX_DEP):
    return session_state.leave_session(db=db, ctx=ctx, session_id=session_id)


@router.post("/{session_id}/float/start", response_model=SessionRead)
def start_float(
    session_id: int,
    payload: StartFloatRequest,
    db: Session = _DB_DEP,
    ctx: CallerContext = _CTX_DEP,
):
    return session_state.start_float(db=db, ctx=ctx, session_id=session_id, action=payload.action)


@router.post("/{session_id}/float/confirm", response_model=SessionRead)
def confirm_float(
    session_id: int,
    payload: ConfirmFloatRequest,
    db: Session = _DB_DEP,
    ctx: CallerContext = _CTX_DEP,
):
    return session_state.confirm_float(
        db=db, ctx=ctx, session_id=session_id, action=payload.action
    )


@router.get("/{session_id}/float", response_model=SessionFloatRead)
def get_session_float(session_id: int, db: Session = _DB_DEP, ctx: CallerContext = _CTX_DEP):
    view = session_float.get_session_float(db=db, ctx=ctx, session_id=session_id)
    return SessionFloatRead(
        session_id=view.session.id,
        status=view.session.status,
        repositories=[_repository_read(r) for r in view.repositories],
    )


@router.get("/{session_id}/close-check", response_model=CloseCheckRead)
def close_check(session_id: int, db: Session = _DB_DEP, ctx: CallerContext = _CTX_DEP):
    check = session_state.validate_session_can_close(db=db, ctx=ctx, session_id=session_id)
    return CloseCheckRead(
        can_close=check.can_close, error=check.error, blocking_items=check.blocking_items
    )


@router.post("/{session_id}/close", response_model=SessionRead)
def close_session(session_id: int, db: Session = _DB_DEP, ctx: CallerContext = _CTX_DEP):
    return session_state.close_session(db=db, ctx=ctx, session_id=session_id)


@router.get("/{session_id}/repositories/{repository_id}/float", response_model=RepositoryFloatRead)
def get_repository_float(
    session_id: int,
    repository_id: int,
    db: Session = _DB_DEP,
    ctx: CallerContext = _CTX_DEP,
):
    view = session_float.get_repository_float(
        db=db, ctx=ctx, session_id=session_id, repository_id=repository_id
    )
    return _repository_read(view)


@router.put(
    "/{session_id}/repositories/{repository_id}/float", response_model=list[FloatStackRead]
)
def update_repository_float(
    session_id: int,
    repository_id: int,
    payload: RepositoryFloatUpdate,
    db: Session = _DB_DEP,
    ctx: CallerContext = _CTX_DEP,
):
    updates = [
        (item.id, item.model_dump(exclude_unset=True, exclude={"id"})) for item in payload.stacks
    ]
    stacks = session_float.update_repository_float(
        db=db, ctx=ctx, session_id=session_id, repository_id=repository_id, updates=updates
    )
    return [FloatStackRead.from_stack(s) for s in stacks]


@router.post(
    "/{session_id}/repositories/{repository_id}/float/validate",
    response_model=RepositoryFloatValidationRead,
)
def validate_repository_float(
    session_id: int,
    repository_id: int,
    payload: ValidateRepositoryFloatRequest,
    db: Session = _DB_DEP,
    ctx: CallerContext = _CTX_DEP,
):
    result = session_float.validate_repository_float(
        db=db,
        ctx=ctx,
        session_id=session_id,
        repository_id=repository_id,
        action=payload.action,
    )
    return RepositoryFloatValidationRead(
        repository_id=result.repository_id,
        action=result.action,
        validated_stacks=result.validated_stacks,
    )


@router.post(
    "/{session_id}/repositories/{repository_id}/float/skip-count",
    response_model=RepositoryFloatRead,
)
def skip_repository_count(
    session_id: int,
    repository_id: int,
    db: Session = _DB_DEP,
    ctx: CallerContext = _CTX_DEP,
):
    view = session_float.skip_repository_count(
        db=db, ctx=ctx, session_id=session_id, repository_id=repository_id
    )
    return _repository_read(view)
