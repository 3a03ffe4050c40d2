from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cxdesk.api.deps import get_current_context
from cxdesk.core.context import CallerContext
from cxdesk.database import get_db
from cxdesk.schemas.float import FloatStackRead, FloatStackUpdate
from cxdesk.services.session_float import update_float_stack

router = APIRouter(prefix="/float-stacks", tags=["float-stacks"])

_DB_DEP = Depends(get_db)
_CTX_DEP = Depends(get_current_context)


@router.patch("/{float_stack_id}", response_model=FloatStackRead)
def patch_float_stack(
    float_stack_id: int,
    payload: FloatStackUpdate,
    db: Session = _DB_DEP,
    ctx: CallerContext = _CTX_DEP,
):
    """Patch the counts supplied in the body; absent fields are left untouched."""
    stack = update_float_stack(
        db=db,
        ctx=ctx,
        float_stack_id=float_stack_id,
        fields=payload.model_dump(exclude_unset=True),
    )
    return FloatStackRead.from_stack(stack)
