from fastapi import APIRouter

from cxdesk.api.routes import breakdowns, cx_sessions, float_stacks, movements

api_router = APIRouter()
api_router.include_router(cx_sessions.router)
api_router.include_router(float_stacks.router)
api_router.include_router(movements.router)
api_router.include_router(breakdowns.router)
