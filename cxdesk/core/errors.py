"""Domain error taxonomy.

Services raise these; the API layer renders them through one exception
handler as ``{"detail": <message>, "code": <code>, **context}``.
"""

from __future__ import annotations

from typing import Any, Iterable

from fastapi import Request
from fastapi.responses import JSONResponse

from cxdesk.core.observability import get_logger, request_id_for, request_log_context


def _values(items: Iterable[Any]) -> list[str]:
    return [getattr(i, "value", i) for i in items]


class CxDeskError(Exception):
    code = "CXDESK_ERROR"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None, **context: Any):
        self.message = message or self.default_message
        self._context = context
        super().__init__(self.message)

    def context(self) -> dict[str, Any]:
        return dict(self._context)


# Authorization


class UnauthorizedError(CxDeskError):
    code = "UNAUTHORIZED"
    status_code = 401
    default_message = "Not authenticated"


class NotAuthorizedForSessionError(CxDeskError):
    code = "NOT_AUTHORIZED_FOR_SESSION"
    status_code = 403
    default_message = "User is not authorized for this session"

    def __init__(self, session_id: int):
        super().__init__(session_id=session_id)


# Validation


class NotFoundError(CxDeskError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, resource_id: Any = None):
        super().__init__(f"{resource} not found", resource=resource, resource_id=resource_id)


class BreakdownValidationError(CxDeskError):
    code = "BREAKDOWN_VALIDATION_FAILED"
    status_code = 422
    default_message = "Breakdown validation failed"

    @classmethod
    def sum_mismatch(cls, direction: Any, expected: Any, actual: Any) -> "BreakdownValidationError":
        direction = getattr(direction, "value", direction)
        return cls(
            f"{direction} breakdowns sum to {actual}, expected {expected}",
            direction=direction,
            expected=str(expected),
            actual=str(actual),
        )


class MovementValidationError(CxDeskError):
    code = "INVALID_MOVEMENT"
    status_code = 422
    default_message = "Movement request is invalid"


# State


class SessionsNotClosedError(CxDeskError):
    code = "SESSIONS_NOT_CLOSED"
    status_code = 409
    default_message = "Previous sessions must be closed before a new session can be created"

    def __init__(self, open_sessions: list[dict[str, Any]], allowed_statuses: Iterable[Any]):
        super().__init__(open_sessions=open_sessions, allowed_statuses=_values(allowed_statuses))


class FloatAccessDeniedError(CxDeskError):
    code = "FLOAT_ACCESS_DENIED"
    status_code = 409
    default_message = "Float is not accessible in the current session status"

    def __init__(self, status: Any, allowed_statuses: Iterable[Any]):
        super().__init__(
            status=getattr(status, "value", status), allowed_statuses=_values(allowed_statuses)
        )


class InvalidSessionTransitionError(CxDeskError):
    code = "INVALID_SESSION_TRANSITION"
    status_code = 409
    default_message = "Action is not allowed in the current session status"

    def __init__(self, status: Any, action: str, allowed_statuses: Iterable[Any]):
        super().__init__(
            status=getattr(status, "value", status),
            action=action,
            allowed_statuses=_values(allowed_statuses),
        )


class FloatNotConfirmedError(CxDeskError):
    code = "FLOAT_NOT_CONFIRMED"
    status_code = 409
    default_message = "Not all required float stacks are confirmed"

    def __init__(
        self,
        float_state: Any,
        *,
        repository_ids: Iterable[int] | None = None,
        float_stack_ids: Iterable[int] | None = None,
    ):
        context: dict[str, Any] = {"float_state": getattr(float_state, "value", float_state)}
        if repository_ids is not None:
            context["unconfirmed_repository_ids"] = list(repository_ids)
        if float_stack_ids is not None:
            context["unconfirmed_float_stack_ids"] = list(float_stack_ids)
        super().__init__(**context)


class RepositoryNotCountableError(CxDeskError):
    code = "REPOSITORY_NOT_COUNTABLE"
    status_code = 409
    default_message = "Repository is not in a counting state"

    def __init__(self, repository_id: int, float_state: Any, allowed_float_states: Iterable[Any]):
        super().__init__(
            repository_id=repository_id,
            float_state=getattr(float_state, "value", float_state),
            allowed_float_states=_values(allowed_float_states),
        )


class SessionCloseBlockedError(CxDeskError):
    code = "SESSION_CLOSE_BLOCKED"
    status_code = 409
    default_message = "Session cannot be closed yet"

    def __init__(self, message: str, blocking_items: list[dict[str, Any]]):
        super().__init__(message, blocking_items=blocking_items)


# Consistency


class CommitFailedError(CxDeskError):
    """Internal commit failure. Details stay in server logs."""

    code = "COMMIT_FAILED"
    status_code = 503
    default_message = "Commit failed, please retry"

    def __init__(self):
        super().__init__()


async def cxdesk_error_handler(request: Request, exc: CxDeskError) -> JSONResponse:
    content: dict[str, Any] = {"detail": exc.message, "code": exc.code}
    content.update(exc.context())
    get_logger(request).info(
        "domain_error",
        extra=request_log_context(request, code=exc.code, status_code=exc.status_code),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers={"X-Request-ID": request_id_for(request)},
    )
