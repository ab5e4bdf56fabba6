"""
Typed failures raised by the service layer.

Every failure is an HTTPException carrying a stable machine-readable ``code``;
``service_error_handler`` renders them as
``{"error": {"code": ..., "message": ..., "status": ...}}``.
"""

from __future__ import annotations

import structlog
from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from starlette.requests import Request
from starlette.responses import JSONResponse

log = structlog.get_logger()


class ServiceError(HTTPException):
    status_code: int = 400
    code: str = "BAD_REQUEST"
    default_message: str = "Request could not be processed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(status_code=self.status_code, detail=self.message)


class Unauthorized(ServiceError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Authentication required"


class Forbidden(ServiceError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "You do not have permission to perform this action"


class NotFound(ServiceError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class AlreadyJoined(ServiceError):
    status_code = 409
    code = "ALREADY_JOINED"
    default_message = "You have already joined this queue"


class QueueFull(ServiceError):
    status_code = 409
    code = "QUEUE_FULL"
    default_message = "Queue is full"


class TopicFull(ServiceError):
    status_code = 409
    code = "TOPIC_FULL"
    default_message = "Topic is full"


class DuplicateTopic(ServiceError):
    status_code = 409
    code = "DUPLICATE_TOPIC"
    default_message = "A topic with this title already exists in the queue"


class Conflict(ServiceError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Request conflicts with the current state"


class InvalidCapacity(ServiceError):
    status_code = 422
    code = "INVALID_CAPACITY"
    default_message = "Capacity must be at least 1"


class StorageFailure(ServiceError):
    status_code = 503
    code = "STORAGE_FAILURE"
    default_message = "Storage is temporarily unavailable, please retry"


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.code,
                "message": exc.message,
                "status": exc.status_code,
            }
        },
        headers=exc.headers,
    )


async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Database errors that escaped the service layer surface as StorageFailure."""
    log.error("storage.error", path=request.url.path, error=str(exc))
    return await service_error_handler(request, StorageFailure())
