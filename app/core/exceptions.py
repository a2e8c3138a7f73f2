from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError


class HRMSError(Exception):
    """Base class for domain errors raised by the service layer."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(HRMSError):
    """Malformed or missing required fields on a write."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation Error"


class NotFoundError(HRMSError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not Found"


class AuthorizationError(HRMSError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Operation not permitted"


class SchedulingError(HRMSError):
    """Timer could not be armed or cancelled, or its configuration is unusable."""

    default_message = "Scheduling failed"


class ExecutionError(HRMSError):
    """The scheduled action itself failed."""

    default_message = "Scheduled action failed"


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(exc.errors()), "message": "Validation Error", "request_id": request_id},
    )

async def integrity_exception_handler(request: Request, exc: IntegrityError):
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": "Database conflict. A record with this identifier likely already exists.", "request_id": request_id},
    )

async def domain_exception_handler(request: Request, exc: HRMSError):
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "message": exc.default_message, "success": False, "request_id": request_id},
    )
