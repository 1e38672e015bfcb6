import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from app.utils.response import error_response, validation_error_response

logger = logging.getLogger(__name__)

DIAGNOSIS_NOT_FOUND = "Diagnosis not found"


class AppException(Exception):
    def __init__(self, message: str, status_code: int = 400, data: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.data = data


class ValidationError(AppException):
    """Submission rejected before anything was persisted."""

    def __init__(self, errors: dict[str, str]):
        super().__init__("The given data was invalid.", status_code=422, data={"errors": errors})
        self.errors = errors


class IntakeError(AppException):
    def __init__(self):
        super().__init__("Failed to submit diagnosis. Please try again.", status_code=500)


class NotFoundError(AppException):
    def __init__(self, message: str = DIAGNOSIS_NOT_FOUND):
        super().__init__(message, status_code=404)


class AuthorizationError(AppException):
    """Caller does not own the diagnosis.

    Rendered exactly like NotFoundError so a probe cannot tell an existing
    diagnosis owned by someone else from a missing one.
    """

    def __init__(self):
        super().__init__(DIAGNOSIS_NOT_FOUND, status_code=404)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
        logger.info("Rejected %s %s: %s", request.method, request.url.path, sorted(exc.errors))
        return JSONResponse(status_code=exc.status_code, content=validation_error_response(exc.errors))

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(exc.message, data=exc.data),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_response("Internal server error"),
        )
