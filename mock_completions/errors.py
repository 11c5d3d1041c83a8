from __future__ import annotations

import traceback
import uuid
from typing import Any

import structlog
from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = structlog.get_logger()

REQUEST_ID_HEADER = "x-request-id"


class MockServiceError(Exception):
    """Base exception for mock completions service errors."""

    def __init__(
        self,
        message: str,
        error_type: str = "server_error",
        status_code: int = 500,
        param: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.status_code = status_code
        self.param = param


class ValidationError(MockServiceError):
    """A request field violates the API's constraints."""

    def __init__(self, message: str, param: str | None = None):
        super().__init__(message, "invalid_request_error", status.HTTP_400_BAD_REQUEST, param)


class EncodingError(MockServiceError):
    """The tokenizer could not build or apply an encoding for a model."""

    def __init__(self, message: str):
        super().__init__(message, "encoding_error", status.HTTP_500_INTERNAL_SERVER_ERROR)


def error_body(
    message: str, error_type: str, param: str | None = None, code: str | None = None
) -> dict[str, Any]:
    return {"error": {"message": message, "type": error_type, "param": param, "code": code}}


def printable(text: str) -> str:
    """Escape lone surrogates so client-supplied text can be logged and rendered."""
    return text.encode("utf-8", "backslashreplace").decode("utf-8")


class ErrorHandler:
    """Centralized error handling; every failure leaves in the OpenAI error envelope."""

    @staticmethod
    def generate_request_id() -> str:
        """Generate a unique request ID for error tracking."""
        return f"req_{uuid.uuid4().hex[:12]}"

    @staticmethod
    def create_error_response(
        error: Exception, request_id: str | None = None, include_traceback: bool = False
    ) -> tuple[dict[str, Any], int]:
        """Create a standardized error response."""
        if request_id is None:
            request_id = ErrorHandler.generate_request_id()

        param = None
        if isinstance(error, MockServiceError):
            error_type = error.error_type
            message = error.message
            status_code = error.status_code
            param = error.param
        elif isinstance(error, HTTPException):
            error_type = "invalid_request_error" if error.status_code < 500 else "server_error"
            message = str(error.detail)
            status_code = error.status_code
        else:
            error_type = "server_error"
            message = "An internal server error occurred"
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

        error_response = error_body(message, error_type, param)

        if include_traceback and not isinstance(error, MockServiceError):
            error_response["error"]["traceback"] = traceback.format_exc()

        log = logger.warning if status_code < 500 else logger.error
        log(
            "request_error",
            error_type=error_type,
            message=message,
            param=param,
            status_code=status_code,
            request_id=request_id,
        )

        return error_response, status_code

    @staticmethod
    def _json(request: Request, content: dict[str, Any], status_code: int) -> JSONResponse:
        request_id = getattr(request.state, "request_id", None)
        headers = {REQUEST_ID_HEADER: request_id} if request_id else None
        return JSONResponse(content=content, status_code=status_code, headers=headers)

    @staticmethod
    def describe_schema_error(exc: RequestValidationError) -> ValidationError:
        """Reduce pydantic's error list to the first offending top-level field."""
        errors = exc.errors()
        if not errors:
            return ValidationError("Invalid request body")

        first = errors[0]
        loc = [part for part in first.get("loc", ()) if part != "body"]
        param = str(loc[0]) if loc and isinstance(loc[0], str) else None

        if first.get("type") == "missing" and param is not None:
            return ValidationError(f"`{param}` is required", param=param)
        if first.get("type") == "json_invalid":
            return ValidationError("Request body is not valid JSON")

        field = ".".join(printable(str(x)) for x in loc) if loc else "body"
        return ValidationError(f"Invalid value for {field}: {printable(first['msg'])}", param=param)

    @staticmethod
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request bodies that do not match the schema."""
        request_id = getattr(request.state, "request_id", None)
        error_response, status_code = ErrorHandler.create_error_response(
            ErrorHandler.describe_schema_error(exc), request_id=request_id
        )
        return ErrorHandler._json(request, error_response, status_code)

    @staticmethod
    async def service_error_handler(request: Request, exc: MockServiceError) -> JSONResponse:
        """Handle errors raised deliberately by the service."""
        request_id = getattr(request.state, "request_id", None)
        error_response, status_code = ErrorHandler.create_error_response(
            exc, request_id=request_id
        )
        return ErrorHandler._json(request, error_response, status_code)

    @staticmethod
    async def general_error_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle general exceptions."""
        request_id = getattr(request.state, "request_id", None)
        include_traceback = getattr(request.app.state, "debug", False)

        error_response, status_code = ErrorHandler.create_error_response(
            exc, request_id=request_id, include_traceback=include_traceback
        )
        return ErrorHandler._json(request, error_response, status_code)


def setup_error_handlers(app):
    """Setup error handlers for the FastAPI app."""
    app.add_exception_handler(RequestValidationError, ErrorHandler.validation_error_handler)
    app.add_exception_handler(MockServiceError, ErrorHandler.service_error_handler)
    app.add_exception_handler(Exception, ErrorHandler.general_error_handler)


class ErrorContext:
    """Context manager for handling errors in specific operations."""

    def __init__(self, operation_name: str, request_id: str | None = None):
        self.operation_name = operation_name
        self.request_id = request_id or ErrorHandler.generate_request_id()

    def __enter__(self):
        logger.debug(f"Starting {self.operation_name}", request_id=self.request_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            if isinstance(exc_val, MockServiceError):
                logger.info(
                    f"Operation {self.operation_name} rejected",
                    error_type=exc_val.error_type,
                    message=exc_val.message,
                    param=exc_val.param,
                    request_id=self.request_id,
                )
            else:
                logger.exception(
                    f"Unexpected error in {self.operation_name}",
                    request_id=self.request_id,
                    exception=str(exc_val),
                )
        else:
            logger.debug(f"Completed {self.operation_name}", request_id=self.request_id)

        return False  # Don't suppress exceptions
