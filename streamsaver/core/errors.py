"""Error taxonomy shared by the upload and live capture services.

Every failure the core reports is one of three kinds: the caller sent
something unusable, the thing it refers to does not exist, or storage
failed underneath us. Routers never build error bodies themselves; the
handlers registered here render every StreamSaverError the same way.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class StreamSaverError(Exception):
    """Base exception for all StreamSaver failures."""

    kind = "Error"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_response(self) -> dict:
        return {"error": {"kind": self.kind, "message": self.message}}


class InvalidArgument(StreamSaverError):
    """Missing or malformed input: filename, index or payload."""

    kind = "InvalidArgument"
    http_status = status.HTTP_400_BAD_REQUEST


class PayloadTooLarge(InvalidArgument):
    """A chunk body over the transport limit."""

    http_status = status.HTTP_413_CONTENT_TOO_LARGE


class RangeNotSatisfiable(InvalidArgument):
    http_status = status.HTTP_416_RANGE_NOT_SATISFIABLE


class NotFound(StreamSaverError):
    """Unknown session, stream or artifact, or a chunk absent during merge."""

    kind = "NotFound"
    http_status = status.HTTP_404_NOT_FOUND


class IOFailure(StreamSaverError):
    """Underlying storage read or write failed."""

    kind = "IOFailure"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR


def register_error_handlers(app: FastAPI) -> None:
    """Register the global error handlers on the FastAPI app."""

    @app.exception_handler(StreamSaverError)
    async def streamsaver_error_handler(request: Request, exc: StreamSaverError):
        if isinstance(exc, IOFailure):
            logger.error(f"{exc.kind} on {request.url.path}: {exc.message}")
        else:
            logger.warning(f"{exc.kind} on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
        fields = ", ".join(
            ".".join(str(part) for part in error["loc"] if part != "body")
            for error in exc.errors()
        )
        error = InvalidArgument(f"invalid request fields: {fields}")
        return JSONResponse(status_code=error.http_status, content=error.to_response())

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
        error = IOFailure("an unexpected error occurred")
        return JSONResponse(status_code=error.http_status, content=error.to_response())
