"""Error taxonomy for the verification engine and its HTTP mapping.

Extraction and parse failures are handled inside the engine and degrade
to manual review. The remaining errors reject the request and leave
every stored record untouched.
"""

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from payverify.models import ParseField

logger = logging.getLogger(__name__)


class VerificationError(Exception):
    """Base class for every error raised by the engine."""

    code = "VERIFICATION_ERROR"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ExtractionFailure(VerificationError):
    """The OCR engine could not process the image."""

    code = "EXTRACTION_FAILED"


class ExtractionTimeout(ExtractionFailure):
    code = "EXTRACTION_TIMEOUT"


class ParseError(VerificationError):
    """Hard-required payment fields are absent from the transcript."""

    code = "PARSE_ERROR"

    def __init__(self, missing: list[ParseField]) -> None:
        self.missing = missing
        names = ", ".join(field.value for field in missing)
        super().__init__(f"Could not locate required fields: {names}")


class ValidationError(VerificationError):
    """Caller supplied input the engine refuses to act on."""

    code = "VALIDATION_ERROR"


class NotApplicableError(VerificationError):
    """Operation is not valid for the record's current state or caller."""

    code = "NOT_APPLICABLE"


class VerificationNotFoundError(NotApplicableError):
    code = "VERIFICATION_NOT_FOUND"


class IllegalTransitionError(NotApplicableError):
    code = "ILLEGAL_TRANSITION"


class ConcurrentModificationError(VerificationError):
    """A write was based on a stale version of the record."""

    code = "CONCURRENT_MODIFICATION"


class ErrorDetail(BaseModel):
    code: str
    message: str


class StandardErrorResponse(BaseModel):
    """Standard error body returned by every handler."""
    success: bool = False
    error: ErrorDetail
    timestamp: float


def create_error_response(code: str, message: str, status_code: int) -> JSONResponse:
    body = StandardErrorResponse(
        error=ErrorDetail(code=code, message=message),
        timestamp=time.time(),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


def status_code_for(exc: VerificationError) -> int:
    """Map an engine error onto an HTTP status code."""
    if isinstance(exc, VerificationNotFoundError):
        return 404
    if isinstance(exc, (NotApplicableError, ConcurrentModificationError)):
        return 409
    if isinstance(exc, ValidationError):
        return 400
    # Extraction/parse errors should never escape the engine
    return 500


async def verification_exception_handler(
    request: Request, exc: VerificationError
) -> JSONResponse:
    status_code = status_code_for(exc)
    logger.warning(
        "Verification request rejected: %s - %s (%s %s)",
        exc.code,
        exc.message,
        request.method,
        request.url.path,
    )
    return create_error_response(exc.code, exc.message, status_code)


def add_error_handlers(app: FastAPI) -> None:
    """Register the engine error handler on the FastAPI app."""
    app.add_exception_handler(VerificationError, verification_exception_handler)
