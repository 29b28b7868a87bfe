"""Onboarding exceptions and the handlers that render them.

Every domain error carries an HTTP status and a stable error code so the
router can let them propagate and the handlers below turn them into the
standard error envelope.
"""

import logging
import traceback
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class LocalocoException(Exception):
    """Base exception for Localoco application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)


class ResourceNotFoundError(LocalocoException):
    """Exception for resources not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


# ── Address resolution ───────────────────────────────────────

class InvalidPostalCodeError(LocalocoException):
    """Postal code is not exactly six digits (rejected before any network call)."""

    def __init__(self, postal_code: str):
        self.postal_code = postal_code
        super().__init__(
            message=f"Invalid postal code {postal_code!r}: expected 6 digits",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="INVALID_POSTAL_CODE",
        )


class AddressNotFoundError(LocalocoException):
    def __init__(self, postal_code: str):
        self.postal_code = postal_code
        super().__init__(
            message=f"No address found for postal code {postal_code}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="ADDRESS_NOT_FOUND",
        )


class AddressLookupError(LocalocoException):
    """Token exchange or address search failed upstream."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="ADDRESS_LOOKUP_FAILED",
        )


# ── Image upload ─────────────────────────────────────────────

class TicketRequestError(LocalocoException):
    def __init__(self, filename: str, reason: str):
        self.filename = filename
        super().__init__(
            message=f"Could not get an upload URL for {filename}: {reason}",
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="UPLOAD_TICKET_FAILED",
        )


class TransferError(LocalocoException):
    def __init__(self, filename: str, reason: str):
        self.filename = filename
        super().__init__(
            message=f"Upload of {filename} failed: {reason}",
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="UPLOAD_TRANSFER_FAILED",
        )


# ── Wizard ───────────────────────────────────────────────────

class CollectionInvariantError(LocalocoException):
    """Draft collection operation would break its invariants."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="COLLECTION_INVARIANT",
        )


class StepValidationError(LocalocoException):
    """A step failed validation; advance or submit is blocked."""

    def __init__(self, step: int, message: str):
        self.step = step
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="STEP_INVALID",
        )


class WizardStateError(LocalocoException):
    """Action not allowed in the session's current state."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="WIZARD_STATE",
        )


class AccountCreationError(LocalocoException):
    """Sign-up failed; nothing else in the submission was attempted."""

    def __init__(self, message: str):
        super().__init__(
            message=f"User registration failed: {message}",
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="ACCOUNT_CREATION_FAILED",
        )


class BusinessRegistrationError(LocalocoException):
    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="BUSINESS_REGISTRATION_FAILED",
        )


class ReferralError(LocalocoException):
    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="REFERRAL_REJECTED",
        )


# ── Rendering ────────────────────────────────────────────────

def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    """Wrap an error in the envelope every onboarding endpoint returns.

        {"error": {"code": "STEP_INVALID", "message": "...", "details": {"step": 3}}}

    `details` is omitted when empty.
    """
    body = {"code": error_code, "message": message}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"error": body})


def _request_context(request: Request) -> dict:
    return {"path": request.url.path, "method": request.method}


def _field_path(loc) -> str:
    # ("body", "opening_hours", "Caturday") -> "opening_hours.Caturday"
    parts = [str(p) for p in loc if p not in ("body", "query", "path")]
    return ".".join(parts) or "request"


async def localoco_exception_handler(
    request: Request,
    exc: LocalocoException,
) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "%s %s -> %s: %s",
        request.method, request.url.path, exc.error_code, exc.message,
        extra={"error_code": exc.error_code, **_request_context(request)},
    )

    details = {"step": exc.step} if isinstance(exc, StepValidationError) else None
    return create_error_response(exc.status_code, exc.message, exc.error_code, details)


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("HTTP %s on %s: %s", exc.status_code, request.url.path, exc.detail,
                     extra=_request_context(request))
    return create_error_response(exc.status_code, str(exc.detail), f"HTTP_{exc.status_code}")


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    """Malformed request bodies (unknown weekday, bad time, wrong types)."""
    errors = [
        {"field": _field_path(e["loc"]), "message": e["msg"], "type": e["type"]}
        for e in exc.errors()
    ]
    logger.info("Rejected request on %s: %s", request.url.path,
                ", ".join(e["field"] for e in errors), extra=_request_context(request))

    first = errors[0]["field"] if errors else "request"
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        f"Invalid value for {first}",
        "VALIDATION_ERROR",
        {"errors": errors},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception on %s: %s", request.url.path, exc,
        extra={**_request_context(request), "traceback": traceback.format_exc()},
        exc_info=True,
    )
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Something went wrong while processing your signup. Please try again.",
        "INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    handlers = (
        (LocalocoException, localoco_exception_handler),
        (HTTPException, http_exception_handler),
        (StarletteHTTPException, http_exception_handler),
        (RequestValidationError, validation_exception_handler),
        (ValidationError, validation_exception_handler),
        (Exception, general_exception_handler),
    )
    for exc_class, handler in handlers:
        app.add_exception_handler(exc_class, handler)
