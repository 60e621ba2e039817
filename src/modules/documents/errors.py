"""Signing workflow errors.

Services raise these; the HTTP layer turns them into a structured JSON body
with a ``kind`` and a human-readable ``message``. Internal details never
reach the client.
"""

import logging

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class SigningWorkflowError(Exception):
    """Base class for every error the signing workflow reports to callers."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"status": "error", "kind": self.kind, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(SigningWorkflowError):
    """Malformed input: missing signers, bad placement, invalid PDF."""
    kind = "validation_error"
    status_code = 400


class AuthorizationError(SigningWorkflowError):
    """Caller is neither the owner nor an invited signer."""
    kind = "authorization_error"
    status_code = 403


class NotFoundError(SigningWorkflowError):
    kind = "not_found"
    status_code = 404


class ConflictError(SigningWorkflowError):
    """Already signed, or the document is in the wrong status for the request."""
    kind = "conflict"
    status_code = 409


class IntegrityError(SigningWorkflowError):
    """Stored file no longer matches its recorded hash."""
    kind = "integrity_error"
    status_code = 409


class InfrastructureError(SigningWorkflowError):
    """Storage, PDF assembly or another collaborator is unavailable."""
    kind = "infrastructure_error"
    status_code = 503


async def signing_workflow_error_handler(request: Request, exc: SigningWorkflowError) -> JSONResponse:
    if isinstance(exc, InfrastructureError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled %s on %s %s", type(exc).__name__, request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"status": "error", "kind": "internal_error", "message": "An internal error occurred"},
    )


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Raw inputs are not echoed back; they may be non-finite floats JSON cannot encode
    errors = [{k: v for k, v in error.items() if k != "input"} for error in exc.errors()]
    return JSONResponse(
        status_code=422,
        content={
            "status": "error",
            "kind": "validation_error",
            "message": "Request validation failed",
            "details": {"errors": jsonable_encoder(errors)},
        },
    )
