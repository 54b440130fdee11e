"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

PROBLEM_BASE_URI = "https://tourops.example/problems"
PROBLEM_MEDIA_TYPE = "application/problem+json"


def problem_type(slug: str) -> str:
    """Build the type URI for a problem slug."""
    return f"{PROBLEM_BASE_URI}/{slug}"


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    Besides the standard members, every problem may carry an application
    ``code`` (stable, machine-readable) and a ``retryable`` hint. Anything else
    passed as ``extensions`` is merged into the body as-is.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        slug: Optional[str] = None,
        code: Optional[str] = None,
        retryable: Optional[bool] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            slug: Problem type slug, resolved against PROBLEM_BASE_URI
            code: Application-specific error code
            retryable: Whether repeating the same request may succeed
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific members
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title

        body: Dict[str, Any] = {
            "type": problem_type(slug) if slug else f"about:blank#{status_code}",
            "title": title,
            "status": status_code,
        }
        if detail:
            body["detail"] = detail
        if instance:
            body["instance"] = instance
        if code:
            body["code"] = code
        if retryable is not None:
            body["retryable"] = retryable
        body.update(extensions or {})
        self.problem_details = body

        super().__init__(status_code=status_code, detail=body, headers=headers)

    @property
    def code(self) -> Optional[str]:
        """Application-specific error code, when one was attached."""
        return self.problem_details.get("code")

    @property
    def message(self) -> Optional[str]:
        """Human-readable detail text of this occurrence."""
        return self.problem_details.get("detail")


class ValidationError(ProblemDetailsException):
    """Client input that can be corrected and resent (400)."""

    def __init__(self, detail: str = "The request data failed validation", code: Optional[str] = None, **extensions):
        super().__init__(
            400, "Validation Error", detail,
            slug="validation-error", code=code, retryable=False, extensions=extensions,
        )


class AuthenticationError(ProblemDetailsException):
    """Missing or unusable credentials (401)."""

    def __init__(self, detail: str = "Authorization credentials are required"):
        super().__init__(
            401, "Authorization Required", detail,
            slug="authorization-required", headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(ProblemDetailsException):
    """Authenticated caller acting outside its tenant (403)."""

    def __init__(self, detail: str = "Insufficient permissions to access this resource", code: Optional[str] = None):
        super().__init__(403, "Access Forbidden", detail, slug="access-forbidden", code=code, retryable=False)


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors (404)."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        code: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {"resource_type": resource_type}
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            404, "Resource Not Found", detail,
            slug="resource-not-found", code=code, retryable=False, extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Request clashes with the current state of a resource (409)."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        code: Optional[str] = None,
        retryable: bool = False,
        **extensions,
    ):
        super().__init__(
            409, "Resource Conflict", detail,
            slug="resource-conflict", code=code, retryable=retryable, extensions=extensions,
        )


class ServiceUnavailableError(ProblemDetailsException):
    """Transient failure the client may retry (503)."""

    def __init__(
        self,
        detail: str = "The service could not complete the request, please retry",
        code: Optional[str] = None,
        retry_after: Optional[int] = None,
        **extensions,
    ):
        headers = None
        if retry_after:
            headers = {"Retry-After": str(retry_after)}
            extensions["retry_after_seconds"] = retry_after

        super().__init__(
            503, "Service Unavailable", detail,
            slug="service-unavailable", code=code, retryable=True, extensions=extensions, headers=headers,
        )


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class InternalServerError(ProblemDetailsException):
    """
    Unexpected failure (500).

    The body never carries internals; ``error_id`` correlates it with the log
    entry that does.
    """

    def __init__(
        self,
        detail: str = "An unexpected error occurred while processing the request",
        code: Optional[str] = None,
        error_id: Optional[str] = None,
    ):
        super().__init__(
            500, "Internal Server Error", detail,
            slug="internal-server-error",
            code=code,
            extensions={"error_id": error_id or str(uuid.uuid4()), "timestamp": _utc_timestamp()},
        )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """Render a raised problem, defaulting ``instance`` to the request path."""
    content = dict(exc.problem_details)
    content.setdefault("instance", request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=exc.headers,
        media_type=PROBLEM_MEDIA_TYPE,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI body/query validation failures as Problem Details."""
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=422,
        content={
            "type": problem_type("validation-error"),
            "title": "Validation Error",
            "status": 422,
            "detail": "The request data failed validation",
            "instance": request.url.path,
            "violations": violations,
        },
        media_type=PROBLEM_MEDIA_TYPE,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Convert an unhandled exception into a 500 problem.

    The exception is logged with a fresh error ID that is also returned to the
    client.
    """
    error_id = str(uuid.uuid4())

    logger.error(
        "Unhandled exception",
        extra={"error_id": error_id, "path": request.url.path, "error": str(exc)},
        exc_info=exc,
    )

    return JSONResponse(
        status_code=500,
        content={
            "type": problem_type("internal-server-error"),
            "title": "Internal Server Error",
            "status": 500,
            "detail": "An unexpected error occurred while processing the request",
            "instance": request.url.path,
            "error_id": error_id,
            "timestamp": _utc_timestamp(),
        },
        media_type=PROBLEM_MEDIA_TYPE,
    )


@contextmanager
def unexpected_errors_as_problem(operation: str, **context: Any) -> Iterator[None]:
    """
    Let problems through and turn anything else into a logged 500 problem.

    Raising InternalServerError keeps the response inside the regular
    exception middleware, so the request still gets its X-Request-ID.
    """
    try:
        yield
    except ProblemDetailsException:
        raise
    except Exception as e:
        error_id = str(uuid.uuid4())
        logger.error(
            f"Unexpected error in {operation}",
            extra={"error_id": error_id, "error": str(e), **context},
            exc_info=True,
        )
        raise InternalServerError(error_id=error_id) from e
