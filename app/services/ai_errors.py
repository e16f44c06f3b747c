"""
Error taxonomy for AI-backed meal analysis.

Every failure that leaves NutritionAnalysisService is a ClassifiedError. The
subclass names the kind, and carries a stable status category, a machine code,
an HTTP status for the API layer and a generic user-facing message.

classify_error() is the single adapter between provider failures and this
taxonomy. Native Anthropic SDK exceptions are mapped by type first. Anything
else falls back to status-code probing and then to message keyword matching.
The keyword layer is a best-effort approximation: provider error shapes are
not contractually stable, so classification of unknown shapes can be wrong.
"""

from enum import Enum
from typing import Optional

import anthropic


class StatusCategory(str, Enum):
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    BAD_INPUT = "bad_input"
    UPSTREAM = "upstream"
    UNKNOWN = "unknown"


class ErrorKind(str, Enum):
    MISSING_CREDENTIAL = "missing_credential"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    INVALID_MODEL_RESPONSE = "invalid_model_response"
    TRANSPORT_FAILURE = "transport_failure"
    BAD_INPUT = "bad_input"


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================


class ResponseParseError(ValueError):
    """No JSON object could be recovered from a model response."""

    def __init__(self, message: str, raw_text: Optional[str] = None):
        super().__init__(message)
        self.raw_text = raw_text


class ClassifiedError(Exception):
    """
    Base class for classified analysis failures.

    status_category, code, message and cause are read-only after construction.
    """

    status_category = StatusCategory.UNKNOWN
    kind = ErrorKind.TRANSPORT_FAILURE
    default_code = "upstream_error"
    http_status = 500
    public_message = "Failed to analyze meal. Please try again later."
    transient = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self._message = message
        self._code = code or self.default_code
        self._cause = cause

    def __setattr__(self, name, value):
        if name in ("status_category", "kind", "http_status", "transient"):
            raise AttributeError(f"{name} is read-only")
        super().__setattr__(name, value)

    @property
    def message(self) -> str:
        return self._message

    @property
    def code(self) -> str:
        return self._code

    @property
    def cause(self) -> Optional[BaseException]:
        return self._cause

    def to_dict(self, include_details: bool = False) -> dict:
        """Response body for API callers. Raw error text only on request."""
        body = {"success": False, "error": self.public_message, "code": self.code}
        if include_details:
            body["details"] = self.message
        return body


class MissingCredentialError(ClassifiedError):
    """No model credential was configured; raised before any API call."""

    status_category = StatusCategory.UNAUTHORIZED
    kind = ErrorKind.MISSING_CREDENTIAL
    default_code = "missing_api_key"
    http_status = 401
    public_message = (
        "AI provider authentication failed (missing API key). "
        "Set ANTHROPIC_API_KEY in your .env and restart the server."
    )


class UnauthorizedError(ClassifiedError):
    """The provider rejected the credential."""

    status_category = StatusCategory.UNAUTHORIZED
    kind = ErrorKind.UNAUTHORIZED
    default_code = "invalid_api_key"
    http_status = 401
    public_message = (
        "AI provider authentication failed (invalid API key). "
        "Update ANTHROPIC_API_KEY in your .env and restart the server."
    )


class RateLimitError(ClassifiedError):
    """Rate limit or quota exceeded."""

    status_category = StatusCategory.RATE_LIMITED
    kind = ErrorKind.RATE_LIMITED
    default_code = "insufficient_quota"
    http_status = 429
    public_message = (
        "AI request blocked (rate limit or quota). "
        "Check your provider usage and billing, then try again."
    )
    transient = True


class InvalidModelResponseError(ClassifiedError):
    """The model answered with text that is not a JSON object."""

    status_category = StatusCategory.UPSTREAM
    kind = ErrorKind.INVALID_MODEL_RESPONSE
    default_code = "invalid_model_response"
    http_status = 500
    public_message = "The AI service returned an unreadable response. Please try again."


class ServiceUnavailableError(ClassifiedError):
    """AI service is temporarily unavailable (network or unknown upstream fault)."""

    status_category = StatusCategory.UNKNOWN
    kind = ErrorKind.TRANSPORT_FAILURE
    default_code = "upstream_error"
    http_status = 500
    public_message = "AI service temporarily unavailable. Please try again later."
    transient = True


class BadInputError(ClassifiedError):
    """The meal input itself is unusable (blank text, undecodable image)."""

    status_category = StatusCategory.BAD_INPUT
    kind = ErrorKind.BAD_INPUT
    default_code = "invalid_input"
    http_status = 400
    public_message = "Invalid meal input."

    def to_dict(self, include_details: bool = False) -> dict:
        # Input problems are the caller's own data, safe to echo back
        body = super().to_dict(include_details)
        body["error"] = self.message
        return body


# =============================================================================
# CLASSIFICATION
# =============================================================================

# Best-effort keyword heuristics for errors that are not native SDK exceptions
AUTH_HINTS = ("api key", "permission", "unauthorized")
QUOTA_HINTS = ("quota", "rate limit", "resource_exhausted")


def _error_text(error: BaseException) -> str:
    return str(error) or error.__class__.__name__


def _mentions(text: str, hints: tuple) -> bool:
    lowered = text.lower()
    return any(hint in lowered for hint in hints)


def _extract_status(error: BaseException) -> Optional[int]:
    """Find an HTTP status wherever common client libraries put it."""
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value

    response = getattr(error, "response", None)
    for attr in ("status_code", "status"):
        value = getattr(response, attr, None)
        if isinstance(value, int):
            return value

    return None


def _extract_code(error: BaseException) -> Optional[str]:
    code = getattr(error, "code", None)
    if isinstance(code, str) and code:
        return code

    # Anthropic error bodies: {"type": "error", "error": {"type": "overloaded_error", ...}}
    body = getattr(error, "body", None)
    if isinstance(body, dict):
        inner = body.get("error")
        if isinstance(inner, dict) and isinstance(inner.get("type"), str):
            return inner["type"]
        if isinstance(body.get("type"), str) and body["type"] != "error":
            return body["type"]

    return None


def classify_error(error: BaseException, context_message: str) -> ClassifiedError:
    """
    Map any failure from the analysis pipeline onto the error taxonomy.

    First match wins: credential problems, then rate limits, then unparsable
    model output, then everything else as a transport/unknown failure.

    Args:
        error: The original exception
        context_message: Stable prefix for the message, e.g.
            "Failed to analyze meal text"

    Returns:
        A new ClassifiedError whose cause is the original error
    """
    if isinstance(error, ClassifiedError):
        # Keep kind and code (missing_api_key must not become invalid_api_key)
        if error.message.startswith(f"{context_message}: "):
            return error
        return type(error)(
            f"{context_message}: {error.message}",
            code=error.code,
            cause=error.cause or error,
        )

    message = f"{context_message}: {_error_text(error)}"
    status = _extract_status(error)
    text = _error_text(error)

    if (
        isinstance(
            error, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)
        )
        or status in (401, 403)
        or _mentions(text, AUTH_HINTS)
    ):
        return UnauthorizedError(message, cause=error)

    if (
        isinstance(error, anthropic.RateLimitError)
        or status == 429
        or _mentions(text, QUOTA_HINTS)
    ):
        return RateLimitError(message, cause=error)

    if isinstance(error, ResponseParseError):
        return InvalidModelResponseError(message, cause=error)

    if isinstance(error, (anthropic.APITimeoutError, TimeoutError)):
        return ServiceUnavailableError(message, code="timeout", cause=error)

    if isinstance(error, anthropic.APIConnectionError):
        return ServiceUnavailableError(message, code="connection_error", cause=error)

    return ServiceUnavailableError(message, code=_extract_code(error), cause=error)
