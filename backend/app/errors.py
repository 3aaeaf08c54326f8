# backend/app/errors.py

from dataclasses import dataclass
from typing import Any, Dict


class ListingAgentError(Exception):
    """Base error for failures raised by this package (not the SDK)."""


class MissingApiKeyError(ListingAgentError):
    pass


class VideoGenerationError(ListingAgentError):
    """Provider finished the video operation without a usable video."""


class VideoTimeoutError(ListingAgentError):
    """Video operation did not report done within the poll bound."""


@dataclass(frozen=True)
class ErrorInfo:
    kind: str
    status_code: int
    guidance: str


AUTH = ErrorInfo(
    "auth",
    401,
    "Authentication failed. Check that your Gemini API key is valid and has access to the model.",
)
BILLING = ErrorInfo(
    "billing",
    403,
    "The API key's project was not found or has no billing enabled. "
    "Select a key from a paid Google Cloud project (required for video generation).",
)
QUOTA = ErrorInfo(
    "quota",
    429,
    "Quota or rate limit reached. Wait a minute and try again, or use a key with higher limits.",
)
TIMEOUT = ErrorInfo(
    "timeout",
    504,
    "The provider took too long to respond. The job may still finish remotely; try again later.",
)
UPSTREAM = ErrorInfo(
    "upstream",
    502,
    "The AI provider returned an error. See the message for details.",
)

# Checked in order; first match wins.
_RULES = (
    (BILLING, ("requested entity was not found", "not_found", "billing")),
    (QUOTA, ("quota", "resource_exhausted", "rate limit", "429")),
    (AUTH, ("api key", "api_key", "unauthenticated", "permission", "missing api key")),
    (TIMEOUT, ("timed out", "timeout", "deadline")),
)


def classify_error(message: str) -> ErrorInfo:
    """Map a verbatim provider error message to a kind, HTTP status and guidance."""
    lowered = (message or "").lower()
    for info, needles in _RULES:
        if any(n in lowered for n in needles):
            return info
    return UPSTREAM


def error_info(exc: BaseException) -> ErrorInfo:
    if isinstance(exc, VideoTimeoutError):
        return TIMEOUT
    if isinstance(exc, MissingApiKeyError):
        return AUTH
    return classify_error(str(exc))


def error_detail(exc: BaseException) -> Dict[str, Any]:
    """HTTP error body; the original message is passed through untouched."""
    info = error_info(exc)
    return {"message": str(exc), "kind": info.kind, "guidance": info.guidance}
