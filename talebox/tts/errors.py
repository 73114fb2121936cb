"""
Speech task provider errors and the error-text classifier.

The provider does not return machine-readable error codes, so failures are
bucketed by scanning the response text for keywords. The scan is
wording-dependent; it is a plain function so callers can swap it.
"""

from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class ErrorClassification:
    code: str
    message: str


CREDITS_OR_QUOTA = ErrorClassification("credits_or_quota", "Insufficient credits with the speech provider")
CHAR_LIMIT = ErrorClassification("char_limit", "Speech provider character limit exceeded")
AUTH_ERROR = ErrorClassification("auth_error", "Speech provider token invalid or unauthorized")
GENERIC = ErrorClassification("generic", "Audio generation failed")

# Checked in order; the first bucket with a matching keyword wins.
KEYWORD_BUCKETS = (
    (("quota", "credit", "balance"), CREDITS_OR_QUOTA),
    (("character", "length"), CHAR_LIMIT),
    (("unauthorized", "forbidden", "token"), AUTH_ERROR),
)

ErrorClassifier = Callable[[str], ErrorClassification]


def classify_provider_error(error_text: str) -> ErrorClassification:
    """Bucket a provider error body; anything unrecognised is GENERIC."""
    lower = (error_text or "").lower()
    for keywords, classification in KEYWORD_BUCKETS:
        if any(keyword in lower for keyword in keywords):
            return classification
    return GENERIC


DETAIL_LIMIT = 500


class ProviderError(Exception):
    """Base class for speech provider failures."""

    default_code = "provider_error"
    default_status_code = 502

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        detail: Optional[str] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.detail = detail[:DETAIL_LIMIT] if detail else None
        self.status_code = status_code or self.default_status_code


class ProviderRequestError(ProviderError):
    """Non-success HTTP status from the task API, classified by its body."""

    def __init__(self, classification: ErrorClassification, detail: str, http_status: int):
        super().__init__(classification.message, code=classification.code, detail=detail)
        self.http_status = http_status


class ProviderBadResponse(ProviderError):
    default_code = "provider_bad_response"


class ProviderTaskError(ProviderError):
    default_code = "provider_task_error"


class ProviderTimeoutError(ProviderError):
    default_code = "provider_timeout"
    default_status_code = 504


class ProviderUnreachableError(ProviderError):
    default_code = "provider_unreachable"


class ProviderAudioDownloadError(ProviderError):
    default_code = "provider_audio_download"
