"""Client and error taxonomy for the asynchronous speech task provider."""

from .client import SpeechTaskClient, TaskState, TaskStatus
from .errors import (
    ErrorClassification,
    ProviderAudioDownloadError,
    ProviderBadResponse,
    ProviderError,
    ProviderRequestError,
    ProviderTaskError,
    ProviderTimeoutError,
    ProviderUnreachableError,
    classify_provider_error,
)

__all__ = [
    "SpeechTaskClient",
    "TaskState",
    "TaskStatus",
    "ErrorClassification",
    "ProviderAudioDownloadError",
    "ProviderBadResponse",
    "ProviderError",
    "ProviderRequestError",
    "ProviderTaskError",
    "ProviderTimeoutError",
    "ProviderUnreachableError",
    "classify_provider_error",
]
