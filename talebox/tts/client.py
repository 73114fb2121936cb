"""
HTTP client for the asynchronous speech task API.

The provider synthesizes narrations as background tasks:
    POST /labs/task          -> {"task_id": ...}
    GET  /labs/task/{id}     -> {"status": "...", "result": <url>, "error": <text>}
and the finished audio is downloaded from the result URL.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from talebox.config import AudioSettings
from talebox.utils.logging import audio_logger as logger

from .errors import (
    ErrorClassifier,
    ProviderAudioDownloadError,
    ProviderBadResponse,
    ProviderRequestError,
    ProviderTimeoutError,
    ProviderUnreachableError,
    classify_provider_error,
)


class TaskState(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class TaskStatus:
    status: TaskState
    result_url: Optional[str] = None
    error_detail: Optional[str] = None


def _json_or_none(response: httpx.Response) -> Optional[Dict[str, Any]]:
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


class SpeechTaskClient:
    """
    Thin wrapper around the provider's task endpoints.

    Each call opens its own httpx.AsyncClient with a per-request timeout;
    the overall task deadline is enforced by the caller.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://genaipro.vn/api/v1",
        request_timeout: float = 60.0,
        classifier: ErrorClassifier = classify_provider_error,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self.classifier = classifier
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: AudioSettings, **kwargs) -> "SpeechTaskClient":
        return cls(
            api_key=settings.api_key,
            base_url=settings.api_base_url,
            request_timeout=settings.request_timeout_seconds,
            **kwargs
        )

    @property
    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                timeout=self.request_timeout,
                transport=self._transport,
            ) as client:
                return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(
                "Speech provider request timed out",
                detail=f"{method} {url}: {e}",
            ) from e
        except httpx.HTTPError as e:
            raise ProviderUnreachableError(
                "Could not reach the speech provider",
                detail=f"{method} {url}: {e}",
            ) from e

    def _raise_for_status(self, response: httpx.Response):
        if response.is_success:
            return
        error_text = response.text
        raise ProviderRequestError(self.classifier(error_text), error_text, response.status_code)

    async def create_task(
        self,
        text: str,
        voice_id: str,
        model_params: Optional[Dict[str, Any]] = None
    ) -> str:
        """Start a synthesis task and return its handle."""
        payload: Dict[str, Any] = {"input": text, "voice_id": voice_id}
        payload.update(model_params or {})

        response = await self._send(
            "POST",
            f"{self.base_url}/labs/task",
            json=payload,
            headers=self._auth_headers,
        )
        self._raise_for_status(response)

        data = _json_or_none(response)
        task_id = data.get("task_id") if data else None
        if not task_id:
            raise ProviderBadResponse("Speech provider returned no task_id", detail=response.text)

        logger.info("Speech task created", task_id=task_id, voice_id=voice_id, chars=len(text))
        return str(task_id)

    async def get_task_status(self, task_id: str) -> TaskStatus:
        response = await self._send(
            "GET",
            f"{self.base_url}/labs/task/{task_id}",
            headers=self._auth_headers,
        )
        self._raise_for_status(response)

        data = _json_or_none(response) or {}
        status = data.get("status")

        if status == TaskState.COMPLETED.value:
            return TaskStatus(TaskState.COMPLETED, result_url=data.get("result"))

        if status == TaskState.ERROR.value:
            error = data.get("error")
            detail = error if isinstance(error, str) and error else "Speech task failed"
            return TaskStatus(TaskState.ERROR, error_detail=detail)

        return TaskStatus(TaskState.PENDING)

    async def download_result(self, result_url: str) -> bytes:
        """Fetch the finished narration."""
        response = await self._send("GET", result_url)

        if not response.is_success:
            raise ProviderAudioDownloadError(
                "Could not download the narration",
                detail=response.text,
            )

        content = response.content
        if not content:
            raise ProviderAudioDownloadError("Downloaded narration is empty", code="empty_audio")
        return content
