from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Callable

import httpx

from mic_transcribe.config import Settings
from mic_transcribe.errors import (
    AuthError,
    JobCancelledError,
    JobFailedError,
    JobTimeoutError,
    ProtocolError,
    ResultError,
    StatusError,
    SubmitError,
)
from mic_transcribe.types import (
    DirectResult,
    JobHandle,
    JobRequest,
    JobStatus,
    PollProgress,
    QueuedHandle,
    StatusReport,
    TranscriptResult,
    TranscriptSegment,
)

logger = logging.getLogger(__name__)

NO_TRANSCRIPTION = "No transcription available"
_RESULT_FIELDS = ("text", "transcription", "chunks", "segments")

ProgressCallback = Callable[[PollProgress], None]


class FalQueueClient:
    def __init__(
        self,
        settings: Settings,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self._transport = transport
        self._sleep = sleep

    def submit(self, request: JobRequest) -> JobHandle:
        headers = self._headers()
        url = f"{self.settings.run_base_url}/{request.endpoint}"
        with self._client() as client:
            response = client.post(url, headers=headers, json=dict(request.input))
        if response.status_code >= 400:
            raise SubmitError(response.status_code, response.text)

        payload = self._json_object(response, "submit")
        request_id = payload.get("request_id")
        if request_id:
            logger.info("Queued %s request %s", request.endpoint, request_id)
            return QueuedHandle(endpoint=request.endpoint, request_id=str(request_id))
        if any(key in payload for key in _RESULT_FIELDS):
            logger.info("Received direct result from %s", request.endpoint)
            return DirectResult(payload=payload)
        raise ProtocolError("Submit response has neither request_id nor a result")

    def poll_status(self, handle: QueuedHandle) -> StatusReport:
        headers = self._headers()
        url = f"{self._request_url(handle)}/status"
        with self._client() as client:
            response = client.get(url, headers=headers)
        if response.status_code >= 400:
            raise StatusError(response.status_code, response.text)

        payload = self._json_object(response, "status")
        raw_status = payload.get("status")
        status = JobStatus.parse(raw_status)
        if status is None:
            # unrecognised or missing states are non-terminal
            logger.debug("Request %s reported unknown status %r", handle.request_id, raw_status)
            status = JobStatus.IN_PROGRESS
        return StatusReport(
            status=status,
            raw_status=None if raw_status is None else str(raw_status),
            error=_optional_text(payload.get("error")),
            logs=_optional_text(payload.get("logs")),
        )

    def fetch_result(self, handle: QueuedHandle) -> dict[str, Any]:
        headers = self._headers()
        with self._client() as client:
            response = client.get(self._request_url(handle), headers=headers)
        if response.status_code >= 400:
            raise ResultError(response.status_code, response.text)
        return self._json_object(response, "result")

    def submit_and_wait(
        self,
        request: JobRequest,
        on_progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
        max_attempts: int | None = None,
        poll_interval_seconds: float | None = None,
    ) -> TranscriptResult:
        """Submit a job and block until it reaches a terminal state.

        The wait is bounded by attempt count only; slow status responses can
        stretch the total beyond ``max_attempts * poll_interval_seconds``.
        """
        if max_attempts is None:
            max_attempts = self.settings.poll_max_attempts
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if poll_interval_seconds is None:
            poll_interval_seconds = self.settings.poll_interval_seconds

        handle = self.submit(request)
        if isinstance(handle, DirectResult):
            return normalize_result(handle.payload)

        for attempt in range(1, max_attempts + 1):
            if on_progress is not None:
                on_progress(PollProgress(attempt=attempt, max_attempts=max_attempts, handle=handle))
            _raise_if_cancelled(cancel, handle)

            report = self.poll_status(handle)
            logger.debug("Request %s status %s (%s/%s)", handle.request_id, report.status.value, attempt, max_attempts)
            if report.status is JobStatus.COMPLETED:
                logger.info("Request %s completed after %s status checks", handle.request_id, attempt)
                return normalize_result(self.fetch_result(handle))
            if report.status is JobStatus.FAILED:
                raise JobFailedError(report.error or report.logs or "Unknown error")

            if attempt < max_attempts:
                _raise_if_cancelled(cancel, handle)
                self._wait(poll_interval_seconds, cancel)

        raise JobTimeoutError(handle.request_id, max_attempts)

    def _wait(self, seconds: float, cancel: threading.Event | None) -> None:
        if cancel is None:
            self._sleep(seconds)
        else:
            cancel.wait(seconds)

    def _headers(self) -> dict[str, str]:
        if not self.settings.fal_key:
            raise AuthError()
        return {"Authorization": f"Key {self.settings.fal_key}"}

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.settings.http_timeout_seconds, transport=self._transport)

    def _request_url(self, handle: QueuedHandle) -> str:
        return f"{self.settings.queue_base_url}/{handle.endpoint}/requests/{handle.request_id}"

    @staticmethod
    def _json_object(response: httpx.Response, step: str) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProtocolError(f"{step} response is not valid JSON: {response.text[:400]}") from exc
        if not isinstance(payload, dict):
            raise ProtocolError(f"{step} response is not a JSON object")
        return payload


def normalize_result(payload: dict[str, Any]) -> TranscriptResult:
    text = payload.get("text") or payload.get("transcription") or NO_TRANSCRIPTION
    items = payload.get("chunks") or payload.get("segments") or []
    return TranscriptResult(text=str(text), segments=_extract_segments(items), raw=dict(payload))


def _extract_segments(items: object) -> list[TranscriptSegment]:
    if not isinstance(items, list):
        return []

    segments: list[TranscriptSegment] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        start, end = item.get("start"), item.get("end")
        timestamp = item.get("timestamp")
        if isinstance(timestamp, (list, tuple)) and len(timestamp) == 2:
            start, end = timestamp
        segments.append(
            TranscriptSegment(
                start=_seconds(start),
                end=_seconds(end),
                text=str(item.get("text") or "").strip(),
            )
        )
    return segments


def _seconds(value: object) -> float | None:
    try:
        return float(str(value)) if value is not None else None
    except (TypeError, ValueError):
        return None


def _optional_text(value: object) -> str | None:
    if value is None or value == "" or value == []:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _raise_if_cancelled(cancel: threading.Event | None, handle: QueuedHandle) -> None:
    if cancel is not None and cancel.is_set():
        raise JobCancelledError(f"Cancelled while waiting for {handle.request_id}")
