import json
import threading
import time
from typing import Any

import httpx
import pytest

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
from mic_transcribe.services.queue_client import NO_TRANSCRIPTION, FalQueueClient, normalize_result
from mic_transcribe.types import DirectResult, JobRequest, JobStatus, PollProgress, QueuedHandle

REQUEST = JobRequest(endpoint="fal-ai/wizper", input={"audio_url": "https://cdn/x.wav", "language": "en"})


class FakeFal:
    def __init__(
        self,
        submit: dict[str, Any],
        statuses: list[dict[str, Any]] | None = None,
        result: dict[str, Any] | None = None,
        submit_status: int = 200,
    ) -> None:
        self.submit_body = submit
        self.submit_status = submit_status
        self.statuses = list(statuses or [])
        self.result = result or {}
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST":
            return httpx.Response(self.submit_status, json=self.submit_body)
        if request.url.path.endswith("/status"):
            body = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
            return httpx.Response(200, json=body)
        return httpx.Response(200, json=self.result)

    def count(self, kind: str) -> int:
        if kind == "submit":
            return sum(1 for r in self.requests if r.method == "POST")
        if kind == "status":
            return sum(1 for r in self.requests if r.url.path.endswith("/status"))
        return sum(1 for r in self.requests if r.method == "GET" and not r.url.path.endswith("/status"))


def _client(fake: FakeFal, fal_key: str | None = "secret", sleeps: list[float] | None = None) -> FalQueueClient:
    recorded = sleeps if sleeps is not None else []
    return FalQueueClient(
        Settings(fal_key=fal_key),
        transport=httpx.MockTransport(fake.handler),
        sleep=recorded.append,
    )


def test_direct_result_skips_polling() -> None:
    fake = FakeFal(submit={"text": "quick answer", "chunks": []})
    result = _client(fake).submit_and_wait(REQUEST)

    assert result.text == "quick answer"
    assert result.segments == []
    assert fake.count("submit") == 1
    assert fake.count("status") == 0
    assert fake.count("result") == 0


def test_submit_sends_input_and_key_header() -> None:
    fake = FakeFal(submit={"request_id": "abc"})
    handle = _client(fake).submit(REQUEST)

    assert handle == QueuedHandle(endpoint="fal-ai/wizper", request_id="abc")
    sent = fake.requests[0]
    assert str(sent.url) == "https://fal.run/fal-ai/wizper"
    assert sent.headers["Authorization"] == "Key secret"
    assert json.loads(sent.content) == {"audio_url": "https://cdn/x.wav", "language": "en"}


def test_submit_direct_handle_keeps_payload() -> None:
    fake = FakeFal(submit={"transcription": "hi"})
    handle = _client(fake).submit(REQUEST)
    assert handle == DirectResult(payload={"transcription": "hi"})


def test_submit_without_identifier_or_result_is_protocol_error() -> None:
    fake = FakeFal(submit={"detail": "accepted"})
    with pytest.raises(ProtocolError):
        _client(fake).submit(REQUEST)


def test_submit_http_error_includes_status_and_body() -> None:
    fake = FakeFal(submit={"detail": "bad audio"}, submit_status=422)
    with pytest.raises(SubmitError) as excinfo:
        _client(fake).submit(REQUEST)
    assert excinfo.value.status_code == 422
    assert "422" in str(excinfo.value)
    assert "bad audio" in str(excinfo.value)


def test_normal_path_polls_then_fetches_once() -> None:
    chunks = [{"timestamp": [0.0, 1.5], "text": "hello"}]
    fake = FakeFal(
        submit={"request_id": "x"},
        statuses=[{"status": "IN_QUEUE"}, {"status": "IN_PROGRESS"}, {"status": "COMPLETED"}],
        result={"text": "hello", "chunks": chunks},
    )
    sleeps: list[float] = []
    result = _client(fake, sleeps=sleeps).submit_and_wait(REQUEST)

    assert result.text == "hello"
    assert result.raw == {"text": "hello", "chunks": chunks}
    assert result.segments[0].start == 0.0
    assert result.segments[0].end == 1.5
    assert fake.count("status") == 3
    assert fake.count("result") == 1
    assert sleeps == [2.0, 2.0]
    assert str(fake.requests[1].url) == "https://queue.fal.run/fal-ai/wizper/requests/x/status"
    assert str(fake.requests[-1].url) == "https://queue.fal.run/fal-ai/wizper/requests/x"


def test_progress_callback_runs_before_each_poll() -> None:
    fake = FakeFal(
        submit={"request_id": "x"},
        statuses=[{"status": "IN_PROGRESS"}, {"status": "COMPLETED"}],
        result={"text": "done"},
    )
    seen: list[tuple[int, int, int]] = []

    def on_progress(progress: PollProgress) -> None:
        seen.append((progress.attempt, progress.max_attempts, fake.count("status")))
        assert progress.handle.request_id == "x"

    _client(fake).submit_and_wait(REQUEST, on_progress=on_progress)
    assert seen == [(1, 60, 0), (2, 60, 1)]


def test_progress_callback_errors_propagate() -> None:
    fake = FakeFal(submit={"request_id": "x"}, statuses=[{"status": "IN_PROGRESS"}])

    def on_progress(_: PollProgress) -> None:
        raise RuntimeError("ui gone")

    with pytest.raises(RuntimeError, match="ui gone"):
        _client(fake).submit_and_wait(REQUEST, on_progress=on_progress)
    assert fake.count("status") == 0


def test_failed_job_raises_with_remote_error() -> None:
    fake = FakeFal(submit={"request_id": "x"}, statuses=[{"status": "FAILED", "error": "boom"}])
    with pytest.raises(JobFailedError, match="boom"):
        _client(fake).submit_and_wait(REQUEST)
    assert fake.count("result") == 0


def test_failed_job_falls_back_to_logs_then_generic() -> None:
    fake = FakeFal(submit={"request_id": "x"}, statuses=[{"status": "FAILED", "logs": "oom"}])
    with pytest.raises(JobFailedError, match="oom"):
        _client(fake).submit_and_wait(REQUEST)

    fake = FakeFal(submit={"request_id": "x"}, statuses=[{"status": "FAILED"}])
    with pytest.raises(JobFailedError, match="Unknown error"):
        _client(fake).submit_and_wait(REQUEST)


def test_timeout_after_attempt_bound() -> None:
    fake = FakeFal(submit={"request_id": "x"}, statuses=[{"status": "IN_PROGRESS"}])
    sleeps: list[float] = []
    with pytest.raises(JobTimeoutError) as excinfo:
        _client(fake, sleeps=sleeps).submit_and_wait(REQUEST)

    assert isinstance(excinfo.value, TimeoutError)
    assert fake.count("status") == 60
    assert fake.count("result") == 0
    assert len(sleeps) == 59


def test_attempt_bound_and_interval_are_configurable() -> None:
    fake = FakeFal(submit={"request_id": "x"}, statuses=[{"status": "IN_QUEUE"}])
    sleeps: list[float] = []
    with pytest.raises(JobTimeoutError):
        _client(fake, sleeps=sleeps).submit_and_wait(REQUEST, max_attempts=3, poll_interval_seconds=0.5)
    assert fake.count("status") == 3
    assert sleeps == [0.5, 0.5]


def test_cancelled_before_first_poll() -> None:
    fake = FakeFal(submit={"request_id": "x"}, statuses=[{"status": "IN_PROGRESS"}])
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(JobCancelledError):
        _client(fake).submit_and_wait(REQUEST, cancel=cancel)
    assert fake.count("status") == 0


def test_cancel_during_progress_stops_polling() -> None:
    fake = FakeFal(submit={"request_id": "x"}, statuses=[{"status": "IN_PROGRESS"}])
    cancel = threading.Event()

    def on_progress(progress: PollProgress) -> None:
        if progress.attempt == 2:
            cancel.set()

    with pytest.raises(JobCancelledError):
        _client(fake).submit_and_wait(
            REQUEST, on_progress=on_progress, cancel=cancel, poll_interval_seconds=0.0
        )
    assert fake.count("status") == 1


def test_missing_credential_fails_before_network() -> None:
    fake = FakeFal(submit={"request_id": "x"})
    client = _client(fake, fal_key=None)
    with pytest.raises(AuthError):
        client.submit(REQUEST)
    with pytest.raises(AuthError):
        client.submit_and_wait(REQUEST)
    with pytest.raises(AuthError):
        client.poll_status(QueuedHandle(endpoint="fal-ai/wizper", request_id="x"))
    assert fake.requests == []


def test_status_http_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    client = FalQueueClient(Settings(fal_key="k"), transport=httpx.MockTransport(handler))
    with pytest.raises(StatusError, match="503"):
        client.poll_status(QueuedHandle(endpoint="fal-ai/wizper", request_id="x"))


def test_status_report_parsing() -> None:
    fake = FakeFal(submit={}, statuses=[{"status": "QUEUED", "logs": [{"message": "warming"}]}])
    report = _client(fake).poll_status(QueuedHandle(endpoint="fal-ai/wizper", request_id="x"))
    assert report.status is JobStatus.QUEUED
    assert report.is_terminal is False
    assert "warming" in (report.logs or "")


def test_unrecognised_status_keeps_polling() -> None:
    fake = FakeFal(
        submit={"request_id": "x"},
        statuses=[{"status": "PAUSED"}, {}, {"status": "COMPLETED"}],
        result={"text": "hello"},
    )
    result = _client(fake).submit_and_wait(REQUEST)

    assert result.text == "hello"
    assert fake.count("status") == 3
    assert fake.count("result") == 1


def test_unrecognised_status_reported_as_in_progress() -> None:
    fake = FakeFal(submit={}, statuses=[{"status": "PAUSED"}])
    report = _client(fake).poll_status(QueuedHandle(endpoint="fal-ai/wizper", request_id="x"))
    assert report.status is JobStatus.IN_PROGRESS
    assert report.raw_status == "PAUSED"
    assert report.is_terminal is False


def test_non_utf8_body_is_protocol_error() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"\xff\xfe\xfa garbage")

    client = FalQueueClient(Settings(fal_key="k"), transport=httpx.MockTransport(handler))
    with pytest.raises(ProtocolError):
        client.submit(REQUEST)


def test_result_http_error_after_completion() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "POST":
            return httpx.Response(200, json={"request_id": "x"})
        if request.url.path.endswith("/status"):
            return httpx.Response(200, json={"status": "COMPLETED"})
        return httpx.Response(404, text="result expired")

    client = FalQueueClient(Settings(fal_key="k"), transport=httpx.MockTransport(handler), sleep=lambda _: None)
    with pytest.raises(ResultError) as excinfo:
        client.submit_and_wait(REQUEST)

    assert excinfo.value.status_code == 404
    assert "result expired" in str(excinfo.value)
    result_calls = [r for r in requests if r.method == "GET" and not r.url.path.endswith("/status")]
    assert len(result_calls) == 1


def test_cancel_interrupts_delay_between_polls() -> None:
    fake = FakeFal(submit={"request_id": "x"}, statuses=[{"status": "IN_PROGRESS"}])
    cancel = threading.Event()
    timer = threading.Timer(0.5, cancel.set)

    started = time.monotonic()
    timer.start()
    try:
        with pytest.raises(JobCancelledError):
            _client(fake).submit_and_wait(REQUEST, cancel=cancel, poll_interval_seconds=30.0)
    finally:
        timer.cancel()

    assert time.monotonic() - started < 5.0
    assert fake.count("status") == 1


def test_invalid_attempt_bound_rejected_before_submit() -> None:
    fake = FakeFal(submit={"request_id": "x"}, statuses=[{"status": "IN_PROGRESS"}])
    client = _client(fake)
    for bound in (0, -3):
        with pytest.raises(ValueError):
            client.submit_and_wait(REQUEST, max_attempts=bound)
    assert fake.requests == []


def test_normalize_result_fallbacks() -> None:
    empty = normalize_result({})
    assert empty.text == NO_TRANSCRIPTION
    assert empty.segments == []

    alt = normalize_result(
        {"transcription": "alt", "segments": [{"start": 1, "end": 2.5, "text": " part "}, "junk"]}
    )
    assert alt.text == "alt"
    assert len(alt.segments) == 1
    assert (alt.segments[0].start, alt.segments[0].end, alt.segments[0].text) == (1.0, 2.5, "part")

    untimed = normalize_result({"text": "t", "chunks": [{"text": "a"}]})
    assert untimed.segments[0].start is None
