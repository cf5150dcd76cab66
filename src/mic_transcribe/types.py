from __future__ import annotations

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence, Union


@dataclass(frozen=True, slots=True)
class AudioBuffer:
    channels: Sequence[Sequence[float]]
    sample_rate: int

    @property
    def channel_count(self) -> int:
        return len(self.channels)

    @property
    def frame_count(self) -> int:
        return len(self.channels[0]) if self.channels else 0


@dataclass(frozen=True, slots=True)
class JobRequest:
    endpoint: str
    input: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class QueuedHandle:
    endpoint: str
    request_id: str


@dataclass(frozen=True, slots=True)
class DirectResult:
    payload: dict[str, Any]


JobHandle = Union[QueuedHandle, DirectResult]


class JobStatus(str, Enum):
    QUEUED = "IN_QUEUE"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @classmethod
    def parse(cls, value: object) -> "JobStatus | None":
        raw = str(value or "").strip().upper()
        if raw == "QUEUED":
            return cls.QUEUED
        for member in cls:
            if member.value == raw:
                return member
        return None


@dataclass(frozen=True, slots=True)
class StatusReport:
    status: JobStatus
    error: str | None = None
    logs: str | None = None
    raw_status: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass(frozen=True, slots=True)
class PollProgress:
    attempt: int
    max_attempts: int
    handle: QueuedHandle


@dataclass(frozen=True, slots=True)
class TranscriptSegment:
    start: float | None
    end: float | None
    text: str


@dataclass(frozen=True, slots=True)
class TranscriptResult:
    text: str
    segments: list[TranscriptSegment]
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class UrlReference:
    url: str

    def as_input_value(self) -> str:
        return self.url


@dataclass(frozen=True, slots=True)
class InlineData:
    data: bytes
    content_type: str

    def as_input_value(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


AudioReference = Union[UrlReference, InlineData]
