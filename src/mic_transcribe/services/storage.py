from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from mic_transcribe.types import TranscriptResult, TranscriptSegment


def _sanitize_path_component(value: str, fallback: str) -> str:
    clean = re.sub(r"[^a-zA-Z0-9._-]+", "_", value.strip())
    clean = clean.strip("._")
    return clean or fallback


def format_timestamp(seconds: float) -> str:
    whole = int(max(seconds, 0))
    minutes, secs = divmod(whole, 60)
    return f"{minutes}:{secs:02d}"


def _segment_label(segment: TranscriptSegment, index: int) -> str:
    if segment.start is None or segment.end is None:
        return f"[Segment {index}]"
    return f"[{format_timestamp(segment.start)} - {format_timestamp(segment.end)}]"


def to_text(result: TranscriptResult) -> str:
    return (result.text or "").strip() + "\n"


def to_markdown(result: TranscriptResult, title: str | None = None) -> str:
    lines: list[str] = []
    if title:
        lines.append(f"# {title}")
        lines.append("")

    lines.append("## Transcript")
    lines.append("")
    lines.append(result.text or "")

    if result.segments:
        lines.append("")
        lines.append("## Timestamped Segments")
        lines.append("")
        for index, segment in enumerate(result.segments, start=1):
            lines.append(f"- {_segment_label(segment, index)} {segment.text}")

    return "\n".join(lines).strip() + "\n"


class TranscriptStore:
    def __init__(self, data_dir: Path) -> None:
        self.data_dir = data_dir
        self.transcripts_root = data_dir / "transcripts"
        self.transcripts_root.mkdir(parents=True, exist_ok=True)

    def recording_dir(self, recording_id: str) -> Path:
        return self.transcripts_root / _sanitize_path_component(recording_id, "unknown")

    def persist(
        self,
        *,
        recording_id: str,
        transcript: TranscriptResult,
        metadata: dict[str, object] | None = None,
    ) -> Path:
        recording_dir = self.recording_dir(recording_id)
        recording_dir.mkdir(parents=True, exist_ok=True)

        transcript_payload = {
            "recording_id": recording_id,
            "text": transcript.text,
            "metadata": metadata or {},
            "segments": [
                {"start": segment.start, "end": segment.end, "text": segment.text}
                for segment in transcript.segments
            ],
        }
        (recording_dir / "transcript.json").write_text(
            json.dumps(transcript_payload, indent=2, sort_keys=True),
            encoding="utf-8",
        )
        (recording_dir / "transcript.md").write_text(
            to_markdown(transcript, title=recording_id),
            encoding="utf-8",
        )
        (recording_dir / "transcript.txt").write_text(to_text(transcript), encoding="utf-8")
        return recording_dir

    def list_transcriptions(self, limit: int = 20) -> list[dict[str, Any]]:
        paths = sorted(
            self.transcripts_root.glob("*/transcript.json"),
            key=lambda path: path.stat().st_mtime,
            reverse=True,
        )
        items: list[dict[str, Any]] = []
        for path in paths[: max(limit, 0)]:
            payload = json.loads(path.read_text(encoding="utf-8"))
            items.append(
                {
                    "recording_id": payload.get("recording_id", path.parent.name),
                    "path": str(path.parent),
                    "preview": str(payload.get("text") or "")[:200],
                    "segment_count": len(payload.get("segments") or []),
                }
            )
        return items

    def read(self, recording_id: str, format: str = "markdown") -> str | dict[str, Any] | None:
        recording_dir = self.recording_dir(recording_id)
        file_names = {"markdown": "transcript.md", "text": "transcript.txt", "json": "transcript.json"}
        if format not in file_names:
            raise ValueError(f"Unsupported format: {format}")

        path = recording_dir / file_names[format]
        if not path.exists():
            return None
        content = path.read_text(encoding="utf-8")
        if format == "json":
            return json.loads(content)
        return content
