from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Any

from fastmcp import FastMCP
from mcp.types import ToolAnnotations

from mic_transcribe.errors import JobClientError
from mic_transcribe.pipeline import TranscriptionPipeline
from mic_transcribe.services.queue_client import FalQueueClient
from mic_transcribe.services.storage import TranscriptStore
from mic_transcribe.types import InlineData, QueuedHandle


class ToolRegistry:
    def __init__(
        self,
        pipeline: TranscriptionPipeline,
        queue_client: FalQueueClient,
        store: TranscriptStore,
    ) -> None:
        self.pipeline = pipeline
        self.queue_client = queue_client
        self.store = store

    def register(self, mcp: FastMCP) -> None:
        _ro = ToolAnnotations(readOnlyHint=True)

        @mcp.tool(annotations=ToolAnnotations(readOnlyHint=False))
        def transcribe_file(
            path: str,
            content_type: str | None = None,
            language: str | None = None,
        ) -> dict[str, Any]:
            """Transcribe a recorded audio file and forward the text to the webhook.

            Blocks until the queued job finishes, up to POLL_MAX_ATTEMPTS status
            checks POLL_INTERVAL_SECONDS apart (about two minutes by default).

            Args:
                path: Local path of the captured clip (webm, ogg, wav, ...)
                content_type: MIME type of the clip. Guessed from the extension if omitted.
                language: Language hint for the model (default: TRANSCRIBE_LANGUAGE)

            Returns:
                Transcript text, timestamped segments, and delivery details.
            """
            audio_path = Path(path)
            if not audio_path.is_file():
                return {"error": "file_not_found", "path": path}

            mime = content_type or mimetypes.guess_type(audio_path.name)[0] or "application/octet-stream"
            try:
                outcome = self.pipeline.process(
                    audio_path.read_bytes(),
                    mime,
                    recording_id=audio_path.stem,
                    language=language,
                )
            except JobClientError as exc:
                return {"error": "transcription_failed", "message": str(exc)}

            return {
                "recording_id": outcome.recording_id,
                "text": outcome.transcript.text,
                "segments": [
                    {"start": segment.start, "end": segment.end, "text": segment.text}
                    for segment in outcome.transcript.segments
                ],
                "audio_inlined": isinstance(outcome.audio_reference, InlineData),
                "transcript_path": str(outcome.saved_path),
                "webhook": {"ok": outcome.webhook.ok, "message": outcome.webhook.message},
            }

        @mcp.tool(annotations=_ro)
        def job_status(request_id: str) -> dict[str, Any]:
            """Check the queue status of a transcription request.

            Args:
                request_id: The fal request ID of a queued job

            Returns:
                Current status with any remote error or log text.
            """
            handle = QueuedHandle(endpoint=self.queue_client.settings.model, request_id=request_id)
            try:
                report = self.queue_client.poll_status(handle)
            except JobClientError as exc:
                return {"error": "status_failed", "request_id": request_id, "message": str(exc)}
            return {
                "request_id": request_id,
                "status": report.status.value,
                "error": report.error,
                "logs": report.logs,
            }

        @mcp.tool(annotations=_ro)
        def list_transcriptions(limit: int = 20) -> dict[str, Any]:
            """List saved transcriptions, newest first.

            Args:
                limit: Maximum number of items (default: 20)

            Returns:
                Recording IDs with a text preview and segment count.
            """
            items = self.store.list_transcriptions(limit=limit)
            return {"count": len(items), "items": items}

        @mcp.tool(annotations=_ro)
        def read_transcription(recording_id: str, format: str = "markdown") -> dict[str, Any]:
            """Read a saved transcription.

            Args:
                recording_id: The recording ID returned by transcribe_file
                format: Output format - "markdown", "text", or "json" (default: "markdown")

            Returns:
                Transcription content in the requested format.
            """
            try:
                content = self.store.read(recording_id, format=format)
            except ValueError:
                return {
                    "error": "unsupported_format",
                    "supported_formats": ["markdown", "json", "text"],
                }
            if content is None:
                return {"error": "transcription_not_found", "recording_id": recording_id}
            return {"recording_id": recording_id, "format": format, "content": content}
