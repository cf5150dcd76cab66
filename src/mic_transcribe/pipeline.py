from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path

from mic_transcribe.config import Settings
from mic_transcribe.services.decoder import prepare_audio
from mic_transcribe.services.queue_client import FalQueueClient, ProgressCallback
from mic_transcribe.services.storage import TranscriptStore
from mic_transcribe.services.uploader import StorageUploader, resolve_audio_reference
from mic_transcribe.services.webhook import WebhookDelivery, WebhookForwarder
from mic_transcribe.types import AudioReference, JobRequest, TranscriptResult, UrlReference

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "audio/wav": "wav",
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
    "audio/flac": "flac",
}


@dataclass(slots=True)
class PipelineOutcome:
    recording_id: str
    transcript: TranscriptResult
    audio_reference: AudioReference
    saved_path: Path
    webhook: WebhookDelivery


def build_transcription_request(settings: Settings, audio: AudioReference, language: str | None = None) -> JobRequest:
    return JobRequest(
        endpoint=settings.model,
        input={
            "audio_url": audio.as_input_value(),
            "task": "transcribe",
            "language": language or settings.language,
            "chunk_level": "segment",
            "version": "3",
        },
    )


class TranscriptionPipeline:
    def __init__(
        self,
        *,
        settings: Settings,
        queue_client: FalQueueClient,
        uploader: StorageUploader,
        webhook: WebhookForwarder,
        store: TranscriptStore,
    ) -> None:
        self.settings = settings
        self.queue_client = queue_client
        self.uploader = uploader
        self.webhook = webhook
        self.store = store

    def process(
        self,
        data: bytes,
        content_type: str,
        *,
        recording_id: str | None = None,
        language: str | None = None,
        on_progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> PipelineOutcome:
        recording_id = recording_id or f"recording_{int(time.time() * 1000)}"
        logger.info("Processing %s (%s, %s bytes)", recording_id, content_type, len(data))

        audio, audio_type = prepare_audio(data, content_type)
        file_name = f"{recording_id}.{_EXTENSIONS.get(audio_type.split(';')[0], 'bin')}"
        reference = resolve_audio_reference(self.uploader, audio, file_name, audio_type)

        request = build_transcription_request(self.settings, reference, language)
        transcript = self.queue_client.submit_and_wait(request, on_progress=on_progress, cancel=cancel)

        saved_path = self.store.persist(
            recording_id=recording_id,
            transcript=transcript,
            metadata={
                "content_type": audio_type,
                "audio_url": reference.url if isinstance(reference, UrlReference) else None,
                "model": request.endpoint,
            },
        )
        delivery = self.webhook.forward(transcript.text)
        logger.info("Completed %s", recording_id)

        return PipelineOutcome(
            recording_id=recording_id,
            transcript=transcript,
            audio_reference=reference,
            saved_path=saved_path,
            webhook=delivery,
        )
