from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx

from mic_transcribe.config import Settings
from mic_transcribe.errors import WebhookError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WebhookDelivery:
    ok: bool
    message: str


class WebhookForwarder:
    def __init__(self, settings: Settings, transport: httpx.BaseTransport | None = None) -> None:
        self.settings = settings
        self._transport = transport

    def build_payload(self, transcription: str, now: datetime | None = None) -> dict[str, str]:
        moment = now or datetime.now(timezone.utc)
        return {
            "transcription": transcription,
            "timestamp": moment.isoformat().replace("+00:00", "Z"),
            "source": self.settings.webhook_source,
        }

    def send(self, transcription: str) -> str:
        if not self.settings.webhook_url:
            raise WebhookError("WEBHOOK_URL is not configured")

        payload = self.build_payload(transcription)
        try:
            with httpx.Client(timeout=self.settings.http_timeout_seconds, transport=self._transport) as client:
                response = client.post(self.settings.webhook_url, json=payload)
        except httpx.HTTPError as exc:
            raise WebhookError(f"Webhook request failed: {exc}") from exc

        if response.status_code >= 400:
            raise WebhookError(
                f"Webhook returned HTTP {response.status_code}: {response.text[:400]}"
            )
        return response.text

    def forward(self, transcription: str) -> WebhookDelivery:
        """Send without raising; the transcript stays usable whatever the webhook does."""
        if not self.settings.webhook_url:
            return WebhookDelivery(ok=False, message="Webhook not configured")
        try:
            self.send(transcription)
        except WebhookError as exc:
            logger.warning("Webhook delivery failed: %s", exc)
            return WebhookDelivery(ok=False, message=str(exc))
        logger.info("Forwarded transcription to webhook")
        return WebhookDelivery(ok=True, message="Sent to webhook")
