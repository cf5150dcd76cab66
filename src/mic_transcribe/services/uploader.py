from __future__ import annotations

import logging

import httpx

from mic_transcribe.config import Settings
from mic_transcribe.errors import UploadError
from mic_transcribe.types import AudioReference, InlineData, UrlReference

logger = logging.getLogger(__name__)


class StorageUploader:
    def __init__(self, settings: Settings, transport: httpx.BaseTransport | None = None) -> None:
        self.settings = settings
        self._transport = transport

    def upload(self, data: bytes, file_name: str, content_type: str) -> str:
        if not self.settings.fal_key:
            raise UploadError("FAL_KEY is not configured")

        headers = {
            "Accept": "application/json",
            "Authorization": f"Key {self.settings.fal_key}",
        }
        initiate_url = f"{self.settings.storage_base_url}/storage/upload/initiate"
        with httpx.Client(timeout=self.settings.http_timeout_seconds, transport=self._transport) as client:
            try:
                response = client.post(
                    initiate_url,
                    headers=headers,
                    json={"file_name": file_name, "content_type": content_type},
                )
                if response.status_code >= 400:
                    raise UploadError(
                        f"Initiate upload failed ({response.status_code}): {response.text[:400]}"
                    )

                payload = response.json()
                upload_url = payload.get("upload_url") if isinstance(payload, dict) else None
                file_url = payload.get("file_url") if isinstance(payload, dict) else None
                if not upload_url or not file_url:
                    raise UploadError("Initiate upload response missing upload_url or file_url")

                put_response = client.put(
                    str(upload_url),
                    headers={"Content-Type": content_type},
                    content=data,
                )
            except (httpx.HTTPError, ValueError) as exc:
                raise UploadError(f"Upload failed: {exc}") from exc

        if put_response.status_code >= 400:
            raise UploadError(f"File upload failed ({put_response.status_code})")
        return str(file_url)


def resolve_audio_reference(
    uploader: StorageUploader,
    data: bytes,
    file_name: str,
    content_type: str,
) -> AudioReference:
    try:
        url = uploader.upload(data, file_name, content_type)
    except UploadError as exc:
        logger.warning("Upload of %s failed, inlining audio instead: %s", file_name, exc)
        return InlineData(data=data, content_type=content_type)
    logger.info("Uploaded %s to %s", file_name, url)
    return UrlReference(url=url)
