from __future__ import annotations

import logging

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from mic_transcribe.config import Settings, load_settings
from mic_transcribe.mcp_tools import ToolRegistry
from mic_transcribe.pipeline import TranscriptionPipeline
from mic_transcribe.services.queue_client import FalQueueClient
from mic_transcribe.services.storage import TranscriptStore
from mic_transcribe.services.uploader import StorageUploader
from mic_transcribe.services.webhook import WebhookForwarder

logger = logging.getLogger(__name__)


class AppRuntime:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.store = TranscriptStore(settings.data_dir)
        self.queue_client = FalQueueClient(settings)
        self.uploader = StorageUploader(settings)
        self.webhook = WebhookForwarder(settings)
        self.pipeline = TranscriptionPipeline(
            settings=settings,
            queue_client=self.queue_client,
            uploader=self.uploader,
            webhook=self.webhook,
            store=self.store,
        )


def create_app(runtime: AppRuntime) -> FastMCP:
    mcp = FastMCP(name="mic-transcribe")

    tools = ToolRegistry(runtime.pipeline, runtime.queue_client, runtime.store)
    tools.register(mcp)

    @mcp.custom_route(runtime.settings.health_path, methods=["GET"])
    async def health(_: Request) -> JSONResponse:
        return JSONResponse(
            {
                "ok": True,
                "credential_configured": bool(runtime.settings.fal_key),
                "webhook_configured": bool(runtime.settings.webhook_url),
                "model": runtime.settings.model,
                "mcp_path": runtime.settings.mcp_path,
            }
        )

    return mcp


def cli() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    settings = load_settings()
    if not settings.fal_key:
        logger.warning("FAL_KEY is not set; transcription requests will fail until it is configured")

    app = create_app(AppRuntime(settings))
    logger.info("Starting MCP server on %s:%s%s", settings.host, settings.port, settings.mcp_path)
    app.run(
        transport="http",
        host=settings.host,
        port=settings.port,
        path=settings.mcp_path,
    )


if __name__ == "__main__":
    cli()
