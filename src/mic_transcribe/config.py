from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


@dataclass(frozen=True, slots=True)
class Settings:
    fal_key: str | None = None
    run_base_url: str = "https://fal.run"
    queue_base_url: str = "https://queue.fal.run"
    storage_base_url: str = "https://rest.alpha.fal.ai"
    model: str = "fal-ai/wizper"
    language: str = "en"
    poll_max_attempts: int = 60
    poll_interval_seconds: float = 2.0
    http_timeout_seconds: float = 60.0
    webhook_url: str | None = None
    webhook_source: str = "mic-transcribe"
    data_dir: Path = Path("/data")
    host: str = "0.0.0.0"
    port: int = 3000
    mcp_path: str = "/mcp"
    health_path: str = "/healthz"


def _as_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    return int(raw)


def _as_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    return float(raw)


def _normalized_path(path: str) -> str:
    if not path.startswith("/"):
        path = f"/{path}"
    return path


def _base_url(name: str, default: str) -> str:
    return os.getenv(name, default).strip().rstrip("/")


def load_settings() -> Settings:
    load_dotenv()

    poll_max_attempts = _as_int("POLL_MAX_ATTEMPTS", 60)
    if poll_max_attempts < 1:
        raise RuntimeError("POLL_MAX_ATTEMPTS must be at least 1")

    return Settings(
        fal_key=os.getenv("FAL_KEY", "").strip() or None,
        run_base_url=_base_url("FAL_RUN_BASE_URL", "https://fal.run"),
        queue_base_url=_base_url("FAL_QUEUE_BASE_URL", "https://queue.fal.run"),
        storage_base_url=_base_url("FAL_STORAGE_BASE_URL", "https://rest.alpha.fal.ai"),
        model=os.getenv("FAL_MODEL", "fal-ai/wizper"),
        language=os.getenv("TRANSCRIBE_LANGUAGE", "en"),
        poll_max_attempts=poll_max_attempts,
        poll_interval_seconds=_as_float("POLL_INTERVAL_SECONDS", 2.0),
        http_timeout_seconds=_as_float("HTTP_TIMEOUT_SECONDS", 60.0),
        webhook_url=os.getenv("WEBHOOK_URL") or None,
        webhook_source=os.getenv("WEBHOOK_SOURCE", "mic-transcribe"),
        data_dir=Path(os.getenv("DATA_DIR", "/data")).resolve(),
        host=os.getenv("HOST", "0.0.0.0"),
        port=_as_int("PORT", 3000),
        mcp_path=_normalized_path(os.getenv("MCP_PATH", "/mcp")),
        health_path=_normalized_path(os.getenv("HEALTH_PATH", "/healthz")),
    )
