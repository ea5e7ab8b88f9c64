from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(value: str, default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _env_int_or_none(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    return int(value)


@dataclass(frozen=True)
class Settings:
    """Runtime settings loaded from environment variables."""

    maze_width: int = int(os.getenv("BRAID_MAZE_WIDTH", "10"))
    maze_height: int = int(os.getenv("BRAID_MAZE_HEIGHT", "10"))
    max_turns: int = int(os.getenv("BRAID_MAX_TURNS", "100"))
    initial_treasure: float = float(os.getenv("BRAID_INITIAL_TREASURE", "1000.0"))
    random_seed: int | None = _env_int_or_none(os.getenv("BRAID_RANDOM_SEED"))
    host: str = os.getenv("BRAID_HOST", "127.0.0.1")
    port: int = int(os.getenv("BRAID_PORT", "7878"))
    read_timeout_seconds: float = float(os.getenv("BRAID_READ_TIMEOUT", "30.0"))
    max_frame_bytes: int = int(os.getenv("BRAID_MAX_FRAME_BYTES", str(1024 * 1024)))
    db_path: str = os.getenv("BRAID_DB_PATH", "braid.db")
    server_key: str | None = os.getenv("BRAID_SERVER_KEY")
    enable_session_listener: bool = _env_bool(os.getenv("BRAID_ENABLE_SESSION_LISTENER", "1"))
    api_key: str | None = os.getenv("BRAID_API_KEY")


settings = Settings()
