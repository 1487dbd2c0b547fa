"""
Server configuration from environment variables.

    FLOWCANVAS_DATA_DIR      where workflows are stored
    FLOWCANVAS_HOST          bind address
    FLOWCANVAS_PORT          bind port
    FLOWCANVAS_CORS_ORIGINS  comma-separated list of allowed origins
    FLOWCANVAS_LOG_LEVEL     logging level name
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_DATA_DIR = Path.home() / ".flowcanvas" / "workflows"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8765
DEFAULT_CORS_ORIGINS = ["http://localhost:5173", "http://localhost:3000", "http://127.0.0.1:5173"]
DEFAULT_LOG_LEVEL = "INFO"


@dataclass
class Settings:
    data_dir: Path = DEFAULT_DATA_DIR
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def api_url(self) -> str:
        return f"http://{self.host}:{self.port}"


def _split(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Read settings from the environment, falling back to defaults."""
    env = os.environ if environ is None else environ

    port = env.get("FLOWCANVAS_PORT")
    try:
        port_value = int(port) if port else DEFAULT_PORT
    except ValueError:
        raise ValueError(f"FLOWCANVAS_PORT must be an integer, got {port!r}")

    origins = env.get("FLOWCANVAS_CORS_ORIGINS")
    return Settings(
        data_dir=Path(env.get("FLOWCANVAS_DATA_DIR", str(DEFAULT_DATA_DIR))).expanduser(),
        host=env.get("FLOWCANVAS_HOST", DEFAULT_HOST),
        port=port_value,
        cors_origins=_split(origins) if origins else list(DEFAULT_CORS_ORIGINS),
        log_level=env.get("FLOWCANVAS_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
    )
