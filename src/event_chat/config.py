"""Runtime settings read from the environment (and a .env file, if present)."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .upstream import DEFAULT_BASE_URL, DEFAULT_MODEL

logger = logging.getLogger(__name__)


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


class Settings:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        app_url: str = "http://localhost:8000",
        app_title: str = "Event-Driven Chat",
        data_dir: Optional[Path] = None,
    ):
        self.base_url = base_url
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.app_url = app_url
        self.app_title = app_title
        self.data_dir = data_dir

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "Settings":
        if load_env_file:
            load_dotenv()
        data_dir = os.getenv("EVENT_CHAT_DATA_DIR")
        return cls(
            base_url=os.getenv("OPENROUTER_BASE_URL", DEFAULT_BASE_URL),
            model=os.getenv("EVENT_CHAT_MODEL", DEFAULT_MODEL),
            temperature=_float_env("EVENT_CHAT_TEMPERATURE", 0.7),
            max_tokens=_int_env("EVENT_CHAT_MAX_TOKENS", 2048),
            app_url=os.getenv("EVENT_CHAT_APP_URL", "http://localhost:8000"),
            app_title=os.getenv("EVENT_CHAT_APP_TITLE", "Event-Driven Chat"),
            data_dir=Path(data_dir).expanduser() if data_dir else None,
        )
