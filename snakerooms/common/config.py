from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"", "0", "false", "no", "off"}


def _parse_origins(value: str | None) -> list[str]:
    if not value:
        return ["*"]
    return [origin.strip() for origin in value.split(",") if origin.strip()]


@dataclass(frozen=True)
class Settings:
    """Runtime settings loaded from environment variables.

    Deployments only need PORT; everything else is a tuning knob with a
    sensible default.
    """

    port: int = int(os.getenv("PORT", "8080"))
    host: str = os.getenv("SNAKEROOMS_HOST", "0.0.0.0")
    countdown_seconds: float = float(os.getenv("SNAKEROOMS_COUNTDOWN_SECONDS", "3"))
    round_timeout_seconds: float = float(os.getenv("SNAKEROOMS_ROUND_TIMEOUT_SECONDS", "75"))
    round_poll_seconds: float = float(os.getenv("SNAKEROOMS_ROUND_POLL_SECONDS", "0.25"))
    outbox_size: int = int(os.getenv("SNAKEROOMS_OUTBOX_SIZE", "256"))
    max_name_length: int = int(os.getenv("SNAKEROOMS_MAX_NAME_LENGTH", "24"))
    ws_debug: bool = _env_bool(os.getenv("SNAKEROOMS_WS_DEBUG"))
    cors_origins: list[str] = field(
        default_factory=lambda: _parse_origins(os.getenv("SNAKEROOMS_CORS_ORIGINS"))
    )


settings = Settings()
