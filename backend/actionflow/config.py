"""Application settings — loaded from environment variables."""

from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Database ────────────────────────────────────────────────
    # Defaults to a local SQLite file (aiosqlite driver).
    DB_URL: str = "sqlite+aiosqlite:///./actionflow.db"

    # ── Runtime ─────────────────────────────────────────────────
    DEBUG: bool = False

    # text | json
    LOG_FORMAT: str = "text"

    # ── CORS (workflow editor) ─────────────────────────────────
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # ── Credential vault ───────────────────────────────────────
    # AES-256 key: exactly 32 UTF-8 characters, or 64 hex characters.
    # Read once at startup and handed to the vault; never persisted.
    CREDENTIAL_ENCRYPTION_KEY: str | None = None

    # ── Engine ─────────────────────────────────────────────────
    # Timeout for a single outbound action call.
    DISPATCH_TIMEOUT_SECONDS: float = 30.0

    # Max nodes of one run dispatching at the same time.
    MAX_INFLIGHT_NODES: int = 4

    # Wall-clock limit for a whole run (0 = unlimited).
    RUN_TIMEOUT_SECONDS: float = 0.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @field_validator("MAX_INFLIGHT_NODES")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError("MAX_INFLIGHT_NODES must be >= 1")
        return value


settings = Settings()
