from __future__ import annotations

from functools import lru_cache
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Notes:
      - We intentionally support comma-separated CORS_ORIGINS ("a,b,c") and "*".
      - Extra env vars are ignored to keep upgrades painless.
      - Without CLAUDE_API_KEY the proxy passes text through untranslated.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ---- Claude ----
    CLAUDE_API_KEY: Optional[str] = Field(default=None)
    CLAUDE_BASE_URL: str = Field(default="https://api.anthropic.com")
    CLAUDE_MODEL: str = Field(default="claude-sonnet-4-20250514")
    CLAUDE_API_VERSION: str = Field(default="2023-06-01")
    MAX_TOKENS: int = Field(default=8000, description="max_tokens sent upstream")

    # ---- Runtime ----
    TIMEOUT: float = Field(default=60.0, description="HTTP read timeout (seconds)")
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=3000)
    LOG_LEVEL: str = Field(default="INFO")

    # ---- Security / UX ----
    CORS_ORIGINS: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["*"])

    # ---- Dispatch queue ----
    QUEUE_MAX_PER_MINUTE: int = Field(default=4, description="Dispatches allowed per window")
    QUEUE_WINDOW_SECONDS: float = Field(default=60.0)
    QUEUE_SAFETY_MARGIN_SECONDS: float = Field(default=1.0, description="Added to computed waits")
    QUEUE_DISPATCH_DELAY_SECONDS: float = Field(default=2.0, description="Pause after each dispatch")
    QUEUE_MAX_PENDING: int = Field(default=0, description="0 = unbounded")

    # ---- Output checks ----
    LARGE_INPUT_TOKENS_WARN: int = Field(default=6000)
    OUTPUT_TOKENS_WARN: int = Field(default=7500)
    LINE_MISMATCH_WARN: int = Field(default=5)

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        if v is None or v == "":
            return ["*"]
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            s = v.strip()
            if s == "*":
                return ["*"]
            return [o.strip() for o in s.split(",") if o.strip()]
        return ["*"]

    @field_validator("CLAUDE_API_KEY", mode="before")
    @classmethod
    def _blank_key_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("TIMEOUT", "QUEUE_WINDOW_SECONDS")
    @classmethod
    def _floats_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("value must be > 0")
        return float(v)

    @field_validator("MAX_TOKENS", "QUEUE_MAX_PER_MINUTE", "PORT")
    @classmethod
    def _ints_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be > 0")
        return int(v)

    @field_validator("QUEUE_SAFETY_MARGIN_SECONDS", "QUEUE_DISPATCH_DELAY_SECONDS")
    @classmethod
    def _delays_nonneg(cls, v: float) -> float:
        if v < 0:
            raise ValueError("delay must be >= 0")
        return float(v)

    @field_validator("QUEUE_MAX_PENDING")
    @classmethod
    def _max_pending_nonneg(cls, v: int) -> int:
        if v < 0:
            raise ValueError("QUEUE_MAX_PENDING must be >= 0")
        return int(v)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
