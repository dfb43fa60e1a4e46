# signgate/core/config.py
from __future__ import annotations

"""
# SignGate — Centralized Configuration (Pydantic v2)

Single `settings` object with strongly-typed, environment-driven config.

## Goals
- Loaded once at startup, read-only afterwards (shared by every request).
- CSV → list helpers for salts, allow-lists and content types.
- Storage credentials optional so the standard AWS chain can be used.
- Bounded object-store timeouts; no internal retries by default.

## Usage
    from signgate.core.config import settings
"""

from typing import Annotated, List, Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

load_dotenv()  # harmless in prod; convenient in dev


# ─────────────────────────────────────────────────────────────
# Small helpers
# ─────────────────────────────────────────────────────────────
def _split_csv(v: str | None) -> list[str]:
    """Split a comma-separated string into a trimmed list (empty-safe)."""
    if not v:
        return []
    return [s.strip() for s in str(v).split(",") if s and s.strip()]


CsvList = Annotated[List[str], NoDecode]


# ─────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────
class Settings(BaseSettings):
    """
    Global gateway settings sourced from environment.

    Modes:
        - `signed`: `/{expiry}/{digest}/**` links checked against `HASH_SALTS`.
        - `simple`: `/{first}/**` links checked against `ALLOWED_FIRST_PATHS`.

    Notes:
        - Salts are secrets; only their count is ever logged.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # don't crash on unknown keys
    )

    # ── App meta ──────────────────────────────────────────────
    PROJECT_NAME: str = "SignGate"
    VERSION: str = "1.0.0"
    ENV: Literal["development", "staging", "production"] = "development"
    ENABLE_DOCS: bool = False
    GATEWAY_MODE: Literal["signed", "simple"] = "signed"

    # ── Object store ──────────────────────────────────────────
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[SecretStr] = None
    AWS_SESSION_TOKEN: Optional[SecretStr] = None
    AWS_REGION: str = "us-east-1"
    AWS_BUCKET_NAME: Optional[str] = None
    AWS_S3_ENDPOINT_URL: Optional[str] = None

    S3_CONNECT_TIMEOUT: float = Field(3.0, gt=0, le=60)
    S3_READ_TIMEOUT: float = Field(10.0, gt=0, le=300)
    S3_MAX_ATTEMPTS: int = Field(1, ge=1, le=10)

    # ── Signed mode ───────────────────────────────────────────
    HASH_SALTS: CsvList = Field(default_factory=list)
    DIGEST_ALGORITHM: Literal["md5", "hmac-sha256"] = "md5"
    REDIRECT_CONTENT_TYPES: CsvList = Field(default_factory=lambda: ["binary/octet-stream"])

    # ── Simple mode ───────────────────────────────────────────
    ALLOWED_FIRST_PATHS: CsvList = Field(default_factory=list)
    PRESIGN_DURATION_MINUTES: int = Field(60, ge=1, le=7 * 24 * 60)

    # ── Validators / normalizers ──────────────────────────────
    @field_validator("HASH_SALTS", "ALLOWED_FIRST_PATHS", mode="before")
    @classmethod
    def _assemble_csv(cls, v: str | List[str] | None):
        if v is None or isinstance(v, str):
            return _split_csv(v)
        return v

    @field_validator("REDIRECT_CONTENT_TYPES", mode="before")
    @classmethod
    def _assemble_content_types(cls, v: str | List[str] | None):
        items = _split_csv(v) if v is None or isinstance(v, str) else list(v)
        return [s.strip().lower() for s in items if s and s.strip()]

    @field_validator("AWS_S3_ENDPOINT_URL", mode="before")
    @classmethod
    def _normalize_endpoint(cls, v: str | None) -> str | None:
        s = (v or "").strip().rstrip("/")
        return s or None

    # ── Derived / convenience properties ─────────────────────
    @property
    def presign_duration_seconds(self) -> int:
        """Simple-mode presign TTL in seconds."""
        return int(self.PRESIGN_DURATION_MINUTES) * 60

    def describe(self) -> str:
        """One-line, secret-free summary for startup logs."""
        return (
            f"mode={self.GATEWAY_MODE} bucket={self.AWS_BUCKET_NAME!r} region={self.AWS_REGION!r} "
            f"salts={len(self.HASH_SALTS)} allowed_first_paths={self.ALLOWED_FIRST_PATHS}"
        )


# Singleton instance
settings = Settings()
