from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

ADDRESSING_STYLES: frozenset[str] = frozenset({"path", "virtual", "auto"})
LOG_LEVELS: frozenset[str] = frozenset(
    {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
)


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _as_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass
class Settings:
    S3_BUCKET: str | None = None
    S3_PREFIX: str | None = None
    S3_PUBLIC: bool = False
    S3_ENDPOINT_URL: str | None = None
    S3_REGION: str = "us-east-1"
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_USE_SSL: bool = True
    S3_ADDRESSING_STYLE: str = "auto"
    S3_PRESIGN_EXPIRES_SECONDS: int = 900
    # Short timeouts bound per-request latency: every route waits on one call.
    S3_CONNECT_TIMEOUT: int = 5
    S3_READ_TIMEOUT: int = 10
    S3_MAX_ATTEMPTS: int = 3
    MULTIPART_MOUNT_PATH: str = "/s3"
    ENABLE_METRICS: bool = True
    CORS_ENABLED: bool = False
    CORS_ORIGINS: list[str] = field(default_factory=list)
    LOG_LEVEL: str = "INFO"

    def __post_init__(self) -> None:
        style = (self.S3_ADDRESSING_STYLE or "").strip().lower()
        if style not in ADDRESSING_STYLES:
            raise ValueError(
                "S3_ADDRESSING_STYLE must be one of: "
                + ", ".join(sorted(ADDRESSING_STYLES))
            )
        self.S3_ADDRESSING_STYLE = style

        if self.S3_PREFIX:
            self.S3_PREFIX = self.S3_PREFIX.strip("/") or None

        if not self.MULTIPART_MOUNT_PATH.startswith("/"):
            raise ValueError("MULTIPART_MOUNT_PATH must start with '/'.")
        if self.MULTIPART_MOUNT_PATH != "/":
            self.MULTIPART_MOUNT_PATH = self.MULTIPART_MOUNT_PATH.rstrip("/")

        if self.S3_PRESIGN_EXPIRES_SECONDS <= 0:
            raise ValueError("S3_PRESIGN_EXPIRES_SECONDS must be positive.")
        if self.S3_MAX_ATTEMPTS < 1:
            raise ValueError("S3_MAX_ATTEMPTS must be at least 1.")

        level = self.LOG_LEVEL.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unsupported LOG_LEVEL: {self.LOG_LEVEL}")
        self.LOG_LEVEL = level

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        return cls(
            S3_BUCKET=_as_optional(os.environ.get("S3_BUCKET")),
            S3_PREFIX=_as_optional(os.environ.get("S3_PREFIX")),
            S3_PUBLIC=_as_bool(os.environ.get("S3_PUBLIC"), cls.S3_PUBLIC),
            S3_ENDPOINT_URL=_as_optional(os.environ.get("S3_ENDPOINT_URL")),
            S3_REGION=os.environ.get("S3_REGION", cls.S3_REGION),
            S3_ACCESS_KEY_ID=_as_optional(os.environ.get("S3_ACCESS_KEY_ID")),
            S3_SECRET_ACCESS_KEY=_as_optional(os.environ.get("S3_SECRET_ACCESS_KEY")),
            S3_USE_SSL=_as_bool(os.environ.get("S3_USE_SSL"), cls.S3_USE_SSL),
            S3_ADDRESSING_STYLE=os.environ.get(
                "S3_ADDRESSING_STYLE", cls.S3_ADDRESSING_STYLE
            ),
            S3_PRESIGN_EXPIRES_SECONDS=int(
                os.environ.get(
                    "S3_PRESIGN_EXPIRES_SECONDS", cls.S3_PRESIGN_EXPIRES_SECONDS
                )
            ),
            S3_CONNECT_TIMEOUT=int(
                os.environ.get("S3_CONNECT_TIMEOUT", cls.S3_CONNECT_TIMEOUT)
            ),
            S3_READ_TIMEOUT=int(os.environ.get("S3_READ_TIMEOUT", cls.S3_READ_TIMEOUT)),
            S3_MAX_ATTEMPTS=int(os.environ.get("S3_MAX_ATTEMPTS", cls.S3_MAX_ATTEMPTS)),
            MULTIPART_MOUNT_PATH=os.environ.get(
                "MULTIPART_MOUNT_PATH", cls.MULTIPART_MOUNT_PATH
            ),
            ENABLE_METRICS=_as_bool(
                os.environ.get("ENABLE_METRICS"), cls.ENABLE_METRICS
            ),
            CORS_ENABLED=_as_bool(os.environ.get("CORS_ENABLED"), cls.CORS_ENABLED),
            CORS_ORIGINS=_as_list(os.environ.get("CORS_ORIGINS")),
            LOG_LEVEL=os.environ.get("LOG_LEVEL", cls.LOG_LEVEL),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
