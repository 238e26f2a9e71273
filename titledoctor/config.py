"""Service configuration resolved once from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

STATE_BACKENDS = ("memory", "file", "nats")


class ConfigurationError(ValueError):
    """Raised when required settings are missing or malformed."""


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    value = env.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    youtube_api_key: str = ""
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    resend_api_key: str = ""
    mail_from: str = "onboarding@resend.dev"

    nats_url: str = ""
    state_backend: str = "file"
    state_path: Path = field(default_factory=lambda: Path("data/jobs.json"))
    kv_bucket: str = "titledoctor_jobs"

    http_timeout: float = 20.0
    upstream_attempts: int = 1
    search_results: int = 10
    max_videos: int = 5

    public_dir: Path = field(default_factory=lambda: Path("public"))
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3000
    reload: bool = False

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        return cls(
            youtube_api_key=(env.get("YOUTUBE_API_KEY") or "").strip(),
            gemini_api_key=(env.get("GEMINI_API_KEY") or "").strip(),
            gemini_model=(env.get("GEMINI_MODEL") or "gemini-2.5-flash").strip(),
            resend_api_key=(env.get("RESEND_API_KEY") or "").strip(),
            mail_from=(env.get("RESEND_FROM_EMAIL") or "onboarding@resend.dev").strip(),
            nats_url=(env.get("NATS_URL") or "").strip(),
            state_backend=(env.get("TITLEDOCTOR_STATE_BACKEND") or "file").strip().lower(),
            state_path=Path(env.get("TITLEDOCTOR_STATE_PATH") or "data/jobs.json").expanduser(),
            kv_bucket=(env.get("TITLEDOCTOR_KV_BUCKET") or "titledoctor_jobs").strip(),
            http_timeout=_env_float(env, "TITLEDOCTOR_HTTP_TIMEOUT", 20.0),
            upstream_attempts=_env_int(env, "TITLEDOCTOR_UPSTREAM_ATTEMPTS", 1),
            search_results=_env_int(env, "TITLEDOCTOR_SEARCH_RESULTS", 10),
            max_videos=_env_int(env, "TITLEDOCTOR_MAX_VIDEOS", 5),
            public_dir=Path(env.get("TITLEDOCTOR_PUBLIC_DIR") or "public").expanduser(),
            log_level=(env.get("TITLEDOCTOR_LOG_LEVEL") or "INFO").strip().upper(),
            host=(env.get("HOST") or "0.0.0.0").strip(),
            port=_env_int(env, "PORT", 3000),
            reload=_env_bool(env, "TITLEDOCTOR_RELOAD"),
        )

    def missing_keys(self) -> List[str]:
        required = {
            "YOUTUBE_API_KEY": self.youtube_api_key,
            "GEMINI_API_KEY": self.gemini_api_key,
            "RESEND_API_KEY": self.resend_api_key,
        }
        return [name for name, value in required.items() if not value]

    def validate(self) -> None:
        """Fail fast on anything that would otherwise break a job mid-flight."""
        missing = self.missing_keys()
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")
        if self.state_backend not in STATE_BACKENDS:
            raise ConfigurationError(
                f"TITLEDOCTOR_STATE_BACKEND must be one of {', '.join(STATE_BACKENDS)}"
            )
        if self.state_backend == "nats" and not self.nats_url:
            raise ConfigurationError("NATS_URL is required for the nats state backend")
        if self.http_timeout <= 0:
            raise ConfigurationError("TITLEDOCTOR_HTTP_TIMEOUT must be positive")
        if self.upstream_attempts < 1:
            raise ConfigurationError("TITLEDOCTOR_UPSTREAM_ATTEMPTS must be at least 1")
        if self.max_videos < 1 or self.search_results < 1:
            raise ConfigurationError("video limits must be at least 1")
