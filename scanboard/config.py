from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_CORS_ORIGINS = "http://127.0.0.1:3000,http://localhost:3000"


def _split_csv(raw: str) -> list[str]:
    return [x.strip() for x in raw.split(",") if x.strip()]


def _env_int(env: Mapping[str, str], name: str, *, default: int, minimum: int = 0) -> int:
    raw = str(env.get(name, "")).strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, value)


@dataclass
class Settings:
    analysis_api_key: str
    store_backend: str
    postgres_dsn: str
    analyses_table: str
    watchdog_stuck_threshold_s: int
    cors_allow_origins: list[str]
    log_level: str

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            analysis_api_key=env.get("ANALYSIS_API_KEY", "").strip(),
            store_backend=env.get("SCANBOARD_STORE_BACKEND", "memory").strip().lower() or "memory",
            postgres_dsn=env.get("POSTGRES_DSN", "").strip(),
            analyses_table=env.get("ANALYSES_TABLE", "analyses").strip() or "analyses",
            watchdog_stuck_threshold_s=_env_int(env, "WATCHDOG_STUCK_THRESHOLD_S", default=1800, minimum=1),
            cors_allow_origins=_split_csv(env.get("CORS_ALLOW_ORIGINS", DEFAULT_CORS_ORIGINS)),
            log_level=env.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        )
