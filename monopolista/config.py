from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        print(f"[CONFIG] Ignoring bad {name}={raw!r}, using {default}", flush=True)
        return default


@dataclass(frozen=True)
class Settings:
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])
    database_url: str = "sqlite:///monopolista.db"
    persistence_enabled: bool = True
    persist_debounce: float = 0.3
    turn_timeout: float = 60.0
    disconnect_grace: float = 90.0
    idle_room_ttl: float = 3600.0
    sweep_interval: float = 60.0
    static_dir: Optional[str] = None


def load_settings() -> Settings:
    load_dotenv()
    origins_env = os.environ.get("ALLOWED_ORIGINS", "*")
    allowed = [o.strip() for o in origins_env.split(",") if o.strip()]
    return Settings(
        allowed_origins=allowed or ["*"],
        database_url=os.environ.get("DATABASE_URL", "sqlite:///monopolista.db"),
        persistence_enabled=_env_bool("PERSISTENCE_ENABLED", True),
        persist_debounce=_env_float("PERSIST_DEBOUNCE_MS", 300.0) / 1000.0,
        turn_timeout=_env_float("TURN_TIMEOUT_SECONDS", 60.0),
        disconnect_grace=_env_float("DISCONNECT_GRACE_SECONDS", 90.0),
        idle_room_ttl=_env_float("IDLE_ROOM_TTL_SECONDS", 3600.0),
        sweep_interval=_env_float("SWEEP_INTERVAL_SECONDS", 60.0),
        static_dir=os.environ.get("SERVE_STATIC_DIR") or None,
    )
