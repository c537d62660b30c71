# app/settings.py
from __future__ import annotations

from pydantic import BaseModel
import os


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "y", "on")


class Settings(BaseModel):
    APP_NAME: str = "azul-server"

    # Redis (room snapshots)
    REDIS_URL: str = "redis://localhost:6379/0"
    PERSISTENCE_ENABLED: bool = True

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Logging
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Room lifecycle
    STALE_ROOM_SEC: int = 48 * 3600
    SWEEP_INTERVAL_SEC: int = 15 * 60

    # WebSocket origin policy (comma-separated)
    WS_ALLOWED_ORIGINS: str = "http://localhost:5173,http://127.0.0.1:5173,null"
    # Dev helper: allow any private LAN IP on port 5173
    WS_ALLOW_LAN_ORIGINS: bool = True


def get_settings() -> Settings:
    return Settings(
        APP_NAME=os.getenv("APP_NAME", "azul-server"),
        REDIS_URL=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        PERSISTENCE_ENABLED=_env_flag("PERSISTENCE_ENABLED", "true"),
        HOST=os.getenv("HOST", "0.0.0.0"),
        PORT=int(os.getenv("PORT", "8000")),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        ENVIRONMENT=os.getenv("ENVIRONMENT", "development"),
        STALE_ROOM_SEC=int(os.getenv("STALE_ROOM_SEC", str(48 * 3600))),
        SWEEP_INTERVAL_SEC=int(os.getenv("SWEEP_INTERVAL_SEC", str(15 * 60))),
        WS_ALLOWED_ORIGINS=os.getenv(
            "WS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,null",
        ),
        WS_ALLOW_LAN_ORIGINS=_env_flag("WS_ALLOW_LAN_ORIGINS", "true"),
    )
