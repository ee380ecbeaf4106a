from __future__ import annotations

import os
from dataclasses import dataclass


def getenv_bool(name: str, default: bool = False) -> bool:
    return str(os.getenv(name, str(default))).strip().lower() in {"1", "true", "yes", "on"}


def getenv_int(name: str, default: int = 0) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    db_path: str = "data/sames.db"
    upload_dir: str = "uploads"
    # Off by default for local development. This is a bypass, not a security setting.
    auth_enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            db_path=os.getenv("SAMES_DB_PATH", cls.db_path),
            upload_dir=os.getenv("SAMES_UPLOAD_DIR", cls.upload_dir),
            auth_enabled=getenv_bool("SAMES_AUTH_ENABLED", False),
            host=os.getenv("SAMES_HOST", cls.host),
            port=getenv_int("SAMES_PORT", cls.port),
            log_level=os.getenv("SAMES_LOG_LEVEL", cls.log_level).upper(),
        )
