from __future__ import annotations

from dataclasses import dataclass
import os


@dataclass(frozen=True)
class RuntimeSettings:
    timezone: str
    log_level: str
    sql_echo: bool = False

    @classmethod
    def from_env(cls) -> "RuntimeSettings":
        return cls(
            timezone=os.getenv("COMPETITION_TIMEZONE", "UTC"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            sql_echo=os.getenv("SQL_ECHO", "false").lower() in ("1", "true", "yes"),
        )
