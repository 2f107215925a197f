from __future__ import annotations

import logging
import os
from dataclasses import dataclass

# Env overrides:
#   CHRONICLE_DATABASE_URL     -> database_url
#   CHRONICLE_DEFAULT_RULESET  -> default_ruleset
#   CHRONICLE_LOG_LEVEL        -> log_level
#   CHRONICLE_SQL_ECHO         -> sql_echo

DEFAULT_DATABASE_URL = "sqlite:///./chronicle.sqlite3"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    default_ruleset: str = "tormenta20"
    log_level: str = "INFO"
    sql_echo: bool = False


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("CHRONICLE_DATABASE_URL", DEFAULT_DATABASE_URL),
        default_ruleset=os.getenv("CHRONICLE_DEFAULT_RULESET", "tormenta20"),
        log_level=os.getenv("CHRONICLE_LOG_LEVEL", "INFO").upper(),
        sql_echo=_env_bool("CHRONICLE_SQL_ECHO", False),
    )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


settings = load_settings()
