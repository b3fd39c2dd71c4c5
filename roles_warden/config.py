from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


load_dotenv()


def _env_lookup(name: str, aliases: tuple[str, ...] = ()) -> str | None:
    for key in (name, *aliases):
        # Be tolerant to UTF-8 BOM accidentally saved in .env key names.
        for candidate in (key, f"\ufeff{key}"):
            raw = os.getenv(candidate)
            if raw is not None:
                return raw
    return None


def _env_bool(name: str, default: bool, aliases: tuple[str, ...] = ()) -> bool:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_str(name: str, default: str, aliases: tuple[str, ...] = ()) -> str:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    value = raw.strip()
    return value if value else default


def _clean_token(value: str) -> str:
    cleaned = value.strip()
    if cleaned.lower().startswith("bot "):
        cleaned = cleaned[4:].strip()
    if (cleaned.startswith('"') and cleaned.endswith('"')) or (
        cleaned.startswith("'") and cleaned.endswith("'")
    ):
        cleaned = cleaned[1:-1].strip()
    return cleaned


@dataclass(slots=True)
class Settings:
    discord_token: str
    command_prefix: str
    discord_members_intent: bool

    backend: str
    sqlite_path: Path
    postgres_dsn: str

    log_level: str
    grant_reason: str

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            discord_token=_clean_token(_env_lookup("DISCORD_TOKEN") or ""),
            command_prefix=_env_str("DISCORD_COMMAND_PREFIX", "!"),
            discord_members_intent=_env_bool("DISCORD_MEMBERS_INTENT", True),
            backend=_env_str("WARDEN_BACKEND", "sqlite").lower(),
            sqlite_path=Path(_env_str("SQLITE_PATH", "./data/roles_warden.db")).expanduser(),
            postgres_dsn=_env_str("WARDEN_POSTGRES_DSN", ""),
            log_level=_env_str("WARDEN_LOG_LEVEL", "INFO").upper(),
            grant_reason=_env_str("WARDEN_GRANT_REASON", "Restoring saved roles on rejoin"),
        )

    def validate(self) -> None:
        if not self.discord_token:
            raise ValueError("DISCORD_TOKEN is required")
        if self.discord_token == "put_your_discord_bot_token_here":
            raise ValueError("DISCORD_TOKEN is still placeholder")
        if not self.command_prefix.strip():
            raise ValueError("DISCORD_COMMAND_PREFIX cannot be empty")
        # Join and member-update events never arrive without it.
        if not self.discord_members_intent:
            raise ValueError("DISCORD_MEMBERS_INTENT must be enabled")

        if self.backend not in {"sqlite", "postgres"}:
            raise ValueError("WARDEN_BACKEND must be 'sqlite' or 'postgres'")
        if self.backend == "postgres" and not self.postgres_dsn:
            raise ValueError("WARDEN_POSTGRES_DSN is required when WARDEN_BACKEND=postgres")

        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ValueError("WARDEN_LOG_LEVEL must be a logging level name such as INFO or DEBUG")
        if len(self.grant_reason) > 512:
            raise ValueError("WARDEN_GRANT_REASON must be at most 512 characters")
