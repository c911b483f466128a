from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from utils.constants import DEFAULT_CATEGORIES, DEFAULT_FALLBACK_CATEGORY, SELECT_OPTION_LIMIT


class ConfigError(RuntimeError):
    pass


@dataclass(slots=True)
class DiscordConfig:
    token: str
    application_id: int | None = None
    guild_id: int | None = None
    sync_commands_on_start: bool = True
    status_text: str = "Support tickets"
    activity_type: str = "watching"


@dataclass(slots=True)
class TicketConfig:
    staff_role_name: str = "Staff"
    staff_log_channel_id: int | None = None
    panel_image_path: str | None = None
    close_delay_seconds: int = 5
    pending_selection_ttl_seconds: int = 300
    fallback_category: str = DEFAULT_FALLBACK_CATEGORY
    categories: tuple[str, ...] = DEFAULT_CATEGORIES


@dataclass(slots=True)
class DatabaseConfig:
    url: str = "sqlite:///./data/tickets.db"
    timeout_seconds: int = 30


@dataclass(slots=True)
class RedisConfig:
    enabled: bool = False
    url: str = "redis://localhost:6379/0"


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    directory: str = "logs"
    file_name: str = "bot.log"
    max_bytes: int = 10_000_000
    backup_count: int = 10
    json_console: bool = False


@dataclass(slots=True)
class TranscriptConfig:
    storage_directory: str = "transcripts"


@dataclass(slots=True)
class FastApiConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8000
    api_key: str = ""


@dataclass(slots=True)
class I18NConfig:
    default_locale: str = "nl-NL"
    supported_locales: list[str] = field(default_factory=lambda: ["nl-NL", "en-US"])


@dataclass(slots=True)
class AppConfig:
    discord: DiscordConfig
    tickets: TicketConfig = field(default_factory=TicketConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    transcripts: TranscriptConfig = field(default_factory=TranscriptConfig)
    fastapi: FastApiConfig = field(default_factory=FastApiConfig)
    i18n: I18NConfig = field(default_factory=I18NConfig)
    enabled_extensions: list[str] = field(default_factory=lambda: ["cogs.tickets", "cogs.admin"])


def _get_env_str(key: str, fallback: str | None = None) -> str | None:
    value = os.getenv(key)
    if value is None:
        return fallback
    cleaned = value.strip()
    return cleaned if cleaned else fallback


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_snowflake(value: Any, name: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a numeric Discord id") from exc


def _deep_get(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    node: Any = data
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a mapping")
    return raw


def _load_categories(raw_categories: Any) -> tuple[str, ...]:
    if raw_categories is None:
        return DEFAULT_CATEGORIES
    if not isinstance(raw_categories, list):
        raise ConfigError("tickets.categories must be a list of labels")
    labels = tuple(str(label).strip() for label in raw_categories)
    if not labels or len(labels) > SELECT_OPTION_LIMIT:
        raise ConfigError(f"tickets.categories must hold between 1 and {SELECT_OPTION_LIMIT} labels")
    if any(not label for label in labels):
        raise ConfigError("tickets.categories contains an empty label")
    if len(set(labels)) != len(labels):
        raise ConfigError("tickets.categories contains duplicate labels")
    return labels


def _load_ticket_config(raw: dict[str, Any]) -> TicketConfig:
    categories = _load_categories(_deep_get(raw, "tickets", "categories"))
    default_fallback = DEFAULT_FALLBACK_CATEGORY if DEFAULT_FALLBACK_CATEGORY in categories else categories[-1]
    fallback = str(_deep_get(raw, "tickets", "fallback_category", default=default_fallback))
    if fallback not in categories:
        raise ConfigError(f"tickets.fallback_category {fallback!r} is not part of tickets.categories")

    close_delay = _as_int(_deep_get(raw, "tickets", "close_delay_seconds"), 5)
    if close_delay < 0:
        raise ConfigError("tickets.close_delay_seconds cannot be negative")

    return TicketConfig(
        staff_role_name=str(
            _get_env_str("STAFF_ROLE_NAME", _deep_get(raw, "tickets", "staff_role_name", default="Staff"))
        ),
        staff_log_channel_id=_as_snowflake(
            _get_env_str("STAFF_LOG_CHANNEL_ID", _deep_get(raw, "tickets", "staff_log_channel_id")),
            "STAFF_LOG_CHANNEL_ID",
        ),
        panel_image_path=_get_env_str("PANEL_IMAGE_PATH", _deep_get(raw, "tickets", "panel_image_path")),
        close_delay_seconds=close_delay,
        pending_selection_ttl_seconds=max(
            _as_int(_deep_get(raw, "tickets", "pending_selection_ttl_seconds"), 300), 1
        ),
        fallback_category=fallback,
        categories=categories,
    )


def load_config(config_path: Path) -> AppConfig:
    env_path = config_path.parent.parent / ".env"
    load_dotenv(env_path)
    raw = _load_yaml(config_path)

    discord_token = _get_env_str("DISCORD_TOKEN", _deep_get(raw, "discord", "token"))
    if not discord_token or "${" in discord_token:
        raise ConfigError("DISCORD_TOKEN is required")

    application_id = _as_snowflake(
        _get_env_str(
            "CLIENT_ID",
            _get_env_str("DISCORD_APPLICATION_ID", _deep_get(raw, "discord", "application_id")),
        ),
        "CLIENT_ID",
    )
    if application_id is None:
        raise ConfigError("CLIENT_ID (application id) is required")

    discord_cfg = DiscordConfig(
        token=discord_token,
        application_id=application_id,
        guild_id=_as_snowflake(_get_env_str("GUILD_ID", _deep_get(raw, "discord", "guild_id")), "GUILD_ID"),
        sync_commands_on_start=_as_bool(
            _get_env_str("SYNC_COMMANDS"),
            _as_bool(_deep_get(raw, "discord", "sync_commands_on_start"), True),
        ),
        status_text=str(_deep_get(raw, "discord", "status_text", default="Support tickets")),
        activity_type=str(_deep_get(raw, "discord", "activity_type", default="watching")),
    )

    database_cfg = DatabaseConfig(
        url=str(_get_env_str("DATABASE_URL", _deep_get(raw, "database", "url", default="sqlite:///./data/tickets.db"))),
        timeout_seconds=_as_int(
            _get_env_str("DB_TIMEOUT_SECONDS", None),
            _as_int(_deep_get(raw, "database", "timeout_seconds"), 30),
        ),
    )

    redis_cfg = RedisConfig(
        enabled=_as_bool(_get_env_str("REDIS_ENABLED"), _as_bool(_deep_get(raw, "redis", "enabled"), False)),
        url=str(_get_env_str("REDIS_URL", _deep_get(raw, "redis", "url", default="redis://localhost:6379/0"))),
    )

    logging_cfg = LoggingConfig(
        level=str(_get_env_str("LOG_LEVEL", _deep_get(raw, "logging", "level", default="INFO"))),
        directory=str(_deep_get(raw, "logging", "directory", default="logs")),
        file_name=str(_deep_get(raw, "logging", "file_name", default="bot.log")),
        max_bytes=_as_int(_deep_get(raw, "logging", "max_bytes"), 10_000_000),
        backup_count=_as_int(_deep_get(raw, "logging", "backup_count"), 10),
        json_console=_as_bool(_deep_get(raw, "logging", "json_console"), False),
    )

    transcript_cfg = TranscriptConfig(
        storage_directory=str(
            _get_env_str(
                "TRANSCRIPT_DIR",
                _deep_get(raw, "transcripts", "storage_directory", default="transcripts"),
            )
        ),
    )

    fastapi_cfg = FastApiConfig(
        enabled=_as_bool(_deep_get(raw, "fastapi", "enabled"), False),
        host=str(_deep_get(raw, "fastapi", "host", default="127.0.0.1")),
        port=_as_int(_deep_get(raw, "fastapi", "port"), 8000),
        api_key=str(_get_env_str("DASHBOARD_API_KEY", _deep_get(raw, "fastapi", "api_key", default=""))),
    )

    i18n_cfg = I18NConfig(
        default_locale=str(_deep_get(raw, "i18n", "default_locale", default="nl-NL")),
        supported_locales=[
            str(locale) for locale in _deep_get(raw, "i18n", "supported_locales", default=["nl-NL", "en-US"])
        ],
    )

    enabled_extensions = [
        str(ext)
        for ext in list(_deep_get(raw, "enabled_extensions", default=["cogs.tickets", "cogs.admin"]))
    ]

    return AppConfig(
        discord=discord_cfg,
        tickets=_load_ticket_config(raw),
        database=database_cfg,
        redis=redis_cfg,
        logging=logging_cfg,
        transcripts=transcript_cfg,
        fastapi=fastapi_cfg,
        i18n=i18n_cfg,
        enabled_extensions=enabled_extensions,
    )
