"""
Configuration loader for the notification dispatcher.
Reads settings from YAML file with environment variable substitution.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass
class TransportConfig:
    provider: str = ""                  # "log" | "mailgun" | "smtp" | "46elks"; empty = disabled
    credentials: dict[str, Any] = field(default_factory=dict)


@dataclass
class DatabaseConfig:
    url: str = "sqlite:///./notify.db"         # postgresql:// | mysql:// | sqlite://
    store_backend: str = "memory"              # "sql" | "memory" | "file"
    store_file_dir: str = "./data"             # directory for file backend


@dataclass
class QueueConfig:
    capacity: int = 1000                # in-memory buffer size
    worker_count: int = 5               # concurrent workers draining the buffer
    enqueue_timeout: float = 5.0        # seconds a full-buffer enqueue may wait
    max_pending_enqueues: int = 1000    # cap on enqueues waiting for a slot


@dataclass
class DispatchConfig:
    fallback_locale: str = "en"
    static_params: dict[str, Any] = field(default_factory=dict)


@dataclass
class Settings:
    app_name: str = "notify-dispatch"
    debug: bool = False
    log_level: str = "info"
    log_format: str = "json"            # "json" | "console"
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    email: TransportConfig = field(default_factory=TransportConfig)
    sms: TransportConfig = field(default_factory=TransportConfig)


_settings: Optional[Settings] = None


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""
    pattern = re.compile(r'\$\{(\w+)\}')
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def _transport_config(raw: dict[str, Any]) -> TransportConfig:
    return TransportConfig(
        provider=raw.get("provider", ""),
        credentials=raw.get("credentials", {}) or {},
    )


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "NOTIFY_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _process_values(raw)

        settings.app_name = raw.get("app_name", settings.app_name)
        settings.debug = raw.get("debug", settings.debug)
        settings.log_level = raw.get("log_level", settings.log_level)
        settings.log_format = raw.get("log_format", settings.log_format)

        if "dispatch" in raw:
            d = raw["dispatch"]
            settings.dispatch = DispatchConfig(
                fallback_locale=d.get("fallback_locale", "en"),
                static_params=d.get("static_params", {}) or {},
            )

        if "database" in raw:
            db = raw["database"]
            settings.database = DatabaseConfig(
                url=db.get("url", settings.database.url),
                store_backend=db.get("store_backend", settings.database.store_backend),
                store_file_dir=db.get("store_file_dir", settings.database.store_file_dir),
            )

        if "queue" in raw:
            q = raw["queue"]
            settings.queue = QueueConfig(
                capacity=int(q.get("capacity", 1000)),
                worker_count=int(q.get("worker_count", 5)),
                enqueue_timeout=float(q.get("enqueue_timeout", 5.0)),
                max_pending_enqueues=int(q.get("max_pending_enqueues", 1000)),
            )

        if "email" in raw:
            settings.email = _transport_config(raw["email"])

        if "sms" in raw:
            settings.sms = _transport_config(raw["sms"])

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
