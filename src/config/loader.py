"""
Config loader: YAML file -> frozen dataclass tree, validated against JSON Schema.

API secrets resolved from environment variables (APCA_API_KEY_ID, APCA_API_SECRET_KEY).
Config file holds only non-secret values.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any

import jsonschema
import yaml

logger = logging.getLogger("paper.config")


class ConfigError(ValueError):
    """Config file is unparseable or fails schema validation."""


_NUMBER = {"type": "number"}
_POSITIVE = {"type": "number", "exclusiveMinimum": 0}

CONFIG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "account": {
            "type": "object",
            "additionalProperties": False,
            "properties": {"initial_cash": {"type": ["number", "string"]}},
        },
        "storage": {
            "type": "object",
            "additionalProperties": False,
            "properties": {"state_path": {"type": "string", "minLength": 1}},
        },
        "quotes": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "source": {"enum": ["alpaca", "static"]},
                "feed": {"enum": ["iex", "sip"]},
                "timeout_seconds": _POSITIVE,
                "max_workers": {"type": "integer", "minimum": 1},
                "static_prices": {
                    "type": "object",
                    "additionalProperties": {"type": ["number", "string"]},
                },
            },
        },
        "monitor": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "interval_seconds": _POSITIVE,
                "market_hours_only": {"type": "boolean"},
                "autostart": {"type": "boolean"},
            },
        },
        "persistence": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "save_attempts": {"type": "integer", "minimum": 1},
                "retry_delay_seconds": {**_NUMBER, "minimum": 0},
            },
        },
        "journal": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "path": {"type": "string"},
                "echo_stdout": {"type": "boolean"},
            },
        },
        "alerting": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "structured_logs": {"type": "boolean"},
                "webhook_url": {"type": "string"},
            },
        },
    },
}


@dataclass(frozen=True)
class AccountConfig:
    initial_cash: Decimal = Decimal("100000")


@dataclass(frozen=True)
class StorageConfig:
    state_path: str = "data/paper_state.db"


@dataclass(frozen=True)
class QuotesConfig:
    source: str = "alpaca"
    feed: str = "iex"
    timeout_seconds: float = 5.0
    max_workers: int = 4
    static_prices: dict[str, Decimal] = field(default_factory=dict)
    api_key: str = ""
    api_secret: str = ""


@dataclass(frozen=True)
class MonitorConfig:
    interval_seconds: float = 5.0
    market_hours_only: bool = False
    autostart: bool = True


@dataclass(frozen=True)
class PersistenceConfig:
    save_attempts: int = 3
    retry_delay_seconds: float = 0.5


@dataclass(frozen=True)
class JournalConfig:
    path: str = "data/journal.jsonl"
    echo_stdout: bool = False


@dataclass(frozen=True)
class AlertingConfig:
    structured_logs: bool = True
    webhook_url: str = ""


@dataclass(frozen=True)
class AppConfig:
    account: AccountConfig = AccountConfig()
    storage: StorageConfig = StorageConfig()
    quotes: QuotesConfig = QuotesConfig()
    monitor: MonitorConfig = MonitorConfig()
    persistence: PersistenceConfig = PersistenceConfig()
    journal: JournalConfig = JournalConfig()
    alerting: AlertingConfig = AlertingConfig()


def _decimal(raw: Any, name: str) -> Decimal:
    try:
        value = Decimal(str(raw))
    except ArithmeticError as exc:
        raise ConfigError(f"{name} is not a number: {raw!r}") from exc
    if not value.is_finite():
        raise ConfigError(f"{name} must be finite: {raw!r}")
    return value


def load_config(path: str | Path = "config.yaml") -> AppConfig:
    """
    Load configuration from a YAML file.

    API keys are resolved from environment variables:
      - APCA_API_KEY_ID
      - APCA_API_SECRET_KEY
    These follow Alpaca's standard env var names.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file is not valid YAML: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    try:
        jsonschema.validate(raw, CONFIG_SCHEMA)
    except jsonschema.ValidationError as exc:
        where = "/".join(str(p) for p in exc.absolute_path) or "<root>"
        raise ConfigError(f"Config validation failed at {where}: {exc.message}") from exc

    acct_raw = raw.get("account", {})
    initial_cash = _decimal(acct_raw.get("initial_cash", "100000"), "account.initial_cash")
    if initial_cash < 0:
        raise ConfigError(f"account.initial_cash must be non-negative, got {initial_cash}")

    q_raw = raw.get("quotes", {})
    q_cfg = QuotesConfig(
        source=q_raw.get("source", "alpaca"),
        feed=q_raw.get("feed", "iex"),
        timeout_seconds=float(q_raw.get("timeout_seconds", 5.0)),
        max_workers=int(q_raw.get("max_workers", 4)),
        static_prices={
            str(sym).upper(): _decimal(p, f"quotes.static_prices.{sym}")
            for sym, p in q_raw.get("static_prices", {}).items()
        },
        api_key=os.environ.get("APCA_API_KEY_ID", ""),
        api_secret=os.environ.get("APCA_API_SECRET_KEY", ""),
    )

    m_raw = raw.get("monitor", {})
    m_cfg = MonitorConfig(
        interval_seconds=float(m_raw.get("interval_seconds", 5.0)),
        market_hours_only=bool(m_raw.get("market_hours_only", False)),
        autostart=bool(m_raw.get("autostart", True)),
    )

    p_raw = raw.get("persistence", {})
    p_cfg = PersistenceConfig(
        save_attempts=int(p_raw.get("save_attempts", 3)),
        retry_delay_seconds=float(p_raw.get("retry_delay_seconds", 0.5)),
    )

    j_raw = raw.get("journal", {})
    j_cfg = JournalConfig(
        path=j_raw.get("path", "data/journal.jsonl"),
        echo_stdout=bool(j_raw.get("echo_stdout", False)),
    )

    a_raw = raw.get("alerting", {})
    a_cfg = AlertingConfig(
        structured_logs=bool(a_raw.get("structured_logs", True)),
        webhook_url=str(a_raw.get("webhook_url", "")),
    )

    cfg = AppConfig(
        account=AccountConfig(initial_cash=initial_cash),
        storage=StorageConfig(state_path=raw.get("storage", {}).get("state_path", "data/paper_state.db")),
        quotes=q_cfg,
        monitor=m_cfg,
        persistence=p_cfg,
        journal=j_cfg,
        alerting=a_cfg,
    )
    logger.debug("Loaded config from %s (quotes=%s)", config_path, q_cfg.source)
    return cfg
