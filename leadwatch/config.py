from __future__ import annotations

from dataclasses import dataclass
from datetime import time, tzinfo
from pathlib import Path
from typing import Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from leadwatch.errors import ConfigError
from leadwatch.matcher import MatchMode, parse_keywords
from leadwatch.utils import parse_clock

NOTIFY_MODES = {"stdout", "email", "discord"}

# env var -> (section, key)
ENV_OVERRIDES = {
    "LEADS_URL": ("source", "leads_url"),
    "TIME_WINDOW_START": ("window", "start"),
    "TIME_WINDOW_END": ("window", "end"),
    "TIME_WINDOW_TZ": ("window", "timezone"),
    "DAILY_MATCHES_LIMIT": ("quota", "daily_limit"),
    "MORNING_MATCHES_LIMIT": ("quota", "morning_limit"),
    "KEYWORDS": ("keywords", "terms"),
    "KEYWORD_MATCH_TYPE": ("keywords", "match"),
    "SCRAPER_INTERVAL_SECONDS": ("loop", "interval_seconds"),
    "DISCORD_WEBHOOK_URL": ("notify", "discord_webhook"),
}

EMAIL_ENV_OVERRIDES = {
    "EMAIL_HOST": "host",
    "EMAIL_PORT": "port",
    "EMAIL_USER": "user",
    "EMAIL_TO": "to",
}


@dataclass(frozen=True)
class SourceConfig:
    leads_url: str
    status_marker: str = "Waitlist"
    timeout_seconds: int = 10
    username: str | None = None
    password: str | None = None


@dataclass(frozen=True)
class WindowConfig:
    start: time = time(8, 0)
    end: time = time(18, 0)
    timezone: tzinfo | None = None


@dataclass(frozen=True)
class QuotaConfig:
    daily_limit: int = 6
    morning_limit: int = 3


@dataclass(frozen=True)
class EmailConfig:
    host: str = ""
    port: int = 587
    user: str = ""
    password: str = ""
    to: str = ""


@dataclass(frozen=True)
class NotifyConfig:
    mode: str = "stdout"
    discord_webhook: str = ""
    email: EmailConfig = EmailConfig()


@dataclass(frozen=True)
class WatchConfig:
    source: SourceConfig
    keywords: tuple[str, ...]
    match_mode: MatchMode = MatchMode.EACH
    window: WindowConfig = WindowConfig()
    quota: QuotaConfig = QuotaConfig()
    interval_seconds: int = 10
    notify: NotifyConfig = NotifyConfig()
    ledger_file: str = "state/leads.json"


def _section(config: dict, name: str) -> dict:
    section = config.setdefault(name, {})
    if section is None:
        section = config[name] = {}
    if not isinstance(section, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")
    return section


def _require_field(section: dict, key: str, section_name: str) -> None:
    if section.get(key) in (None, ""):
        raise ConfigError(f"Missing required field '{section_name}.{key}'")


def _ensure_int(section: dict, key: str, section_name: str, minimum: int) -> int:
    value = section[key]
    if isinstance(value, bool):
        raise ConfigError(f"Field '{section_name}.{key}' must be an integer")
    try:
        number = int(str(value).strip())
    except ValueError as exc:
        raise ConfigError(f"Field '{section_name}.{key}' must be an integer") from exc
    if number < minimum:
        raise ConfigError(f"Field '{section_name}.{key}' must be >= {minimum}")
    return number


def _ensure_clock(section: dict, key: str, section_name: str) -> time:
    try:
        return parse_clock(section[key])
    except ValueError as exc:
        raise ConfigError(f"Field '{section_name}.{key}': {exc}") from exc


def _apply_env(config: dict, environ: Mapping[str, str]) -> None:
    for var, (section_name, key) in ENV_OVERRIDES.items():
        value = environ.get(var, "").strip()
        if value:
            _section(config, section_name)[key] = value

    email = _section(_section(config, "notify"), "email")
    for var, key in EMAIL_ENV_OVERRIDES.items():
        value = environ.get(var, "").strip()
        if value:
            email[key] = value
    if environ.get("EMAIL_PASS"):
        email["password"] = environ["EMAIL_PASS"]

    source = _section(config, "source")
    for var, key in (("LEADS_USERNAME", "username"), ("LEADS_PASSWORD", "password")):
        if environ.get(var):
            source[key] = environ[var]


def _apply_defaults(config: dict) -> dict:
    source = _section(config, "source")
    source.setdefault("status_marker", "Waitlist")
    source.setdefault("timeout_seconds", 10)

    window = _section(config, "window")
    window.setdefault("start", "08:00")
    window.setdefault("end", "18:00")

    quota = _section(config, "quota")
    quota.setdefault("daily_limit", 6)
    quota.setdefault("morning_limit", 3)

    _section(config, "keywords").setdefault("match", "each")
    _section(config, "loop").setdefault("interval_seconds", 10)

    notify = _section(config, "notify")
    email = _section(notify, "email")
    email.setdefault("port", 587)
    notify.setdefault("mode", "email" if email.get("host") else "stdout")
    notify.setdefault("discord_webhook", "")

    _section(config, "state").setdefault("ledger_file", "state/leads.json")
    return config


def _validate(config: dict) -> WatchConfig:
    source = config["source"]
    _require_field(source, "leads_url", "source")
    username, password = source.get("username"), source.get("password")
    if bool(username) != bool(password):
        raise ConfigError("source.username and source.password must be set together")

    keywords = config["keywords"]
    terms = keywords.get("terms")
    if terms is not None and not isinstance(terms, (str, list)):
        raise ConfigError("keywords.terms must be a list or a comma-separated string")
    parsed_terms = parse_keywords(terms)
    if not parsed_terms:
        raise ConfigError("keywords.terms must contain at least one non-blank keyword")

    match = str(keywords["match"]).strip().lower()
    if match not in {mode.value for mode in MatchMode}:
        raise ConfigError(f"keywords.match must be 'each' or 'all', got {keywords['match']!r}")

    window = config["window"]
    start = _ensure_clock(window, "start", "window")
    end = _ensure_clock(window, "end", "window")
    if end < start:
        raise ConfigError("window.end must not be earlier than window.start")

    tz = None
    if window.get("timezone"):
        try:
            tz = ZoneInfo(str(window["timezone"]))
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigError(f"Unknown timezone {window['timezone']!r}") from exc

    quota = config["quota"]
    notify = config["notify"]
    mode = str(notify["mode"]).strip().lower()
    if mode not in NOTIFY_MODES:
        raise ConfigError(f"notify.mode must be one of {', '.join(sorted(NOTIFY_MODES))}")

    email = notify["email"]
    if mode == "email":
        for key in ["host", "user", "password", "to"]:
            _require_field(email, key, "notify.email")
    if mode == "discord":
        _require_field(notify, "discord_webhook", "notify")

    return WatchConfig(
        source=SourceConfig(
            leads_url=str(source["leads_url"]).strip(),
            status_marker=str(source["status_marker"]).strip(),
            timeout_seconds=_ensure_int(source, "timeout_seconds", "source", 1),
            username=username or None,
            password=password or None,
        ),
        keywords=tuple(parsed_terms),
        match_mode=MatchMode.parse(match),
        window=WindowConfig(start=start, end=end, timezone=tz),
        quota=QuotaConfig(
            daily_limit=_ensure_int(quota, "daily_limit", "quota", 0),
            morning_limit=_ensure_int(quota, "morning_limit", "quota", 0),
        ),
        interval_seconds=_ensure_int(config["loop"], "interval_seconds", "loop", 1),
        notify=NotifyConfig(
            mode=mode,
            discord_webhook=str(notify.get("discord_webhook") or ""),
            email=EmailConfig(
                host=str(email.get("host") or ""),
                port=_ensure_int(email, "port", "notify.email", 1),
                user=str(email.get("user") or ""),
                password=str(email.get("password") or ""),
                to=str(email.get("to") or ""),
            ),
        ),
        ledger_file=str(config["state"]["ledger_file"]),
    )


def load_config(path: str | None = "config/watch.yaml", environ: Mapping[str, str] | None = None) -> WatchConfig:
    loaded: object = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {path}")
        try:
            with config_path.open("r", encoding="utf-8") as handle:
                loaded = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Config file is not valid YAML: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigError("Top-level config must be a YAML mapping")

    _apply_env(loaded, environ or {})
    return _validate(_apply_defaults(loaded))
