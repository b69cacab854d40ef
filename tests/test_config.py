from datetime import time
from pathlib import Path

import pytest

from leadwatch.config import load_config
from leadwatch.errors import ConfigError
from leadwatch.matcher import MatchMode

VALID = """
source:
  leads_url: https://example.com/leads
window:
  start: "07:30"
  end: 18:00
  timezone: UTC
quota:
  daily_limit: 4
  morning_limit: 2
keywords:
  terms: "Asbestos, Removal"
  match: all
loop:
  interval_seconds: 30
state:
  ledger_file: state/leads.json
"""


def _write(tmp_path: Path, text: str) -> str:
    cfg_path = tmp_path / "watch.yaml"
    cfg_path.write_text(text, encoding="utf-8")
    return str(cfg_path)


def test_load_config_valid(tmp_path: Path) -> None:
    config = load_config(_write(tmp_path, VALID), {})

    assert config.source.leads_url == "https://example.com/leads"
    assert config.keywords == ("asbestos", "removal")
    assert config.match_mode is MatchMode.ALL
    assert config.window.start == time(7, 30)
    assert config.window.end == time(18, 0)
    assert config.window.timezone is not None
    assert config.quota.daily_limit == 4
    assert config.quota.morning_limit == 2
    assert config.interval_seconds == 30
    assert config.notify.mode == "stdout"


def test_environment_overrides_file(tmp_path: Path) -> None:
    env = {
        "KEYWORDS": "roof, gutter",
        "KEYWORD_MATCH_TYPE": "each",
        "DAILY_MATCHES_LIMIT": "1",
        "TIME_WINDOW_END": "17:15",
        "LEADS_USERNAME": "tradie",
        "LEADS_PASSWORD": "secret",
        "EMAIL_HOST": "smtp.example.com",
        "EMAIL_USER": "me@example.com",
        "EMAIL_PASS": "pw",
        "EMAIL_TO": "ops@example.com",
    }
    config = load_config(_write(tmp_path, VALID), env)

    assert config.keywords == ("roof", "gutter")
    assert config.match_mode is MatchMode.EACH
    assert config.quota.daily_limit == 1
    assert config.window.end == time(17, 15)
    assert config.source.username == "tradie"
    assert config.notify.mode == "email"
    assert config.notify.email.password == "pw"


def test_defaults_from_environment_only() -> None:
    config = load_config(None, {"LEADS_URL": "https://example.com/leads", "KEYWORDS": "asbestos"})

    assert config.window.start == time(8, 0)
    assert config.window.end == time(18, 0)
    assert config.quota.daily_limit == 6
    assert config.quota.morning_limit == 3
    assert config.interval_seconds == 10
    assert config.match_mode is MatchMode.EACH
    assert config.ledger_file == "state/leads.json"


@pytest.mark.parametrize(
    "env",
    [
        {"KEYWORDS": "asbestos"},
        {"LEADS_URL": "https://example.com"},
        {"LEADS_URL": "https://example.com", "KEYWORDS": " , ,"},
        {"LEADS_URL": "https://example.com", "KEYWORDS": "a", "KEYWORD_MATCH_TYPE": "some"},
        {"LEADS_URL": "https://example.com", "KEYWORDS": "a", "TIME_WINDOW_START": "8am"},
        {"LEADS_URL": "https://example.com", "KEYWORDS": "a", "TIME_WINDOW_START": "19:00"},
        {"LEADS_URL": "https://example.com", "KEYWORDS": "a", "DAILY_MATCHES_LIMIT": "-1"},
        {"LEADS_URL": "https://example.com", "KEYWORDS": "a", "LEADS_USERNAME": "only-user"},
        {"LEADS_URL": "https://example.com", "KEYWORDS": "a", "EMAIL_HOST": "smtp.example.com"},
        {"LEADS_URL": "https://example.com", "KEYWORDS": "a", "TIME_WINDOW_TZ": "Mars/Olympus"},
    ],
)
def test_invalid_settings_raise_config_error(env: dict) -> None:
    with pytest.raises(ConfigError):
        load_config(None, env)


def test_missing_file_is_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "missing.yaml"), {})


def test_zero_window_and_limits_are_allowed() -> None:
    config = load_config(
        None,
        {
            "LEADS_URL": "https://example.com",
            "KEYWORDS": "a",
            "TIME_WINDOW_START": "09:00",
            "TIME_WINDOW_END": "09:00",
            "DAILY_MATCHES_LIMIT": "0",
            "MORNING_MATCHES_LIMIT": "0",
        },
    )
    assert config.window.start == config.window.end
    assert config.quota.daily_limit == 0
