from __future__ import annotations

import hashlib
import re
from datetime import date, datetime, time, tzinfo

CLOCK_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def parse_clock(value: str | int) -> time:
    if isinstance(value, int) and not isinstance(value, bool):
        # YAML 1.1 reads an unquoted 18:00 as the base-60 integer 1080
        value = f"{value // 60}:{value % 60:02d}"
    match = CLOCK_PATTERN.match(str(value))
    if not match:
        raise ValueError(f"Expected HH:MM, got {value!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Time out of range: {value!r}")
    return time(hour, minute)


def local_now(tz: tzinfo | None = None) -> datetime:
    if tz is not None:
        return datetime.now(tz)
    return datetime.now().astimezone()


def to_local(value: datetime, tz: tzinfo | None = None) -> datetime:
    return value.astimezone(tz) if tz is not None else value.astimezone()


def at_local(day: date, at: time, tz: tzinfo | None = None) -> datetime:
    """Aware datetime for wall-clock ``at`` on ``day`` in ``tz``, or in the host zone when None."""
    naive = datetime.combine(day, at)
    if tz is not None:
        return naive.replace(tzinfo=tz)
    return naive.astimezone()


def clean_text(text: str) -> str:
    return " ".join((text or "").split())


def content_fingerprint(text: str) -> str:
    return "sha1:" + hashlib.sha1(clean_text(text).encode("utf-8")).hexdigest()


def short_snippet(text: str, max_len: int = 180) -> str:
    clean = clean_text(text)
    if len(clean) <= max_len:
        return clean
    return clean[: max_len - 3] + "..."
