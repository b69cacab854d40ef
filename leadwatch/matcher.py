from __future__ import annotations

from enum import Enum
from typing import Iterable


class MatchMode(str, Enum):
    EACH = "each"
    ALL = "all"

    @classmethod
    def parse(cls, value: str | None) -> "MatchMode":
        if value and value.strip().lower() == cls.ALL.value:
            return cls.ALL
        return cls.EACH


def parse_keywords(value: str | Iterable[str] | None) -> list[str]:
    if value is None:
        return []
    items = value.split(",") if isinstance(value, str) else [str(item) for item in value]
    keywords: list[str] = []
    for item in items:
        keyword = item.strip().lower()
        if keyword and keyword not in keywords:
            keywords.append(keyword)
    return keywords


def matches(text: str, keywords: Iterable[str], mode: MatchMode = MatchMode.EACH) -> bool:
    lowered = (text or "").lower()
    if not lowered:
        return False

    terms = [kw.strip().lower() for kw in keywords if kw and kw.strip()]
    if not terms:
        return False

    if mode is MatchMode.ALL:
        return all(term in lowered for term in terms)
    return any(term in lowered for term in terms)
