from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum


class LeadStatus(str, Enum):
    POTENTIAL_LEAD = "Potential Lead"
    ALREADY_WAITLISTED = "Already Waitlisted"
    TRANSITIONED_TO_WAITLISTED = "Transitioned to Waitlisted"

    @classmethod
    def parse(cls, value: str) -> "LeadStatus":
        for status in cls:
            if value in (status.value, status.label):
                return status
        raise ValueError(f"Unknown lead status: {value!r}")

    @property
    def label(self) -> str:
        # PotentialLead, AlreadyWaitlisted, TransitionedToWaitlisted
        return "".join(part.capitalize() for part in self.name.split("_"))

    def can_transition_to(self, other: "LeadStatus") -> bool:
        return self is LeadStatus.POTENTIAL_LEAD and other is LeadStatus.TRANSITIONED_TO_WAITLISTED


class RawStatus(str, Enum):
    WAITLISTED = "Waitlisted"


def to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def parse_iso(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class LeadLink:
    href: str | None
    text: str

    def to_dict(self) -> dict:
        return {"href": self.href, "text": self.text}

    @classmethod
    def from_dict(cls, data: dict) -> "LeadLink":
        href = data.get("href")
        return cls(href=str(href) if href is not None else None, text=str(data.get("text", "")))


@dataclass(frozen=True)
class StatusChange:
    changed_at: datetime
    status: LeadStatus

    def to_dict(self) -> dict:
        return {"datetime_changed": to_iso(self.changed_at), "new_status": self.status.value}

    @classmethod
    def from_dict(cls, data: dict) -> "StatusChange":
        return cls(changed_at=parse_iso(data["datetime_changed"]), status=LeadStatus.parse(data["new_status"]))


@dataclass
class Lead:
    id: str
    matched_on: datetime
    content: str
    current_status: LeadStatus
    links: list[LeadLink] = field(default_factory=list)
    status_history: list[StatusChange] = field(default_factory=list)

    @classmethod
    def create(cls, lead_id: str, status: LeadStatus, content: str, links: list[LeadLink], now: datetime) -> "Lead":
        return cls(
            id=lead_id,
            matched_on=now,
            content=content,
            current_status=status,
            links=list(links),
            status_history=[StatusChange(now, status)],
        )

    def transition(self, status: LeadStatus, now: datetime) -> timedelta:
        """Move to ``status`` and return the time spent since the lead was first matched."""
        if not self.current_status.can_transition_to(status):
            raise ValueError(f"Illegal transition {self.current_status.label} -> {status.label} for lead {self.id}")
        if self.status_history and now < self.status_history[-1].changed_at:
            now = self.status_history[-1].changed_at
        self.current_status = status
        self.status_history.append(StatusChange(now, status))
        return now - self.matched_on

    @property
    def title(self) -> str:
        for link in self.links:
            if link.text:
                return link.text
        return self.content[:80]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "matchedOn": to_iso(self.matched_on),
            "links": [link.to_dict() for link in self.links],
            "content": self.content,
            "currentStatus": self.current_status.value,
            "statusHistory": [change.to_dict() for change in self.status_history],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Lead":
        lead_id = str(data["id"])
        if not lead_id:
            raise ValueError("lead id must not be empty")
        matched_on = parse_iso(data["matchedOn"])
        status = LeadStatus.parse(data["currentStatus"])
        history = [StatusChange.from_dict(item) for item in data.get("statusHistory") or []]
        if not history:
            history = [StatusChange(matched_on, status)]
        return cls(
            id=lead_id,
            matched_on=matched_on,
            content=str(data.get("content", "")),
            current_status=status,
            links=[LeadLink.from_dict(item) for item in data.get("links") or []],
            status_history=history,
        )


@dataclass(frozen=True)
class RawRecord:
    id: str
    raw_status: RawStatus | None = None
    text: str = ""
    links: tuple[LeadLink, ...] = ()
    content: str = ""

    @property
    def waitlisted(self) -> bool:
        return self.raw_status is RawStatus.WAITLISTED
