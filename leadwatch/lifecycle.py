from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable

from leadwatch.ledger import Ledger
from leadwatch.matcher import MatchMode, matches
from leadwatch.models import Lead, LeadStatus, RawRecord

logger = logging.getLogger("leadwatch.lifecycle")


@dataclass(frozen=True)
class Notification:
    lead: Lead
    elapsed: timedelta | None = None

    @property
    def is_transition(self) -> bool:
        return self.elapsed is not None


@dataclass
class CycleResult:
    seen: int = 0
    created: list[Lead] = field(default_factory=list)
    transitioned: list[Lead] = field(default_factory=list)
    notifications: list[Notification] = field(default_factory=list)

    @property
    def mutated(self) -> bool:
        return bool(self.created or self.transitioned)


class LifecycleEngine:
    def __init__(self, keywords: list[str], mode: MatchMode = MatchMode.EACH) -> None:
        self.keywords = keywords
        self.mode = mode

    def process_cycle(self, records: Iterable[RawRecord], ledger: Ledger, now: datetime) -> CycleResult:
        result = CycleResult()

        for record in records:
            result.seen += 1
            if not record.id:
                logger.warning("skipping record without identity")
                continue

            existing = ledger.get(record.id)
            if existing is None:
                lead = self._create(record, now)
                if lead is None:
                    continue
                ledger.prepend(lead)
                result.created.append(lead)
                result.notifications.append(Notification(lead))
                logger.info("new match %s (%s)", lead.id, lead.current_status.value)
                continue

            if record.waitlisted and existing.current_status is LeadStatus.POTENTIAL_LEAD:
                elapsed = existing.transition(LeadStatus.TRANSITIONED_TO_WAITLISTED, now)
                result.transitioned.append(existing)
                result.notifications.append(Notification(existing, elapsed))
                logger.info("status transition for %s after %s", existing.id, elapsed)

        return result

    def _create(self, record: RawRecord, now: datetime) -> Lead | None:
        # The status marker wins over keyword matching.
        if record.waitlisted:
            status = LeadStatus.ALREADY_WAITLISTED
        elif matches(record.text, self.keywords, self.mode):
            status = LeadStatus.POTENTIAL_LEAD
        else:
            return None
        return Lead.create(record.id, status, record.content, list(record.links), now)
