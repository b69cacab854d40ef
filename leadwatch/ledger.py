from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import date, time, timedelta, tzinfo
from pathlib import Path
from typing import Iterator

from leadwatch.errors import PersistenceError
from leadwatch.models import Lead, LeadStatus
from leadwatch.utils import at_local

logger = logging.getLogger("leadwatch.ledger")


class Ledger:
    """Leads ordered newest first, indexed by id."""

    def __init__(self, leads: list[Lead] | None = None) -> None:
        self._leads: list[Lead] = []
        self._by_id: dict[str, Lead] = {}
        for lead in leads or []:
            if lead.id in self._by_id:
                logger.warning("duplicate lead id in ledger, keeping newest: %s", lead.id)
                continue
            self._leads.append(lead)
            self._by_id[lead.id] = lead

    def __len__(self) -> int:
        return len(self._leads)

    def __iter__(self) -> Iterator[Lead]:
        return iter(self._leads)

    def __contains__(self, lead_id: object) -> bool:
        return lead_id in self._by_id

    @property
    def leads(self) -> list[Lead]:
        return list(self._leads)

    def get(self, lead_id: str) -> Lead | None:
        return self._by_id.get(lead_id)

    def prepend(self, lead: Lead) -> None:
        if lead.id in self._by_id:
            raise ValueError(f"Lead already tracked: {lead.id}")
        self._leads.insert(0, lead)
        self._by_id[lead.id] = lead

    def potential_matched_on(self, day: date, tz: tzinfo | None = None) -> list[Lead]:
        """PotentialLead entries first matched within ``day`` (local midnight to next midnight)."""
        start = at_local(day, time(0, 0), tz)
        end = at_local(day + timedelta(days=1), time(0, 0), tz)
        return [
            lead
            for lead in self._leads
            if lead.current_status is LeadStatus.POTENTIAL_LEAD and start <= lead.matched_on < end
        ]

    def count_by_status(self) -> dict[LeadStatus, int]:
        counts = {status: 0 for status in LeadStatus}
        for lead in self._leads:
            counts[lead.current_status] += 1
        return counts

    def to_document(self) -> dict:
        return {"matchedLeads": [lead.to_dict() for lead in self._leads]}


class LedgerStore:
    def __init__(self, path: str) -> None:
        self.path = Path(path)

    def load(self) -> Ledger:
        document = self._read_document()
        if document is None:
            logger.info("ledger file missing, empty or invalid, initializing %s", self.path)
            ledger = Ledger()
            try:
                self.save(ledger)
            except PersistenceError as exc:
                logger.warning("could not initialize ledger file: %s", exc)
            return ledger
        return self._ledger_from(document)

    def read(self) -> Ledger:
        """Load for inspection only; a missing or corrupt file is left as it is."""
        document = self._read_document()
        if document is None:
            return Ledger()
        return self._ledger_from(document)

    @staticmethod
    def _ledger_from(document: dict) -> Ledger:
        leads: list[Lead] = []
        for index, item in enumerate(document["matchedLeads"]):
            try:
                leads.append(Lead.from_dict(item))
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                logger.warning("dropping malformed ledger entry #%d: %s", index, exc)
        return Ledger(leads)

    def save(self, ledger: Ledger) -> None:
        payload = json.dumps(ledger.to_document(), indent=2)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".leads-", suffix=".json", dir=str(self.path.parent))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise PersistenceError(f"Could not write ledger {self.path}: {exc}") from exc

    def reset(self) -> None:
        self.save(Ledger())

    def _read_document(self) -> dict | None:
        if not self.path.exists():
            return None
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning("ledger file unreadable: %s", exc)
            return None
        if not raw.strip():
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return None
        if not isinstance(data, dict) or not isinstance(data.get("matchedLeads"), list):
            return None
        return data
