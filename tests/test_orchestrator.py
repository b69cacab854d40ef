import json
from datetime import datetime, time, timedelta, timezone
from pathlib import Path

from leadwatch.config import QuotaConfig, SourceConfig, WatchConfig, WindowConfig
from leadwatch.errors import NotifierError, PersistenceError, SourceError
from leadwatch.ledger import LedgerStore
from leadwatch.models import LeadLink, LeadStatus, RawRecord, RawStatus
from leadwatch.notify import Notifier
from leadwatch.orchestrator import Orchestrator
from leadwatch.scheduler import WindowState
from leadwatch.sources.base import Source

UTC = timezone.utc


def _config(tmp_path: Path, daily_limit: int = 6, morning_limit: int = 3) -> WatchConfig:
    return WatchConfig(
        source=SourceConfig(leads_url="https://example.com/leads"),
        keywords=("asbestos",),
        window=WindowConfig(start=time(8, 0), end=time(18, 0), timezone=UTC),
        quota=QuotaConfig(daily_limit=daily_limit, morning_limit=morning_limit),
        interval_seconds=15,
        ledger_file=str(tmp_path / "leads.json"),
    )


def _record(record_id: str, text: str = "asbestos job", waitlisted: bool = False) -> RawRecord:
    return RawRecord(
        id=record_id,
        raw_status=RawStatus.WAITLISTED if waitlisted else None,
        text="" if waitlisted else text,
        links=(LeadLink(f"https://example.com/{record_id}", record_id),),
        content=text,
    )


class FakeSource(Source):
    def __init__(self, batches: list) -> None:
        super().__init__("fake")
        self.batches = list(batches)
        self.opens = 0
        self.closes = 0

    def open(self) -> None:
        self.opens += 1
        super().open()

    def close(self) -> None:
        self.closes += 1
        super().close()

    def fetch(self) -> list[RawRecord]:
        batch = self.batches.pop(0) if self.batches else []
        if isinstance(batch, Exception):
            raise batch
        return batch


class RecordingNotifier(Notifier):
    def __init__(self, fail: bool = False) -> None:
        self.calls: list = []
        self.fail = fail

    def notify(self, lead, elapsed=None) -> None:
        self.calls.append((lead.id, lead.current_status, elapsed))
        if self.fail:
            raise NotifierError("smtp down")


class CountingStore(LedgerStore):
    def __init__(self, path: str, failures: int = 0) -> None:
        super().__init__(path)
        self.saves = 0
        self.failures = failures

    def save(self, ledger) -> None:
        if self.failures:
            self.failures -= 1
            raise PersistenceError("disk full")
        self.saves += 1
        super().save(ledger)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> datetime:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += timedelta(seconds=seconds)


def _orchestrator(tmp_path, batches, notifier=None, store=None, now=None, **config_kwargs):
    clock = FakeClock(now or datetime(2026, 3, 2, 9, 0, tzinfo=UTC))
    orchestrator = Orchestrator(
        config=_config(tmp_path, **config_kwargs),
        source=FakeSource(batches),
        notifier=notifier or RecordingNotifier(),
        store=store or CountingStore(str(tmp_path / "leads.json")),
        clock=clock,
        sleep=clock.sleep,
    )
    return orchestrator, clock


def test_active_tick_creates_persists_and_notifies(tmp_path: Path) -> None:
    notifier = RecordingNotifier()
    orchestrator, clock = _orchestrator(tmp_path, [[_record("a"), _record("b", "roofing")]], notifier=notifier)

    decision = orchestrator.tick()

    assert decision.state is WindowState.ACTIVE
    assert orchestrator.source.opens == 1
    assert notifier.calls == [("a", LeadStatus.POTENTIAL_LEAD, None)]
    saved = json.loads((tmp_path / "leads.json").read_text(encoding="utf-8"))
    assert [lead["id"] for lead in saved["matchedLeads"]] == ["a"]
    assert clock.sleeps == [15]


def test_cycle_without_changes_does_not_rewrite_store(tmp_path: Path) -> None:
    store = CountingStore(str(tmp_path / "leads.json"))
    orchestrator, _ = _orchestrator(tmp_path, [[_record("a")], [_record("a")], [_record("x", "roof")]], store=store)

    orchestrator.tick()
    saves_after_first = store.saves
    orchestrator.tick()
    orchestrator.tick()

    assert store.saves == saves_after_first


def test_transition_notification_carries_elapsed(tmp_path: Path) -> None:
    notifier = RecordingNotifier()
    orchestrator, clock = _orchestrator(tmp_path, [[_record("a")], [_record("a", waitlisted=True)]], notifier=notifier)

    orchestrator.tick()
    orchestrator.tick()

    assert notifier.calls[-1] == ("a", LeadStatus.TRANSITIONED_TO_WAITLISTED, timedelta(seconds=15))


def test_notifier_failure_keeps_ledger_state(tmp_path: Path) -> None:
    orchestrator, _ = _orchestrator(tmp_path, [[_record("a"), _record("b")]], notifier=RecordingNotifier(fail=True))

    result = orchestrator.run_cycle()

    assert len(result.created) == 2
    assert len(orchestrator.notifier.calls) == 2
    saved = json.loads((tmp_path / "leads.json").read_text(encoding="utf-8"))
    assert [lead["id"] for lead in saved["matchedLeads"]] == ["b", "a"]


def test_source_error_skips_cycle_and_resets_source(tmp_path: Path) -> None:
    orchestrator, _ = _orchestrator(tmp_path, [SourceError("timeout"), [_record("a")]])

    orchestrator.tick()
    assert len(orchestrator.ledger) == 0
    assert orchestrator.source.closes == 1
    assert not orchestrator.source.is_open

    orchestrator.tick()
    assert orchestrator.source.opens == 2
    assert "a" in orchestrator.ledger


def test_persistence_failure_is_retried_next_tick(tmp_path: Path) -> None:
    store = CountingStore(str(tmp_path / "leads.json"))
    orchestrator, _ = _orchestrator(tmp_path, [[_record("a")], []], store=store)
    orchestrator.start()
    store.failures = 1

    orchestrator.tick()
    assert orchestrator.pending_save
    assert "a" in orchestrator.ledger

    orchestrator.tick()
    assert not orchestrator.pending_save
    saved = json.loads((tmp_path / "leads.json").read_text(encoding="utf-8"))
    assert [lead["id"] for lead in saved["matchedLeads"]] == ["a"]


def test_outside_window_releases_source_and_sleeps(tmp_path: Path) -> None:
    orchestrator, clock = _orchestrator(tmp_path, [[]], now=datetime(2026, 3, 2, 17, 59, 50, tzinfo=UTC))

    orchestrator.tick()
    assert orchestrator.source.is_open

    decision = orchestrator.tick()
    assert decision.state is WindowState.OUTSIDE_WINDOW
    assert not orchestrator.source.is_open
    assert clock.now == datetime(2026, 3, 3, 8, 0, tzinfo=UTC)


def test_quota_stops_scanning_until_tomorrow(tmp_path: Path) -> None:
    source_batches = [[_record("a"), _record("b")], [_record("c")]]
    orchestrator, clock = _orchestrator(tmp_path, source_batches, daily_limit=2, morning_limit=5)

    orchestrator.tick()
    decision = orchestrator.tick()

    assert decision.state is WindowState.QUOTA_EXHAUSTED
    assert "c" not in orchestrator.ledger
    assert clock.now == datetime(2026, 3, 3, 8, 0, tzinfo=UTC)


def test_corrupt_store_does_not_block_startup(tmp_path: Path) -> None:
    (tmp_path / "leads.json").write_text("{broken", encoding="utf-8")
    orchestrator, _ = _orchestrator(tmp_path, [[_record("a")]])

    orchestrator.run_forever(max_ticks=1)

    assert "a" in orchestrator.ledger
    assert not orchestrator.source.is_open


def test_dry_run_leaves_ledger_untouched(tmp_path: Path) -> None:
    notifier = RecordingNotifier()
    store = CountingStore(str(tmp_path / "leads.json"))
    orchestrator, _ = _orchestrator(tmp_path, [[_record("a")]], notifier=notifier, store=store)

    result = orchestrator.run_cycle(dry_run=True)

    assert [lead.id for lead in result.created] == ["a"]
    assert len(orchestrator.ledger) == 0
    assert notifier.calls == []
    assert store.saves == 1  # the initial empty file written on load


def test_interrupt_closes_source_and_flushes_pending_save(tmp_path: Path) -> None:
    store = CountingStore(str(tmp_path / "leads.json"))
    orchestrator, _ = _orchestrator(tmp_path, [[_record("a")]], store=store)

    def interrupted_sleep(seconds: float) -> None:
        raise KeyboardInterrupt

    orchestrator.sleep = interrupted_sleep
    orchestrator.start()
    store.failures = 1

    orchestrator.run_forever()

    assert not orchestrator.source.is_open
    assert orchestrator.source.closes == 1
    assert not orchestrator.pending_save
    saved = json.loads((tmp_path / "leads.json").read_text(encoding="utf-8"))
    assert [lead["id"] for lead in saved["matchedLeads"]] == ["a"]
