from __future__ import annotations

import logging
import time
from copy import deepcopy
from datetime import datetime
from typing import Callable

from leadwatch.config import WatchConfig
from leadwatch.errors import PersistenceError, SourceError
from leadwatch.ledger import Ledger, LedgerStore
from leadwatch.lifecycle import CycleResult, LifecycleEngine
from leadwatch.notify import Notifier
from leadwatch.scheduler import Decision, Scheduler, WindowState
from leadwatch.sources.base import Source
from leadwatch.utils import local_now

logger = logging.getLogger("leadwatch.orchestrator")


def build_scheduler(config: WatchConfig) -> Scheduler:
    return Scheduler(
        window_start=config.window.start,
        window_end=config.window.end,
        daily_limit=config.quota.daily_limit,
        morning_limit=config.quota.morning_limit,
        tz=config.window.timezone,
    )


class Orchestrator:
    """Runs the gate -> fetch -> process -> persist -> notify loop.

    One cycle at a time: the ledger is saved before any notification goes out
    and before the next tick starts.
    """

    def __init__(
        self,
        config: WatchConfig,
        source: Source,
        notifier: Notifier,
        store: LedgerStore,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.source = source
        self.notifier = notifier
        self.store = store
        self.clock = clock or (lambda: local_now(config.window.timezone))
        self.sleep = sleep
        self.scheduler = build_scheduler(config)
        self.engine = LifecycleEngine(list(config.keywords), config.match_mode)
        self.ledger = Ledger()
        self._dirty = False
        self._started = False

    @property
    def pending_save(self) -> bool:
        return self._dirty

    def start(self) -> None:
        self.ledger = self.store.load()
        self._started = True
        logger.info("loaded %d tracked leads from %s", len(self.ledger), self.store.path)

    def tick(self) -> Decision:
        if not self._started:
            self.start()

        self.flush()
        now = self.clock()
        decision = self.scheduler.evaluate(now, self.ledger)

        if not decision.active:
            if decision.release_source and self.source.is_open:
                logger.info("outside operating hours, releasing source")
                self.source.close()
            self._log_idle(decision)
            self.sleep(decision.sleep_seconds(now))
            return decision

        if not self.source.is_open:
            logger.info("operating hours have begun, opening source")
            self.source.open()

        self.run_cycle(now)
        logger.debug("cycle complete, waiting %d seconds", self.config.interval_seconds)
        self.sleep(self.config.interval_seconds)
        return decision

    def run_cycle(self, now: datetime | None = None, dry_run: bool = False) -> CycleResult | None:
        if not self._started:
            self.start()
        now = now or self.clock()

        try:
            records = self.source.fetch()
        except SourceError as exc:
            logger.warning("scan failed, skipping cycle: %s", exc)
            self.source.close()
            return None

        ledger = self._scratch_ledger() if dry_run else self.ledger
        result = self.engine.process_cycle(records, ledger, now)
        logger.info(
            "scanned %d records: %d new, %d transitioned",
            result.seen,
            len(result.created),
            len(result.transitioned),
        )

        if not result.mutated:
            logger.info("no new leads or status changes this cycle")
            return result
        if dry_run:
            return result

        self._dirty = True
        self.flush()

        for notification in result.notifications:
            try:
                self.notifier.notify(notification.lead, notification.elapsed)
            except Exception as exc:  # noqa: BLE001
                logger.warning("notification failed for %s: %s", notification.lead.id, exc)

        return result

    def flush(self) -> bool:
        if not self._dirty:
            return True
        try:
            self.store.save(self.ledger)
        except PersistenceError as exc:
            logger.warning("ledger save failed, will retry: %s", exc)
            return False
        self._dirty = False
        logger.info("ledger saved (%d leads)", len(self.ledger))
        return True

    def run_forever(self, max_ticks: int | None = None) -> None:
        logger.info(
            "watching for keywords [%s] with match type %s",
            ", ".join(self.config.keywords),
            self.config.match_mode.value,
        )
        ticks = 0
        try:
            while max_ticks is None or ticks < max_ticks:
                self.tick()
                ticks += 1
        except KeyboardInterrupt:
            logger.info("interrupted")
        finally:
            if self.source.is_open:
                self.source.close()
            self.flush()
            logger.info("watcher stopped")

    def _scratch_ledger(self) -> Ledger:
        return Ledger(deepcopy(self.ledger.leads))

    @staticmethod
    def _log_idle(decision: Decision) -> None:
        target = decision.sleep_until.isoformat() if decision.sleep_until else "now"
        if decision.state is WindowState.OUTSIDE_WINDOW:
            logger.info("outside operating hours, idling until %s", target)
        elif decision.state is WindowState.QUOTA_EXHAUSTED:
            logger.info("daily limit reached (%d potential leads), idling until %s", decision.potential_today, target)
        else:
            logger.info("morning limit reached before noon, pausing until %s", target)
