from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime

from croniter import croniter

from windscribe_port_sync.application.ports.clock_port import Clock, SystemClock
from windscribe_port_sync.application.use_cases.sync_forwarded_port import SyncForwardedPortUseCase, SyncResult

logger = logging.getLogger(__name__)


class RunLoop:
    """Runs the sync on start, then again at the next retry, renewal or cron instant.

    Retries take priority over everything else since a retry means the last
    pass did not finish its job; the cron schedule is paused while one is
    pending. Otherwise the earlier of the cron tick and the renewal wins.
    """

    def __init__(
        self,
        use_case: SyncForwardedPortUseCase,
        *,
        clock: Clock | None = None,
        on_result: Callable[[SyncResult], None] | None = None,
        cron: str = "",
    ) -> None:
        if cron and not croniter.is_valid(cron):
            raise ValueError(f"Invalid cron schedule: {cron!r}")
        self.use_case = use_case
        self.clock = clock or SystemClock()
        self.on_result = on_result
        self.cron = cron

    def run_once(self, trigger: str) -> SyncResult:
        logger.info("Starting update, trigger type: %s", trigger)
        result = self.use_case.execute()
        if self.on_result is not None:
            self.on_result(result)
        return result

    def next_wakeup(self, result: SyncResult) -> tuple[str, datetime]:
        if result.next_retry is not None:
            return "retry", result.next_retry
        if result.next_run is None:
            raise RuntimeError("Invalid state, no next retry/run date present")
        if self.cron:
            scheduled = croniter(self.cron, self.clock.now()).get_next(datetime)
            if scheduled < result.next_run:
                return "schedule", scheduled
        return "normal", result.next_run

    def run_forever(self, stop: threading.Event | None = None) -> None:
        stop = stop or threading.Event()
        trigger = "initial"
        while not stop.is_set():
            result = self.run_once(trigger)
            trigger, when = self.next_wakeup(result)
            delay = max(0.0, (when - self.clock.now()).total_seconds())
            logger.info("Next %s run scheduled for %s (in %.1f seconds)", trigger, when.isoformat(), delay)
            if stop.wait(delay):
                break
        logger.info("Run loop stopped")
