"""Operations exposed to the HTTP layer, plus the scheduler loop."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .config import Config
from .engine import ReconciliationEngine, TickReport

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class SyncResult:
    """Result of an on-demand sync."""

    ok: bool
    message: str
    timestamp: str
    error: str = ""
    report: Optional[TickReport] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {"message": self.message, "timestamp": self.timestamp}
        return {"error": self.error, "timestamp": self.timestamp}


class DNSManager:
    """Ties configuration, the engine and its schedule together."""

    def __init__(self, config: Config, engine: ReconciliationEngine):
        self.config = config
        self.engine = engine
        self._stop = threading.Event()
        self._wakeup = threading.Event()
        if engine.on_schedule is None:
            engine.on_schedule = self.wake

    # -------------------------------------------------------------------------
    # Exposed operations
    # -------------------------------------------------------------------------

    def health(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "timestamp": _timestamp(),
            "config": {
                "pollInterval": self.config.poll_interval,
                "deleteDelay": self.config.delete_delay,
                "targetDomain": self.config.target_domain,
                "hasCredentials": self.config.has_credentials,
            },
        }

    def records(self) -> Dict[str, Any]:
        now = self.engine.now()
        records = [r.to_dict() for r in self.engine.records_snapshot()]
        pending = [
            {
                "containerId": p.container_id,
                "secondsRemaining": round(p.seconds_remaining(now), 1),
            }
            for p in self.engine.pending_snapshot()
        ]
        return {
            "records": records,
            "pendingDeletions": pending,
            "strandedDeletions": self.engine.stranded_snapshot(),
            "total": len(records),
        }

    def containers(self) -> Dict[str, Any]:
        return {"containers": self.engine.containers_view()}

    def trigger_sync(self) -> SyncResult:
        """Run exactly one tick now and report how it went."""
        logger.info("Manual sync triggered")
        report = self.engine.tick()
        if not report.ok:
            logger.error(f"Manual sync failed: {report.error}")
            return SyncResult(
                ok=False, message="Sync failed", timestamp=_timestamp(), error=report.error, report=report
            )
        return SyncResult(ok=True, message="Sync completed", timestamp=_timestamp(), report=report)

    # -------------------------------------------------------------------------
    # Scheduler
    # -------------------------------------------------------------------------

    def wake(self) -> None:
        """Interrupt the scheduler sleep, e.g. after a deletion was armed."""
        self._wakeup.set()

    def run_forever(self) -> None:
        """Tick every poll interval and fire deletions as they fall due.

        Pending deletions are dropped once the loop exits.
        """
        interval = max(1, self.config.poll_interval)
        logger.info("Starting container monitoring...")
        next_tick = self.engine.now()

        try:
            while not self._stop.is_set():
                # Cleared before the deadline is read, so a wake that lands
                # after this point cuts the coming wait short.
                self._wakeup.clear()

                now = self.engine.now()
                if now >= next_tick:
                    self.engine.tick()
                    next_tick = self.engine.now() + interval

                self.engine.run_due_deletions()

                deadline = self.engine.next_deadline()
                wake_at = next_tick if deadline is None else min(next_tick, deadline)
                timeout = max(0.0, wake_at - self.engine.now())
                self._wakeup.wait(timeout)
        finally:
            self.engine.cancel_all()
            logger.info("Scheduler stopped")

    def stop(self) -> None:
        """Ask the scheduler to stop. Safe to call from a signal handler."""
        self._stop.set()
        self._wakeup.set()
