"""Reconciliation engine.

Diffs the running containers against the CNAME records we created and
drives the registrar to converge them. Two private tables hold all state:

    _records   (container id, hostname) -> ManagedRecord
    _pending   container id -> PendingDeletion

A container's state is implied by table membership:

    Unmanaged                  no record, no pending deletion
    Managed                    >= 1 record, no pending deletion
    Managed + PendingDelete    >= 1 record, 1 pending deletion

Two locks. ``_work_lock`` serializes ticks and deletion firings, and is
held across registrar calls. ``_lock`` guards the tables and is only held
for short in-memory sections, never across network I/O, so snapshots and
cancellations do not wait on the registrar. Deletion "timers" are
deadlines stored in the pending table; ``run_due_deletions`` claims the
expired ones under ``_lock``. Cancelling removes the entry under the same
lock, so a cancelled deletion can not fire afterwards.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from .errors import DNSManagerError, InvalidHostnameError, RegistrarError
from .labels import extract_hostnames, is_enabled, router_hostnames, split_hostname, traefik_labels
from .registrar import DEFAULT_TTL, Registrar
from .runtime import ContainerRuntime, ContainerSummary

logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================


class DeleteRetryPolicy(Enum):
    """What happens to records whose scheduled deletion failed.

    RETRY:  The next tick sees the owner still absent and arms a fresh
            deletion, so the delete is retried after another full delay.

    MANUAL: The owner is marked stranded and left alone until
            ``retry_stranded`` is called or the container runs again.
    """

    RETRY = "retry"
    MANUAL = "manual"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class ManagedRecord:
    """A CNAME record this process created and is responsible for deleting."""

    record_id: str
    hostname: str
    domain: str
    subdomain: str
    container_id: str
    target: str = ""

    @property
    def key(self) -> Tuple[str, str]:
        return (self.container_id, self.hostname)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": f"{self.container_id}-{self.hostname}",
            "recordId": self.record_id,
            "hostname": self.hostname,
            "domain": self.domain,
            "subdomain": self.subdomain,
            "containerId": self.container_id,
            "target": self.target,
        }


@dataclass(frozen=True)
class PendingDeletion:
    """A cancelable intent to delete every record owned by a container."""

    container_id: str
    fire_at: float
    scheduled_at: float

    def seconds_remaining(self, now: float) -> float:
        return max(0.0, self.fire_at - now)


@dataclass
class TickReport:
    """Per-item outcome of one tick."""

    created: List[ManagedRecord] = field(default_factory=list)
    create_failures: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    canceled: List[str] = field(default_factory=list)
    scheduled: List[str] = field(default_factory=list)
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error


@dataclass
class DeletionReport:
    """Outcome of firing the due pending deletions."""

    fired: List[str] = field(default_factory=list)
    deleted: List[ManagedRecord] = field(default_factory=list)
    failed: List[ManagedRecord] = field(default_factory=list)


# =============================================================================
# Engine
# =============================================================================


class ReconciliationEngine:
    def __init__(
        self,
        *,
        runtime: ContainerRuntime,
        registrar: Registrar,
        target_domain: str = "",
        ttl: int = DEFAULT_TTL,
        delete_delay: float = 300.0,
        retry_policy: DeleteRetryPolicy = DeleteRetryPolicy.RETRY,
        adopt_existing: bool = False,
        clock: Callable[[], float] = time.monotonic,
        on_schedule: Optional[Callable[[], None]] = None,
    ):
        self.runtime = runtime
        self.registrar = registrar
        self.target_domain = target_domain
        self.ttl = ttl
        self.delete_delay = max(0.0, float(delete_delay))
        self.retry_policy = retry_policy
        self.adopt_existing = adopt_existing
        self._clock = clock
        self.on_schedule = on_schedule
        self._work_lock = threading.Lock()
        self._lock = threading.Lock()
        self._records: Dict[Tuple[str, str], ManagedRecord] = {}
        self._pending: Dict[str, PendingDeletion] = {}
        self._stranded: Set[str] = set()

    # -------------------------------------------------------------------------
    # Tick
    # -------------------------------------------------------------------------

    def tick(self) -> TickReport:
        """Run one reconciliation pass. Never raises.

        Overlapping callers block on the work lock and run after the
        current pass finishes. The table lock is released while the
        runtime and the registrar are called.
        """
        report = TickReport()
        with self._work_lock:
            try:
                containers = self.runtime.list_containers()
            except Exception as e:
                report.error = f"Failed to list containers: {e}"
                logger.error(report.error)
                return report

            running: Dict[str, ContainerSummary] = {c.short_id: c for c in containers if c.running}
            unmanaged: List[ContainerSummary] = []
            with self._lock:
                owners = self._owners()
                for container_id, container in running.items():
                    if container_id in self._pending:
                        del self._pending[container_id]
                        report.canceled.append(container_id)
                        logger.info(f"Cancelled scheduled deletion for restarted container {container_id}")
                    self._stranded.discard(container_id)
                    if container_id not in owners:
                        unmanaged.append(container)

            existing_by_domain: Dict[str, Dict[str, str]] = {}
            for container in unmanaged:
                try:
                    self._create_records(container, report, existing_by_domain)
                except Exception as e:
                    logger.error(
                        f"Error processing container {container.short_id} ({container.name}): {e}",
                        exc_info=True,
                    )

            with self._lock:
                now = self._clock()
                for container_id in sorted(self._owners() - set(running)):
                    if container_id in self._pending or container_id in self._stranded:
                        continue
                    self._schedule(container_id, now)
                    report.scheduled.append(container_id)

        if report.scheduled:
            self._notify_scheduled()
        logger.debug(
            f"Tick complete: {len(report.created)} created, {len(report.create_failures)} failed, "
            f"{len(report.canceled)} cancelled, {len(report.scheduled)} scheduled"
        )
        return report

    def _owners(self) -> Set[str]:
        return {record.container_id for record in self._records.values()}

    def _create_records(
        self,
        container: ContainerSummary,
        report: TickReport,
        existing_by_domain: Dict[str, Dict[str, str]],
    ) -> None:
        container_id = container.short_id
        try:
            labels = self.runtime.inspect_labels(container.id)
        except DNSManagerError as e:
            logger.error(f"Failed to inspect container {container_id}: {e}")
            return

        hostnames = extract_hostnames(labels)
        if not hostnames:
            if is_enabled(labels):
                logger.debug(f"No valid hosts found in Traefik labels for container {container_id}")
            return

        for hostname in hostnames:
            try:
                subdomain, domain = split_hostname(hostname)
            except InvalidHostnameError as e:
                logger.warning(f"Skipping {hostname} for container {container_id}: {e}")
                report.skipped.append(hostname)
                continue

            target = self.target_domain or hostname
            record_id: Optional[str] = None
            if self.adopt_existing:
                record_id = self._find_existing(domain, subdomain, existing_by_domain)
                if record_id:
                    logger.info(
                        f"Adopted existing CNAME record {record_id} for {hostname} "
                        f"(container {container_id})"
                    )

            if record_id is None:
                try:
                    record_id = self.registrar.create_cname(domain, subdomain, target, self.ttl)
                except RegistrarError as e:
                    logger.error(
                        f"Failed to create DNS record for {hostname} "
                        f"(container {container_id}, domain {domain}): {e}"
                    )
                    report.create_failures.append(hostname)
                    continue

            record = ManagedRecord(
                record_id=record_id,
                hostname=hostname,
                domain=domain,
                subdomain=subdomain,
                container_id=container_id,
                target=target,
            )
            with self._lock:
                self._records[record.key] = record
            report.created.append(record)
            logger.info(
                f"DNS record {record_id} managed for container {container_id}: {hostname} -> {target}"
            )

    def _find_existing(
        self, domain: str, subdomain: str, existing_by_domain: Dict[str, Dict[str, str]]
    ) -> Optional[str]:
        """Return the id of an unmanaged CNAME named ``subdomain`` in ``domain``."""
        if domain not in existing_by_domain:
            try:
                records = self.registrar.list_records(domain)
            except RegistrarError as e:
                logger.warning(f"Could not list existing records for {domain}: {e}")
                records = []
            existing_by_domain[domain] = {
                r.name.lower(): r.record_id for r in records if r.type == "CNAME"
            }

        record_id = existing_by_domain[domain].get(subdomain.lower())
        with self._lock:
            managed_ids = {r.record_id for r in self._records.values() if r.domain == domain}
        if record_id is None or record_id in managed_ids:
            return None
        return record_id

    # -------------------------------------------------------------------------
    # Pending deletions
    # -------------------------------------------------------------------------

    def _schedule(self, container_id: str, now: float, delay: Optional[float] = None) -> None:
        delay = self.delete_delay if delay is None else delay
        # Replace, never stack.
        self._pending[container_id] = PendingDeletion(
            container_id=container_id, fire_at=now + delay, scheduled_at=now
        )
        logger.info(f"Scheduled DNS record deletion for container {container_id} in {delay:g} seconds")

    def _notify_scheduled(self) -> None:
        if self.on_schedule is not None:
            self.on_schedule()

    def cancel(self, container_id: str) -> bool:
        """Cancel a pending deletion. Once this returns it cannot fire."""
        with self._lock:
            return self._pending.pop(container_id, None) is not None

    def cancel_all(self) -> List[str]:
        with self._lock:
            cancelled = sorted(self._pending)
            self._pending.clear()
        if cancelled:
            logger.info(f"Cancelled {len(cancelled)} pending deletion(s)")
        return cancelled

    def next_deadline(self) -> Optional[float]:
        """Earliest ``fire_at`` of all pending deletions, if any."""
        with self._lock:
            if not self._pending:
                return None
            return min(p.fire_at for p in self._pending.values())

    def run_due_deletions(self, now: Optional[float] = None) -> DeletionReport:
        """Fire every pending deletion whose deadline has passed."""
        report = DeletionReport()
        with self._work_lock:
            with self._lock:
                now = self._clock() if now is None else now
                due = sorted(
                    (p for p in self._pending.values() if p.fire_at <= now), key=lambda p: p.fire_at
                )
                claimed: List[Tuple[str, List[ManagedRecord]]] = []
                for pending in due:
                    del self._pending[pending.container_id]
                    report.fired.append(pending.container_id)
                    owned = [r for r in self._records.values() if r.container_id == pending.container_id]
                    claimed.append((pending.container_id, owned))

            for container_id, owned in claimed:
                self._delete_records(container_id, owned, report)
        return report

    def _delete_records(
        self, container_id: str, owned: List[ManagedRecord], report: DeletionReport
    ) -> None:
        failed = False
        for record in owned:
            try:
                self.registrar.delete_record(record.domain, record.record_id)
            except RegistrarError as e:
                failed = True
                report.failed.append(record)
                logger.error(
                    f"Failed to delete DNS record {record.record_id} for stopped container "
                    f"{container_id} ({record.hostname}): {e}"
                )
                continue
            with self._lock:
                self._records.pop(record.key, None)
            report.deleted.append(record)
            logger.info(
                f"DNS record {record.record_id} deleted for stopped container {container_id} "
                f"({record.hostname})"
            )

        if failed and self.retry_policy is DeleteRetryPolicy.MANUAL:
            with self._lock:
                self._stranded.add(container_id)
            logger.warning(
                f"Deletion for container {container_id} left records behind; "
                f"waiting for a manual retry"
            )

    def retry_stranded(self) -> List[str]:
        """Re-arm deletions stranded under the MANUAL policy, due immediately."""
        with self._lock:
            now = self._clock()
            owners = self._owners()
            rearmed = sorted(c for c in self._stranded if c in owners)
            for container_id in rearmed:
                self._schedule(container_id, now, delay=0.0)
            self._stranded.clear()
        if rearmed:
            self._notify_scheduled()
        return rearmed

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    def records_snapshot(self) -> List[ManagedRecord]:
        with self._lock:
            return sorted(self._records.values(), key=lambda r: r.key)

    def pending_snapshot(self) -> List[PendingDeletion]:
        with self._lock:
            return sorted(self._pending.values(), key=lambda p: p.container_id)

    def stranded_snapshot(self) -> List[str]:
        with self._lock:
            return sorted(self._stranded)

    def now(self) -> float:
        return self._clock()

    def containers_view(self) -> List[Dict[str, Any]]:
        """Re-derive the Traefik-enabled containers straight from the runtime.

        Does not touch the engine tables. A listing failure propagates; a
        container that can no longer be inspected is left out.
        """
        view: List[Dict[str, Any]] = []
        for container in self.runtime.list_containers():
            labels = container.labels
            if not labels:
                try:
                    labels = self.runtime.inspect_labels(container.id)
                except DNSManagerError as e:
                    logger.debug(f"Leaving container {container.short_id} out of the view: {e}")
                    continue
            if not is_enabled(labels):
                continue
            view.append(
                {
                    "id": container.short_id,
                    "name": container.name,
                    "state": container.state,
                    "status": container.status,
                    "hosts": extract_hostnames(labels),
                    "routers": router_hostnames(labels),
                    "labels": traefik_labels(labels),
                }
            )
        return view
