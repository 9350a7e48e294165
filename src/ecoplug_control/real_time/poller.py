"""The control poller: the single loop that applies arbiter decisions to the store.

Each tick fetches every device and combined-limit group, evaluates them from
scratch and writes only what differs from the stored state. Because decisions
are stateless and writes idempotent, several pollers (one per process, or one
per open dashboard) converge on the same stored state without coordination.

Ticks run as APScheduler interval jobs:

- `schedule`: the full evaluation (enforcement, re-fetch, schedule changes),
- `limits`: limit and unplug enforcement plus group cutoff and reset only,
- `unplug`: the sensor timestamp watchdog.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from apscheduler.events import EVENT_JOB_ERROR, JobExecutionEvent
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ecoplug_control.control.arbiter import (
    Decision,
    decide,
    group_enforcement_fields,
    remove_members_fields,
)
from ecoplug_control.control.energy import Correction
from ecoplug_control.control.models import (
    CombinedLimitGroup,
    Device,
    load_devices,
    load_groups,
)
from ecoplug_control.errors import StoreError
from ecoplug_control.real_time.unplug import UnplugDetector, UnplugReport
from ecoplug_control.store.activity_log import ActivityLog
from ecoplug_control.store.base import DocumentStore, join_path
from ecoplug_control.util.config import Settings
from ecoplug_control.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

Snapshot = Tuple[Dict[str, Device], List[CombinedLimitGroup]]


@dataclass
class TickReport:
    """Outcome of one evaluation pass.

    Attributes:
        evaluated: Devices evaluated in the final pass.
        written: Device patches that succeeded.
        skipped: Devices whose decision needed no write (including bypassed ones).
        failed: Device or group patches that raised.
        group_writes: Group patches that succeeded.
        aborted: True when the tick was skipped because the store was unavailable.
        decisions: Final decision per outlet key.
    """

    evaluated: int = 0
    written: int = 0
    skipped: int = 0
    failed: int = 0
    group_writes: int = 0
    aborted: bool = False
    decisions: Dict[str, Decision] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "evaluated": self.evaluated,
            "written": self.written,
            "skipped": self.skipped,
            "failed": self.failed,
            "group_writes": self.group_writes,
            "aborted": self.aborted,
            "decisions": {key: d.to_dict() for key, d in self.decisions.items()},
        }


class ControlPoller:
    """Owns the polling jobs and applies decisions to the document store.

    Args:
        store: The shared document store.
        settings: Paths, intervals and correction parameters.
        scheduler: APScheduler scheduler to register jobs on; a
                   `BackgroundScheduler` is created when not given.
        activity_log: Receives an entry for every control change.
        clock: Returns the current local time (injected by tests).
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: Settings,
        scheduler: Optional[BackgroundScheduler] = None,
        activity_log: Optional[ActivityLog] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._scheduler = scheduler or BackgroundScheduler()
        self._activity_log = activity_log
        self._timezone = ZoneInfo(settings.timezone)
        self._clock = clock or (lambda: datetime.now(self._timezone))
        self._correction = Correction(
            settings.correction_accuracy, settings.correction_epsilon_kwh
        )
        self._unplug = UnplugDetector(
            store, settings.devices_path, settings.unplug_timeout
        )
        self._job_ids: List[str] = []
        self._lock = threading.Lock()
        self._scheduler.add_listener(self._job_error_listener, EVENT_JOB_ERROR)

    @property
    def is_running(self) -> bool:
        return bool(self._job_ids)

    def start(self) -> None:
        """Registers the interval jobs and starts the scheduler if needed."""
        with self._lock:
            if self._job_ids:
                logger.info("Control poller already running")
                return
            intervals = {
                "schedule": (self.run_tick, self._settings.schedule_interval),
                "limits": (self.run_enforcement, self._settings.limit_interval),
                "unplug": (self._unplug.check, self._settings.unplug_interval),
            }
            for name, (function, seconds) in intervals.items():
                job = self._scheduler.add_job(
                    function,
                    trigger=IntervalTrigger(seconds=seconds),
                    id=f"ecoplug-{name}-{id(self)}",
                    name=name,
                    max_instances=1,
                    coalesce=True,
                )
                self._job_ids.append(job.id)
                logger.info("Added %s job every %.0f s", name, seconds)
            if not self._scheduler.running:
                self._scheduler.start()

    def stop(self) -> None:
        """Removes every job this poller added. Ticks already running finish."""
        with self._lock:
            for job_id in self._job_ids:
                try:
                    self._scheduler.remove_job(job_id)
                except JobLookupError as ex:
                    logger.debug("Job %s already gone: %s", job_id, ex)
            self._job_ids = []
        logger.info("Control poller stopped")

    def shutdown(self) -> None:
        self.stop()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def run_tick(self, now: Optional[datetime] = None) -> TickReport:
        """Runs one full evaluation pass.

        Enforcement decisions (unplug, limit cutoffs, group cutoff and reset)
        are written first. When any of them was written, the documents are
        fetched again before schedule decisions are made, so a schedule change
        is never computed from data older than a cutoff just applied.
        """
        now = now or self._clock()
        report = TickReport()

        snapshot = self._fetch()
        if snapshot is None:
            report.aborted = True
            return report

        if self._enforce(snapshot, now, report):
            snapshot = self._fetch()
            if snapshot is None:
                report.aborted = True
                return report

        devices, groups = snapshot
        for device in devices.values():
            decision = self._evaluate(device, devices, groups, now)
            if decision is None:
                report.failed += 1
                continue
            report.evaluated += 1
            report.decisions[device.key] = decision
            self._apply(device, decision, now, report)

        logger.debug(
            "Tick done: %d evaluated, %d written, %d skipped, %d failed",
            report.evaluated,
            report.written,
            report.skipped,
            report.failed,
        )
        return report

    def run_enforcement(self, now: Optional[datetime] = None) -> TickReport:
        """Runs the enforcement half of a tick only; schedules are not applied."""
        now = now or self._clock()
        report = TickReport()
        snapshot = self._fetch()
        if snapshot is None:
            report.aborted = True
            return report
        self._enforce(snapshot, now, report)
        return report

    def check_unplugged(self) -> UnplugReport:
        return self._unplug.check()

    def remove_group_members(self, group_path: str, outlets: List[str]) -> bool:
        """Removes `outlets` from the group stored at `group_path`.

        Returns:
            True when the group was changed.
        """
        snapshot = self._fetch()
        if snapshot is None:
            return False
        for group in snapshot[1]:
            if group.path != group_path:
                continue
            fields = remove_members_fields(group, outlets)
            if not fields:
                return False
            try:
                self._store.patch(group.path, fields)
            except StoreError as ex:
                logger.error("Could not update members of %s: %s", group.path, ex)
                return False
            logger.info("Removed %s from %s", ", ".join(outlets), group.path)
            return True
        logger.warning("No combined limit group at %s", group_path)
        return False

    def _fetch(self) -> Optional[Snapshot]:
        settings = self._settings
        try:
            raw_devices = self._store.fetch(settings.devices_path)
            raw_groups = self._store.fetch(settings.combined_limits_path)
        except StoreError as ex:
            LoggingUtil.throttled(
                logger,
                "poller-fetch",
                logging.WARNING,
                "Skipping tick, store unavailable: %s",
                ex,
            )
            return None
        return load_devices(raw_devices), load_groups(settings.combined_limits_path, raw_groups)

    def _enforce(self, snapshot: Snapshot, now: datetime, report: TickReport) -> bool:
        """Writes group and device enforcement decisions. Returns True if anything was written."""
        devices, groups = snapshot
        wrote = False

        for group in groups:
            fields = group_enforcement_fields(group, devices, now, self._correction)
            if not fields:
                continue
            try:
                self._store.patch(group.path, fields)
            except StoreError as ex:
                logger.error("Group enforcement write failed for %s: %s", group.path, ex)
                report.failed += 1
                continue
            report.group_writes += 1
            wrote = True

        for device in devices.values():
            decision = self._evaluate(device, devices, groups, now)
            if decision is None or not decision.is_enforcement or not decision.fields:
                continue
            if self._apply(device, decision, now, report):
                report.decisions[device.key] = decision
                wrote = True
        return wrote

    def _evaluate(
        self,
        device: Device,
        devices: Dict[str, Device],
        groups: List[CombinedLimitGroup],
        now: datetime,
    ) -> Optional[Decision]:
        try:
            return decide(device, devices, groups, now, self._correction)
        except Exception as ex:
            logger.error("Could not evaluate %s: %s", device.key, ex, exc_info=True)
            return None

    def _apply(self, device: Device, decision: Decision, now: datetime, report: TickReport) -> bool:
        """Patches the device when its decision carries fields. Returns True on a write."""
        if not decision.fields:
            report.skipped += 1
            logger.debug("%s unchanged (%s)", device.key, decision.state.value)
            return False

        try:
            self._store.patch(
                join_path(self._settings.devices_path, device.key), decision.fields
            )
        except StoreError as ex:
            logger.error("Write failed for %s: %s", device.key, ex)
            report.failed += 1
            return False

        report.written += 1
        logger.info(
            "%s: control %s -> %s (%s)",
            device.key,
            decision.current_state,
            decision.next_state,
            decision.state.value,
        )
        if decision.write and self._activity_log is not None:
            self._activity_log.record(device, decision.activity(), now)
        return True

    @staticmethod
    def _job_error_listener(event: JobExecutionEvent) -> None:
        logger.error(
            "Polling job %s raised: %s", event.job_id, event.exception, exc_info=event.exception
        )
