"""
Bulk sync orchestration.

Resolves requested devices through a DeviceDirectory, triggers a sync on each one
through a SyncInvoker, and folds the outcomes into a ResultReport. Calls are issued
one at a time, in input order, with a fixed pause between consecutive sync calls.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional, Sequence

from .config import DEFAULT_SYNC_DELAY, ConfigurationError
from .device_directory import DeviceDirectory
from .graph_client import AuthenticationError, GraphApiError, TransportError
from .models import (
    Device,
    Platform,
    PlatformSyncSummary,
    ResultReport,
    SyncOutcome,
    SyncProgressEvent,
    SyncStatus,
)
from .sync_invoker import SyncInvoker

ProgressCallback = Callable[[SyncProgressEvent], None]


class _RunState:
    """Mutable accumulator for a single run; frozen into a ResultReport at the end."""

    def __init__(self, total: int):
        self.total = total
        self.outcomes: List[SyncOutcome] = []
        self.counts: Dict[str, int] = {"found": 0, "notFound": 0, "synced": 0, "failed": 0}

    def record(self, outcome: SyncOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.status is SyncStatus.NOT_FOUND:
            self.counts["notFound"] += 1
            return
        self.counts["found"] += 1
        if outcome.status is SyncStatus.SYNCED:
            self.counts["synced"] += 1
        else:
            self.counts["failed"] += 1


class BulkSyncOrchestrator:
    def __init__(
        self,
        directory: DeviceDirectory,
        invoker: SyncInvoker,
        *,
        delay: float = DEFAULT_SYNC_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        on_progress: Optional[ProgressCallback] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if delay < 0:
            raise ConfigurationError("Sync delay cannot be negative.")
        self.directory = directory
        self.invoker = invoker
        self.delay = delay
        self.sleep = sleep
        self.on_progress = on_progress
        self.logger = logger or logging.getLogger(__name__)
        self._sync_calls = 0  # Sync calls issued in the current run, across platform batches

    # -------- Per-device steps --------
    def _sync_device(self, state: _RunState, requested_name: str, device: Device) -> SyncOutcome:
        if self._sync_calls and self.delay:
            self.sleep(self.delay)
        self._sync_calls += 1

        result = self.invoker.trigger_sync(device.id)
        if result.success:
            self.logger.info("Sync queued for %s (%s)", device.name, device.id)
            return SyncOutcome.synced(requested_name, device)
        reason = result.error or "Unknown error"
        self.logger.warning("Sync failed for %s (%s): %s", device.name, device.id, reason)
        return SyncOutcome.failed(requested_name, device, reason)

    def _record(self, state: _RunState, outcome: SyncOutcome) -> None:
        state.record(outcome)
        if self.on_progress:
            self.on_progress(
                SyncProgressEvent(
                    device_name=outcome.requested_name,
                    outcome=outcome,
                    counts=dict(state.counts),
                    position=len(state.outcomes),
                    total=state.total,
                )
            )

    # -------- Runs --------
    def sync_by_names(self, names: Sequence[str], label: Optional[str] = None) -> ResultReport:
        """
        Sync every requested device name, in order.

        Duplicate names are processed independently. A name with no matching device
        is recorded as not found and issues no remote call.

        Raises:
            ConfigurationError: If ``names`` is empty
            TransportError: If the device snapshot cannot be fetched; no sync call is made
        """
        if not names:
            raise ConfigurationError("At least one device name is required.")

        snapshot = self.directory.fetch_all()
        state = _RunState(total=len(names))
        self._sync_calls = 0
        self.logger.info("Syncing %d requested device names", len(names))

        for name in names:
            device = self.directory.find_by_name(snapshot, name)
            if device is None:
                self.logger.warning("Device not found: %s", name)
                outcome = SyncOutcome.not_found(name)
            else:
                outcome = self._sync_device(state, name, device)
            self._record(state, outcome)

        return ResultReport.from_outcomes(state.outcomes, label=label)

    def sync_by_platform(self, platform: Platform) -> ResultReport:
        """
        Sync every device of one platform.

        Returns an empty report without any sync call when nothing matches.

        Raises:
            TransportError: If the platform's devices cannot be fetched
        """
        self._sync_calls = 0
        return self._sync_platform(platform)

    def _sync_platform(self, platform: Platform) -> ResultReport:
        devices = self.directory.fetch_by_platform(platform)
        if not devices:
            self.logger.info("No %s devices found; nothing to sync", platform.value)
            return ResultReport.empty(label=platform.value)

        state = _RunState(total=len(devices))
        for device in devices:
            self._record(state, self._sync_device(state, device.name, device))
        return ResultReport.from_outcomes(state.outcomes, label=platform.value)

    def sync_all_platforms(self, platforms: Sequence[Platform]) -> PlatformSyncSummary:
        """
        Run ``sync_by_platform`` for each platform in order.

        A failure fetching one platform's devices is logged and recorded as an empty
        report; the remaining platforms still run. Pacing carries over from one
        platform to the next.

        Raises:
            AuthenticationError: If credentials are missing or rejected; the run aborts
        """
        if not platforms:
            raise ConfigurationError("At least one platform is required.")

        reports: List[ResultReport] = []
        fetch_errors: List[str] = []
        self._sync_calls = 0
        for platform in platforms:
            self.logger.info("Processing %s devices...", platform.value)
            try:
                report = self._sync_platform(platform)
            except AuthenticationError:
                raise
            except (TransportError, GraphApiError) as exc:
                self.logger.error("Failed to fetch %s devices: %s", platform.value, exc)
                report = ResultReport.empty(label=platform.value)
                fetch_errors.append(platform.value)
            reports.append(report)

        return PlatformSyncSummary(
            reports=tuple(reports),
            total=ResultReport.combine(reports),
            fetch_errors=tuple(fetch_errors),
        )
