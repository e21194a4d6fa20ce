"""
Data models for Intune Sync Tool.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple


class Platform(Enum):
    """Operating-system family used for bulk filters."""

    WINDOWS = "Windows"
    MACOS = "macOS"
    IOS = "iOS"
    ANDROID = "Android"

    @property
    def tags(self) -> Tuple[str, ...]:
        """Underlying `operatingSystem` values reported for this platform."""
        if self is Platform.IOS:
            return ("iOS", "iPadOS")
        return (self.value,)

    def matches(self, tag: Optional[str]) -> bool:
        if not tag:
            return False
        return tag.lower() in {t.lower() for t in self.tags}

    @classmethod
    def parse(cls, value: str) -> "Platform":
        for platform in cls:
            if platform.value.lower() == value.strip().lower():
                return platform
        choices = ", ".join(p.value for p in cls)
        raise ValueError(f"Unknown platform '{value}'. Expected one of: {choices}")


@dataclass(frozen=True)
class Device:
    id: str
    name: str
    platform: Optional[str] = None
    last_sync: Optional[datetime] = None  # None means never synced
    owner: Optional[str] = None


class SyncStatus(Enum):
    SYNCED = "synced"
    FAILED = "failed"
    NOT_FOUND = "notFound"


@dataclass(frozen=True)
class SyncOutcome:
    """Result for one requested name or resolved device."""
    requested_name: str
    status: SyncStatus
    device: Optional[Device] = None
    reason: Optional[str] = None  # Only set for FAILED

    @classmethod
    def synced(cls, name: str, device: Device) -> "SyncOutcome":
        return cls(requested_name=name, status=SyncStatus.SYNCED, device=device)

    @classmethod
    def failed(cls, name: str, device: Device, reason: str) -> "SyncOutcome":
        return cls(requested_name=name, status=SyncStatus.FAILED, device=device, reason=reason)

    @classmethod
    def not_found(cls, name: str) -> "SyncOutcome":
        return cls(requested_name=name, status=SyncStatus.NOT_FOUND)

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "requestedName": self.requested_name,
            "status": self.status.value,
            "deviceId": self.device.id if self.device else None,
            "platform": self.device.platform if self.device else None,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class ResultReport:
    """Immutable summary of one orchestration run."""
    requested: int = 0
    found: int = 0
    not_found: int = 0
    synced: int = 0
    failed: int = 0
    outcomes: Tuple[SyncOutcome, ...] = ()
    label: Optional[str] = None

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[SyncOutcome], label: Optional[str] = None) -> "ResultReport":
        ordered = tuple(outcomes)
        not_found = sum(1 for o in ordered if o.status is SyncStatus.NOT_FOUND)
        synced = sum(1 for o in ordered if o.status is SyncStatus.SYNCED)
        failed = sum(1 for o in ordered if o.status is SyncStatus.FAILED)
        return cls(
            requested=len(ordered),
            found=len(ordered) - not_found,
            not_found=not_found,
            synced=synced,
            failed=failed,
            outcomes=ordered,
            label=label,
        )

    @classmethod
    def empty(cls, label: Optional[str] = None) -> "ResultReport":
        return cls(label=label)

    @classmethod
    def combine(cls, reports: Iterable["ResultReport"], label: Optional[str] = "Total") -> "ResultReport":
        outcomes: List[SyncOutcome] = []
        for report in reports:
            outcomes.extend(report.outcomes)
        return cls.from_outcomes(outcomes, label=label)

    @property
    def all_synced(self) -> bool:
        return self.synced == self.requested

    def counts(self) -> Dict[str, int]:
        return {
            "requested": self.requested,
            "found": self.found,
            "notFound": self.not_found,
            "synced": self.synced,
            "failed": self.failed,
        }

    def to_dict(self) -> Dict:
        return {
            "label": self.label,
            "summary": self.counts(),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass(frozen=True)
class SyncProgressEvent:
    """Emitted after each outcome is recorded during a run."""
    device_name: str
    outcome: SyncOutcome
    counts: Dict[str, int]
    position: int
    total: int


@dataclass(frozen=True)
class PlatformSyncSummary:
    reports: Tuple[ResultReport, ...] = field(default_factory=tuple)
    total: ResultReport = field(default_factory=lambda: ResultReport.empty("Total"))
    fetch_errors: Tuple[str, ...] = ()  # Platforms whose device list could not be fetched

    def to_dict(self) -> Dict:
        return {
            "platforms": [r.to_dict() for r in self.reports],
            "total": self.total.counts(),
            "fetchErrors": list(self.fetch_errors),
        }
