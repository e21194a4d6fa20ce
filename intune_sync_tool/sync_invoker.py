"""
Per-device sync trigger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .graph_client import GraphApiError, GraphClient, TransportError


@dataclass(frozen=True)
class SyncResult:
    success: bool
    error: Optional[str] = None


class SyncInvoker:
    """
    Issues exactly one syncDevice action per call and reports success or failure.

    Acceptance means Graph queued the action, not that the device checked in.
    Failures are not retried.
    """

    def __init__(self, client: GraphClient, logger: Optional[logging.Logger] = None):
        self.client = client
        self.logger = logger or logging.getLogger(__name__)

    def trigger_sync(self, device_id: str) -> SyncResult:
        try:
            self.client.sync_device(device_id)
        except (TransportError, GraphApiError) as exc:
            self.logger.debug("syncDevice failed for %s: %s", device_id, exc)
            return SyncResult(success=False, error=str(exc))
        return SyncResult(success=True)
