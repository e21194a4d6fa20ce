"""
Device lookup over a per-run snapshot of Intune managed devices.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .graph_client import GraphApiError, GraphClient, TransportError
from .models import Device, Platform


class DeviceDirectory:
    """
    Fetches managed devices and resolves them by name or platform.

    The snapshot is fetched once per run and passed back into the lookup methods;
    nothing is cached between runs.
    """

    def __init__(self, client: GraphClient, logger: Optional[logging.Logger] = None):
        self.client = client
        self.logger = logger or logging.getLogger(__name__)

    def fetch_all(self) -> List[Device]:
        devices = self.client.list_managed_devices()
        self.logger.info("Fetched %d managed devices", len(devices))
        return devices

    def fetch_by_platform(self, platform: Platform) -> List[Device]:
        """
        Fetch devices for one platform, preferring the server-side filter.

        Falls back to fetching everything and filtering locally when Graph rejects
        the filtered query. Auth and network failures still propagate.
        """
        try:
            devices = self.client.list_managed_devices(platforms=[platform])
        except GraphApiError as exc:
            self.logger.warning("Filtered query for %s returned bad data (%s); filtering locally", platform.value, exc)
            devices = self.find_by_platform(self.fetch_all(), platform)
        except TransportError as exc:
            if exc.status_code != 400:
                raise
            self.logger.warning("Graph rejected platform filter for %s; filtering locally", platform.value)
            devices = self.find_by_platform(self.fetch_all(), platform)
        else:
            # The server filter is case-insensitive; keep the local rule authoritative.
            devices = self.find_by_platform(devices, platform)
        self.logger.info("Resolved %d %s devices", len(devices), platform.value)
        return devices

    @staticmethod
    def find_by_name(snapshot: Sequence[Device], name: str) -> Optional[Device]:
        """Return the first device whose name equals ``name`` exactly, or None."""
        for device in snapshot:
            if device.name == name:
                return device
        return None

    @staticmethod
    def find_by_platform(snapshot: Sequence[Device], platform: Platform) -> List[Device]:
        return [device for device in snapshot if platform.matches(device.platform)]
