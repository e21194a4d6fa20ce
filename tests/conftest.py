import pytest

from intune_sync_tool.graph_client import TransportError
from intune_sync_tool.models import Device


class FakeClient:
    """In-memory stand-in for GraphClient."""

    def __init__(self, devices=None, fail_ids=None, fail_on_calls=None, list_error=None, filter_error=None):
        self.devices = list(devices or [])
        self.fail_ids = set(fail_ids or [])
        self.fail_on_calls = set(fail_on_calls or [])
        self.list_error = list_error
        self.filter_error = filter_error
        self.list_calls = []
        self.sync_calls = []

    def list_managed_devices(self, platforms=None):
        self.list_calls.append(platforms)
        if self.list_error:
            raise self.list_error
        if platforms:
            if self.filter_error:
                raise self.filter_error
            return [d for d in self.devices if any(p.matches(d.platform) for p in platforms)]
        return list(self.devices)

    def sync_device(self, device_id):
        self.sync_calls.append(device_id)
        if device_id in self.fail_ids or len(self.sync_calls) in self.fail_on_calls:
            raise TransportError(f"HTTP 500 for {device_id}", status_code=500)


@pytest.fixture
def devices():
    return [
        Device(id="1", name="PC-001", platform="Windows", owner="ann@contoso.com"),
        Device(id="2", name="PC-002", platform="Windows"),
        Device(id="3", name="IPHONE-1", platform="iOS"),
        Device(id="4", name="IPHONE-2", platform="iOS"),
        Device(id="5", name="IPAD-1", platform="iPadOS"),
        Device(id="6", name="MAC-1", platform="macOS"),
    ]


@pytest.fixture
def fake_client_cls():
    return FakeClient
