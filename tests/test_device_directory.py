import pytest

from intune_sync_tool.device_directory import DeviceDirectory
from intune_sync_tool.graph_client import GraphApiError, TransportError
from intune_sync_tool.models import Device, Platform


def test_find_by_name_exact_match(devices):
    assert DeviceDirectory.find_by_name(devices, "PC-002").id == "2"


def test_find_by_name_is_case_sensitive(devices):
    assert DeviceDirectory.find_by_name(devices, "pc-002") is None


def test_find_by_name_returns_first_of_duplicates():
    snapshot = [Device(id="a", name="DUP"), Device(id="b", name="DUP")]
    assert DeviceDirectory.find_by_name(snapshot, "DUP").id == "a"


def test_find_by_name_is_stable(devices):
    first = DeviceDirectory.find_by_name(devices, "MAC-1")
    second = DeviceDirectory.find_by_name(devices, "MAC-1")
    assert first is second


def test_find_by_platform_ios_includes_ipados(devices):
    matched = DeviceDirectory.find_by_platform(devices, Platform.IOS)
    assert {d.id for d in matched} == {"3", "4", "5"}
    assert all(d.platform in ("iOS", "iPadOS") for d in matched)


def test_find_by_platform_windows_excludes_others(devices):
    matched = DeviceDirectory.find_by_platform(devices, Platform.WINDOWS)
    assert [d.id for d in matched] == ["1", "2"]


def test_fetch_all_uses_single_unfiltered_call(fake_client_cls, devices):
    client = fake_client_cls(devices)
    assert len(DeviceDirectory(client).fetch_all()) == len(devices)
    assert client.list_calls == [None]


def test_fetch_by_platform_prefers_server_filter(fake_client_cls, devices):
    client = fake_client_cls(devices)
    result = DeviceDirectory(client).fetch_by_platform(Platform.IOS)
    assert len(result) == 3
    assert client.list_calls == [[Platform.IOS]]


def test_fetch_by_platform_falls_back_when_filter_rejected(fake_client_cls, devices):
    client = fake_client_cls(devices, filter_error=TransportError("HTTP 400", status_code=400))
    result = DeviceDirectory(client).fetch_by_platform(Platform.MACOS)
    assert [d.id for d in result] == ["6"]
    assert client.list_calls == [[Platform.MACOS], None]


def test_fetch_by_platform_falls_back_on_bad_filtered_payload(fake_client_cls, devices):
    client = fake_client_cls(devices, filter_error=GraphApiError("missing value"))
    result = DeviceDirectory(client).fetch_by_platform(Platform.WINDOWS)
    assert len(result) == 2


def test_fetch_by_platform_propagates_auth_failure(fake_client_cls, devices):
    client = fake_client_cls(devices, filter_error=TransportError("HTTP 401", status_code=401))
    with pytest.raises(TransportError):
        DeviceDirectory(client).fetch_by_platform(Platform.WINDOWS)
    assert client.list_calls == [[Platform.WINDOWS]]
