import json
import logging

import pytest
from typer.testing import CliRunner

from intune_sync_tool import cli
from intune_sync_tool.graph_client import AuthenticationError, TransportError
from intune_sync_tool.models import Device

runner = CliRunner()


class FakeGraphClient:
    instances = []

    def __init__(self, devices, list_error=None, **kwargs):
        self.devices = devices
        self.list_error = list_error
        self.kwargs = kwargs
        self.sync_calls = []
        self.closed = False
        FakeGraphClient.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True

    def list_managed_devices(self, platforms=None):
        if self.list_error:
            raise self.list_error
        if platforms:
            return [d for d in self.devices if any(p.matches(d.platform) for p in platforms)]
        return list(self.devices)

    def sync_device(self, device_id):
        self.sync_calls.append(device_id)


@pytest.fixture
def install_client(monkeypatch, tmp_path, devices):
    monkeypatch.delenv("INTUNE_SYNC_TOOL_CONFIG", raising=False)
    FakeGraphClient.instances = []

    def install(list_error=None):
        monkeypatch.setattr(
            cli, "GraphClient", lambda **kwargs: FakeGraphClient(devices, list_error=list_error, **kwargs)
        )
        return FakeGraphClient.instances

    return install


def _invoke(tmp_path, *args):
    base = ["--config-file", str(tmp_path / "absent.yml"), "--delay", "0"]
    return runner.invoke(cli.app, [*base, *args])


def test_sync_devices_reports_not_found(install_client, tmp_path):
    instances = install_client()
    result = _invoke(tmp_path, "sync-devices", "--device-name", "PC-001", "--device-name", "GHOST")

    assert result.exit_code == 1
    assert "Sync sent to PC-001" in result.output
    assert "Device not found: GHOST" in result.output
    assert instances[0].sync_calls == ["1"]
    assert instances[0].closed is True


def test_sync_devices_all_synced_writes_json(install_client, tmp_path):
    install_client()
    out = tmp_path / "report.json"
    result = _invoke(tmp_path, "--output-json", str(out), "sync-devices", "--device-name", "PC-001", "--device-name", "PC-002")

    assert result.exit_code == 0
    payload = json.loads(out.read_text(encoding="utf-8"))
    assert payload["report"]["summary"] == {"requested": 2, "found": 2, "notFound": 0, "synced": 2, "failed": 0}
    assert "generatedAt" in payload


def test_sync_devices_from_csv(install_client, tmp_path):
    instances = install_client()
    csv_path = tmp_path / "devices.csv"
    csv_path.write_text("Name,Owner\nMAC-1,ann\nPC-002,bob\n", encoding="utf-8")
    result = _invoke(tmp_path, "sync-devices", "--csv", str(csv_path), "--column", "Name")

    assert result.exit_code == 0
    assert instances[0].sync_calls == ["6", "2"]


def test_sync_devices_missing_column_fails_before_connecting(install_client, tmp_path):
    instances = install_client()
    csv_path = tmp_path / "devices.csv"
    csv_path.write_text("Owner\nann\n", encoding="utf-8")
    result = _invoke(tmp_path, "sync-devices", "--csv", str(csv_path))

    assert result.exit_code == 2
    assert instances == []


def test_sync_devices_dry_run_sends_nothing(install_client, tmp_path):
    instances = install_client()
    result = _invoke(tmp_path, "sync-devices", "--device-name", "PC-001", "--dry-run")

    assert result.exit_code == 0
    assert "DRY RUN" in result.output
    assert instances[0].sync_calls == []


def test_sync_devices_fetch_failure_exits_3(install_client, tmp_path):
    instances = install_client(list_error=TransportError("HTTP 401", status_code=401))
    result = _invoke(tmp_path, "sync-devices", "--device-name", "PC-001")

    assert result.exit_code == 3
    assert instances[0].sync_calls == []


def test_sync_platform_ios(install_client, tmp_path):
    instances = install_client()
    result = _invoke(tmp_path, "sync-platform", "ios")

    assert result.exit_code == 0
    assert instances[0].sync_calls == ["3", "4", "5"]


def test_sync_platform_unknown(install_client, tmp_path):
    install_client()
    result = _invoke(tmp_path, "sync-platform", "BeOS")
    assert result.exit_code == 2


def test_sync_all_selected_platforms(install_client, tmp_path):
    instances = install_client()
    result = _invoke(tmp_path, "sync-all", "--platform", "macOS", "--platform", "Windows")

    assert result.exit_code == 0
    assert instances[0].sync_calls == ["6", "1", "2"]
    assert "Total" in result.output


def test_sync_all_fetch_failure_exits_1(install_client, tmp_path):
    install_client(list_error=TransportError("HTTP 503", status_code=503))
    result = _invoke(tmp_path, "sync-all", "--platform", "Windows")
    assert result.exit_code == 1


def test_sync_all_authentication_failure_exits_3(install_client, tmp_path):
    instances = install_client(list_error=AuthenticationError("HTTP 401", status_code=401))
    result = _invoke(tmp_path, "sync-all", "--platform", "Windows", "--platform", "macOS")

    assert result.exit_code == 3
    assert instances[0].sync_calls == []
    assert "Total" not in result.output


def test_list_devices_by_name(install_client, tmp_path):
    install_client()
    result = _invoke(tmp_path, "list-devices", "--name", "PC-001")

    assert result.exit_code == 0
    assert "ann@contoso.com" in result.output
    assert "Never" in result.output
    assert "1 device(s)" in result.output


def test_log_file_receives_run_summary(install_client, tmp_path):
    install_client()
    log_path = tmp_path / "logs" / "sync.log"
    result = _invoke(tmp_path, "--log-file", str(log_path), "sync-devices", "--device-name", "PC-001")

    assert result.exit_code == 0
    assert "Run complete: requested=1" in log_path.read_text(encoding="utf-8")


def test_log_file_handler_released_after_run(install_client, tmp_path):
    install_client()
    first = tmp_path / "first.log"
    second = tmp_path / "second.log"

    _invoke(tmp_path, "--log-file", str(first), "sync-devices", "--device-name", "PC-001")
    _invoke(tmp_path, "--log-file", str(second), "sync-devices", "--device-name", "PC-002")

    handlers = logging.getLogger("intune-sync-tool").handlers
    assert not any(isinstance(h, logging.FileHandler) for h in handlers)
    assert "Sync queued for PC-002" not in first.read_text(encoding="utf-8")
    assert "Sync queued for PC-002" in second.read_text(encoding="utf-8")
