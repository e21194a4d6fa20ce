"""
Typer CLI entrypoint for Intune Sync Tool.
"""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import typer
from tabulate import tabulate

from .config import Config, ConfigurationError, load_config, parse_platform
from .device_directory import DeviceDirectory
from .graph_client import GraphApiError, GraphClient, TransportError
from .logging_utils import close_file_handlers, setup_logging
from .models import Device, ResultReport, SyncProgressEvent, SyncStatus
from .orchestrator import BulkSyncOrchestrator
from .sync_invoker import SyncInvoker
from .teams_webhook import post_sync_summary
from .utils import collect_device_names, format_last_sync

app = typer.Typer(add_completion=False, help="Trigger Intune device syncs by name or platform.")


@dataclass
class CliState:
    logger: Any
    config: Config
    output_json: Optional[Path]
    teams_webhook_url: Optional[str]
    delay: float


def _write_json(path: Path, data: Dict[str, Any], logger) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    logger.info("Wrote JSON output to %s", path)


def _build_client(state: CliState) -> GraphClient:
    return GraphClient(
        logger=state.logger,
        base_url=state.config.graph_base_url,
        tenant_id=state.config.tenant_id,
    )


def _echo_progress(event: SyncProgressEvent) -> None:
    outcome = event.outcome
    prefix = f"[{event.position}/{event.total}]"
    if outcome.status is SyncStatus.SYNCED:
        typer.echo(f"{prefix} ✓ Sync sent to {event.device_name}")
    elif outcome.status is SyncStatus.FAILED:
        typer.echo(f"{prefix} ✗ Failed to sync {event.device_name}: {outcome.reason}")
    else:
        typer.echo(f"{prefix} ? Device not found: {event.device_name}")


def _build_orchestrator(client: GraphClient, state: CliState) -> BulkSyncOrchestrator:
    return BulkSyncOrchestrator(
        DeviceDirectory(client, logger=state.logger),
        SyncInvoker(client, logger=state.logger),
        delay=state.delay,
        on_progress=_echo_progress,
        logger=state.logger,
    )


def _print_report_table(reports: Sequence[ResultReport]) -> None:
    rows = [
        [r.label or "-", r.requested, r.found, r.not_found, r.synced, r.failed]
        for r in reports
    ]
    headers = ["Batch", "Requested", "Found", "Not Found", "Synced", "Failed"]
    typer.echo(tabulate(rows, headers=headers, tablefmt="github"))


def _print_device_table(devices: Sequence[Device]) -> None:
    rows = [[d.id, d.name, d.platform or "-", format_last_sync(d.last_sync), d.owner or "-"] for d in devices]
    headers = ["Device ID", "Name", "Platform", "Last Sync", "Owner"]
    typer.echo(tabulate(rows, headers=headers, tablefmt="github"))


def _exit_code(report: ResultReport) -> int:
    return 0 if report.all_synced else 1


def _finish_run(state: CliState, title: str, report: ResultReport, payload: Dict[str, Any], output_json: Optional[Path]) -> None:
    json_dest = output_json or state.output_json
    if json_dest:
        payload = {"generatedAt": datetime.now(timezone.utc).isoformat(), "tenant": state.config.tenant_id, **payload}
        _write_json(json_dest, payload, state.logger)
    if state.teams_webhook_url:
        post_sync_summary(state.teams_webhook_url, title=title, report=report, logger=state.logger)
    state.logger.info(
        "Run complete: requested=%d found=%d notFound=%d synced=%d failed=%d",
        report.requested, report.found, report.not_found, report.synced, report.failed,
    )


@app.callback()
def main(
    ctx: typer.Context,
    tenant_id: Optional[str] = typer.Option(None, "--tenant-id", help="Azure AD tenant ID (overrides INTUNE_TENANT_ID)."),
    config_file: Optional[Path] = typer.Option(None, help="Optional config file to load defaults."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose debug logging."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Reduce log verbosity."),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Append log records to this file."),
    output_json: Optional[Path] = typer.Option(None, "--output-json", help="Write command output to JSON file."),
    teams_webhook_url: Optional[str] = typer.Option(None, help="Teams webhook URL for summary notification."),
    delay: Optional[float] = typer.Option(None, "--delay", help="Seconds to wait between sync calls (default: 0.5)."),
):
    """
    Configure global options and shared context.
    """
    try:
        config = load_config(cli_tenant=tenant_id, config_file=str(config_file) if config_file else None)
    except ConfigurationError as exc:
        typer.echo(f"Config error: {exc}", err=True)
        raise typer.Exit(code=2)

    logger = setup_logging(
        verbose=verbose, quiet=quiet, logger_name="intune-sync-tool", log_file=log_file or config.log_file
    )
    ctx.call_on_close(lambda: close_file_handlers(logger))

    if delay is not None and delay < 0:
        typer.echo("Error: --delay cannot be negative", err=True)
        raise typer.Exit(code=2)

    ctx.obj = CliState(
        logger=logger,
        config=config,
        output_json=output_json,
        teams_webhook_url=teams_webhook_url or config.teams_webhook_url,
        delay=config.sync_delay if delay is None else delay,
    )


@app.command("list-devices")
def list_devices_cmd(
    ctx: typer.Context,
    platform: Optional[str] = typer.Option(None, "--platform", help="Only list one platform (Windows, macOS, iOS, Android)."),
    name: Optional[str] = typer.Option(None, "--name", help="Only list the device with this exact name."),
):
    """
    List managed devices with their last sync time.
    """
    state: CliState = ctx.obj
    logger = state.logger
    try:
        platform_filter = parse_platform(platform) if platform else None
        with _build_client(state) as client:
            directory = DeviceDirectory(client, logger=logger)
            devices = directory.fetch_by_platform(platform_filter) if platform_filter else directory.fetch_all()
        if name:
            match = DeviceDirectory.find_by_name(devices, name)
            devices = [match] if match else []
        _print_device_table(devices)
        typer.echo(f"\n{len(devices)} device(s)")
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=2)
    except (TransportError, GraphApiError) as exc:
        logger.error("List devices error: %s", exc)
        raise typer.Exit(code=3)


@app.command("sync-devices")
def sync_devices_cmd(
    ctx: typer.Context,
    device_name: List[str] = typer.Option(None, "--device-name", help="Device name to sync (repeatable).", show_default=False),
    device_list: Optional[Path] = typer.Option(None, "--device-list", help="File with device names, one per line."),
    csv_file: Optional[Path] = typer.Option(None, "--csv", help="CSV file holding device names."),
    column: Optional[str] = typer.Option(None, "--column", help="CSV column with device names (default from config: DeviceName)."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Resolve devices and show the plan without syncing."),
    output_json: Optional[Path] = typer.Option(None, "--output-json", "--json-out", help="Write command output to JSON file."),
):
    """
    Sync devices by exact name.

    Names can be given directly, from a text file (one per line), or from a CSV column.
    Duplicate names are synced once per occurrence.

    Examples:
        intune-sync-tool sync-devices --device-name PC-001 --device-name PC-002

        intune-sync-tool sync-devices --csv devices.csv --column "Device name"
    """
    state: CliState = ctx.obj
    logger = state.logger
    try:
        names = collect_device_names(
            device_name or [],
            device_list=str(device_list) if device_list else None,
            csv_path=str(csv_file) if csv_file else None,
            csv_column=column or state.config.csv_column,
        )

        with _build_client(state) as client:
            if dry_run:
                snapshot = DeviceDirectory(client, logger=logger).fetch_all()
                rows = []
                for requested in names:
                    device = DeviceDirectory.find_by_name(snapshot, requested)
                    rows.append([requested, device.id if device else "NOT FOUND", device.platform if device else "-"])
                typer.echo("⚠️  DRY RUN MODE - No sync commands will be sent\n")
                typer.echo(tabulate(rows, headers=["Requested", "Device ID", "Platform"], tablefmt="github"))
                raise typer.Exit(code=0)

            typer.echo(f"Syncing {len(names)} device(s), {state.delay:.1f}s between calls\n")
            report = _build_orchestrator(client, state).sync_by_names(names, label="Devices")

        typer.echo()
        _print_report_table([report])
        _finish_run(state, "Intune device sync", report, {"report": report.to_dict()}, output_json)
        raise typer.Exit(code=_exit_code(report))
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=2)
    except (TransportError, GraphApiError) as exc:
        logger.error("Sync devices error: %s", exc)
        raise typer.Exit(code=3)


@app.command("sync-platform")
def sync_platform_cmd(
    ctx: typer.Context,
    platform: str = typer.Argument(..., help="Platform to sync: Windows, macOS, iOS (includes iPadOS), Android."),
    dry_run: bool = typer.Option(False, "--dry-run", help="List matching devices without syncing."),
    output_json: Optional[Path] = typer.Option(None, "--output-json", "--json-out", help="Write command output to JSON file."),
):
    """
    Sync every managed device of one platform.
    """
    state: CliState = ctx.obj
    logger = state.logger
    try:
        target = parse_platform(platform)
        with _build_client(state) as client:
            if dry_run:
                devices = DeviceDirectory(client, logger=logger).fetch_by_platform(target)
                typer.echo("⚠️  DRY RUN MODE - No sync commands will be sent\n")
                _print_device_table(devices)
                typer.echo(f"\nWould sync {len(devices)} {target.value} device(s)")
                raise typer.Exit(code=0)

            report = _build_orchestrator(client, state).sync_by_platform(target)

        typer.echo()
        _print_report_table([report])
        _finish_run(state, f"Intune {target.value} sync", report, {"report": report.to_dict()}, output_json)
        raise typer.Exit(code=_exit_code(report))
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=2)
    except (TransportError, GraphApiError) as exc:
        logger.error("Sync platform error: %s", exc)
        raise typer.Exit(code=3)


@app.command("sync-all")
def sync_all_cmd(
    ctx: typer.Context,
    platform: List[str] = typer.Option(None, "--platform", help="Platform to include (repeatable; default from config).", show_default=False),
    output_json: Optional[Path] = typer.Option(None, "--output-json", "--json-out", help="Write command output to JSON file."),
):
    """
    Sync every platform in turn.

    A platform whose device list cannot be fetched is reported with zero devices and
    the remaining platforms still run. Rejected credentials abort the run.
    """
    state: CliState = ctx.obj
    try:
        platforms = [parse_platform(p) for p in platform] if platform else list(state.config.platforms)
        with _build_client(state) as client:
            summary = _build_orchestrator(client, state).sync_all_platforms(platforms)

        typer.echo()
        _print_report_table([*summary.reports, summary.total])
        _finish_run(state, "Intune sync (all platforms)", summary.total, summary.to_dict(), output_json)
        if summary.fetch_errors:
            typer.echo(f"\nCould not fetch devices for: {', '.join(summary.fetch_errors)}", err=True)
            raise typer.Exit(code=1)
        raise typer.Exit(code=_exit_code(summary.total))
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=2)
    except (TransportError, GraphApiError) as exc:
        state.logger.error("Sync all error: %s", exc)
        raise typer.Exit(code=3)


def run():
    try:
        app()
    except Exception as exc:  # pylint: disable=broad-except
        typer.echo(f"Fatal error: {exc}", err=True)
        sys.exit(2)


if __name__ == "__main__":
    run()
