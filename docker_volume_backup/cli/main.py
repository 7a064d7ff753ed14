#!/usr/bin/env python3
################################################################################
# DOCKER-VOLUME-BACKUP
#
# @file:        main.py
# @module:      docker_volume_backup.cli.main
# @description: Typer-based CLI entry point
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# MIT License: see LICENSE or https://opensource.org/licenses/MIT
################################################################################

"""
docker-volume-backup: main CLI

Commands:
- backup:  archive every mount of every running container
- list:    show containers, eligible mounts and their archive names
- version: print the version
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from ..errors import RuntimeQueryFailed, RuntimeUnavailable
from ..helpers import ui_utils as utils
from ..helpers.config import BackupSettings
from ..helpers.constants import (
    EXIT_BACKUP_FAILED,
    EXIT_CONFIG_ERROR,
    EXIT_RUNTIME_UNAVAILABLE,
    VERSION,
)
from ..helpers.logging import get_logger, log_manager
from ..cores.fleet_runner import FleetRunner
from ..cores.safe_exit_manager import SafeExitManager
from ..types import RunReport

app = typer.Typer(
    name="docker-volume-backup",
    help="Backup all mounted volumes connected to running Docker containers.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()
logger = get_logger(__name__)


# -------------------------
# Helper Functions
# -------------------------

def load_settings(config_path: Optional[Path], **overrides) -> BackupSettings:
    """Build the run settings: defaults < config file < command line."""
    try:
        base = BackupSettings.load(config_path) if config_path else BackupSettings()
        return base.merged(**overrides)
    except (FileNotFoundError, ValidationError) as e:
        utils.print_error(f"Invalid configuration: {e}")
        raise typer.Exit(EXIT_CONFIG_ERROR)


def configure_logging(level: str) -> None:
    try:
        log_manager.configure(level=level)
    except ValueError as e:
        utils.print_error(str(e))
        raise typer.Exit(EXIT_CONFIG_ERROR)


def print_stopped(names: List[str]) -> None:
    utils.print_error(f"Containers left stopped, start them manually: {', '.join(names)}")


def print_report(report: RunReport) -> None:
    """Render the final per-container / per-mount outcome table."""
    if report.list_error:
        utils.print_error(f"Listing containers failed: {report.list_error}")
        return

    if not report.results:
        utils.print_warning("No running containers found")
        return

    table = utils.create_table(
        "Dry run" if report.dry_run else "Backup results",
        [
            ("Container", "cyan", None),
            ("Mount", "white", None),
            ("Status", "white", None),
            ("Details", "dim", None),
        ]
    )

    for result in report.results:
        name = result.container.name
        if result.error:
            table.add_row(name, "-", "[red]✗ failed[/red]", escape(result.error))
            continue
        if result.skipped:
            table.add_row(name, "-", "[yellow]skipped[/yellow]", escape(result.skipped))
            continue
        if result.stop_succeeded is False:
            table.add_row(name, "-", "[red]✗ stop failed[/red]", "backup not attempted")
        if not result.mount_outcomes:
            table.add_row(name, "-", "[dim]no mounts[/dim]", "")
        for outcome in result.mount_outcomes:
            if report.dry_run:
                status = "[cyan]planned[/cyan]"
                details = str(outcome.archive_path)
            elif outcome.success:
                status = "[green]✓ ok[/green]"
                details = str(outcome.archive_path)
            else:
                status = "[red]✗ failed[/red]"
                details = outcome.message
            table.add_row(name, escape(outcome.container_path), status, escape(details))
        if result.start_succeeded is False:
            table.add_row(name, "-", "[red]✗ restart failed[/red]", "container is still stopped")

    console.print(table)

    if report.dry_run:
        utils.print_info("Dry run: nothing was stopped or archived")
    elif report.cancelled:
        utils.print_warning("Run cancelled before all containers were processed")
    elif report.success:
        utils.print_success(f"All backups completed successfully ({len(report.archives)} archive(s))")
    else:
        utils.print_warning("Some backups failed - check logs for details")

    if report.stopped_containers:
        print_stopped(report.stopped_containers)


# -------------------------
# Commands
# -------------------------

@app.command(name="backup")
def backup_cmd(
    stop_start: Optional[bool] = typer.Option(
        None, "--stop-start/--no-stop-start", "-s/-S",
        help="Stop the container before backup and restart it afterwards",
    ),
    image: Optional[str] = typer.Option(
        None, "--image", "-i", help="The image to use for running a volume backup [default: alpine]",
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", "-l", help="Logging level (debug, info, warning, error) [default: info]",
    ),
    docker: Optional[str] = typer.Option(
        None, "--docker", "-d", help="Where to find the docker executable [default: /usr/bin/docker]",
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Directory for the archives [default: current directory]",
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="JSON configuration file",
    ),
    workers: Optional[str] = typer.Option(
        None, "--workers", "-w", help="Containers backed up in parallel, or 'auto' [default: 1]",
    ),
    container: Optional[List[str]] = typer.Option(
        None, "--container", help="Only back up this container (repeatable)",
    ),
    exclude: Optional[List[str]] = typer.Option(
        None, "--exclude", "-x", help="Skip mounts whose container path matches this glob (repeatable)",
    ),
    dry_run: Optional[bool] = typer.Option(
        None, "--dry-run", help="Show what would be archived without stopping or archiving anything",
    ),
    report_file: Optional[Path] = typer.Option(
        None, "--report-file", help="Write the run report as JSON to this file",
    ),
):
    """
    Back up all mounted volumes of the running containers.

    Exit code 0 means every mount of every container was archived.
    """
    settings = load_settings(
        config_path,
        stop_start=stop_start,
        image=image,
        log_level=log_level,
        docker=docker,
        output_dir=output,
        workers=workers,
        containers=list(container) if container else None,
        exclude_patterns=list(exclude) if exclude else None,
        dry_run=dry_run,
        report_file=report_file,
    )
    configure_logging(settings.log_level)
    logger.info(f"Docker volume backup v{VERSION}")

    safe_exit = SafeExitManager()
    safe_exit.install_handlers()
    try:
        report = FleetRunner(settings, safe_exit=safe_exit).run()
    except RuntimeUnavailable as e:
        utils.print_error(f"Docker is not available: {e}")
        raise typer.Exit(EXIT_RUNTIME_UNAVAILABLE)
    except OSError as e:
        utils.print_error(f"Backup failed: {e}")
        raise typer.Exit(EXIT_BACKUP_FAILED)
    except KeyboardInterrupt:
        stranded = [c.name for c in safe_exit.stopped_containers()]
        if stranded:
            print_stopped(stranded)
        raise
    finally:
        safe_exit.restore_handlers()

    print_report(report)
    raise typer.Exit(report.exit_code)


@app.command(name="list")
def list_cmd(
    docker: Optional[str] = typer.Option(
        None, "--docker", "-d", help="Where to find the docker executable [default: /usr/bin/docker]",
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Directory for the archives [default: current directory]",
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON configuration file"),
    container: Optional[List[str]] = typer.Option(
        None, "--container", help="Only list this container (repeatable)",
    ),
    exclude: Optional[List[str]] = typer.Option(
        None, "--exclude", "-x", help="Skip mounts whose container path matches this glob (repeatable)",
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", "-l", help="Logging level"),
):
    """
    List running containers with their eligible mounts and archive names.
    """
    settings = load_settings(
        config_path,
        docker=docker,
        output_dir=output,
        containers=list(container) if container else None,
        exclude_patterns=list(exclude) if exclude else None,
        log_level=log_level,
    )
    # Quiet unless a level was given on the command line or in the config file.
    configure_logging(settings.log_level if "log_level" in settings.model_fields_set else "warning")

    runner = FleetRunner(settings)
    try:
        containers = runner.select_containers(runner.runtime.list_running_containers())
        plans = runner.plan(containers)
    except RuntimeUnavailable as e:
        utils.print_error(f"Docker is not available: {e}")
        raise typer.Exit(EXIT_RUNTIME_UNAVAILABLE)
    except RuntimeQueryFailed as e:
        utils.print_error(f"Listing containers failed: {e}")
        raise typer.Exit(EXIT_BACKUP_FAILED)

    if not plans:
        utils.print_warning("No running containers found")
        return

    table = utils.create_table(
        "Running containers",
        [
            ("Container", "cyan", None),
            ("Mount", "white", None),
            ("Host path", "yellow", None),
            ("Archive", "green", None),
        ]
    )
    for info, tasks, error in plans:
        if error:
            table.add_row(info.name, "-", "-", f"[red]{escape(error)}[/red]")
        elif info.is_backup_helper:
            table.add_row(info.name, "-", "-", "[dim]backup helper, skipped[/dim]")
        elif not info.is_running:
            table.add_row(info.name, "-", "-", "[dim]no longer running, skipped[/dim]")
        elif not tasks:
            table.add_row(info.name, "-", "-", "[dim]no eligible mounts[/dim]")
        for task in tasks:
            table.add_row(
                info.name,
                escape(task.mount.container_path),
                escape(task.mount.host_path),
                escape(task.archive_name),
            )
    console.print(table)
    utils.print_info(f"Total: {len(plans)} container(s)")


@app.command()
def version():
    """Show version information"""
    console.print(f"[cyan]docker-volume-backup[/cyan] v{VERSION}")


def cli_main():
    """
    Entry point for CLI

    This function is called by the console script entry point.
    """
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled by user[/yellow]")
        sys.exit(1)


if __name__ == "__main__":
    cli_main()
