################################################################################
# DOCKER-VOLUME-BACKUP
#
# @file:        fleet_runner.py
# @module:      docker_volume_backup.cores.fleet_runner
# @description: Runs the backup of every running container and builds the report
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# MIT License: see LICENSE or https://opensource.org/licenses/MIT
################################################################################

"""
Fleet runner for docker-volume-backup.

Lists the running containers, resolves their mounts in discovery order and
drives :class:`BackupManager` for each of them. Failures of one container
never stop the others; only an unusable runtime aborts the run.
"""

from __future__ import annotations

import json
import os
import tempfile
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional, Tuple

from ..errors import RuntimeQueryFailed, RuntimeUnavailable, VolumeBackupError
from ..helpers.config import BackupSettings
from ..helpers.logging import get_logger
from ..types import BackupTask, ContainerInfo, ContainerState, MountOutcome, RunReport, RunResult
from .backup_executor import ArchiveNamer, BackupExecutor
from .backup_manager import NOT_RUNNING_MESSAGE, BackupManager
from .mount_resolver import MountResolver
from .runtime_client import DockerRuntime
from .safe_exit_manager import SafeExitManager

logger = get_logger(__name__)

# A planned container: either its tasks or the error that abandoned it.
_Plan = Tuple[ContainerInfo, List[BackupTask], Optional[str]]


class FleetRunner:
    """
    Backs up all running containers.

    Args:
        settings: Run settings
        runtime: Runtime client (created from settings if omitted)
        safe_exit: Cancellation state (a private one if omitted)
    """

    def __init__(
        self,
        settings: BackupSettings,
        runtime: Optional[DockerRuntime] = None,
        safe_exit: Optional[SafeExitManager] = None,
    ):
        self.settings = settings
        self.runtime = runtime or DockerRuntime(settings)
        self.safe_exit = safe_exit or SafeExitManager()
        self.resolver = MountResolver(settings.exclude_patterns)
        self.executor = BackupExecutor(self.runtime, timeout=settings.backup_timeout)
        self.manager = BackupManager(
            settings,
            self.runtime,
            self.executor,
            safe_exit=self.safe_exit,
            namer=ArchiveNamer(),
        )

    def run(self) -> RunReport:
        """
        Execute one run.

        Returns:
            Report with one result per discovered container

        Raises:
            RuntimeUnavailable: docker cannot be invoked at all
        """
        report = RunReport(dry_run=self.settings.dry_run)
        started = time.time()

        logger.info("Docker volume backup run started")
        try:
            containers = self.runtime.list_running_containers()
        except RuntimeQueryFailed as e:
            logger.error(f"Listing running containers failed: {e}")
            report.list_error = str(e)
            report.duration_seconds = time.time() - started
            self._write_report(report)
            return report

        containers = self.select_containers(containers)
        logger.info(f"Found containers: {[c.name for c in containers]}")

        plans = self.plan(containers)

        if self.settings.dry_run:
            report.results = [self._dry_run_result(*plan) for plan in plans]
        else:
            self.settings.resolved_output_dir.mkdir(parents=True, exist_ok=True)
            report.results = self._execute(plans)

        report.cancelled = self.safe_exit.cancelled
        report.stopped_containers = [c.name for c in self.safe_exit.stopped_containers()]
        report.duration_seconds = time.time() - started
        self._log_summary(report)
        self._write_report(report)
        return report

    # --------------- Planning ---------------

    def plan(self, containers: List[ContainerInfo]) -> List[_Plan]:
        """Inspect and resolve every container sequentially, in discovery order."""
        plans: List[_Plan] = []
        for container in containers:
            if self.safe_exit.cancelled:
                plans.append((container, [], None))
                continue
            logger.info(f"Getting container information for {container.name}", extra={'container': container.name})
            try:
                inspection = self.runtime.inspect_container(container)
            except RuntimeQueryFailed as e:
                logger.error(f"Inspect failed, skipping container: {e}", extra={'container': container.name})
                plans.append((container, [], str(e)))
                continue

            # Labels from inspect are complete, docker ps may truncate them.
            container.labels = {**container.labels, **inspection.labels}
            container.is_running = inspection.state.running
            mounts = self.resolver.resolve(inspection.mount_entries, container_name=container.name)
            plans.append((container, self.manager.plan(container, mounts), None))
        return plans

    def select_containers(self, containers: List[ContainerInfo]) -> List[ContainerInfo]:
        """Apply the container name filter of the settings."""
        wanted = set(self.settings.containers)
        if not wanted:
            return containers
        selected = [c for c in containers if c.name in wanted or c.id in wanted or c.id[:12] in wanted]
        missing = wanted - {c.name for c in selected} - {c.id for c in selected} - {c.id[:12] for c in selected}
        for name in sorted(missing):
            logger.warning(f"Requested container {name} is not running")
        return selected

    # --------------- Execution ---------------

    def _execute(self, plans: List[_Plan]) -> List[RunResult]:
        workers = min(self.settings.resolve_workers(), max(1, len(plans)))
        if workers <= 1:
            return [self._run_one(*plan) for plan in plans]

        logger.info(f"Backing up {len(plans)} containers with {workers} workers")
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(self._run_one, *plan) for plan in plans]
            # Results stay in discovery order.
            return [future.result() for future in futures]

    def _run_one(self, container: ContainerInfo, tasks: List[BackupTask], error: Optional[str]) -> RunResult:
        if error:
            return RunResult(container=container, stop_requested=self.settings.stop_start, error=error)
        if self.safe_exit.cancelled:
            return RunResult(container=container, stop_requested=self.settings.stop_start, skipped="run cancelled")
        try:
            return self.manager.backup_container(container, tasks)
        except RuntimeUnavailable:
            raise
        except VolumeBackupError as e:
            logger.error(f"Backup of container aborted: {e}", extra={'container': container.name})
            return RunResult(container=container, stop_requested=self.settings.stop_start, error=str(e))
        except Exception as e:
            logger.exception(f"Unexpected error during backup: {e}", extra={'container': container.name})
            return RunResult(container=container, stop_requested=self.settings.stop_start,
                             error=f"unexpected error: {e}")

    def _dry_run_result(self, container: ContainerInfo, tasks: List[BackupTask], error: Optional[str]) -> RunResult:
        if error:
            return RunResult(container=container, stop_requested=self.settings.stop_start, error=error)
        if container.is_backup_helper:
            return RunResult(container=container, skipped="backup helper container")
        if not container.is_running:
            return RunResult(container=container, skipped=NOT_RUNNING_MESSAGE)
        outcomes = []
        for task in tasks:
            logger.info(f"[dry-run] would archive {task.mount.host_path} ({task.mount.container_path}) "
                        f"to {task.archive_path}", extra={'container': container.name})
            outcomes.append(MountOutcome(
                container_path=task.mount.container_path,
                host_path=task.mount.host_path,
                success=True,
                message="dry run",
                archive_path=task.archive_path,
            ))
        return RunResult(
            container=container,
            stop_requested=self.settings.stop_start,
            mount_outcomes=tuple(outcomes),
            final_state=ContainerState.DISCOVERED,
        )

    # --------------- Reporting ---------------

    def _log_summary(self, report: RunReport) -> None:
        failed = report.failed_results
        total = len(report.results)
        if report.cancelled:
            logger.warning(f"Run cancelled: {total - len(failed)}/{total} containers completed successfully")
        elif failed:
            logger.error(f"Backup finished with errors: {len(failed)}/{total} containers failed")
            for result in failed:
                for outcome in result.failed_mounts:
                    logger.error(f"{outcome.container_path}: {outcome.message}",
                                 extra={'container': result.container.name})
                if result.error:
                    logger.error(result.error, extra={'container': result.container.name})
                if result.start_succeeded is False:
                    logger.error("container could not be restarted", extra={'container': result.container.name})
        else:
            logger.info(f"Backup complete: {total}/{total} containers successful, "
                        f"{len(report.archives)} archive(s) in {report.duration_seconds:.2f}s")

        if report.stopped_containers:
            logger.error(f"Containers left stopped, start them manually: {', '.join(report.stopped_containers)}")

    def _write_report(self, report: RunReport) -> None:
        path = self.settings.report_file
        if not path:
            return
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}-", suffix=".tmp")
        try:
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                json.dump(report.to_dict(), f, indent=2)
            os.replace(temp_path, path)
        except OSError:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
        logger.debug(f"Saved run report to {path}")
