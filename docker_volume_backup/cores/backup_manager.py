################################################################################
# DOCKER-VOLUME-BACKUP
#
# @file:        backup_manager.py
# @module:      docker_volume_backup.cores.backup_manager
# @description: Per-container stop -> backup -> start state machine
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# MIT License: see LICENSE or https://opensource.org/licenses/MIT
# ==============================================================================
# Notes:
# - States: DISCOVERED -> (STOPPING) -> BACKING_UP -> (RESTARTING) -> DONE
# - A container is only restarted if this run stopped it
# - A failed stop skips the backup of that container entirely
################################################################################

"""
Backup management module for docker-volume-backup.

:class:`BackupManager` runs the backup sequence of one container. The
sequence is an explicit state machine: every state has a handler returning
the next state, and every transition is checked against ``TRANSITIONS``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence

from ..errors import ArchiveFailed, ArchiveLaunchFailed, ContainerControlFailed
from ..helpers.config import BackupSettings
from ..helpers.logging import get_logger
from ..types import (
    BackupTask,
    ContainerInfo,
    ContainerState,
    MountInfo,
    MountOutcome,
    RunResult,
)
from .backup_executor import ArchiveNamer, BackupExecutor
from .runtime_client import DockerRuntime
from .safe_exit_manager import SafeExitManager

logger = get_logger(__name__)

TRANSITIONS: Dict[ContainerState, FrozenSet[ContainerState]] = {
    ContainerState.DISCOVERED: frozenset({ContainerState.STOPPING, ContainerState.BACKING_UP, ContainerState.DONE}),
    ContainerState.STOPPING: frozenset({ContainerState.BACKING_UP, ContainerState.DONE}),
    ContainerState.BACKING_UP: frozenset({ContainerState.RESTARTING, ContainerState.DONE}),
    ContainerState.RESTARTING: frozenset({ContainerState.DONE}),
    ContainerState.DONE: frozenset(),
}

STOP_FAILED_MESSAGE = "not attempted: container could not be stopped"
CANCELLED_MESSAGE = "not attempted: run cancelled"
NOT_RUNNING_MESSAGE = "container is no longer running"


@dataclass
class _ContainerRun:
    """Mutable working state of one sequence, frozen into a RunResult at the end."""

    container: ContainerInfo
    tasks: List[BackupTask]
    stop_requested: bool
    state: ContainerState = ContainerState.DISCOVERED
    stopped: bool = False
    stop_succeeded: Optional[bool] = None
    start_attempted: bool = False
    start_succeeded: Optional[bool] = None
    skipped: Optional[str] = None
    outcomes: List[MountOutcome] = field(default_factory=list)

    def fail_remaining(self, tasks: Sequence[BackupTask], message: str) -> None:
        for task in tasks:
            self.outcomes.append(MountOutcome(
                container_path=task.mount.container_path,
                host_path=task.mount.host_path,
                success=False,
                message=message,
            ))

    def finalize(self, duration: float) -> RunResult:
        return RunResult(
            container=self.container,
            stop_requested=self.stop_requested,
            stop_succeeded=self.stop_succeeded,
            mount_outcomes=tuple(self.outcomes),
            start_succeeded=self.start_succeeded,
            skipped=self.skipped,
            final_state=self.state,
            duration_seconds=duration,
        )


class BackupManager:
    """
    Orchestrates the backup of single containers.

    Args:
        settings: Run settings (stop_start, image and output_dir are used)
        runtime: Docker runtime client used for stop/start
        executor: Executor archiving single mounts
        safe_exit: Cancellation state shared with the fleet runner
        namer: Archive name registry shared by the whole run
    """

    def __init__(
        self,
        settings: BackupSettings,
        runtime: DockerRuntime,
        executor: BackupExecutor,
        safe_exit: Optional[SafeExitManager] = None,
        namer: Optional[ArchiveNamer] = None,
    ):
        self.settings = settings
        self.runtime = runtime
        self.executor = executor
        self.safe_exit = safe_exit or SafeExitManager()
        self.namer = namer or ArchiveNamer()
        self.stop_start = settings.stop_start

        self._handlers: Dict[ContainerState, Callable[[_ContainerRun], ContainerState]] = {
            ContainerState.DISCOVERED: self._on_discovered,
            ContainerState.STOPPING: self._on_stopping,
            ContainerState.BACKING_UP: self._on_backing_up,
            ContainerState.RESTARTING: self._on_restarting,
        }

    def plan(self, container: ContainerInfo, mounts: Sequence[MountInfo]) -> List[BackupTask]:
        """
        Create the backup tasks of a container, claiming their archive names.

        Called in discovery order so names are stable between runs.
        """
        if container.is_backup_helper or not container.is_running:
            return []
        output_dir = self.settings.resolved_output_dir
        return [
            BackupTask(
                container=container,
                mount=mount,
                archive_name=self.namer.claim(container.name, mount.container_path),
                output_dir=output_dir,
                image=self.settings.image,
            )
            for mount in mounts
        ]

    def backup_container(self, container: ContainerInfo, tasks: Sequence[BackupTask]) -> RunResult:
        """
        Run the full sequence for one container.

        Returns:
            The final, immutable result of the container
        """
        run = _ContainerRun(container=container, tasks=list(tasks), stop_requested=self.stop_start)
        started = time.time()

        try:
            while run.state is not ContainerState.DONE:
                next_state = self._handlers[run.state](run)
                if next_state not in TRANSITIONS[run.state]:
                    raise RuntimeError(f"Illegal transition {run.state.value} -> {next_state.value}")
                logger.debug(f"{run.state.value} -> {next_state.value}", extra={'container': container.name})
                run.state = next_state
        finally:
            if run.stopped and not run.start_attempted:
                logger.error("Sequence aborted while container was stopped, restarting it",
                             extra={'container': container.name})
                self._restart(run)

        result = run.finalize(time.time() - started)
        self._log_result(result)
        return result

    # --------------- State handlers ---------------

    def _on_discovered(self, run: _ContainerRun) -> ContainerState:
        name = run.container.name
        if run.container.is_backup_helper:
            run.skipped = "backup helper container"
            logger.info("Skipping this container as it is a backup container", extra={'container': name})
            return ContainerState.DONE
        if not run.container.is_running:
            run.skipped = NOT_RUNNING_MESSAGE
            logger.info("Skipping this container as it stopped after discovery", extra={'container': name})
            return ContainerState.DONE
        if self.safe_exit.cancelled:
            run.skipped = "run cancelled"
            return ContainerState.DONE
        if not run.tasks:
            logger.info("No eligible mounts, nothing to back up", extra={'container': name})
            return ContainerState.DONE

        logger.info(f"Start backup of {len(run.tasks)} mount(s)", extra={'container': name})
        return ContainerState.STOPPING if run.stop_requested else ContainerState.BACKING_UP

    def _on_stopping(self, run: _ContainerRun) -> ContainerState:
        name = run.container.name
        logger.info("Stopping container", extra={'container': name})
        try:
            self.runtime.stop(run.container)
        except ContainerControlFailed as e:
            run.stop_succeeded = False
            logger.error(f"Stop failed, skipping backup of this container: {e}", extra={'container': name})
            run.fail_remaining(run.tasks, STOP_FAILED_MESSAGE)
            return ContainerState.DONE

        run.stopped = True
        run.stop_succeeded = True
        self.safe_exit.register_stopped(run.container)
        return ContainerState.BACKING_UP

    def _on_backing_up(self, run: _ContainerRun) -> ContainerState:
        name = run.container.name
        for index, task in enumerate(run.tasks):
            if self.safe_exit.cancelled:
                logger.warning("Run cancelled, skipping remaining mounts", extra={'container': name})
                run.fail_remaining(run.tasks[index:], CANCELLED_MESSAGE)
                break
            try:
                archive = self.executor.backup(task)
            except (ArchiveLaunchFailed, ArchiveFailed) as e:
                logger.error(f"Error in backup of volume {task.mount.container_path}: {e}",
                             extra={'container': name})
                run.outcomes.append(MountOutcome(
                    container_path=task.mount.container_path,
                    host_path=task.mount.host_path,
                    success=False,
                    message=str(e),
                ))
                continue
            run.outcomes.append(MountOutcome(
                container_path=task.mount.container_path,
                host_path=task.mount.host_path,
                success=True,
                message="archived",
                archive_path=archive,
            ))

        return ContainerState.RESTARTING if run.stopped else ContainerState.DONE

    def _on_restarting(self, run: _ContainerRun) -> ContainerState:
        self._restart(run)
        return ContainerState.DONE

    def _restart(self, run: _ContainerRun) -> None:
        name = run.container.name
        run.start_attempted = True
        logger.info("Restarting container", extra={'container': name})
        try:
            self.runtime.start(run.container)
        except ContainerControlFailed as e:
            run.start_succeeded = False
            logger.error(f"Restart failed: {e}", extra={'container': name})
            return
        run.start_succeeded = True
        self.safe_exit.unregister_stopped(run.container)

    def _log_result(self, result: RunResult) -> None:
        name = result.container.name
        if result.skipped:
            return
        if result.success:
            logger.info(f"Backup of container {name} done in {result.duration_seconds:.2f}s",
                        extra={'container': name})
        elif result.start_succeeded is False and not result.failed_mounts:
            logger.error(f"Volumes of {name} were archived but the container could not be restarted",
                         extra={'container': name})
        else:
            logger.error(f"Error backing up container {name}: "
                         f"{len(result.failed_mounts)} of {len(result.mount_outcomes)} mount(s) failed",
                         extra={'container': name})
