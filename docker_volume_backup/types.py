################################################################################
# DOCKER-VOLUME-BACKUP
#
# @file:        types.py
# @module:      docker_volume_backup.types
# @description: Shared data models for containers, mounts, tasks and results.
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# MIT License: see LICENSE or https://opensource.org/licenses/MIT
# ==============================================================================
# Notes:
# - ContainerInfo and MountInfo capture a Docker snapshot taken once per run
# - BackupTask pairs one container with one mount and its archive name
# - RunResult is frozen once the container sequence is done
################################################################################

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Tuple

from .helpers.constants import (
    BACKUP_CONTAINER_LABEL_KEY,
    BACKUP_CONTAINER_LABEL_VALUE,
    EXIT_BACKUP_FAILED,
    EXIT_OK,
    PARTIAL_PREFIX,
    PARTIAL_SUFFIX,
)


class ContainerState(str, Enum):
    """Phases of one container's backup sequence."""

    DISCOVERED = "discovered"
    STOPPING = "stopping"
    BACKING_UP = "backing_up"
    RESTARTING = "restarting"
    DONE = "done"


# ---- Discovery ----

@dataclass
class ContainerInfo:
    id: str
    name: str
    is_running: bool = True
    labels: Dict[str, str] = field(default_factory=dict)

    @property
    def is_backup_helper(self) -> bool:
        """True for helper containers launched by this tool."""
        return self.labels.get(BACKUP_CONTAINER_LABEL_KEY) == BACKUP_CONTAINER_LABEL_VALUE


@dataclass(frozen=True)
class MountInfo:
    host_path: str
    container_path: str
    mount_type: str = "bind"
    volume_name: Optional[str] = None
    read_only: bool = False


# ---- Work items ----

@dataclass(frozen=True)
class BackupTask:
    container: ContainerInfo
    mount: MountInfo
    archive_name: str
    output_dir: Path
    image: str

    def __post_init__(self):
        host_path = self.mount.host_path
        if not host_path or not PurePosixPath(host_path).is_absolute():
            raise ValueError(
                f"Mount {self.mount.container_path} of {self.container.name} "
                f"has no absolute host path: {host_path!r}"
            )
        if not self.archive_name or "/" in self.archive_name:
            raise ValueError(f"Invalid archive name: {self.archive_name!r}")

    @property
    def archive_path(self) -> Path:
        return self.output_dir / self.archive_name

    @property
    def partial_name(self) -> str:
        """Temporary name used until the archive is complete."""
        return f"{PARTIAL_PREFIX}{self.archive_name}{PARTIAL_SUFFIX}"

    @property
    def partial_path(self) -> Path:
        return self.output_dir / self.partial_name


# ---- Results ----

@dataclass(frozen=True)
class MountOutcome:
    container_path: str
    host_path: str
    success: bool
    message: str = ""
    archive_path: Optional[Path] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "container_path": self.container_path,
            "host_path": self.host_path,
            "success": self.success,
            "message": self.message,
            "archive_path": str(self.archive_path) if self.archive_path else None,
        }


@dataclass(frozen=True)
class RunResult:
    container: ContainerInfo
    stop_requested: bool = False
    stop_succeeded: Optional[bool] = None    # None = stop not requested
    mount_outcomes: Tuple[MountOutcome, ...] = ()
    start_succeeded: Optional[bool] = None   # None = start not attempted
    error: Optional[str] = None              # inspect failure, container abandoned
    skipped: Optional[str] = None
    final_state: ContainerState = ContainerState.DONE
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        if self.error:
            return False
        if self.stop_succeeded is False or self.start_succeeded is False:
            return False
        return all(o.success for o in self.mount_outcomes)

    @property
    def failed_mounts(self) -> List[MountOutcome]:
        return [o for o in self.mount_outcomes if not o.success]

    @property
    def archives(self) -> List[Path]:
        return [o.archive_path for o in self.mount_outcomes if o.success and o.archive_path]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "container_id": self.container.id,
            "container_name": self.container.name,
            "success": self.success,
            "stop_requested": self.stop_requested,
            "stop_succeeded": self.stop_succeeded,
            "start_succeeded": self.start_succeeded,
            "error": self.error,
            "skipped": self.skipped,
            "final_state": self.final_state.value,
            "duration_seconds": self.duration_seconds,
            "mounts": [o.to_dict() for o in self.mount_outcomes],
        }


@dataclass
class RunReport:
    started_at: datetime = field(default_factory=datetime.now)
    results: List[RunResult] = field(default_factory=list)
    list_error: Optional[str] = None
    cancelled: bool = False
    dry_run: bool = False
    duration_seconds: float = 0.0
    # Names of containers this run stopped and could not start again.
    stopped_containers: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        if self.list_error or self.cancelled:
            return False
        return all(r.success for r in self.results)

    @property
    def exit_code(self) -> int:
        return EXIT_OK if self.success else EXIT_BACKUP_FAILED

    @property
    def archives(self) -> List[Path]:
        return [path for r in self.results for path in r.archives]

    @property
    def failed_results(self) -> List[RunResult]:
        return [r for r in self.results if not r.success]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(timespec="seconds"),
            "duration_seconds": self.duration_seconds,
            "success": self.success,
            "exit_code": self.exit_code,
            "dry_run": self.dry_run,
            "cancelled": self.cancelled,
            "stopped_containers": self.stopped_containers,
            "list_error": self.list_error,
            "containers": [r.to_dict() for r in self.results],
        }
