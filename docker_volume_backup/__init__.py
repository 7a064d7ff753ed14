################################################################################
# DOCKER-VOLUME-BACKUP
#
# @file:        __init__.py
# @module:      docker_volume_backup
# @description: Exposes version, logging, data types and core classes.
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# MIT License: see LICENSE or https://opensource.org/licenses/MIT
################################################################################

"""
docker-volume-backup: archive the mounted volumes of running Docker containers.

Each mount is archived to a tar file by a short-lived helper container,
optionally with the container stopped for the duration of its backup.
"""

from .helpers.constants import VERSION

__version__ = VERSION

from .helpers.logging import (
    get_logger,
    log_manager,
    setup_logging,
    StructuredFormatter,
    Colors,
)

from .types import (
    BackupTask,
    ContainerInfo,
    ContainerState,
    MountInfo,
    MountOutcome,
    RunReport,
    RunResult,
)

from .errors import (
    VolumeBackupError,
    RuntimeUnavailable,
    RuntimeQueryFailed,
    ContainerControlFailed,
    ArchiveLaunchFailed,
    ArchiveFailed,
)

from .helpers.config import BackupSettings
from .cores import (
    ArchiveNamer,
    BackupExecutor,
    BackupManager,
    DockerRuntime,
    FleetRunner,
    MountResolver,
    SafeExitManager,
)

__all__ = [
    "VERSION",
    "BackupTask",
    "ContainerInfo",
    "ContainerState",
    "MountInfo",
    "MountOutcome",
    "RunReport",
    "RunResult",
    "VolumeBackupError",
    "RuntimeUnavailable",
    "RuntimeQueryFailed",
    "ContainerControlFailed",
    "ArchiveLaunchFailed",
    "ArchiveFailed",
    "BackupSettings",
    "ArchiveNamer",
    "BackupExecutor",
    "BackupManager",
    "DockerRuntime",
    "FleetRunner",
    "MountResolver",
    "SafeExitManager",
    "get_logger",
    "log_manager",
    "setup_logging",
    "StructuredFormatter",
    "Colors",
]
