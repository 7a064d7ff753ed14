################################################################################
# DOCKER-VOLUME-BACKUP
#
# @file:        errors.py
# @module:      docker_volume_backup.errors
# @description: Failure kinds of a backup run, from fatal to per-mount.
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# MIT License: see LICENSE or https://opensource.org/licenses/MIT
# ==============================================================================
# Notes:
# - RuntimeUnavailable aborts the whole run
# - RuntimeQueryFailed abandons one container (or the listing)
# - ContainerControlFailed / Archive* are recorded and the run continues
################################################################################

from __future__ import annotations

from typing import List, Optional, Sequence


class VolumeBackupError(Exception):
    """Base class for all docker-volume-backup failures."""

    def __init__(
        self,
        message: str,
        cmd: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.message = message
        self.cmd: List[str] = list(cmd) if cmd else []
        self.returncode = returncode
        self.stderr = stderr

    def __str__(self) -> str:
        if self.stderr and self.stderr not in self.message:
            return f"{self.message}: {self.stderr}"
        return self.message


class RuntimeUnavailable(VolumeBackupError):
    """The runtime executable is missing or cannot be invoked."""


class RuntimeQueryFailed(VolumeBackupError):
    """Listing or inspecting failed, or returned unparsable output."""


class ContainerControlFailed(VolumeBackupError):
    """Stopping or starting a container failed."""


class ArchiveLaunchFailed(VolumeBackupError):
    """The helper container could not be started."""


class ArchiveFailed(VolumeBackupError):
    """The helper container ran but did not produce an archive."""
