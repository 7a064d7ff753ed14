################################################################################
# DOCKER-VOLUME-BACKUP
#
# @file:        backup_executor.py
# @module:      docker_volume_backup.cores.backup_executor
# @description: Archives one mount through a short-lived helper container
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# MIT License: see LICENSE or https://opensource.org/licenses/MIT
# ==============================================================================
# Notes:
# - The helper mounts the host path read-only and the output dir read-write
# - tar writes to a hidden .partial name, mv publishes the archive on success
# - --rm removes the helper; a timed out helper is removed with rm -f
################################################################################

"""
Backup executor for docker-volume-backup.

:meth:`BackupExecutor.backup` consumes one :class:`BackupTask` and returns the
path of the finished archive. Archive names are handed out by
:class:`ArchiveNamer`, which keeps them unique for the whole run.
"""

from __future__ import annotations

import re
import threading
import uuid
from pathlib import Path, PurePosixPath
from typing import List

from ..errors import ArchiveFailed, ArchiveLaunchFailed
from ..helpers.constants import (
    ARCHIVE_EXTENSION,
    BACKUP_CONTAINER_LABEL_KEY,
    BACKUP_CONTAINER_LABEL_VALUE,
    DOCKER_RUN_LAUNCH_ERRORS,
    HELPER_DEST_DIR,
    HELPER_NAME_PREFIX,
    HELPER_SOURCE_ROOT,
)
from ..helpers.logging import get_logger
from ..helpers.ui_utils import SubprocessError
from ..types import BackupTask
from .runtime_client import DockerRuntime

logger = get_logger(__name__)

# $1 partial file, $2 final file, $3 source root, $4 member path below the root
ARCHIVE_SCRIPT = 'tar -cf "$1" -C "$3" "$4" && mv -f "$1" "$2"'


class ArchiveNamer:
    """
    Hands out archive file names that are unique within one run.

    The name is ``<container><container_path with "/" as "_">.tar``, e.g.
    ``web_var_lib_data.tar``. Should two mounts map to the same name, later
    claims get ``-2``, ``-3``, ... in the order they are claimed.
    """

    def __init__(self):
        self._claimed = set()
        self._lock = threading.Lock()

    @staticmethod
    def base_name(container_name: str, container_path: str) -> str:
        raw = f"{container_name}{container_path.replace('/', '_')}"
        safe = re.sub(r'[^A-Za-z0-9._-]', '_', raw).lstrip('.')
        return safe or "_"

    def claim(self, container_name: str, container_path: str) -> str:
        base = self.base_name(container_name, container_path)
        with self._lock:
            candidate = f"{base}{ARCHIVE_EXTENSION}"
            counter = 2
            while candidate in self._claimed:
                candidate = f"{base}-{counter}{ARCHIVE_EXTENSION}"
                counter += 1
            self._claimed.add(candidate)
            return candidate


def _mount_option(source: str, target: str, readonly: bool) -> str:
    """Build a ``--mount`` value, CSV-quoting fields that need it."""
    fields = ["type=bind", f"source={source}", f"target={target}"]
    if readonly:
        fields.append("readonly")
    quoted = []
    for item in fields:
        if any(c in item for c in ',"\n'):
            item = '"' + item.replace('"', '""') + '"'
        quoted.append(item)
    return ",".join(quoted)


class BackupExecutor:
    """
    Runs the helper container for a single mount.

    Args:
        runtime: Docker runtime client
        timeout: Seconds one archive step may take
    """

    def __init__(self, runtime: DockerRuntime, timeout: float):
        self.runtime = runtime
        self.timeout = timeout

    def build_run_args(self, task: BackupTask, helper_name: str) -> List[str]:
        """Arguments following ``docker run`` for this task."""
        container_path = PurePosixPath(task.mount.container_path)
        member = str(container_path.relative_to("/")) if container_path.is_absolute() else str(container_path)
        member = member if member not in ("", ".") else "."
        source_target = str(PurePosixPath(HELPER_SOURCE_ROOT) / member) if member != "." else HELPER_SOURCE_ROOT

        return [
            "--rm",
            "--name", helper_name,
            "--label", f"{BACKUP_CONTAINER_LABEL_KEY}={BACKUP_CONTAINER_LABEL_VALUE}",
            "--network", "none",
            "--mount", _mount_option(task.mount.host_path, source_target, readonly=True),
            "--mount", _mount_option(str(task.output_dir), HELPER_DEST_DIR, readonly=False),
            "--entrypoint", "sh",
            task.image,
            "-c", ARCHIVE_SCRIPT, "sh",
            f"{HELPER_DEST_DIR}/{task.partial_name}",
            f"{HELPER_DEST_DIR}/{task.archive_name}",
            HELPER_SOURCE_ROOT,
            member,
        ]

    def backup(self, task: BackupTask) -> Path:
        """
        Archive the task's mount into ``task.archive_path``.

        Returns:
            Path of the finished archive

        Raises:
            ArchiveLaunchFailed: helper container could not be started
            ArchiveFailed: helper exited non-zero, timed out or left no archive
        """
        helper_name = f"{HELPER_NAME_PREFIX}-{uuid.uuid4().hex[:12]}"
        args = self.build_run_args(task, helper_name)
        log_extra = {'container': task.container.name}

        logger.info(f"Backing up {task.mount.container_path} -> {task.archive_name}", extra=log_extra)

        try:
            result = self.runtime.run_helper(args, timeout=self.timeout)
        except SubprocessError as e:
            # The docker client was killed, the helper may still be running.
            self.runtime.remove_container(helper_name)
            self._discard_partial(task)
            raise ArchiveFailed(
                f"Archiving {task.mount.container_path} timed out after {self.timeout}s",
                cmd=e.cmd,
            ) from e
        except ArchiveLaunchFailed:
            self._discard_partial(task)
            raise

        if result.returncode in DOCKER_RUN_LAUNCH_ERRORS:
            self.runtime.remove_container(helper_name)
            self._discard_partial(task)
            raise ArchiveLaunchFailed(
                f"Helper container for {task.mount.container_path} could not be started",
                cmd=result.args, returncode=result.returncode, stderr=(result.stderr or "").strip(),
            )

        if result.returncode != 0:
            self._discard_partial(task)
            raise ArchiveFailed(
                f"Archiving {task.mount.container_path} failed with exit code {result.returncode}",
                cmd=result.args, returncode=result.returncode, stderr=(result.stderr or "").strip(),
            )

        if not task.archive_path.exists():
            self._discard_partial(task)
            raise ArchiveFailed(
                f"Helper finished but {task.archive_path} does not exist",
                cmd=result.args, returncode=result.returncode,
            )

        logger.debug(f"Archive written: {task.archive_path}", extra=log_extra)
        return task.archive_path

    def _discard_partial(self, task: BackupTask) -> None:
        try:
            task.partial_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove partial archive {task.partial_path}: {e}",
                           extra={'container': task.container.name})
