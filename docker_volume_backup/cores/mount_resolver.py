################################################################################
# DOCKER-VOLUME-BACKUP
#
# @file:        mount_resolver.py
# @module:      docker_volume_backup.cores.mount_resolver
# @description: Selects the archivable mounts of a container
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# MIT License: see LICENSE or https://opensource.org/licenses/MIT
################################################################################

"""
Mount resolution for docker-volume-backup.

Turns the raw mount entries of ``docker inspect`` into the list of mounts
that can be archived from the host.
"""

import fnmatch
from pathlib import PurePosixPath
from typing import Iterable, List, Optional, Sequence

from ..helpers.constants import ELIGIBLE_MOUNT_TYPES
from ..helpers.logging import get_logger
from ..types import MountInfo
from .runtime_client import MountEntry

logger = get_logger(__name__)


class MountResolver:
    """
    Select the eligible mounts of a container.

    An entry is eligible when it is a bind mount or a volume, has an absolute
    host path and does not match an exclude pattern. Duplicate host paths are
    dropped (first one wins) and discovery order is kept, so archive names
    come out the same on every run.
    """

    def __init__(self, exclude_patterns: Optional[Sequence[str]] = None):
        self.exclude_patterns = list(exclude_patterns or [])

    def resolve(self, entries: Iterable[MountEntry], container_name: str = "") -> List[MountInfo]:
        mounts: List[MountInfo] = []
        seen_host_paths = set()

        for entry in entries:
            reason = self._ineligible_reason(entry)
            if reason:
                logger.debug(f"Skipping mount {entry.destination}: {reason}",
                             extra={'container': container_name})
                continue

            if entry.source in seen_host_paths:
                logger.debug(f"Skipping mount {entry.destination}: host path {entry.source} already included",
                             extra={'container': container_name})
                continue
            seen_host_paths.add(entry.source)

            mounts.append(MountInfo(
                host_path=entry.source,
                container_path=entry.destination,
                mount_type=entry.type,
                volume_name=entry.name or None,
                read_only=not entry.rw,
            ))

        return mounts

    def _ineligible_reason(self, entry: MountEntry) -> Optional[str]:
        if entry.type not in ELIGIBLE_MOUNT_TYPES:
            return f"mount type '{entry.type or 'unknown'}' is not persistent"
        if not entry.source:
            return "no host path"
        if not PurePosixPath(entry.source).is_absolute():
            return f"host path {entry.source!r} is not absolute"
        if not entry.destination:
            return "no container path"
        if self.is_excluded(entry.destination):
            return "excluded by pattern"
        return None

    def is_excluded(self, container_path: str) -> bool:
        return any(fnmatch.fnmatchcase(container_path, p) for p in self.exclude_patterns)
