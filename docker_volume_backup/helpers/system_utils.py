################################################################################
# DOCKER-VOLUME-BACKUP
#
# @file:        system_utils.py
# @module:      docker_volume_backup.helpers.system_utils
# @description: Host resource checks for auto worker sizing
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# MIT License: see LICENSE or https://opensource.org/licenses/MIT
################################################################################

"""
Host resource probing for docker-volume-backup.

Only used when ``workers`` is set to ``auto``: every parallel container
backup runs its own helper container with tar, so the pool is sized by
free memory first and capped by the number of CPUs.
"""

import psutil

from .constants import RAM_WORKER_THRESHOLDS
from .logging import get_logger


logger = get_logger(__name__)

# Used when psutil cannot read the memory statistics.
FALLBACK_MEMORY_GB = 2.0


class SystemUtils:
    """Host resource readings for sizing the worker pool."""

    @staticmethod
    def memory_gb() -> float:
        """Memory available for new processes, in GB."""
        try:
            return psutil.virtual_memory().available / (1024 ** 3)
        except (OSError, RuntimeError) as e:
            logger.warning(f"Cannot read memory statistics, assuming {FALLBACK_MEMORY_GB}GB: {e}")
            return FALLBACK_MEMORY_GB

    @staticmethod
    def cpu_cores() -> int:
        return psutil.cpu_count(logical=True) or 1

    @staticmethod
    def recommended_workers() -> int:
        """
        Worker count for ``workers=auto``.

        Looks up the free memory in RAM_WORKER_THRESHOLDS and never
        exceeds the number of CPUs.
        """
        memory = SystemUtils.memory_gb()
        cores = SystemUtils.cpu_cores()

        by_memory = RAM_WORKER_THRESHOLDS[-1][1]
        for limit_gb, count in RAM_WORKER_THRESHOLDS:
            if memory <= limit_gb:
                by_memory = count
                break

        workers = max(1, min(by_memory, cores))
        logger.debug(f"auto workers: {workers} ({memory:.1f}GB free, {cores} CPUs)")
        return workers
