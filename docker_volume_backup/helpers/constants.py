################################################################################
# DOCKER-VOLUME-BACKUP
#
# @file:        constants.py
# @module:      docker_volume_backup.helpers.constants
# @description: Shared defaults, labels, timeouts and helper container paths.
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# MIT License: see LICENSE or https://opensource.org/licenses/MIT
################################################################################

"""
Constants used throughout docker-volume-backup.

This module defines all constant values used across different modules
to ensure consistency and ease of maintenance.
"""

# Version information
VERSION = "1.0.0"

# CLI defaults
DEFAULT_DOCKER_PATH = "/usr/bin/docker"
DEFAULT_HELPER_IMAGE = "alpine"
DEFAULT_LOG_LEVEL = "info"
DEFAULT_OUTPUT_DIR = "."

# Docker labels
# Helper containers carry this label so a later run never backs them up.
BACKUP_CONTAINER_LABEL_KEY = "type"
BACKUP_CONTAINER_LABEL_VALUE = "backupcontainer"
HELPER_NAME_PREFIX = "volume-backup-helper"

# Mount types that can carry persistent data on the host
ELIGIBLE_MOUNT_TYPES = ("bind", "volume")

# Fixed paths inside the helper container
HELPER_SOURCE_ROOT = "/backupsource"
HELPER_DEST_DIR = "/backupdest"

# Archive naming
ARCHIVE_EXTENSION = ".tar"
PARTIAL_PREFIX = "."
PARTIAL_SUFFIX = ".partial"

# docker run reserves these exit codes for its own failures
DOCKER_RUN_LAUNCH_ERRORS = (125, 126, 127)

# Worker sizing for parallel container backups
RAM_WORKER_THRESHOLDS = [
    (2, 1),    # <= 2GB: 1 worker
    (4, 2),    # <= 4GB: 2 workers
    (8, 4),    # <= 8GB: 4 workers
    (float('inf'), 6)  # > 8GB: 6 workers
]

# Timeouts (in seconds)
CONTAINER_STOP_TIMEOUT = 30
CONTAINER_START_TIMEOUT = 60
RUNTIME_QUERY_TIMEOUT = 30
BACKUP_OPERATION_TIMEOUT = 3600  # 1 hour
# Extra time granted to the docker client on top of the daemon-side stop timeout
STOP_CLIENT_GRACE = 15

# Exit codes
EXIT_OK = 0
EXIT_BACKUP_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_RUNTIME_UNAVAILABLE = 3

# Logging
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
LOG_LEVELS = ("debug", "info", "warning", "error", "critical")
