"""Helper modules and utilities for docker-volume-backup."""

from .config import BackupSettings
from .constants import VERSION
from .logging import get_logger, log_manager
from .system_utils import SystemUtils
from .ui_utils import SubprocessError, run_command

__all__ = [
    'BackupSettings',
    'VERSION',
    'get_logger',
    'log_manager',
    'SystemUtils',
    'SubprocessError',
    'run_command',
]
