"""Core business logic modules for docker-volume-backup."""

from .backup_executor import ArchiveNamer, BackupExecutor
from .backup_manager import BackupManager
from .fleet_runner import FleetRunner
from .mount_resolver import MountResolver
from .runtime_client import DockerRuntime
from .safe_exit_manager import SafeExitManager

__all__ = [
    'ArchiveNamer',
    'BackupExecutor',
    'BackupManager',
    'FleetRunner',
    'MountResolver',
    'DockerRuntime',
    'SafeExitManager',
]
