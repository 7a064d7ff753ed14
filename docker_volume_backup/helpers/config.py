################################################################################
# DOCKER-VOLUME-BACKUP
#
# @file:        config.py
# @module:      docker_volume_backup.helpers.config
# @description: Validated run settings with JSON file and CLI overrides
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# MIT License: see LICENSE or https://opensource.org/licenses/MIT
################################################################################

"""
Configuration for docker-volume-backup.

All settings of a run live in one :class:`BackupSettings` value that is
passed to the runtime client, the executor and the fleet runner. Values come
from the built-in defaults, an optional JSON file and the command line, in
that order of precedence.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import (
    BACKUP_OPERATION_TIMEOUT,
    CONTAINER_START_TIMEOUT,
    CONTAINER_STOP_TIMEOUT,
    DEFAULT_DOCKER_PATH,
    DEFAULT_HELPER_IMAGE,
    DEFAULT_LOG_LEVEL,
    DEFAULT_OUTPUT_DIR,
    LOG_LEVELS,
    RUNTIME_QUERY_TIMEOUT,
)
from .logging import get_logger

logger = get_logger(__name__)


class BackupSettings(BaseModel):
    """Settings for one backup run"""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    stop_start: bool = Field(
        default=False,
        description="Stop each container before backup and restart it afterwards"
    )
    image: str = Field(
        default=DEFAULT_HELPER_IMAGE,
        description="Image used for the helper containers (needs sh, tar and mv)"
    )
    log_level: str = Field(default=DEFAULT_LOG_LEVEL, description="Logging level")
    docker: str = Field(default=DEFAULT_DOCKER_PATH, description="Path to the docker executable")
    output_dir: Path = Field(
        default=Path(DEFAULT_OUTPUT_DIR),
        description="Directory receiving the archives"
    )
    workers: Union[int, Literal["auto"]] = Field(
        default=1,
        description="Containers backed up in parallel (auto = based on RAM/CPU)"
    )
    stop_timeout: int = Field(default=CONTAINER_STOP_TIMEOUT, ge=0)
    start_timeout: int = Field(default=CONTAINER_START_TIMEOUT, ge=1)
    backup_timeout: int = Field(default=BACKUP_OPERATION_TIMEOUT, ge=1)
    query_timeout: int = Field(default=RUNTIME_QUERY_TIMEOUT, ge=1)
    exclude_patterns: List[str] = Field(
        default_factory=list,
        description="Glob patterns matched against container-side mount paths"
    )
    containers: List[str] = Field(
        default_factory=list,
        description="Only back up these container names (empty = all)"
    )
    dry_run: bool = False
    report_file: Optional[Path] = None

    @field_validator("image", "docker")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().lower()
        if level == "warn":
            level = "warning"
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {', '.join(LOG_LEVELS)}")
        return level

    @field_validator("output_dir", "report_file", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Any:
        if isinstance(v, str):
            return Path(v).expanduser()
        if isinstance(v, Path):
            return v.expanduser()
        return v

    @field_validator("workers", mode="before")
    @classmethod
    def validate_workers(cls, v: Any) -> Union[int, str]:
        if isinstance(v, str):
            if v.strip().lower() == "auto":
                return "auto"
            try:
                v = int(v)
            except ValueError:
                raise ValueError(f"workers must be 'auto' or an integer: {v}")
        if isinstance(v, int) and not 1 <= v <= 32:
            raise ValueError(f"workers out of range (1-32): {v}")
        return v

    # --------------- Loading ---------------

    @classmethod
    def load(cls, path: Path) -> BackupSettings:
        """
        Load settings from a JSON file.

        Raises:
            FileNotFoundError: If the file does not exist
            pydantic.ValidationError: If the content is invalid
        """
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        logger.debug(f"Loading configuration from {path}")
        return cls.model_validate_json(path.read_text(encoding="utf-8"))

    def merged(self, **overrides: Any) -> BackupSettings:
        """
        Return a copy with every override that is not None applied.

        Only explicitly set values are carried over, so ``model_fields_set``
        tells which settings came from the config file or the command line.
        """
        data = self.model_dump(exclude_unset=True)
        data.update({k: v for k, v in overrides.items() if v is not None})
        return type(self).model_validate(data)

    # --------------- Derived values ---------------

    @property
    def resolved_output_dir(self) -> Path:
        """Absolute output directory (docker -v needs absolute host paths)."""
        return Path(os.path.abspath(self.output_dir))

    def resolve_workers(self) -> int:
        """Number of worker threads for this run."""
        if self.workers == "auto":
            from .system_utils import SystemUtils
            return SystemUtils.recommended_workers()
        return int(self.workers)
