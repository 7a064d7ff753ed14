################################################################################
# DOCKER-VOLUME-BACKUP
#
# @file:        runtime_client.py
# @module:      docker_volume_backup.cores.runtime_client
# @description: Docker CLI facade for listing, inspecting, stopping and starting
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# MIT License: see LICENSE or https://opensource.org/licenses/MIT
################################################################################

"""
Runtime client for docker-volume-backup.

Every interaction with the container runtime goes through :class:`DockerRuntime`,
which invokes the docker executable as a subprocess and turns its JSON output
into typed values. Calls are blocking and bounded by a timeout; none of them
retry.
"""

from __future__ import annotations

import json
import subprocess
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import (
    ArchiveLaunchFailed,
    ContainerControlFailed,
    RuntimeQueryFailed,
    RuntimeUnavailable,
)
from ..helpers.config import BackupSettings
from ..helpers.constants import STOP_CLIENT_GRACE
from ..helpers.logging import get_logger
from ..helpers.ui_utils import SubprocessError, run_command
from ..types import ContainerInfo

logger = get_logger(__name__)


# ---- Docker JSON models ----

class _DockerModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PsEntry(_DockerModel):
    """One line of ``docker ps --format '{{json .}}'``."""

    id: str = Field(alias="ID")
    names: str = Field(alias="Names")
    state: str = Field(default="running", alias="State")
    labels: str = Field(default="", alias="Labels")


class MountEntry(_DockerModel):
    """One element of ``.Mounts`` in ``docker inspect``."""

    type: str = Field(default="", alias="Type")
    name: Optional[str] = Field(default=None, alias="Name")
    source: str = Field(default="", alias="Source")
    destination: str = Field(alias="Destination")
    rw: bool = Field(default=True, alias="RW")


class InspectConfig(_DockerModel):
    labels: Optional[Dict[str, str]] = Field(default=None, alias="Labels")


class InspectState(_DockerModel):
    running: bool = Field(default=False, alias="Running")


class ContainerInspection(_DockerModel):
    """The parts of ``docker inspect`` this tool relies on."""

    id: str = Field(alias="Id")
    config: InspectConfig = Field(default_factory=InspectConfig, alias="Config")
    state: InspectState = Field(default_factory=InspectState, alias="State")
    mounts: Optional[List[MountEntry]] = Field(default=None, alias="Mounts")

    @property
    def labels(self) -> Dict[str, str]:
        return self.config.labels or {}

    @property
    def mount_entries(self) -> List[MountEntry]:
        return self.mounts or []


def parse_label_string(raw: str) -> Dict[str, str]:
    """Parse the ``k=v,k2=v2`` label format printed by ``docker ps``."""
    labels = {}
    for item in (raw or "").split(","):
        if not item:
            continue
        key, _, value = item.partition("=")
        labels[key.strip()] = value
    return labels


class DockerRuntime:
    """
    Thin facade over the docker command line.

    Args:
        settings: Run settings (docker path and timeouts are used)
    """

    def __init__(self, settings: BackupSettings):
        self.settings = settings
        self.docker = settings.docker
        self.stop_timeout = settings.stop_timeout
        self.start_timeout = settings.start_timeout
        self.query_timeout = settings.query_timeout

    def _docker(self, args: List[str], description: str, timeout: Optional[float]) -> subprocess.CompletedProcess:
        return run_command([self.docker] + args, description, timeout=timeout)

    # --------------- Queries ---------------

    def list_running_containers(self) -> List[ContainerInfo]:
        """
        List running containers in the order docker reports them.

        Raises:
            RuntimeUnavailable: docker cannot be invoked
            RuntimeQueryFailed: docker ps failed or printed unparsable output
        """
        args = ["ps", "--no-trunc", "--format", "{{json .}}"]
        try:
            result = self._docker(args, "List running containers", self.query_timeout)
        except OSError as e:
            raise RuntimeUnavailable(f"Cannot execute {self.docker}: {e}", cmd=[self.docker] + args) from e
        except SubprocessError as e:
            raise RuntimeQueryFailed(
                "Listing containers failed", cmd=e.cmd, returncode=e.returncode, stderr=str(e)
            ) from e

        try:
            entries = [PsEntry.model_validate(item) for item in self._parse_json_lines(result.stdout)]
        except (ValueError, ValidationError) as e:
            raise RuntimeQueryFailed(f"Unparsable docker ps output: {e}", cmd=[self.docker] + args) from e

        containers = []
        for entry in entries:
            # Names may list links as "name,other/alias"; the first one is the container.
            name = entry.names.split(",")[0].lstrip("/")
            containers.append(ContainerInfo(
                id=entry.id,
                name=name or entry.id[:12],
                is_running=entry.state.lower() == "running",
                labels=parse_label_string(entry.labels),
            ))

        logger.debug(f"docker ps returned {len(containers)} containers")
        return containers

    def inspect_container(self, container: ContainerInfo) -> ContainerInspection:
        """
        Inspect a container.

        Raises:
            RuntimeUnavailable: docker cannot be invoked
            RuntimeQueryFailed: docker inspect failed or printed unparsable output
        """
        args = ["inspect", "--type", "container", container.id]
        try:
            result = self._docker(args, f"Inspect {container.name}", self.query_timeout)
        except OSError as e:
            raise RuntimeUnavailable(f"Cannot execute {self.docker}: {e}", cmd=[self.docker] + args) from e
        except SubprocessError as e:
            raise RuntimeQueryFailed(
                f"Inspecting {container.name} failed", cmd=e.cmd, returncode=e.returncode, stderr=str(e)
            ) from e

        try:
            data = json.loads(result.stdout)
            if isinstance(data, dict):
                data = [data]
            if not data:
                raise ValueError("no data returned")
            return ContainerInspection.model_validate(data[0])
        except (ValueError, TypeError, ValidationError) as e:
            raise RuntimeQueryFailed(
                f"Unparsable inspect output for {container.name}: {e}", cmd=[self.docker] + args
            ) from e

    def inspect_mounts(self, container: ContainerInfo) -> List[MountEntry]:
        """Raw mount entries of a container (input for MountResolver)."""
        return self.inspect_container(container).mount_entries

    # --------------- Control ---------------

    def stop(self, container: ContainerInfo) -> None:
        """
        Stop a container, waiting up to ``stop_timeout`` before docker kills it.

        Raises:
            ContainerControlFailed: non-zero exit, timeout or docker not invocable
        """
        args = ["stop", "-t", str(self.stop_timeout), container.id]
        self._control(args, f"Stop {container.name}", self.stop_timeout + STOP_CLIENT_GRACE, container)

    def start(self, container: ContainerInfo) -> None:
        """
        Start a container.

        Raises:
            ContainerControlFailed: non-zero exit, timeout or docker not invocable
        """
        args = ["start", container.id]
        self._control(args, f"Start {container.name}", self.start_timeout, container)

    def _control(self, args: List[str], description: str, timeout: float, container: ContainerInfo) -> None:
        try:
            self._docker(args, description, timeout)
        except OSError as e:
            raise ContainerControlFailed(
                f"{description} failed: {e}", cmd=[self.docker] + args
            ) from e
        except SubprocessError as e:
            raise ContainerControlFailed(
                f"{description} failed", cmd=e.cmd, returncode=e.returncode, stderr=str(e)
            ) from e

    # --------------- Helper containers ---------------

    def run_helper(self, args: List[str], timeout: float) -> subprocess.CompletedProcess:
        """
        Run ``docker run <args>`` without raising on a non-zero exit.

        Raises:
            ArchiveLaunchFailed: docker cannot be invoked
            SubprocessError: the helper ran into the timeout
        """
        cmd = [self.docker, "run"] + args
        try:
            return run_command(cmd, "Run helper container", timeout=timeout, check=False)
        except OSError as e:
            raise ArchiveLaunchFailed(f"Cannot execute {self.docker}: {e}", cmd=cmd) from e

    def remove_container(self, name: str) -> bool:
        """Force-remove a container; failures are logged, not raised."""
        try:
            self._docker(["rm", "-f", name], f"Remove {name}", self.query_timeout)
            return True
        except (OSError, SubprocessError) as e:
            logger.debug(f"Could not remove container {name}: {e}")
            return False

    # --------------- Parsing ---------------

    @staticmethod
    def _parse_json_lines(output: str) -> List[Dict[str, Any]]:
        """Parse JSON lines; a single JSON array is accepted as well."""
        text = output.strip()
        if not text:
            return []
        if text.startswith("["):
            data = json.loads(text)
            if not isinstance(data, list):
                raise ValueError("expected a JSON array")
            return data
        items = []
        for line in text.splitlines():
            line = line.strip()
            if line:
                items.append(json.loads(line))
        return items
