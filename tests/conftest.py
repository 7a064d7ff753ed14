"""
Shared pytest fixtures for docker-volume-backup tests.

Provides settings, container/mount factories and a fake docker command line
that stands in for ``run_command`` so no Docker daemon is needed.
"""

import json
import pytest
from pathlib import Path
from subprocess import CompletedProcess
from unittest.mock import patch
from typer.testing import CliRunner

from docker_volume_backup.helpers.config import BackupSettings
from docker_volume_backup.helpers.ui_utils import SubprocessError
from docker_volume_backup.types import ContainerInfo, MountInfo


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without external dependencies")
    config.addinivalue_line("markers", "integration: end-to-end scenarios against the fake docker CLI")


class FakeDocker:
    """
    Minimal stand-in for the docker CLI, called like ``run_command``.

    Containers are registered with add_container(). ``fail`` maps a docker
    verb (ps, inspect, stop, start, run) to the exit code it should return;
    ``run_failures`` maps a mount's container path to the exit code of its
    helper container. ``docker run`` writes the archive into the host
    directory mounted at /backupdest, like the real helper does.
    """

    def __init__(self):
        self.containers = []
        self.calls = []
        self.fail = {}
        self.run_failures = {}
        self.leave_partial_on_failure = False

    def add_container(self, id, name, mounts=None, labels=None, running=True):
        self.containers.append({
            "id": id,
            "name": name,
            "mounts": mounts or [],
            "labels": labels or {},
            "running": running,
        })

    @property
    def verbs(self):
        return [c[1] for c in self.calls]

    def calls_for(self, verb):
        return [c for c in self.calls if c[1] == verb]

    def __call__(self, cmd, description="", timeout=None, check=True):
        cmd = list(cmd)
        self.calls.append(cmd)
        verb = cmd[1]
        handler = getattr(self, f"_{verb}")
        returncode, stdout, stderr = handler(cmd[2:])
        if check and returncode != 0:
            raise SubprocessError(cmd, returncode, stderr=stderr, stdout=stdout)
        return CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)

    # --------------- verbs ---------------

    def _ps(self, args):
        if self.fail.get("ps"):
            return self.fail["ps"], "", "Cannot connect to the Docker daemon"
        lines = [
            json.dumps({
                "ID": c["id"],
                "Names": c["name"],
                "State": "running",
                "Labels": ",".join(f"{k}={v}" for k, v in c["labels"].items()),
            })
            for c in self.containers
        ]
        return 0, "\n".join(lines) + "\n", ""

    def _inspect(self, args):
        if self.fail.get("inspect"):
            return self.fail["inspect"], "", "Error: No such container"
        container = self._find(args[-1])
        data = [{
            "Id": container["id"],
            "Name": "/" + container["name"],
            "Config": {"Labels": container["labels"]},
            "State": {"Running": container["running"]},
            "Mounts": container["mounts"],
        }]
        return 0, json.dumps(data), ""

    def _stop(self, args):
        return self.fail.get("stop", 0), "", "stop failed" if self.fail.get("stop") else ""

    def _start(self, args):
        return self.fail.get("start", 0), "", "start failed" if self.fail.get("start") else ""

    def _rm(self, args):
        return 0, "", ""

    def _run(self, args):
        dest_dir = None
        for i, arg in enumerate(args):
            if arg == "--mount" and "target=/backupdest" in args[i + 1]:
                fields = dict(f.split("=", 1) for f in args[i + 1].split(",") if "=" in f)
                dest_dir = Path(fields["source"])
        partial, final, _root, member = args[-4:]
        partial_path = dest_dir / Path(partial).name
        final_path = dest_dir / Path(final).name

        returncode = self.fail.get("run") or self.run_failures.get("/" + member.lstrip("./"), 0)
        if returncode:
            if self.leave_partial_on_failure:
                partial_path.write_bytes(b"truncated")
            return returncode, "", "tar: error archiving"
        final_path.write_bytes(b"tar archive")
        return 0, "", ""

    def _find(self, ident):
        for c in self.containers:
            if ident in (c["id"], c["name"]):
                return c
        raise KeyError(ident)


def mount_entry(destination, source=None, type="bind", name=None, rw=True):
    """Raw docker inspect mount entry."""
    return {
        "Type": type,
        "Name": name,
        "Source": f"/srv{destination}" if source is None else source,
        "Destination": destination,
        "RW": rw,
    }


@pytest.fixture
def cli_runner():
    """Typer CLI runner for testing commands."""
    return CliRunner()


@pytest.fixture
def output_dir(tmp_path):
    path = tmp_path / "archives"
    path.mkdir()
    return path


@pytest.fixture
def settings(output_dir):
    """Settings pointing the archives at a temporary directory."""
    return BackupSettings(docker="docker", output_dir=output_dir)


@pytest.fixture
def fake_docker():
    """Patch run_command in the runtime client with a FakeDocker."""
    fake = FakeDocker()
    with patch("docker_volume_backup.cores.runtime_client.run_command", side_effect=fake):
        yield fake


@pytest.fixture
def container_factory():
    """Factory for ContainerInfo objects."""
    def _make(name="web", id=None, labels=None):
        return ContainerInfo(id=id or f"{name}-id", name=name, is_running=True, labels=labels or {})
    return _make


@pytest.fixture
def mount_factory():
    """Factory for eligible MountInfo objects."""
    def _make(container_path="/data", host_path=None, mount_type="bind"):
        return MountInfo(
            host_path=host_path or f"/srv{container_path}",
            container_path=container_path,
            mount_type=mount_type,
        )
    return _make


@pytest.fixture
def mount_entry_factory():
    """Factory for raw docker inspect mount entries."""
    return mount_entry
