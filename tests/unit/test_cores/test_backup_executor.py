"""
Unit tests for BackupExecutor and ArchiveNamer.

The runtime is a Mock; run_helper side effects simulate what the helper
container does to the output directory.
"""

import pytest
from subprocess import CompletedProcess
from unittest.mock import Mock

from docker_volume_backup.cores.backup_executor import (
    ARCHIVE_SCRIPT,
    ArchiveNamer,
    BackupExecutor,
    _mount_option,
)
from docker_volume_backup.errors import ArchiveFailed, ArchiveLaunchFailed
from docker_volume_backup.helpers.ui_utils import SubprocessError
from docker_volume_backup.types import BackupTask


@pytest.fixture
def task(output_dir, container_factory, mount_factory):
    return BackupTask(
        container=container_factory("web"),
        mount=mount_factory("/var/lib/data"),
        archive_name="web_var_lib_data.tar",
        output_dir=output_dir,
        image="alpine",
    )


def helper_result(returncode=0, stderr=""):
    return CompletedProcess(["docker", "run"], returncode, stdout="", stderr=stderr)


# =============================================================================
# Archive names
# =============================================================================

@pytest.mark.unit
class TestArchiveNamer:

    def test_base_name(self):
        assert ArchiveNamer.base_name("web", "/var/lib/data") == "web_var_lib_data"

    def test_unsafe_characters_replaced(self):
        assert ArchiveNamer.base_name("web", "/my data:1") == "web_my_data_1"

    def test_collisions_get_suffixes(self):
        namer = ArchiveNamer()
        # "/a/b" and "/a_b" both flatten to "app_a_b".
        assert namer.claim("app", "/a/b") == "app_a_b.tar"
        assert namer.claim("app", "/a_b") == "app_a_b-2.tar"
        assert namer.claim("app", "/a/b") == "app_a_b-3.tar"

    def test_names_unique_across_containers(self):
        namer = ArchiveNamer()
        names = [namer.claim("web", "_data"), namer.claim("web_", "data")]
        assert len(set(names)) == 2

    def test_never_hidden(self):
        assert ArchiveNamer.base_name(".hidden", "/x") == "hidden_x"


# =============================================================================
# docker run arguments
# =============================================================================

@pytest.mark.unit
class TestBuildRunArgs:

    def test_arguments(self, task, output_dir):
        args = BackupExecutor(Mock(), timeout=60).build_run_args(task, "volume-backup-helper-abc")

        assert args[:8] == [
            "--rm",
            "--name", "volume-backup-helper-abc",
            "--label", "type=backupcontainer",
            "--network", "none",
            "--mount",
        ]
        assert args[8] == "type=bind,source=/srv/var/lib/data,target=/backupsource/var/lib/data,readonly"
        assert args[10] == f"type=bind,source={output_dir},target=/backupdest"
        assert args[-7:] == [
            "-c", ARCHIVE_SCRIPT, "sh",
            "/backupdest/.web_var_lib_data.tar.partial",
            "/backupdest/web_var_lib_data.tar",
            "/backupsource",
            "var/lib/data",
        ]
        assert "alpine" in args

    def test_root_mount(self, output_dir, container_factory, mount_factory):
        task = BackupTask(container_factory(), mount_factory("/", host_path="/srv/root"),
                          "web_.tar", output_dir, "alpine")
        args = BackupExecutor(Mock(), timeout=60).build_run_args(task, "h")
        assert args[-1] == "."
        assert "target=/backupsource," in args[8]

    def test_mount_option_quotes_commas(self):
        assert _mount_option("/srv/a,b", "/t", readonly=True) == 'type=bind,"source=/srv/a,b",target=/t,readonly'


# =============================================================================
# backup()
# =============================================================================

@pytest.mark.unit
class TestBackup:

    def test_success_returns_archive_path(self, task):
        runtime = Mock()

        def write_archive(args, timeout):
            task.archive_path.write_bytes(b"tar")
            return helper_result()

        runtime.run_helper.side_effect = write_archive
        path = BackupExecutor(runtime, timeout=60).backup(task)

        assert path == task.archive_path
        assert runtime.run_helper.call_args.kwargs["timeout"] == 60

    def test_nonzero_exit_raises_and_removes_partial(self, task):
        runtime = Mock()

        def fail(args, timeout):
            task.partial_path.write_bytes(b"trunc")
            return helper_result(2, stderr="tar: /backupsource/var: No such file")

        runtime.run_helper.side_effect = fail

        with pytest.raises(ArchiveFailed) as exc_info:
            BackupExecutor(runtime, timeout=60).backup(task)

        assert exc_info.value.returncode == 2
        assert "No such file" in str(exc_info.value)
        assert not task.partial_path.exists()
        assert not task.archive_path.exists()

    @pytest.mark.parametrize("code", [125, 126, 127])
    def test_launch_errors(self, task, code):
        runtime = Mock()
        runtime.run_helper.return_value = helper_result(code, stderr="Unable to find image")

        with pytest.raises(ArchiveLaunchFailed):
            BackupExecutor(runtime, timeout=60).backup(task)

    def test_timeout_removes_helper(self, task):
        runtime = Mock()
        runtime.run_helper.side_effect = SubprocessError(["docker", "run"], None, timed_out=True)

        with pytest.raises(ArchiveFailed) as exc_info:
            BackupExecutor(runtime, timeout=5).backup(task)

        assert "timed out" in str(exc_info.value)
        helper_name = runtime.run_helper.call_args[0][0][2]
        runtime.remove_container.assert_called_once_with(helper_name)

    def test_missing_archive_after_success(self, task):
        runtime = Mock()
        runtime.run_helper.return_value = helper_result(0)

        with pytest.raises(ArchiveFailed):
            BackupExecutor(runtime, timeout=60).backup(task)

    def test_launch_failure_propagates(self, task):
        runtime = Mock()
        runtime.run_helper.side_effect = ArchiveLaunchFailed("Cannot execute docker")

        with pytest.raises(ArchiveLaunchFailed):
            BackupExecutor(runtime, timeout=60).backup(task)

    def test_helper_names_unique(self, task):
        runtime = Mock()
        runtime.run_helper.return_value = helper_result(1)
        executor = BackupExecutor(runtime, timeout=60)

        for _ in range(2):
            with pytest.raises(ArchiveFailed):
                executor.backup(task)

        names = [c[0][0][2] for c in runtime.run_helper.call_args_list]
        assert names[0] != names[1]
        assert all(n.startswith("volume-backup-helper-") for n in names)
