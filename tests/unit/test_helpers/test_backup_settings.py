"""Unit tests for BackupSettings."""

import json
import pytest
from pathlib import Path
from unittest.mock import patch
from pydantic import ValidationError

from docker_volume_backup.helpers.config import BackupSettings


@pytest.mark.unit
class TestDefaults:

    def test_defaults(self):
        settings = BackupSettings()
        assert settings.stop_start is False
        assert settings.image == "alpine"
        assert settings.docker == "/usr/bin/docker"
        assert settings.log_level == "info"
        assert settings.workers == 1
        assert settings.dry_run is False

    def test_resolved_output_dir_is_absolute(self):
        assert BackupSettings(output_dir="backups").resolved_output_dir.is_absolute()


@pytest.mark.unit
class TestValidation:

    @pytest.mark.parametrize("value,expected", [("DEBUG", "debug"), ("warn", "warning"), (" Error ", "error")])
    def test_log_level_normalized(self, value, expected):
        assert BackupSettings(log_level=value).log_level == expected

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            BackupSettings(log_level="chatty")

    def test_empty_image_rejected(self):
        with pytest.raises(ValidationError):
            BackupSettings(image="  ")

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            BackupSettings(repository="s3://bucket")

    @pytest.mark.parametrize("value,expected", [("auto", "auto"), ("AUTO", "auto"), ("4", 4), (8, 8)])
    def test_workers_accepted(self, value, expected):
        assert BackupSettings(workers=value).workers == expected

    @pytest.mark.parametrize("value", [0, 33, "many"])
    def test_workers_rejected(self, value):
        with pytest.raises(ValidationError):
            BackupSettings(workers=value)

    def test_resolve_workers_auto(self):
        with patch("docker_volume_backup.helpers.system_utils.SystemUtils.recommended_workers", return_value=3):
            assert BackupSettings(workers="auto").resolve_workers() == 3


@pytest.mark.unit
class TestLoadAndMerge:

    def test_load_json_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"stop_start": True, "image": "busybox", "exclude_patterns": ["/tmp*"]}))

        settings = BackupSettings.load(path)

        assert settings.stop_start is True
        assert settings.image == "busybox"
        assert settings.exclude_patterns == ["/tmp*"]

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            BackupSettings.load(tmp_path / "missing.json")

    def test_load_invalid_content(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"workers": 0}))
        with pytest.raises(ValidationError):
            BackupSettings.load(path)

    def test_merged_skips_none(self):
        base = BackupSettings(image="busybox", stop_start=True)

        merged = base.merged(image=None, stop_start=None, docker="/opt/docker")

        assert merged.image == "busybox"
        assert merged.stop_start is True
        assert merged.docker == "/opt/docker"
        assert base.docker == "/usr/bin/docker"

    def test_merged_validates(self):
        with pytest.raises(ValidationError):
            BackupSettings().merged(log_level="chatty")

    def test_merged_keeps_track_of_explicit_values(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"log_level": "debug"}))

        from_file = BackupSettings.load(path).merged(docker="/opt/docker", image=None)
        defaults_only = BackupSettings().merged(log_level=None)

        assert from_file.model_fields_set == {"log_level", "docker"}
        assert from_file.log_level == "debug"
        assert "log_level" not in defaults_only.model_fields_set

    def test_output_dir_expands_user(self):
        settings = BackupSettings(output_dir="~/archives")
        assert "~" not in str(settings.output_dir)
        assert settings.output_dir == Path("~/archives").expanduser()
