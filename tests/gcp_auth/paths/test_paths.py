"""Tests for platform path resolution."""

from pathlib import Path
from unittest.mock import patch

from gcp_auth.paths import ADC_FILENAME, PlatformPaths, default_paths


class TestForPlatform:
    def test_posix_default(self, tmp_path):
        paths = PlatformPaths.for_platform("linux", env={}, home=tmp_path)

        assert paths.config_dir == tmp_path / ".config" / "gcloud"
        assert paths.cli_name == "gcloud"
        assert paths.adc_path == tmp_path / ".config" / "gcloud" / ADC_FILENAME

    def test_macos_uses_posix_layout(self, tmp_path):
        paths = PlatformPaths.for_platform("darwin", env={}, home=tmp_path)
        assert paths.config_dir == tmp_path / ".config" / "gcloud"

    def test_windows_appdata(self):
        paths = PlatformPaths.for_platform("win32", env={"APPDATA": "C:/Users/me/AppData/Roaming"})

        assert paths.config_dir == Path("C:/Users/me/AppData/Roaming") / "gcloud"
        assert paths.cli_name == "gcloud.cmd"

    def test_windows_without_appdata(self):
        paths = PlatformPaths.for_platform("win32", env={})
        assert paths.config_dir is None
        assert paths.adc_path is None

    def test_cloudsdk_config_override(self, tmp_path):
        override = tmp_path / "custom"
        for platform in ("linux", "win32"):
            paths = PlatformPaths.for_platform(platform, env={"CLOUDSDK_CONFIG": str(override)})
            assert paths.config_dir == override

    def test_unresolvable_home(self):
        with patch("gcp_auth.paths.resolver.Path.home", side_effect=RuntimeError("no home")):
            paths = PlatformPaths.for_platform("linux", env={})

        assert paths.config_dir is None
        assert paths.adc_path is None

    def test_default_paths(self):
        assert isinstance(default_paths(), PlatformPaths)


class TestFindCli:
    def test_found(self):
        paths = PlatformPaths(config_dir=None, cli_name="gcloud")
        with patch("gcp_auth.paths.resolver.shutil.which", return_value="/usr/bin/gcloud") as which:
            assert paths.find_cli() == "/usr/bin/gcloud"
        which.assert_called_once_with("gcloud")

    def test_not_found(self):
        paths = PlatformPaths(config_dir=None, cli_name="gcloud")
        with patch("gcp_auth.paths.resolver.shutil.which", return_value=None):
            assert paths.find_cli() is None
