"""
Platform-specific path resolution for gcloud state.

The gcloud SDK keeps its configuration in a per-user directory:
    POSIX:   ~/.config/gcloud
    Windows: %APPDATA%\\gcloud

CLOUDSDK_CONFIG overrides the directory on every platform. Application
default credentials live in that directory as
``application_default_credentials.json``.
"""

import os
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

ADC_FILENAME = "application_default_credentials.json"
CLOUDSDK_CONFIG_ENV_VAR = "CLOUDSDK_CONFIG"


@dataclass(frozen=True)
class PlatformPaths:
    """
    gcloud locations for one platform.

    Attributes:
        config_dir: gcloud configuration directory, or None when it cannot be
            determined (no HOME / APPDATA)
        cli_name: Executable name searched for on PATH
    """

    config_dir: Optional[Path]
    cli_name: str

    @classmethod
    def for_platform(
        cls,
        platform: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        home: Optional[Path] = None,
    ) -> "PlatformPaths":
        """
        Select paths for the given platform.

        Args:
            platform: sys.platform value (default: current platform)
            env: Environment mapping (default: os.environ)
            home: Home directory (default: Path.home() when resolvable)

        Returns:
            PlatformPaths for the platform
        """
        platform = platform or sys.platform
        env = os.environ if env is None else env
        is_windows = platform.startswith("win")
        cli_name = "gcloud.cmd" if is_windows else "gcloud"

        override = env.get(CLOUDSDK_CONFIG_ENV_VAR)
        if override:
            return cls(config_dir=Path(override), cli_name=cli_name)

        if is_windows:
            appdata = env.get("APPDATA")
            config_dir = Path(appdata) / "gcloud" if appdata else None
            return cls(config_dir=config_dir, cli_name=cli_name)

        if home is None:
            try:
                home = Path.home()
            except RuntimeError:
                home = None
        config_dir = home / ".config" / "gcloud" if home else None
        return cls(config_dir=config_dir, cli_name=cli_name)

    @property
    def adc_path(self) -> Optional[Path]:
        """Path of the application default credentials file, if determinable."""
        if self.config_dir is None:
            return None
        return self.config_dir / ADC_FILENAME

    def find_cli(self) -> Optional[str]:
        """Absolute path of the gcloud executable on PATH, or None."""
        return shutil.which(self.cli_name)


def default_paths() -> PlatformPaths:
    """Paths for the current process environment."""
    return PlatformPaths.for_platform()
