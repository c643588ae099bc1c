"""Authentication engine configuration.

Settings come from three layers, later layers winning:
    1. Dataclass defaults
    2. Optional YAML file (``gcp_auth:`` section)
    3. Environment variables

Environment variables ARE supported using ${VAR_NAME} and ${VAR_NAME:-default}
syntax inside YAML files.

Configuration structure:
    gcp_auth:
      credentials_path: ${GOOGLE_APPLICATION_CREDENTIALS:-}
      safety_margin_seconds: 300
      http_timeout_seconds: 30
      metadata_probe_timeout_seconds: 3
      cli_timeout_seconds: 60
      cli_token_lifetime_seconds: 3600
      metadata_host: metadata.google.internal
      subject: admin@example.com
      enable_metadata: true
      enable_gcloud: true
"""

import logging
import os
import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

CREDENTIALS_ENV_VAR = "GOOGLE_APPLICATION_CREDENTIALS"
METADATA_HOST_ENV_VAR = "GCE_METADATA_HOST"
ENV_PREFIX = "GCP_AUTH_"

DEFAULT_METADATA_HOST = "metadata.google.internal"

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _to_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got '{value}'")


@dataclass
class AuthConfig:
    """Settings for provider resolution, transport timeouts and caching.

    Attributes:
        credentials_path: Explicit credentials file (service account key or
            authorized_user JSON). Takes priority over every other source.
        credentials_json: Inline credentials JSON, checked before credentials_path.
        safety_margin_seconds: Tokens expiring within this window are refreshed.
        http_timeout_seconds: Total timeout for token endpoint and metadata calls.
        metadata_probe_timeout_seconds: Timeout for the metadata server probe
            during resolution. Kept short so non-GCE hosts fall through quickly.
        cli_timeout_seconds: Wall-clock limit for each gcloud invocation.
        cli_token_lifetime_seconds: Assumed lifetime of a gcloud-printed token.
        metadata_host: Metadata server host (GCE_METADATA_HOST).
        subject: User to impersonate via domain-wide delegation (JWT ``sub``).
        enable_metadata: Probe the metadata server during resolution.
        enable_gcloud: Fall back to the gcloud CLI during resolution.
    """

    credentials_path: Optional[str] = None
    credentials_json: Optional[str] = None
    safety_margin_seconds: float = 300.0
    http_timeout_seconds: float = 30.0
    metadata_probe_timeout_seconds: float = 3.0
    cli_timeout_seconds: float = 60.0
    cli_token_lifetime_seconds: int = 3600
    metadata_host: str = DEFAULT_METADATA_HOST
    subject: Optional[str] = None
    enable_metadata: bool = True
    enable_gcloud: bool = True

    def __post_init__(self) -> None:
        # Empty strings from env expansion mean "not set"
        self.credentials_path = self.credentials_path or None
        self.credentials_json = self.credentials_json or None
        self.subject = self.subject or None
        self.metadata_host = (self.metadata_host or DEFAULT_METADATA_HOST).strip()

        self.safety_margin_seconds = float(self.safety_margin_seconds)
        self.http_timeout_seconds = float(self.http_timeout_seconds)
        self.metadata_probe_timeout_seconds = float(self.metadata_probe_timeout_seconds)
        self.cli_timeout_seconds = float(self.cli_timeout_seconds)
        self.cli_token_lifetime_seconds = int(self.cli_token_lifetime_seconds)
        self.enable_metadata = _to_bool(self.enable_metadata, "enable_metadata")
        self.enable_gcloud = _to_bool(self.enable_gcloud, "enable_gcloud")

        self.validate()

    def validate(self) -> None:
        """Validate numeric ranges."""
        if self.safety_margin_seconds < 0:
            raise ValueError(
                f"safety_margin_seconds must be >= 0, got {self.safety_margin_seconds}"
            )
        for name in (
            "http_timeout_seconds",
            "metadata_probe_timeout_seconds",
            "cli_timeout_seconds",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be > 0, got {value}")
        if self.cli_token_lifetime_seconds <= 0:
            raise ValueError(
                f"cli_token_lifetime_seconds must be > 0, got {self.cli_token_lifetime_seconds}"
            )
        if not self.metadata_host:
            raise ValueError("metadata_host must not be empty")

    @classmethod
    def _env_overrides(cls, env: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        env = os.environ if env is None else env
        overrides: Dict[str, Any] = {}
        if env.get(CREDENTIALS_ENV_VAR):
            overrides["credentials_path"] = env[CREDENTIALS_ENV_VAR]
        if env.get(METADATA_HOST_ENV_VAR):
            overrides["metadata_host"] = env[METADATA_HOST_ENV_VAR]

        for f in fields(cls):
            env_name = f"{ENV_PREFIX}{f.name.upper()}"
            value = env.get(env_name)
            if value is not None:
                overrides[f.name] = value
        return overrides

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "AuthConfig":
        """Build configuration from defaults plus environment variables.

        Reads GOOGLE_APPLICATION_CREDENTIALS, GCE_METADATA_HOST and any
        GCP_AUTH_<FIELD> variable (e.g. GCP_AUTH_SAFETY_MARGIN_SECONDS)
        from env, or from os.environ when env is None.
        """
        return cls(**cls._env_overrides(env))

    @classmethod
    def load(cls, path: Path) -> "AuthConfig":
        """Load configuration from a YAML file, then apply environment overrides."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        logger.info("Loading auth configuration", extra={"credentials_path": str(path)})
        yaml_data = _expand_env_vars(load_yaml(path))

        if "gcp_auth" not in yaml_data:
            raise ValueError(f"Invalid config file: missing 'gcp_auth:' section in {path}")

        section = yaml_data["gcp_auth"] or {}
        known = {f.name for f in fields(cls)}
        unknown = set(section) - known
        if unknown:
            raise ValueError(f"Unknown gcp_auth settings: {sorted(unknown)}")

        values = {**section, **cls._env_overrides()}
        return cls(**values)
