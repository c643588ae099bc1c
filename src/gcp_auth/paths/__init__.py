"""
Path resolution module.

Provides platform-specific locations used during credential discovery:
- gcloud configuration directory (CLOUDSDK_CONFIG aware)
- application default credentials file
- gcloud executable name and PATH lookup
"""

from gcp_auth.paths.resolver import ADC_FILENAME, PlatformPaths, default_paths

__all__ = [
    "ADC_FILENAME",
    "PlatformPaths",
    "default_paths",
]
