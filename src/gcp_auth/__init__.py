"""
gcp_auth - Google Cloud credential resolution and token caching.

Selects a credential source from the runtime environment (explicit key
file, application default credentials, metadata server, gcloud CLI) and
hands out cached OAuth2 access tokens.
"""

from gcp_auth.config import AuthConfig
from gcp_auth.errors import (
    AuthEngineError,
    CliInvocationError,
    CredentialsFileError,
    CredentialsFormatError,
    ErrorCategory,
    ExpiredTokenError,
    KeyParseError,
    MetadataQueryError,
    MetadataUnavailableError,
    ResolutionError,
    SigningError,
    TokenEndpointUnavailableError,
    TokenExchangeError,
)
from gcp_auth.oauth2 import (
    AuthenticationManager,
    ConfigDefaultCredentials,
    CustomServiceAccount,
    GCloudAuthorizedUser,
    ImpersonatedServiceAccount,
    MetadataServiceAccount,
    ScopeSet,
    Token,
    resolve_provider,
)
from gcp_auth.types import TokenSource

__version__ = "0.1.0"

__all__ = [
    "AuthConfig",
    "AuthenticationManager",
    "resolve_provider",
    "TokenSource",
    "ScopeSet",
    "Token",
    "CustomServiceAccount",
    "ConfigDefaultCredentials",
    "MetadataServiceAccount",
    "GCloudAuthorizedUser",
    "ImpersonatedServiceAccount",
    "ErrorCategory",
    "AuthEngineError",
    "ResolutionError",
    "CredentialsFormatError",
    "KeyParseError",
    "CredentialsFileError",
    "SigningError",
    "TokenExchangeError",
    "TokenEndpointUnavailableError",
    "ExpiredTokenError",
    "MetadataUnavailableError",
    "MetadataQueryError",
    "CliInvocationError",
]
