"""
OAuth2 token acquisition for Google Cloud.

Provides credential-source providers, automatic source resolution and a
per-scope token cache with coordinated refresh.

Usage:
    from gcp_auth.oauth2 import AuthenticationManager

    manager = await AuthenticationManager.new()
    token = await manager.token(["https://www.googleapis.com/auth/cloud-platform"])
"""

from gcp_auth.oauth2.cache import EntryState, RefreshCoordinator, TokenCache
from gcp_auth.oauth2.http import HttpTransport
from gcp_auth.oauth2.manager import AuthenticationManager
from gcp_auth.oauth2.models import (
    ImpersonatedCredentials,
    ScopeSet,
    ServiceAccountKey,
    Token,
    UserCredentials,
)
from gcp_auth.oauth2.providers import (
    BaseTokenProvider,
    ConfigDefaultCredentials,
    CustomServiceAccount,
    GCloudAuthorizedUser,
    ImpersonatedServiceAccount,
    MetadataServiceAccount,
)
from gcp_auth.oauth2.resolver import ProviderResolver, resolve_provider

__all__ = [
    # Facade
    "AuthenticationManager",
    "resolve_provider",
    "ProviderResolver",
    # Models
    "ScopeSet",
    "Token",
    "ServiceAccountKey",
    "UserCredentials",
    "ImpersonatedCredentials",
    # Cache
    "TokenCache",
    "RefreshCoordinator",
    "EntryState",
    # Transport
    "HttpTransport",
    # Providers
    "BaseTokenProvider",
    "CustomServiceAccount",
    "ConfigDefaultCredentials",
    "MetadataServiceAccount",
    "GCloudAuthorizedUser",
    "ImpersonatedServiceAccount",
]
