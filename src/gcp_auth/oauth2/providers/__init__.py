"""Credential-source providers."""

from gcp_auth.oauth2.providers.authorized_user import ConfigDefaultCredentials
from gcp_auth.oauth2.providers.base import BaseTokenProvider
from gcp_auth.oauth2.providers.gcloud import GCloudAuthorizedUser
from gcp_auth.oauth2.providers.impersonated import ImpersonatedServiceAccount
from gcp_auth.oauth2.providers.metadata import MetadataServiceAccount
from gcp_auth.oauth2.providers.service_account import CustomServiceAccount

__all__ = [
    "BaseTokenProvider",
    "CustomServiceAccount",
    "ConfigDefaultCredentials",
    "MetadataServiceAccount",
    "GCloudAuthorizedUser",
    "ImpersonatedServiceAccount",
]
