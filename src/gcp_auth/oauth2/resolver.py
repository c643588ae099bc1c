"""
Credential source discovery.

Sources are probed in a fixed priority order and the first usable one wins:

    1. Explicit credentials: AuthConfig.credentials_json, or the file named by
       AuthConfig.credentials_path / GOOGLE_APPLICATION_CREDENTIALS
       (service_account key, authorized_user or impersonated_service_account
       credentials)
    2. Application default credentials file in the gcloud config directory
    3. Instance metadata server
    4. gcloud CLI on PATH

"Usable" means present and structurally parseable. Whether the credentials
are accepted is only known after the first token exchange.

A source that is present but malformed stops resolution with its
CredentialsFormatError; falling through would silently pick a different
identity than the one the operator configured.
"""

import logging
import os
from collections.abc import Mapping

from gcp_auth.config import (
    CREDENTIALS_ENV_VAR,
    DEFAULT_METADATA_HOST,
    METADATA_HOST_ENV_VAR,
    AuthConfig,
)
from gcp_auth.errors import CredentialsFormatError, ResolutionError
from gcp_auth.logging import log_exception
from gcp_auth.oauth2.http import HttpTransport
from gcp_auth.oauth2.models import (
    ImpersonatedCredentials,
    ServiceAccountKey,
    credentials_from_info,
    parse_credentials_json,
    read_credentials_file,
)
from gcp_auth.oauth2.providers import (
    BaseTokenProvider,
    ConfigDefaultCredentials,
    CustomServiceAccount,
    GCloudAuthorizedUser,
    ImpersonatedServiceAccount,
    MetadataServiceAccount,
)
from gcp_auth.paths import PlatformPaths

logger = logging.getLogger(__name__)

SOURCE_EXPLICIT = "explicit_credentials"
SOURCE_ADC = "application_default_credentials"
SOURCE_METADATA = "metadata_server"
SOURCE_GCLOUD = "gcloud"


class ProviderResolver:
    """
    Selects one credential source for the process environment.

    Resolution runs once; later calls to ``resolve()`` return the same
    provider. Build a new resolver to re-run discovery.
    """

    def __init__(
        self,
        config: AuthConfig | None = None,
        paths: PlatformPaths | None = None,
        env: Mapping[str, str] | None = None,
        transport: HttpTransport | None = None,
    ):
        """
        Args:
            config: Engine configuration (default: AuthConfig.from_env(env))
            paths: Platform paths (default: derived from env)
            env: Environment mapping (default: os.environ)
            transport: HTTP transport handed to the selected provider
        """
        self.env = os.environ if env is None else env
        self.config = config or AuthConfig.from_env(self.env)
        self.paths = paths or PlatformPaths.for_platform(env=self.env)
        self._transport = transport or HttpTransport(
            timeout_seconds=self.config.http_timeout_seconds
        )
        self.attempts: list[tuple[str, str]] = []
        self._provider: BaseTokenProvider | None = None

    @property
    def metadata_host(self) -> str:
        if self.config.metadata_host != DEFAULT_METADATA_HOST:
            return self.config.metadata_host
        return self.env.get(METADATA_HOST_ENV_VAR) or DEFAULT_METADATA_HOST

    async def resolve(self) -> BaseTokenProvider:
        """
        Select the credential source.

        Returns:
            Provider for the first usable source

        Raises:
            CredentialsFormatError: A present source is malformed (terminal)
            ResolutionError: No source is usable (reason="no_credentials")
        """
        if self._provider is not None:
            return self._provider

        provider = None
        try:
            provider = (
                self._from_explicit()
                or self._from_adc_file()
                or await self._from_metadata_server()
                or self._from_gcloud()
            )
        except CredentialsFormatError as e:
            log_exception(
                logger,
                e,
                "Credential source is malformed",
                include_traceback=False,
                attempts=self.attempts,
            )
            raise
        finally:
            if getattr(provider, "_transport", None) is not self._transport:
                # Probe session is not needed by the selected provider
                await self._transport.close()

        if provider is None:
            summary = "; ".join(f"{source}: {outcome}" for source, outcome in self.attempts)
            logger.error(
                "No credential source available",
                extra={"attempts": self.attempts},
            )
            raise ResolutionError(
                f"No usable Google Cloud credentials found ({summary})\n"
                "Hint: Set GOOGLE_APPLICATION_CREDENTIALS, run "
                "'gcloud auth application-default login', or run on Google Cloud",
                reason=ResolutionError.NO_CREDENTIALS,
                attempts=list(self.attempts),
            )

        logger.info(
            f"Using credential source: {provider.kind}",
            extra={"provider": provider.kind, "attempts": self.attempts},
        )
        self._provider = provider
        return provider

    def _provider_from_info(self, info: dict, source: str) -> BaseTokenProvider:
        credentials = credentials_from_info(info, source)
        if isinstance(credentials, ImpersonatedCredentials):
            return ImpersonatedServiceAccount.from_credentials(
                credentials, transport=self._transport, source=source
            )
        if isinstance(credentials, ServiceAccountKey):
            return CustomServiceAccount(
                credentials, subject=self.config.subject, transport=self._transport
            )
        return ConfigDefaultCredentials(credentials, transport=self._transport, source=source)

    def _from_explicit(self) -> BaseTokenProvider | None:
        if self.config.credentials_json:
            self.attempts.append((SOURCE_EXPLICIT, "inline JSON"))
            info = parse_credentials_json(self.config.credentials_json, "inline credentials JSON")
            return self._provider_from_info(info, "inline credentials JSON")

        path = self.config.credentials_path or self.env.get(CREDENTIALS_ENV_VAR)
        if not path:
            self.attempts.append((SOURCE_EXPLICIT, "not configured"))
            return None

        self.attempts.append((SOURCE_EXPLICIT, f"file {path}"))
        logger.debug(
            "Reading explicit credentials file",
            extra={"credentials_path": path, "source": SOURCE_EXPLICIT},
        )
        return self._provider_from_info(read_credentials_file(path), str(path))

    def _from_adc_file(self) -> BaseTokenProvider | None:
        adc_path = self.paths.adc_path
        if adc_path is None:
            self.attempts.append((SOURCE_ADC, "config directory unknown"))
            return None
        if not adc_path.is_file():
            self.attempts.append((SOURCE_ADC, f"not found at {adc_path}"))
            return None

        self.attempts.append((SOURCE_ADC, f"file {adc_path}"))
        logger.debug(
            "Reading application default credentials",
            extra={"credentials_path": str(adc_path), "source": SOURCE_ADC},
        )
        return self._provider_from_info(read_credentials_file(adc_path), str(adc_path))

    async def _from_metadata_server(self) -> BaseTokenProvider | None:
        if not self.config.enable_metadata:
            self.attempts.append((SOURCE_METADATA, "disabled"))
            return None

        provider = MetadataServiceAccount(host=self.metadata_host, transport=self._transport)
        if await provider.probe(self.config.metadata_probe_timeout_seconds):
            self.attempts.append((SOURCE_METADATA, f"available at {self.metadata_host}"))
            return provider

        self.attempts.append((SOURCE_METADATA, f"unreachable at {self.metadata_host}"))
        return None

    def _from_gcloud(self) -> BaseTokenProvider | None:
        if not self.config.enable_gcloud:
            self.attempts.append((SOURCE_GCLOUD, "disabled"))
            return None

        provider = GCloudAuthorizedUser.locate(
            self.paths,
            timeout_seconds=self.config.cli_timeout_seconds,
            token_lifetime_seconds=self.config.cli_token_lifetime_seconds,
        )
        if provider is None:
            self.attempts.append((SOURCE_GCLOUD, f"{self.paths.cli_name} not found in PATH"))
            return None

        self.attempts.append((SOURCE_GCLOUD, f"found at {provider.executable}"))
        return provider


async def resolve_provider(
    config: AuthConfig | None = None,
    paths: PlatformPaths | None = None,
    env: Mapping[str, str] | None = None,
) -> BaseTokenProvider:
    """
    Resolve the credential source for this environment.

    Raises:
        ResolutionError: reason="no_credentials" when nothing is usable,
            reason="malformed_credentials" when a present source is malformed
            (the CredentialsFormatError is chained as the cause)
    """
    resolver = ProviderResolver(config, paths=paths, env=env)
    try:
        return await resolver.resolve()
    except CredentialsFormatError as e:
        raise ResolutionError(
            f"Malformed credentials: {e.message}",
            reason=ResolutionError.MALFORMED_CREDENTIALS,
            attempts=list(resolver.attempts),
            cause=e,
        ) from e


__all__ = ["ProviderResolver", "resolve_provider"]
