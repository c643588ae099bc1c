"""gcloud CLI fallback provider."""

import asyncio
import contextlib
import logging
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

from gcp_auth.errors import CliInvocationError
from gcp_auth.oauth2.models import ScopeSet, Token
from gcp_auth.oauth2.providers.base import BaseTokenProvider
from gcp_auth.paths import PlatformPaths, default_paths

logger = logging.getLogger(__name__)

DEFAULT_CLI_TIMEOUT_SECONDS = 60.0
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600

PRINT_TOKEN_ARGS = ("auth", "print-access-token", "--quiet")
PROJECT_ID_ARGS = ("config", "get-value", "project")


async def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill a hung gcloud process and reap it."""
    with contextlib.suppress(ProcessLookupError):
        proc.kill()
    await proc.wait()


class GCloudAuthorizedUser(BaseTokenProvider):
    """
    Provider that shells out to ``gcloud auth print-access-token``.

    gcloud does not report the token's expiry, so tokens are assumed to
    live for ``token_lifetime_seconds`` from the moment they are printed.
    The cache's safety margin applies on top of that window.
    """

    kind = "gcloud"

    def __init__(
        self,
        executable: str | None = None,
        timeout_seconds: float = DEFAULT_CLI_TIMEOUT_SECONDS,
        token_lifetime_seconds: int = DEFAULT_TOKEN_LIFETIME_SECONDS,
        paths: PlatformPaths | None = None,
    ):
        """
        Initialize gcloud provider.

        Args:
            executable: Path to gcloud (default: looked up on PATH per call)
            timeout_seconds: Wall-clock limit for each invocation
            token_lifetime_seconds: Assumed lifetime of printed tokens
            paths: Platform paths used for the PATH lookup
        """
        self.executable = executable
        self.timeout_seconds = timeout_seconds
        self.token_lifetime_seconds = token_lifetime_seconds
        self._paths = paths or default_paths()
        self._project_id: str | None = None

    @classmethod
    def locate(cls, paths: PlatformPaths | None = None, **kwargs) -> "GCloudAuthorizedUser | None":
        """Build a provider for the gcloud found on PATH, or None if absent."""
        paths = paths or default_paths()
        executable = paths.find_cli()
        if not executable:
            return None
        return cls(executable=executable, paths=paths, **kwargs)

    def _resolve_executable(self) -> str:
        executable = self.executable or self._paths.find_cli()
        if not executable:
            raise CliInvocationError(
                f"{self._paths.cli_name} not found in PATH\n"
                "Hint: Install the Google Cloud SDK from https://cloud.google.com/sdk"
            )
        return executable

    async def _run(self, *args: str) -> str:
        """
        Run gcloud with fixed arguments and return stripped stdout.

        Raises:
            CliInvocationError: Not found, timed out or non-zero exit
        """
        executable = self._resolve_executable()
        command = " ".join(("gcloud", *args))

        try:
            proc = await asyncio.create_subprocess_exec(
                executable,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CliInvocationError(f"Failed to start {command}: {e}", cause=e) from e

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            logger.warning(
                "gcloud invocation timed out",
                extra={"command": command, "timeout_seconds": self.timeout_seconds},
            )
            await _kill(proc)
            raise CliInvocationError(
                f"{command} timed out after {self.timeout_seconds}s", cause=e
            ) from e
        except asyncio.CancelledError:
            await _kill(proc)
            raise

        stderr_text = stderr.decode("utf-8", errors="replace").strip()
        if proc.returncode != 0:
            logger.warning(
                "gcloud invocation failed",
                extra={"command": command, "returncode": proc.returncode},
            )
            lowered = stderr_text.lower()
            if "gcloud auth login" in lowered or "reauthentication" in lowered:
                raise CliInvocationError(
                    "gcloud session expired\n"
                    "Run: gcloud auth login\n"
                    f"Details: {stderr_text}",
                    returncode=proc.returncode,
                    stderr=stderr_text,
                )
            raise CliInvocationError(
                f"{command} failed with exit code {proc.returncode}\n"
                f"Error: {stderr_text}",
                returncode=proc.returncode,
                stderr=stderr_text,
            )

        return stdout.decode("utf-8", errors="replace").strip()

    async def token(self, scopes: ScopeSet | Iterable[str] = ()) -> Token:
        """
        Print an access token with gcloud.

        Scopes are recorded on the Token but not passed to gcloud, which
        issues tokens for the scopes of the logged-in account.

        Raises:
            CliInvocationError: gcloud missing, failed, timed out or printed nothing
        """
        access_token = await self._run(*PRINT_TOKEN_ARGS)
        if not access_token:
            raise CliInvocationError(
                "gcloud returned empty token\n"
                "Hint: Try running 'gcloud auth login' again",
                returncode=0,
            )

        token = Token(
            access_token=access_token,
            expires_at=datetime.now(UTC) + timedelta(seconds=self.token_lifetime_seconds),
            scopes=ScopeSet.of(scopes),
        )
        logger.debug(
            "Fetched token from gcloud",
            extra={"provider": self.kind, "expires_at": token.expires_at.isoformat()},
        )
        return token

    async def project_id(self) -> str | None:
        """
        Active gcloud project, or None when unset or gcloud fails.

        A found project is cached; an unset one is looked up again next call.
        """
        if self._project_id is not None:
            return self._project_id

        try:
            output = await self._run(*PROJECT_ID_ARGS)
        except CliInvocationError as e:
            logger.debug(
                "gcloud project lookup failed",
                extra={"error_message": e.message, "returncode": e.returncode},
            )
            return None

        self._project_id = output or None
        return self._project_id

    def __repr__(self) -> str:
        return f"GCloudAuthorizedUser(executable={self.executable!r})"


__all__ = ["GCloudAuthorizedUser"]
