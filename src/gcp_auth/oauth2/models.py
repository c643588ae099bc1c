"""OAuth2 data models and credential file parsing."""

import json
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Union

from gcp_auth.errors import CredentialsFileError, CredentialsFormatError, KeyParseError

DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
DEFAULT_EXPIRES_IN = 3600

SERVICE_ACCOUNT_TYPE = "service_account"
AUTHORIZED_USER_TYPE = "authorized_user"
IMPERSONATED_TYPE = "impersonated_service_account"
UNSUPPORTED_TYPES = ("external_account",)

_IMPERSONATION_TARGET_PATTERN = re.compile(r"/serviceAccounts/([^/:]+):generateAccessToken")


class ScopeSet:
    """
    Ordered, deduplicated set of OAuth scopes.

    Iteration preserves first-occurrence order, which is the order sent to
    token endpoints. Equality and hashing use ``cache_key`` so two scope
    sets with the same members share one cache entry regardless of order.
    """

    __slots__ = ("_scopes", "_cache_key")

    def __init__(self, scopes: Iterable[str] = ()):
        if isinstance(scopes, str):
            scopes = [scopes]

        ordered: dict[str, None] = {}
        for scope in scopes:
            if not isinstance(scope, str):
                raise ValueError(f"Scope must be a string, got {type(scope).__name__}")
            if not scope.strip():
                raise ValueError("Scope must not be empty")
            ordered.setdefault(scope, None)

        self._scopes = tuple(ordered)
        self._cache_key = " ".join(sorted(self._scopes))

    @classmethod
    def of(cls, scopes: Union["ScopeSet", Iterable[str], None]) -> "ScopeSet":
        """Return scopes as a ScopeSet, reusing an existing instance."""
        if isinstance(scopes, ScopeSet):
            return scopes
        return cls(scopes or ())

    @property
    def scopes(self) -> tuple[str, ...]:
        return self._scopes

    @property
    def cache_key(self) -> str:
        """Canonical form: sorted scopes joined by a single space."""
        return self._cache_key

    def space_delimited(self) -> str:
        return " ".join(self._scopes)

    def comma_delimited(self) -> str:
        return ",".join(self._scopes)

    def __iter__(self) -> Iterator[str]:
        return iter(self._scopes)

    def __len__(self) -> int:
        return len(self._scopes)

    def __contains__(self, scope: object) -> bool:
        return scope in self._scopes

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ScopeSet):
            return NotImplemented
        return self._cache_key == other._cache_key

    def __hash__(self) -> int:
        return hash(self._cache_key)

    def __repr__(self) -> str:
        return f"ScopeSet({list(self._scopes)!r})"


@dataclass(frozen=True, repr=False)
class Token:
    """
    OAuth2 access token with expiration tracking.

    Attributes:
        access_token: Opaque bearer credential
        expires_at: Timezone-aware UTC timestamp when the token expires
        scopes: Scopes the token was requested for
        token_type: Token type (typically "Bearer")
    """

    access_token: str
    expires_at: datetime
    scopes: ScopeSet = field(default_factory=ScopeSet)
    token_type: str = "Bearer"

    def __post_init__(self) -> None:
        if self.expires_at.tzinfo is None:
            raise ValueError("expires_at must be timezone-aware")

    @classmethod
    def from_response(
        cls,
        response: dict,
        scopes: ScopeSet | Iterable[str] | None = None,
        now: datetime | None = None,
    ) -> "Token":
        """
        Create token from an OAuth2 token response body.

        Args:
            response: Decoded JSON body with access_token and expires_in
            scopes: Scopes the token was requested for
            now: Reference time (default: current UTC time)

        Returns:
            Token instance

        Raises:
            ValueError: access_token missing or expires_in not a positive number
        """
        access_token = response.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("Token response has no access_token")

        expires_in = response.get("expires_in")
        if expires_in is None:
            expires_in = DEFAULT_EXPIRES_IN
        try:
            expires_in = int(expires_in)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Token response has invalid expires_in: {expires_in!r}") from e
        if expires_in <= 0:
            raise ValueError(f"Token response has non-positive expires_in: {expires_in}")

        now = now or datetime.now(UTC)
        return cls(
            access_token=access_token,
            expires_at=now + timedelta(seconds=expires_in),
            scopes=ScopeSet.of(scopes),
            token_type=response.get("token_type") or "Bearer",
        )

    def is_expired(self, margin_seconds: float = 0, now: datetime | None = None) -> bool:
        """
        Check if token is expired or within margin_seconds of expiry.

        Args:
            margin_seconds: Safety window before actual expiry
            now: Reference time (default: current UTC time)

        Returns:
            True if token should be refreshed
        """
        now = now or datetime.now(UTC)
        return now >= self.expires_at - timedelta(seconds=margin_seconds)

    @property
    def remaining_lifetime(self) -> timedelta:
        """Get remaining time before token expires."""
        return self.expires_at - datetime.now(UTC)

    @property
    def authorization_header(self) -> str:
        """Value for an HTTP Authorization header."""
        return f"{self.token_type} {self.access_token}"

    def as_str(self) -> str:
        return self.access_token

    def __repr__(self) -> str:
        return (
            f"Token(access_token='****', expires_at={self.expires_at.isoformat()}, "
            f"scopes={self.scopes!r}, token_type={self.token_type!r})"
        )


def _require_str(info: dict, name: str, error_cls: type, source: str) -> str:
    value = info.get(name)
    if not isinstance(value, str) or not value:
        raise error_cls(f"Credentials from {source} missing required field '{name}'")
    return value


def _optional_str(info: dict, name: str) -> str | None:
    value = info.get(name)
    return value if isinstance(value, str) and value else None


@dataclass(frozen=True)
class ServiceAccountKey:
    """
    Service account key material as issued by IAM.

    Attributes:
        client_email: Service account email (JWT issuer)
        private_key: PEM-encoded RSA private key
        token_uri: Token endpoint
        project_id: Project owning the service account
        private_key_id: Key identifier, sent as JWT ``kid``
        audience: JWT ``aud`` override; token_uri when unset
        quota_project_id: Project billed for quota
    """

    client_email: str
    private_key: str = field(repr=False)
    token_uri: str
    project_id: str | None = None
    private_key_id: str | None = None
    audience: str | None = None
    quota_project_id: str | None = None

    @classmethod
    def from_dict(cls, info: dict, source: str = "service account key") -> "ServiceAccountKey":
        if not isinstance(info, dict):
            raise KeyParseError(f"Service account key from {source} is not a JSON object")

        key_type = info.get("type")
        if key_type is not None and key_type != SERVICE_ACCOUNT_TYPE:
            raise KeyParseError(
                f"Credentials from {source} have type '{key_type}', expected '{SERVICE_ACCOUNT_TYPE}'"
            )

        return cls(
            client_email=_require_str(info, "client_email", KeyParseError, source),
            private_key=_require_str(info, "private_key", KeyParseError, source),
            token_uri=_require_str(info, "token_uri", KeyParseError, source),
            project_id=_optional_str(info, "project_id"),
            private_key_id=_optional_str(info, "private_key_id"),
            audience=_optional_str(info, "audience"),
            quota_project_id=_optional_str(info, "quota_project_id"),
        )

    @classmethod
    def from_json(cls, text: str, source: str = "inline JSON") -> "ServiceAccountKey":
        try:
            info = json.loads(text)
        except (TypeError, ValueError) as e:
            raise KeyParseError(f"Service account key from {source} is not valid JSON", cause=e) from e
        return cls.from_dict(info, source)

    @classmethod
    def from_file(cls, path: str | Path) -> "ServiceAccountKey":
        return cls.from_dict(read_credentials_file(path), str(path))


@dataclass(frozen=True)
class UserCredentials:
    """
    Application default credentials of type ``authorized_user``.

    Attributes:
        client_id: OAuth client ID
        client_secret: OAuth client secret
        refresh_token: Long-lived refresh token
        quota_project_id: Project billed for quota
        token_uri: Token endpoint for the refresh grant
    """

    client_id: str
    client_secret: str = field(repr=False)
    refresh_token: str = field(repr=False)
    quota_project_id: str | None = None
    token_uri: str = DEFAULT_TOKEN_URI

    @classmethod
    def from_dict(cls, info: dict, source: str = "user credentials") -> "UserCredentials":
        if not isinstance(info, dict):
            raise CredentialsFileError(f"User credentials from {source} are not a JSON object")

        cred_type = info.get("type")
        if cred_type is not None and cred_type != AUTHORIZED_USER_TYPE:
            raise CredentialsFileError(
                f"Credentials from {source} have type '{cred_type}', expected '{AUTHORIZED_USER_TYPE}'"
            )

        return cls(
            client_id=_require_str(info, "client_id", CredentialsFileError, source),
            client_secret=_require_str(info, "client_secret", CredentialsFileError, source),
            refresh_token=_require_str(info, "refresh_token", CredentialsFileError, source),
            quota_project_id=_optional_str(info, "quota_project_id"),
            token_uri=_optional_str(info, "token_uri") or DEFAULT_TOKEN_URI,
        )

    @classmethod
    def from_file(cls, path: str | Path) -> "UserCredentials":
        return cls.from_dict(read_credentials_file(path), str(path))

@dataclass(frozen=True)
class ImpersonatedCredentials:
    """
    Application default credentials of type ``impersonated_service_account``,
    written by ``gcloud auth application-default login
    --impersonate-service-account``.

    Attributes:
        service_account_impersonation_url: IAM Credentials generateAccessToken URL
            for the target service account
        source_credentials: Credentials that authorize the impersonation
        delegates: Service accounts in the delegation chain, in order
        quota_project_id: Project billed for quota
    """

    service_account_impersonation_url: str
    source_credentials: ServiceAccountKey | UserCredentials = field(repr=False)
    delegates: tuple[str, ...] = ()
    quota_project_id: str | None = None

    @property
    def target_principal(self) -> str | None:
        """Email of the impersonated service account, taken from the URL."""
        match = _IMPERSONATION_TARGET_PATTERN.search(self.service_account_impersonation_url)
        return match.group(1) if match else None

    @classmethod
    def from_dict(
        cls, info: dict, source: str = "impersonated credentials"
    ) -> "ImpersonatedCredentials":
        if not isinstance(info, dict):
            raise CredentialsFileError(f"Impersonated credentials from {source} are not a JSON object")

        cred_type = info.get("type")
        if cred_type is not None and cred_type != IMPERSONATED_TYPE:
            raise CredentialsFileError(
                f"Credentials from {source} have type '{cred_type}', expected '{IMPERSONATED_TYPE}'"
            )

        url = _require_str(info, "service_account_impersonation_url", CredentialsFileError, source)

        nested = info.get("source_credentials")
        if not isinstance(nested, dict):
            raise CredentialsFileError(
                f"Credentials from {source} missing required field 'source_credentials'"
            )
        if nested.get("type") == IMPERSONATED_TYPE or "service_account_impersonation_url" in nested:
            raise CredentialsFormatError(
                f"Credentials from {source} nest impersonated credentials; "
                "nested impersonation is not supported"
            )

        delegates = info.get("delegates") or []
        if not isinstance(delegates, list) or not all(
            isinstance(d, str) and d for d in delegates
        ):
            raise CredentialsFileError(
                f"Credentials from {source} have invalid 'delegates', expected a list of emails"
            )

        return cls(
            service_account_impersonation_url=url,
            source_credentials=credentials_from_info(nested, f"{source} source_credentials"),
            delegates=tuple(delegates),
            quota_project_id=_optional_str(info, "quota_project_id"),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> "ImpersonatedCredentials":
        return cls.from_dict(read_credentials_file(path), str(path))



# =============================================================================
# Credential file parsing
# =============================================================================


def parse_credentials_json(text: str, source: str) -> dict[str, Any]:
    """
    Decode credentials JSON into a dict.

    Raises:
        CredentialsFileError: Not valid JSON or not a JSON object
    """
    try:
        info = json.loads(text)
    except (TypeError, ValueError) as e:
        raise CredentialsFileError(f"Credentials from {source} are not valid JSON", cause=e) from e
    if not isinstance(info, dict):
        raise CredentialsFileError(f"Credentials from {source} are not a JSON object")
    return info


def read_credentials_file(path: str | Path) -> dict[str, Any]:
    """
    Read and decode a credentials JSON file.

    Raises:
        CredentialsFileError: File missing, unreadable or not a JSON object
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CredentialsFileError(f"Cannot read credentials file {path}: {e}", cause=e) from e
    return parse_credentials_json(text, str(path))


def credentials_from_info(
    info: dict[str, Any], source: str
) -> ServiceAccountKey | UserCredentials | ImpersonatedCredentials:
    """
    Build typed credentials from decoded JSON, dispatching on ``type``.

    Files without a ``type`` field are classified by their contents.

    Raises:
        KeyParseError: Malformed service account key
        CredentialsFileError: Malformed authorized_user or impersonated credentials
        CredentialsFormatError: Unsupported or unrecognizable credential type,
            or impersonated credentials nested inside impersonated credentials
    """
    cred_type = info.get("type")

    if cred_type is None:
        if "service_account_impersonation_url" in info:
            cred_type = IMPERSONATED_TYPE
        elif "private_key" in info or "client_email" in info:
            cred_type = SERVICE_ACCOUNT_TYPE
        elif "refresh_token" in info:
            cred_type = AUTHORIZED_USER_TYPE

    if cred_type == SERVICE_ACCOUNT_TYPE:
        return ServiceAccountKey.from_dict(info, source)
    if cred_type == AUTHORIZED_USER_TYPE:
        return UserCredentials.from_dict(info, source)
    if cred_type == IMPERSONATED_TYPE:
        return ImpersonatedCredentials.from_dict(info, source)
    if cred_type in UNSUPPORTED_TYPES:
        raise CredentialsFormatError(
            f"Credentials from {source} use unsupported credential type '{cred_type}'"
        )
    raise CredentialsFormatError(
        f"Credentials from {source} have unrecognized credential type '{cred_type}'"
    )


__all__ = [
    "DEFAULT_TOKEN_URI",
    "ScopeSet",
    "Token",
    "ServiceAccountKey",
    "UserCredentials",
    "ImpersonatedCredentials",
    "credentials_from_info",
    "parse_credentials_json",
    "read_credentials_file",
]
