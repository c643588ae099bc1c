"""
JWT assertion construction and RS256 signing for service accounts.

Service accounts authenticate with a self-signed JWT exchanged at the token
endpoint using the jwt-bearer grant:

    header  {"alg": "RS256", "typ": "JWT", "kid": <private_key_id>}
    claims  {"iss", "scope", "aud", "iat", "exp", "sub"?}
    assertion = b64url(header) "." b64url(claims) "." b64url(signature)

Segments are base64url-encoded without padding and the signature is
RSASSA-PKCS1-v1_5 over SHA-256 of ``header.claims``.
"""

import base64
import json
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from gcp_auth.errors import KeyParseError, SigningError
from gcp_auth.oauth2.models import ServiceAccountKey

GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"
JWT_LIFETIME_SECONDS = 3600


def b64url_encode(data: bytes) -> str:
    """Base64url-encode without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(data: str) -> bytes:
    """Decode base64url with or without padding."""
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def load_private_key(pem: str) -> rsa.RSAPrivateKey:
    """
    Parse a PEM-encoded RSA private key.

    Accepts PKCS#8 ("BEGIN PRIVATE KEY") and PKCS#1 ("BEGIN RSA PRIVATE KEY")
    encodings, as found in IAM key files.

    Raises:
        KeyParseError: Not a PEM key, encrypted, or not RSA
    """
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyParseError("Service account private key is not a valid PEM RSA key", cause=e) from e

    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyParseError(
            f"Service account private key must be RSA, got {type(key).__name__}"
        )
    return key


class JWTSigner:
    """RS256 signer bound to one parsed private key."""

    def __init__(self, private_key_pem: str):
        self._key = load_private_key(private_key_pem)

    @property
    def public_key(self) -> rsa.RSAPublicKey:
        return self._key.public_key()

    def sign(self, message: bytes) -> bytes:
        try:
            return self._key.sign(message, padding.PKCS1v15(), hashes.SHA256())
        except (ValueError, TypeError) as e:
            raise SigningError("Failed to sign JWT assertion", cause=e) from e


def build_claims(
    key: ServiceAccountKey,
    scopes: Iterable[str],
    subject: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Build the JWT claim set for a token request.

    Args:
        key: Service account key (issuer and audience)
        scopes: Requested scopes, space-joined in order
        subject: User to impersonate with domain-wide delegation
        now: Issue time (default: current UTC time)

    Returns:
        Claims dict ready for encoding
    """
    iat = int((now or datetime.now(UTC)).timestamp())
    claims: dict[str, Any] = {
        "iss": key.client_email,
        "scope": " ".join(scopes),
        "aud": key.audience or key.token_uri,
        "iat": iat,
        "exp": iat + JWT_LIFETIME_SECONDS,
    }
    if subject:
        claims["sub"] = subject
    return claims


def encode_assertion(
    claims: dict[str, Any],
    signer: JWTSigner,
    key_id: str | None = None,
) -> str:
    """
    Encode and sign a JWT assertion.

    Raises:
        SigningError: Signing failed
    """
    header: dict[str, str] = {"alg": "RS256", "typ": "JWT"}
    if key_id:
        header["kid"] = key_id

    signing_input = ".".join(
        b64url_encode(json.dumps(segment, separators=(",", ":")).encode("utf-8"))
        for segment in (header, claims)
    )
    signature = signer.sign(signing_input.encode("ascii"))
    return f"{signing_input}.{b64url_encode(signature)}"


__all__ = [
    "GRANT_TYPE",
    "JWT_LIFETIME_SECONDS",
    "JWTSigner",
    "b64url_decode",
    "b64url_encode",
    "build_claims",
    "encode_assertion",
    "load_private_key",
]
