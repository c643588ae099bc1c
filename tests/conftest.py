"""
pytest configuration for gcp_auth tests.

Adds src directory to Python path for imports and provides shared fixtures.
"""

import json
import sys
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from gcp_auth.logging import clear_log_context  # noqa: E402


@pytest.fixture(scope="session")
def rsa_private_key():
    """RSA key generated once per test session."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key):
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def service_account_info(private_key_pem):
    return {
        "type": "service_account",
        "project_id": "test-project",
        "private_key_id": "key-123",
        "private_key": private_key_pem,
        "client_email": "robot@test-project.iam.gserviceaccount.com",
        "client_id": "1234567890",
        "token_uri": "https://oauth2.googleapis.com/token",
    }


@pytest.fixture
def authorized_user_info():
    return {
        "type": "authorized_user",
        "client_id": "client-id.apps.googleusercontent.com",
        "client_secret": "test-client-secret",
        "refresh_token": "test-refresh-token",
        "quota_project_id": "quota-project",
    }


@pytest.fixture
def write_json(tmp_path):
    """Write a dict as JSON under tmp_path and return the path."""

    def _write(name, data):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(data if isinstance(data, str) else json.dumps(data))
        return path

    return _write


@pytest.fixture(autouse=True)
def _reset_log_context():
    yield
    clear_log_context()
