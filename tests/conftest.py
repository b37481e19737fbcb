"""Pytest configuration and fixtures."""

import io
import os

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

WEBHOOK_SECRET = "test-webhook-secret"


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["GITHUB_TOKEN"] = "test-github-token"
    os.environ["GITHUB_WEBHOOK_SECRET"] = WEBHOOK_SECRET
    os.environ["AZURE_TENANT"] = "test-tenant"
    os.environ["AZURE_CLIENT_ID"] = "test-client-id"
    os.environ["AZURE_CLIENT_SECRET"] = "test-client-secret"
    os.environ["DOCS_BOT_ENV"] = "test"

    from docs_bot.core.config import get_settings

    get_settings.cache_clear()


def make_png(width: int = 40, height: int = 20, color: str = "red") -> bytes:
    """Small PNG image bytes."""
    from PIL import Image

    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def png_factory():
    return make_png


@pytest.fixture(scope="session")
def rsa_key() -> tuple[str, object]:
    """PEM private key and matching public key for GitHub App auth."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    return pem, key.public_key()
