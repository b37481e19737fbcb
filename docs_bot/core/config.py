"""Configuration management for Docs Bot."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")
    CONFIG_DB_SCHEMA: str = Field(
        default="config", description="Postgres schema holding repository config tables"
    )

    # Environment
    DOCS_BOT_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # GitHub: either a static token or GitHub App credentials
    GITHUB_TOKEN: str | None = Field(default=None, description="Static GitHub token")
    GITHUB_APP_ID: str | None = Field(default=None, description="GitHub App ID")
    GITHUB_APP_PRIVATE_KEY: str | None = Field(
        default=None, description="Base64-encoded GitHub App private key (PEM)"
    )
    GITHUB_APP_INSTALLATION_ID: str | None = Field(
        default=None, description="GitHub App installation ID"
    )
    GITHUB_WEBHOOK_SECRET: str | None = Field(
        default=None, description="Shared secret for X-Hub-Signature-256 verification"
    )

    # Microsoft Graph (client credentials)
    AZURE_TENANT: str | None = Field(default=None, description="Azure AD tenant ID")
    AZURE_CLIENT_ID: str | None = Field(default=None, description="Azure app client ID")
    AZURE_CLIENT_SECRET: str | None = Field(default=None, description="Azure app client secret")

    # Upstream HTTP
    HTTP_TIMEOUT_SECONDS: float = Field(default=30.0, description="Per-call HTTP timeout")
    TOKEN_REFRESH_BUFFER_SECONDS: int = Field(
        default=300, description="Refresh cached tokens this many seconds before expiry"
    )

    # Sync defaults
    DEFAULT_LIBRARY_NAME: str = Field(
        default="Documents", description="Library used for images when none is configured"
    )

    # PDF rendering assets
    PDF_FONT_DIR: str | None = Field(
        default=None, description="Directory with Normal/Medium/NormalOblique/MediumOblique TTFs"
    )
    PDF_FONT_FAMILY: str = Field(default="ABCNormal", description="Font family file prefix")
    PDF_HEADER_LOGO_PATH: str | None = Field(
        default=None, description="Image drawn in the left header column"
    )
    PDF_FOOTER_TEXT: str = Field(
        default="Page {currentPage} of {totalPages}", description="Centre footer text"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
