"""Process-wide service objects, built once at startup."""

from __future__ import annotations

from dataclasses import dataclass

from docs_bot.core.config import Settings
from docs_bot.core.pdf_renderer import PdfRenderer
from docs_bot.services.github_service import GitHubService
from docs_bot.services.graph_client import GraphClient
from docs_bot.services.sharepoint_service import SharePointService


@dataclass
class Services:
    settings: Settings
    github: GitHubService
    sharepoint: SharePointService
    pdf_renderer: PdfRenderer


def build_services(settings: Settings) -> Services:
    """
    Construct the upstream clients and renderer from settings.

    Raises:
        ConfigurationError: If credentials, fonts or brand assets are missing
    """
    assets = [settings.PDF_HEADER_LOGO_PATH] if settings.PDF_HEADER_LOGO_PATH else []
    return Services(
        settings=settings,
        github=GitHubService.from_settings(settings),
        sharepoint=SharePointService(GraphClient.from_settings(settings)),
        pdf_renderer=PdfRenderer(
            font_dir=settings.PDF_FONT_DIR,
            font_family=settings.PDF_FONT_FAMILY,
            asset_paths=assets,
        ),
    )
