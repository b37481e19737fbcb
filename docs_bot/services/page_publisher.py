"""SharePoint site page publishing.

A page is keyed by its title (case-insensitive): an existing page is patched,
otherwise a new article page is created. Either way it is published.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Literal

from docs_bot.core.logging import get_logger
from docs_bot.core.markdown_html import markdown_to_html
from docs_bot.services.image_processor import ImageFetcher, process_markdown_images
from docs_bot.services.sharepoint_service import DEFAULT_DRIVE_NAME, LibraryTarget, SharePointService

logger = get_logger(__name__)

DEFAULT_TITLE_AREA = {
    "enableGradientEffect": False,
    "layout": "plain",
    "showAuthor": False,
    "showPublishedDate": True,
    "textAlignment": "left",
}

_PAGE_NAME_DISALLOWED = re.compile(r"[^a-zA-Z0-9\-_ ]")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class PageResult:
    url: str
    action: Literal["created", "updated"]


def page_name_for_title(title: str) -> str:
    """SitePages file name for a title: punctuation dropped, spaces as hyphens."""
    return f"{_WHITESPACE.sub('-', _PAGE_NAME_DISALLOWED.sub('', title))}.aspx"


def build_canvas_layout(html: str) -> dict[str, Any]:
    return {
        "horizontalSections": [
            {
                "layout": "oneColumn",
                "id": "1",
                "emphasis": "none",
                "columns": [
                    {
                        "id": "1",
                        "width": 12,
                        "webparts": [
                            {"@odata.type": "#microsoft.graph.textWebPart", "innerHtml": html},
                        ],
                    }
                ],
            }
        ]
    }


def build_update_payload(title: str, html: str) -> dict[str, Any]:
    """
    Payload for PATCHing an existing page.

    Graph rejects name and pageLayout on update, so only the title, flags,
    title area and canvas are sent.
    """
    return {
        "@odata.type": "#microsoft.graph.sitePage",
        "title": title,
        "showComments": True,
        "showRecommendedPages": False,
        "titleArea": {**DEFAULT_TITLE_AREA, "title": title},
        "canvasLayout": build_canvas_layout(html),
    }


def build_create_payload(title: str, html: str) -> dict[str, Any]:
    return {
        **build_update_payload(title, html),
        "pageLayout": "article",
        "name": page_name_for_title(title),
    }


async def find_existing_page(sharepoint: SharePointService, site_id: str, title: str) -> dict[str, Any] | None:
    wanted = title.lower()
    for page in await sharepoint.list_pages(site_id):
        if (page.get("title") or "").lower() == wanted:
            return page
    return None


async def create_or_update_page(
    sharepoint: SharePointService,
    site_url: str,
    title: str,
    markdown: str,
    fetch_image: ImageFetcher | None = None,
    library: LibraryTarget | None = None,
) -> PageResult:
    """
    Create or update a site page from markdown and publish it.

    Args:
        sharepoint: SharePoint service
        site_url: Full site URL
        title: Page title (also the lookup key)
        markdown: Markdown body
        fetch_image: Optional image fetcher; images are uploaded when given
        library: Library for images; the Documents library when None

    Returns:
        PageResult with the page URL and whether it was created or updated
    """
    site_url = site_url.rstrip("/")
    site_id = await sharepoint.get_site_id(site_url)

    if fetch_image is not None:
        image_library = library or await sharepoint.ensure_library(site_id, DEFAULT_DRIVE_NAME)
        markdown = await process_markdown_images(sharepoint, site_id, markdown, fetch_image, image_library)

    html = markdown_to_html(markdown)
    existing = await find_existing_page(sharepoint, site_id, title)

    if existing:
        logger.info(f"Updating existing page: {existing.get('name')}")
        await sharepoint.update_page(site_id, existing["id"], build_update_payload(title, html))
        page_id, page_name, action = existing["id"], existing.get("name") or page_name_for_title(title), "updated"
    else:
        logger.info(f"Creating new page: {title}")
        created = await sharepoint.create_page(site_id, build_create_payload(title, html))
        page_id, page_name, action = created["id"], created.get("name") or page_name_for_title(title), "created"

    await sharepoint.publish_page(site_id, page_id)

    stem = page_name[: -len(".aspx")] if page_name.endswith(".aspx") else page_name
    url = f"{site_url}/SitePages/{stem}.aspx"
    logger.info(f"Page {action}: {url}")
    return PageResult(url=url, action=action)
