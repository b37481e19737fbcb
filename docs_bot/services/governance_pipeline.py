"""Push pipeline: sync changed policy documents to SharePoint.

For each markdown document a push adds or modifies under the configured
document path, the page is published and a PDF rendition is uploaded to the
configured library. Documents are processed one at a time; a failure in one
never stops the others.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
from dataclasses import dataclass, field
from typing import Any

from docs_bot.core.config import Settings
from docs_bot.core.errors import DocsBotError
from docs_bot.core.frontmatter import parse_frontmatter, resolve_title
from docs_bot.core.layout import collect_image_sources, html_to_layout_tree
from docs_bot.core.logging import get_logger, log_with_context
from docs_bot.core.markdown_html import markdown_to_html
from docs_bot.core.pdf_renderer import (
    HeaderFooterDef,
    HeaderFooterSection,
    PdfOptions,
    render_to_document,
)
from docs_bot.services.config_loader import load_or_sync_config, split_repo_full_name
from docs_bot.services.container import Services
from docs_bot.services.image_processor import is_remote, make_repository_image_fetcher
from docs_bot.services.page_publisher import create_or_update_page
from docs_bot.services.sharepoint_service import LibraryTarget

logger = get_logger(__name__)


@dataclass
class ActionableDocs:
    update: list[str] = field(default_factory=list)
    remove: list[str] = field(default_factory=list)


@dataclass
class DocumentSyncResult:
    """Outcome of syncing one document."""

    path: str
    title: str | None = None
    page_url: str | None = None
    page_action: str | None = None
    pdf_url: str | None = None
    page_count: int | None = None
    skipped: bool = False
    error: str | None = None


def _unique(paths: list[str]) -> list[str]:
    return list(dict.fromkeys(paths))


def get_docs_from_payload(
    payload: dict[str, Any],
    document_path: str,
    file_extension: str = ".md",
) -> ActionableDocs:
    """
    Select the documents a push updates and removes.

    Args:
        payload: GitHub push payload
        document_path: Path prefix documents live under
        file_extension: Document file extension

    Returns:
        ActionableDocs with de-duplicated paths in commit order
    """

    def matches(path: str) -> bool:
        return path.startswith(document_path) and path.endswith(file_extension)

    update: list[str] = []
    remove: list[str] = []
    for commit in payload.get("commits") or []:
        changed = (commit.get("modified") or []) + (commit.get("added") or [])
        update.extend(path for path in changed if matches(path))
        remove.extend(path for path in commit.get("removed") or [] if matches(path))

    return ActionableDocs(update=_unique(update), remove=_unique(remove))


def changed_files(payload: dict[str, Any]) -> list[str]:
    """Every path a push touches, in commit order."""
    paths: list[str] = []
    for commit in payload.get("commits") or []:
        for key in ("added", "modified", "removed"):
            paths.extend(commit.get(key) or [])
    return _unique(paths)


def build_pdf_options(title: str, settings: Settings) -> PdfOptions:
    """Page geometry and brand bands for policy PDFs."""
    header = HeaderFooterDef(
        left=HeaderFooterSection(image=settings.PDF_HEADER_LOGO_PATH) if settings.PDF_HEADER_LOGO_PATH else None,
        right=HeaderFooterSection(text=title),
        vertical_align="center",
    )
    footer = HeaderFooterDef(center=HeaderFooterSection(text=settings.PDF_FOOTER_TEXT))
    return PdfOptions(title=title, header=header, footer=footer)


async def sync_document(
    services: Services,
    owner: str,
    repo: str,
    path: str,
    ref: str | None,
    site_url: str,
    site_id: str,
    library: LibraryTarget,
) -> DocumentSyncResult:
    """
    Publish one document as a site page and upload its PDF rendition.

    Args:
        services: Service container
        owner: Repository owner
        repo: Repository name
        path: Document path in the repository
        ref: Commit SHA to read from
        site_url: SharePoint site URL
        site_id: Resolved Graph site id
        library: Library the PDF and images go to

    Returns:
        DocumentSyncResult (skipped when the document no longer exists)
    """
    file = await services.github.fetch_file_content(owner, repo, path, ref)
    if file is None:
        logger.warning(f"Document {path} not found at {ref}, skipping")
        return DocumentSyncResult(path=path, skipped=True)

    document = parse_frontmatter(file.content)
    title = resolve_title(document, path)
    fetch_image = make_repository_image_fetcher(services.github, owner, repo, path, ref)

    page = await create_or_update_page(
        services.sharepoint,
        site_url,
        title,
        document.body,
        fetch_image=fetch_image,
        library=library,
    )

    tree = html_to_layout_tree(markdown_to_html(document.body))
    for src in collect_image_sources(tree):
        if is_remote(src) or src in fetch_image.images:
            continue
        try:
            await fetch_image(src)
        except DocsBotError as e:
            logger.warning(f"Could not fetch image {src} for PDF: {e}")

    pdf = await asyncio.to_thread(
        render_to_document,
        tree,
        build_pdf_options(title, services.settings),
        dict(fetch_image.images),
        services.pdf_renderer,
    )

    stem, _ = posixpath.splitext(posixpath.basename(path))
    pdf_url = await services.sharepoint.upload_file_to_library(site_id, library, f"{stem}.pdf", pdf.content)

    return DocumentSyncResult(
        path=path,
        title=title,
        page_url=page.url,
        page_action=page.action,
        pdf_url=pdf_url,
        page_count=pdf.page_count,
    )


async def handle_push_event(
    services: Services,
    delivery_id: str,
    payload: dict[str, Any],
) -> list[DocumentSyncResult]:
    """
    Process a push webhook.

    Args:
        services: Service container
        delivery_id: X-GitHub-Delivery id, used to correlate logs
        payload: Push payload

    Returns:
        One DocumentSyncResult per updated document, in commit order
    """
    repo_full_name = payload.get("repository", {}).get("full_name", "")
    ref = payload.get("after")
    log_with_context(
        logger, logging.INFO, f"Processing push to {repo_full_name} ({payload.get('ref')})",
        delivery_id=delivery_id,
    )

    if payload.get("deleted"):
        log_with_context(logger, logging.INFO, "Branch deleted, nothing to sync", delivery_id=delivery_id)
        return []

    names = split_repo_full_name(repo_full_name)
    config = await load_or_sync_config(services.github, repo_full_name, changed_files(payload), ref=ref)
    docs = get_docs_from_payload(payload, config.document_path)

    for path in docs.remove:
        # Published pages and PDFs are left in place
        log_with_context(logger, logging.INFO, f"Document removed: {path}", delivery_id=delivery_id, path=path)

    if not docs.update:
        log_with_context(logger, logging.INFO, "No documents to sync", delivery_id=delivery_id)
        return []

    sync = config.sharepoint_sync
    if names is None or not sync.enabled or not sync.site_url:
        log_with_context(
            logger, logging.INFO, f"SharePoint sync disabled for {repo_full_name}, skipping",
            delivery_id=delivery_id,
        )
        return []
    owner, repo = names

    site_id = await services.sharepoint.get_site_id(sync.site_url)
    library = await services.sharepoint.ensure_library(
        site_id, sync.library_name or services.settings.DEFAULT_LIBRARY_NAME
    )

    results: list[DocumentSyncResult] = []
    for path in docs.update:
        try:
            result = await sync_document(services, owner, repo, path, ref, sync.site_url, site_id, library)
            log_with_context(
                logger, logging.INFO, f"Synced {path}",
                delivery_id=delivery_id, path=path, page_url=result.page_url, pdf_url=result.pdf_url,
            )
        except Exception as e:
            logger.exception(f"Failed to sync {path}", extra={"delivery_id": delivery_id})
            result = DocumentSyncResult(path=path, error=str(e))
        results.append(result)

    log_with_context(logger, logging.INFO, "Push event processing complete", delivery_id=delivery_id)
    return results
