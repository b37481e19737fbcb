"""Markdown image extraction, upload and URL rewriting.

Image bytes come from a caller-supplied async fetcher, so this module does not
care whether images live in a repository, on disk or elsewhere.
"""

from __future__ import annotations

import posixpath
import re
from collections.abc import Awaitable, Callable
from urllib.parse import unquote

from docs_bot.core.errors import DocsBotError
from docs_bot.core.logging import get_logger
from docs_bot.services.github_service import GitHubService
from docs_bot.services.sharepoint_service import LibraryTarget, SharePointService

logger = get_logger(__name__)

ImageFetcher = Callable[[str], Awaitable[bytes | None]]

MARKDOWN_IMAGE_PATTERN = re.compile(r"!\[([^\]]*)\]\(([^)]+)\)")
HTML_IMAGE_PATTERN = re.compile(r"<img\s+[^>]*src=[\"']([^\"']+)[\"'][^>]*>")


def is_remote(path: str) -> bool:
    return path.startswith(("http://", "https://"))


def resolve_image_path(document_path: str, image_path: str) -> str:
    """
    Resolve an image reference to a repository path.

    Backslashes become forward slashes and URL escapes are decoded. A leading
    slash means repository-root relative; anything else is relative to the
    directory holding the document.

    Args:
        document_path: Repository path of the markdown document
        image_path: Path as written in the markdown

    Returns:
        Normalized repository path
    """
    path = unquote(image_path.strip().replace("\\", "/"))

    if path.startswith("/"):
        resolved = posixpath.normpath(path.lstrip("/"))
    else:
        resolved = posixpath.normpath(posixpath.join(posixpath.dirname(document_path), path))

    # Never climb above the repository root
    parts = [part for part in resolved.split("/") if part not in ("", ".", "..")]
    return "/".join(parts)


def _extension(path: str) -> str:
    _, ext = posixpath.splitext(path.split("?", 1)[0])
    return ext.lstrip(".").lower()


async def process_markdown_images(
    sharepoint: SharePointService,
    site_id: str,
    markdown: str,
    fetch_image: ImageFetcher,
    library: LibraryTarget,
) -> str:
    """
    Upload local images referenced by markdown and point references at them.

    Both ![alt](path) and <img src="path"> references are handled. http(s)
    paths are left alone. Each literal path is fetched and uploaded at most
    once per call. A missing image or a failed upload leaves that reference
    unchanged.

    Args:
        sharepoint: SharePoint service for uploads
        site_id: Graph site id
        markdown: Markdown content
        fetch_image: Async callback returning image bytes or None
        library: Library target for the Images folder

    Returns:
        Markdown with rewritten image URLs
    """
    resolved: dict[str, str | None] = {}

    async def process_path(image_path: str) -> None:
        if image_path in resolved:
            return
        if not image_path or is_remote(image_path):
            resolved[image_path] = None
            return

        logger.debug(f"Processing image: {image_path}")
        try:
            data = await fetch_image(image_path)
        except DocsBotError as e:
            logger.warning(f"Failed to fetch image {image_path}: {e}")
            resolved[image_path] = None
            return
        if data is None:
            logger.warning(f"Image not found: {image_path}")
            resolved[image_path] = None
            return

        try:
            result = await sharepoint.upload_image_with_dedup(site_id, data, _extension(image_path), library)
        except DocsBotError as e:
            logger.warning(f"Failed to upload image {image_path}: {e}")
            resolved[image_path] = None
            return

        logger.info(f"Image {image_path} -> {result.url} ({result.action})")
        resolved[image_path] = result.url

    for match in MARKDOWN_IMAGE_PATTERN.finditer(markdown):
        await process_path(match.group(2))
    for match in HTML_IMAGE_PATTERN.finditer(markdown):
        await process_path(match.group(1))

    def replace_markdown(match: re.Match) -> str:
        url = resolved.get(match.group(2))
        return f"![{match.group(1)}]({url})" if url else match.group(0)

    def replace_html(match: re.Match) -> str:
        url = resolved.get(match.group(1))
        if not url:
            return match.group(0)
        start, end = match.span(1)
        tag_start = match.start(0)
        tag = match.group(0)
        return f"{tag[: start - tag_start]}{url}{tag[end - tag_start :]}"

    rewritten = MARKDOWN_IMAGE_PATTERN.sub(replace_markdown, markdown)
    return HTML_IMAGE_PATTERN.sub(replace_html, rewritten)


class RepositoryImageFetcher:
    """Fetches images relative to a document in a GitHub repository.

    Bytes are memoized by the literal path used in the markdown, so later
    stages (the PDF renderer) can reuse them without another request.
    """

    def __init__(self, github: GitHubService, owner: str, repo: str, document_path: str, ref: str | None = None):
        self.github = github
        self.owner = owner
        self.repo = repo
        self.document_path = document_path
        self.ref = ref
        self.images: dict[str, bytes] = {}
        self._missing: set[str] = set()

    async def __call__(self, image_path: str) -> bytes | None:
        if image_path in self.images:
            return self.images[image_path]
        if image_path in self._missing:
            return None

        repo_path = resolve_image_path(self.document_path, image_path)
        content = await self.github.fetch_binary_content(self.owner, self.repo, repo_path, self.ref)
        if content is None:
            self._missing.add(image_path)
            return None

        self.images[image_path] = content.data
        return content.data


def make_repository_image_fetcher(
    github: GitHubService,
    owner: str,
    repo: str,
    document_path: str,
    ref: str | None = None,
) -> RepositoryImageFetcher:
    return RepositoryImageFetcher(github, owner, repo, document_path, ref)
