"""SharePoint sites, document libraries, files and pages over Microsoft Graph."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Any, Literal
from urllib.parse import quote, urlparse

from docs_bot.core.errors import NotFoundError, UpstreamError
from docs_bot.core.logging import get_logger
from docs_bot.services.graph_client import GraphClient

logger = get_logger(__name__)

DEFAULT_DRIVE_NAME = "Documents"
IMAGES_FOLDER = "Images"

_LIBRARY_NAME_NOISE = re.compile(r"[\s_-]")


@dataclass(frozen=True)
class LibraryTarget:
    """Where files land: a drive, optionally a folder inside it."""

    drive_id: str
    folder_path: str | None = None


@dataclass(frozen=True)
class ImageUploadResult:
    url: str
    action: Literal["existing", "uploaded"]


def compute_checksum(file_bytes: bytes) -> str:
    """Compute SHA256 checksum for content-addressed image names.

    Args:
        file_bytes: Raw file content

    Returns:
        Hex-encoded SHA256 hash
    """
    return hashlib.sha256(file_bytes).hexdigest()


def image_file_name(data: bytes, extension: str) -> str:
    ext = extension.lstrip(".").lower() or "bin"
    return f"{compute_checksum(data)}.{ext}"


def normalize_library_name(name: str) -> str:
    return _LIBRARY_NAME_NOISE.sub("", name.lower())


def _drive_path(path: str) -> str:
    return quote(path.strip("/"), safe="/")


class SharePointService:
    """High-level SharePoint operations used by the sync pipeline."""

    def __init__(self, graph: GraphClient):
        self.graph = graph
        self._site_ids: dict[str, str] = {}

    # -------------------------------------------------------------------------
    # Sites and drives
    # -------------------------------------------------------------------------

    async def get_site_id(self, site_url: str) -> str:
        """Resolve a site URL (https://tenant.sharepoint.com/sites/Name) to its Graph id."""
        if site_url in self._site_ids:
            return self._site_ids[site_url]

        parsed = urlparse(site_url)
        site = await self.graph.request("GET", f"/sites/{parsed.netloc}:{parsed.path.rstrip('/') or '/'}")
        self._site_ids[site_url] = site["id"]
        return site["id"]

    async def list_drives(self, site_id: str) -> list[dict[str, Any]]:
        response = await self.graph.request("GET", f"/sites/{site_id}/drives")
        return response.get("value", [])

    async def ensure_library(self, site_id: str, library_name: str) -> LibraryTarget:
        """
        Resolve a document library by name, creating it when possible.

        Names match after lowercasing and dropping spaces, underscores and
        hyphens. When the library cannot be created (typically missing
        permissions) a folder of that name in the Documents drive, or the
        site's first drive, stands in for it.

        Args:
            site_id: Graph site id
            library_name: Library display name

        Returns:
            LibraryTarget for uploads

        Raises:
            UpstreamError: If the site has no drives to fall back to
        """
        drives = await self.list_drives(site_id)
        wanted = normalize_library_name(library_name)
        for drive in drives:
            if normalize_library_name(drive.get("name", "")) == wanted:
                return LibraryTarget(drive_id=drive["id"])

        logger.info(f"Creating new document library: {library_name}")
        try:
            created = await self.graph.request(
                "POST",
                f"/sites/{site_id}/lists",
                json={"displayName": library_name, "list": {"template": "documentLibrary"}},
            )
            drive = await self.graph.request("GET", f"/sites/{site_id}/lists/{created['id']}/drive")
            return LibraryTarget(drive_id=drive["id"])
        except (UpstreamError, NotFoundError) as e:
            logger.warning(
                f"Could not create library '{library_name}' ({e}). "
                f"Falling back to folder '{library_name}' in default drive."
            )

        default_drive = next((d for d in drives if d.get("name") == DEFAULT_DRIVE_NAME), None)
        if default_drive is None and drives:
            default_drive = drives[0]
        if default_drive is None:
            raise UpstreamError("Could not find default Documents drive for fallback.")

        await self._ensure_folder(site_id, default_drive["id"], library_name)
        return LibraryTarget(drive_id=default_drive["id"], folder_path=library_name)

    async def _ensure_folder(self, site_id: str, drive_id: str, name: str) -> None:
        try:
            await self.graph.request("GET", f"/sites/{site_id}/drives/{drive_id}/root:/{_drive_path(name)}")
            return
        except NotFoundError:
            pass

        try:
            await self.graph.request(
                "POST",
                f"/sites/{site_id}/drives/{drive_id}/root/children",
                json={"name": name, "folder": {}, "@microsoft.graph.conflictBehavior": "fail"},
            )
            logger.info(f"Created folder '{name}' in drive {drive_id}")
        except UpstreamError as e:
            if e.status_code != 409:
                raise
            logger.debug(f"Folder '{name}' already exists")

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    async def get_file_by_path(self, site_id: str, drive_id: str, path: str) -> dict[str, Any] | None:
        """Look up a drive item by path; None when it does not exist."""
        try:
            return await self.graph.request(
                "GET",
                f"/sites/{site_id}/drives/{drive_id}/root:/{_drive_path(path)}",
                params={"$select": "id,name,webUrl,file"},
            )
        except NotFoundError:
            return None

    async def upload_file_to_library(
        self,
        site_id: str,
        library: LibraryTarget,
        file_name: str,
        data: bytes,
        folder_path: str | None = None,
    ) -> str:
        """
        Upload (or overwrite) a file in a library.

        Args:
            site_id: Graph site id
            library: Target drive and optional base folder
            file_name: File name
            data: File bytes
            folder_path: Folder relative to the drive root; defaults to the
                library's own folder

        Returns:
            Web URL of the uploaded file
        """
        folder = folder_path if folder_path is not None else library.folder_path
        upload_path = f"{folder}/{file_name}" if folder else file_name
        result = await self.graph.request(
            "PUT",
            f"/sites/{site_id}/drives/{library.drive_id}/root:/{_drive_path(upload_path)}:/content",
            content=data,
        )
        return result["webUrl"]

    async def upload_image_with_dedup(
        self,
        site_id: str,
        data: bytes,
        extension: str,
        library: LibraryTarget,
    ) -> ImageUploadResult:
        """
        Upload an image under its content hash unless it is already there.

        Images live in an Images folder inside the library target, named
        {sha256}.{ext}; identical bytes always map to the same file.
        """
        file_name = image_file_name(data, extension)
        image_folder = f"{library.folder_path}/{IMAGES_FOLDER}" if library.folder_path else IMAGES_FOLDER

        logger.debug(f"Checking for existing image: {file_name}")
        existing = await self.get_file_by_path(site_id, library.drive_id, f"{image_folder}/{file_name}")
        if existing:
            logger.debug(f"Image {file_name} already exists, reusing URL")
            return ImageUploadResult(url=existing["webUrl"], action="existing")

        url = await self.upload_file_to_library(site_id, library, file_name, data, folder_path=image_folder)
        logger.info(f"Uploaded image {file_name}")
        return ImageUploadResult(url=url, action="uploaded")

    # -------------------------------------------------------------------------
    # Pages
    # -------------------------------------------------------------------------

    async def list_pages(self, site_id: str) -> list[dict[str, Any]]:
        response = await self.graph.request("GET", f"/sites/{site_id}/pages")
        return response.get("value", [])

    async def create_page(self, site_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await self.graph.request("POST", f"/sites/{site_id}/pages", json=payload)

    async def update_page(self, site_id: str, page_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await self.graph.request(
            "PATCH", f"/sites/{site_id}/pages/{page_id}/microsoft.graph.sitePage", json=payload
        )

    async def publish_page(self, site_id: str, page_id: str) -> None:
        await self.graph.request("POST", f"/sites/{site_id}/pages/{page_id}/microsoft.graph.sitePage/publish")
