"""Tests for the push pipeline."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from docs_bot.core.config import get_settings
from docs_bot.core.errors import UpstreamError
from docs_bot.core.pdf_renderer import PdfRenderer
from docs_bot.core.schemas_governance import RepositoryConfig, SharePointSync
from docs_bot.services.container import Services
from docs_bot.services.github_service import BinaryContent, FileContent, GitHubService
from docs_bot.services.governance_pipeline import (
    DocumentSyncResult,
    build_pdf_options,
    changed_files,
    get_docs_from_payload,
    handle_push_event,
    sync_document,
)
from docs_bot.services.sharepoint_service import ImageUploadResult, LibraryTarget, SharePointService

SITE_URL = "https://contoso.sharepoint.com/sites/Policies"
LIBRARY = LibraryTarget(drive_id="d-pdf")


def _push_payload(**overrides) -> dict:
    payload = {
        "ref": "refs/heads/main",
        "after": "abc123",
        "deleted": False,
        "repository": {"full_name": "acme/policies"},
        "commits": [
            {"added": ["policies/leave.md"], "modified": ["README.md"], "removed": []},
            {"added": [], "modified": ["policies/leave.md", "policies/travel.md"], "removed": ["policies/old.md"]},
        ],
    }
    payload.update(overrides)
    return payload


def _sync_config(enabled: bool = True) -> RepositoryConfig:
    return RepositoryConfig(
        repo_full_name="acme/policies",
        sharepoint_sync=SharePointSync(enabled=enabled, site_url=SITE_URL, library_name="Policy PDFs"),
    )


def _services(github: MagicMock | None = None, sharepoint: MagicMock | None = None) -> Services:
    return Services(
        settings=get_settings(),
        github=github or MagicMock(spec=GitHubService),
        sharepoint=sharepoint or MagicMock(spec=SharePointService),
        pdf_renderer=PdfRenderer(),
    )


def _sharepoint() -> MagicMock:
    sharepoint = MagicMock(spec=SharePointService)
    sharepoint.get_site_id = AsyncMock(return_value="site-1")
    sharepoint.ensure_library = AsyncMock(return_value=LIBRARY)
    sharepoint.list_pages = AsyncMock(return_value=[])
    sharepoint.create_page = AsyncMock(return_value={"id": "page-1", "name": "Leave-Policy.aspx"})
    sharepoint.publish_page = AsyncMock(return_value=None)
    sharepoint.upload_image_with_dedup = AsyncMock(
        return_value=ImageUploadResult(url="https://contoso.sharepoint.com/Images/abc.png", action="uploaded")
    )
    sharepoint.upload_file_to_library = AsyncMock(return_value="https://contoso.sharepoint.com/PDFs/leave.pdf")
    return sharepoint


class TestPayloadSelection:
    def test_updates_are_deduplicated_in_commit_order(self):
        docs = get_docs_from_payload(_push_payload(), "policies/")

        assert docs.update == ["policies/leave.md", "policies/travel.md"]
        assert docs.remove == ["policies/old.md"]

    def test_other_extensions_and_folders_are_ignored(self):
        payload = _push_payload(commits=[{"added": ["policies/logo.png", "docs/a.md"], "modified": [], "removed": []}])

        docs = get_docs_from_payload(payload, "policies/")

        assert docs.update == []

    def test_missing_commit_lists(self):
        docs = get_docs_from_payload({"commits": [{}]}, "policies/")

        assert docs.update == [] and docs.remove == []

    def test_changed_files_covers_every_kind(self):
        assert changed_files(_push_payload()) == [
            "policies/leave.md",
            "README.md",
            "policies/travel.md",
            "policies/old.md",
        ]


class TestPdfOptions:
    def test_title_in_header_and_page_footer(self):
        options = build_pdf_options("Leave Policy", get_settings())

        assert options.title == "Leave Policy"
        assert options.header.right.text == "Leave Policy"
        assert options.header.left is None
        assert options.header.vertical_align == "center"
        assert options.footer.center.text == "Page {currentPage} of {totalPages}"

    def test_logo_goes_in_left_column(self):
        settings = get_settings().model_copy(update={"PDF_HEADER_LOGO_PATH": "/assets/logo.png"})

        options = build_pdf_options("Leave Policy", settings)

        assert options.header.left.image == "/assets/logo.png"


class TestSyncDocument:
    @pytest.mark.asyncio
    async def test_page_and_pdf_are_published(self, png_bytes):
        github = MagicMock(spec=GitHubService)
        github.fetch_file_content = AsyncMock(
            return_value=FileContent(
                content="---\ntitle: Leave Policy\n---\n# Leave\n\n![Chart](img/chart.png)\n",
                sha="s",
                path="policies/leave.md",
            )
        )
        github.fetch_binary_content = AsyncMock(
            return_value=BinaryContent(data=png_bytes, sha="i", path="policies/img/chart.png")
        )
        sharepoint = _sharepoint()

        result = await sync_document(
            _services(github, sharepoint), "acme", "policies", "policies/leave.md", "abc123", SITE_URL, "site-1", LIBRARY
        )

        assert result.title == "Leave Policy"
        assert result.page_action == "created"
        assert result.page_url == f"{SITE_URL}/SitePages/Leave-Policy.aspx"
        assert result.pdf_url == "https://contoso.sharepoint.com/PDFs/leave.pdf"
        assert result.page_count == 1
        # Image bytes are fetched once and reused for the PDF
        github.fetch_binary_content.assert_awaited_once_with("acme", "policies", "policies/img/chart.png", "abc123")
        upload_args = sharepoint.upload_file_to_library.await_args[0]
        assert upload_args[:3] == ("site-1", LIBRARY, "leave.pdf")
        assert upload_args[3].startswith(b"%PDF")

    @pytest.mark.asyncio
    async def test_missing_document_is_skipped(self):
        github = MagicMock(spec=GitHubService)
        github.fetch_file_content = AsyncMock(return_value=None)
        sharepoint = _sharepoint()

        result = await sync_document(
            _services(github, sharepoint), "acme", "policies", "policies/gone.md", "abc123", SITE_URL, "site-1", LIBRARY
        )

        assert result == DocumentSyncResult(path="policies/gone.md", skipped=True)
        sharepoint.create_page.assert_not_awaited()


class TestHandlePushEvent:
    @pytest.mark.asyncio
    async def test_failure_in_one_document_does_not_stop_others(self):
        sharepoint = _sharepoint()

        async def fake_sync(services, owner, repo, path, ref, site_url, site_id, library):
            if path == "policies/leave.md":
                raise UpstreamError("Graph API error: 500", status_code=500)
            return DocumentSyncResult(path=path, page_url="u", pdf_url="p")

        with patch(
            "docs_bot.services.governance_pipeline.load_or_sync_config",
            new=AsyncMock(return_value=_sync_config()),
        ), patch("docs_bot.services.governance_pipeline.sync_document", side_effect=fake_sync) as sync:
            results = await handle_push_event(_services(sharepoint=sharepoint), "delivery-1", _push_payload())

        assert [r.path for r in results] == ["policies/leave.md", "policies/travel.md"]
        assert "Graph API error" in results[0].error
        assert results[1].error is None
        assert sync.call_count == 2
        sharepoint.get_site_id.assert_awaited_once_with(SITE_URL)
        sharepoint.ensure_library.assert_awaited_once_with("site-1", "Policy PDFs")

    @pytest.mark.asyncio
    async def test_config_load_sees_every_changed_file(self):
        load = AsyncMock(return_value=_sync_config(enabled=False))

        with patch("docs_bot.services.governance_pipeline.load_or_sync_config", new=load):
            await handle_push_event(_services(), "delivery-1", _push_payload())

        assert load.await_args[0][2] == changed_files(_push_payload())
        assert load.await_args[1] == {"ref": "abc123"}

    @pytest.mark.asyncio
    async def test_disabled_sync_does_nothing(self):
        sharepoint = _sharepoint()

        with patch(
            "docs_bot.services.governance_pipeline.load_or_sync_config",
            new=AsyncMock(return_value=_sync_config(enabled=False)),
        ):
            results = await handle_push_event(_services(sharepoint=sharepoint), "delivery-1", _push_payload())

        assert results == []
        sharepoint.get_site_id.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_deleted_branch_is_ignored(self):
        load = AsyncMock()

        with patch("docs_bot.services.governance_pipeline.load_or_sync_config", new=load):
            results = await handle_push_event(_services(), "delivery-1", _push_payload(deleted=True))

        assert results == []
        load.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_push_without_documents(self):
        sharepoint = _sharepoint()
        payload = _push_payload(commits=[{"added": [], "modified": ["README.md"], "removed": []}])

        with patch(
            "docs_bot.services.governance_pipeline.load_or_sync_config",
            new=AsyncMock(return_value=_sync_config()),
        ):
            results = await handle_push_event(_services(sharepoint=sharepoint), "delivery-1", payload)

        assert results == []
        sharepoint.get_site_id.assert_not_awaited()
