"""Tests for pull-request approval table maintenance and slash commands."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from docs_bot.core.approvals import ApprovalRow, render_approval_table
from docs_bot.core.config import get_settings
from docs_bot.core.pdf_renderer import PdfRenderer
from docs_bot.core.schemas_governance import CrossDomainRule, RepositoryConfig
from docs_bot.services.approval_workflow import (
    handle_issue_comment_event,
    handle_pull_request_event,
    parse_approval_command,
    required_domains,
)
from docs_bot.services.container import Services
from docs_bot.services.github_service import GitHubService
from docs_bot.services.sharepoint_service import SharePointService

RULES = [
    CrossDomainRule(pattern="policies/security/*.md", domains=["IT", "Legal"]),
    CrossDomainRule(pattern="policies/hr/*.md", domains=["HR", "legal"]),
]


def _github(body: str = "", files: list[str] | None = None) -> MagicMock:
    github = MagicMock(spec=GitHubService)
    github.get_pull_request = AsyncMock(return_value={"number": 7, "body": body})
    github.list_pull_request_files = AsyncMock(return_value=files or [])
    github.update_pull_request_body = AsyncMock(return_value={})
    return github


def _services(github: MagicMock) -> Services:
    return Services(
        settings=get_settings(),
        github=github,
        sharepoint=MagicMock(spec=SharePointService),
        pdf_renderer=PdfRenderer(),
    )


def _pr_payload(action: str = "opened") -> dict:
    return {"action": action, "repository": {"full_name": "acme/policies"}, "pull_request": {"number": 7}}


def _comment_payload(body: str, login: str = "alex", on_pr: bool = True) -> dict:
    issue = {"number": 7}
    if on_pr:
        issue["pull_request"] = {"url": "https://api.github.com/repos/acme/policies/pulls/7"}
    return {
        "action": "created",
        "repository": {"full_name": "acme/policies"},
        "issue": issue,
        "comment": {"body": body, "user": {"login": login}},
    }


def _table_body() -> str:
    rows = [
        ApprovalRow("IT", "it.security@x.com", "Pending", "-", "-"),
        ApprovalRow("Legal", "legal@x.com", "Pending", "-", "-"),
    ]
    return f"Update security policy\n\n{render_approval_table(rows)}"


class TestHelpers:
    def test_required_domains_union_without_duplicates(self):
        files = ["policies/security/mfa.md", "policies/hr/leave.md", "README.md"]

        assert required_domains(files, RULES) == ["IT", "Legal", "HR"]

    def test_required_domains_none_matching(self):
        assert required_domains(["README.md"], RULES) == []

    @pytest.mark.parametrize(
        ("body", "expected"),
        [
            ("/approve IT", ("Approved", "IT")),
            ("/REJECT Legal\nNeeds a data retention section.", ("Rejected", "Legal")),
            ("  /approve   Data Protection  ", ("Approved", "Data Protection")),
        ],
    )
    def test_commands(self, body, expected):
        assert parse_approval_command(body) == expected

    @pytest.mark.parametrize("body", ["LGTM", "/approve", "please /approve IT", "Thanks\n/approve IT"])
    def test_non_commands(self, body):
        assert parse_approval_command(body) is None


class TestPullRequestEvent:
    @pytest.mark.asyncio
    async def test_table_is_created_for_required_domains(self):
        github = _github(body="Update security policy", files=["policies/security/mfa.md"])
        config = RepositoryConfig(repo_full_name="acme/policies", cross_domain_rules=RULES)

        with patch("docs_bot.services.approval_workflow.load_from_db_or_default", return_value=config):
            result = await handle_pull_request_event(_services(github), "delivery-1", _pr_payload())

        assert [row.domain for row in result.rows] == ["IT", "Legal"]
        assert all(row.status == "Pending" for row in result.rows)
        github.list_pull_request_files.assert_awaited_once_with("acme", "policies", 7)
        new_body = github.update_pull_request_body.await_args[0][3]
        assert new_body.startswith("Update security policy\n\n")

    @pytest.mark.asyncio
    async def test_existing_rows_are_not_reset(self):
        rows = [ApprovalRow("IT", "it@x.com", "Approved", "@sam", "2026-02-13")]
        body = render_approval_table(rows)
        github = _github(body=body, files=["policies/security/mfa.md"])
        config = RepositoryConfig(repo_full_name="acme/policies", cross_domain_rules=RULES)

        with patch("docs_bot.services.approval_workflow.load_from_db_or_default", return_value=config):
            result = await handle_pull_request_event(_services(github), "delivery-1", _pr_payload("synchronize"))

        it_row = next(row for row in result.rows if row.domain == "IT")
        assert it_row.status == "Approved"
        assert [row.domain for row in result.rows] == ["IT", "Legal"]

    @pytest.mark.asyncio
    async def test_unchanged_body_is_not_written(self):
        body = render_approval_table([ApprovalRow("IT", "-", "Pending", "-", "-"), ApprovalRow("Legal", "-", "Pending", "-", "-")])
        github = _github(body=body, files=["policies/security/mfa.md"])
        config = RepositoryConfig(repo_full_name="acme/policies", cross_domain_rules=RULES)

        with patch("docs_bot.services.approval_workflow.load_from_db_or_default", return_value=config):
            await handle_pull_request_event(_services(github), "delivery-1", _pr_payload())

        github.update_pull_request_body.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_actions_are_ignored(self):
        github = _github()

        assert await handle_pull_request_event(_services(github), "delivery-1", _pr_payload("closed")) is None
        github.list_pull_request_files.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_approval_not_required(self):
        github = _github(files=["policies/security/mfa.md"])
        config = RepositoryConfig(repo_full_name="acme/policies", approval_required=False, cross_domain_rules=RULES)

        with patch("docs_bot.services.approval_workflow.load_from_db_or_default", return_value=config):
            assert await handle_pull_request_event(_services(github), "delivery-1", _pr_payload()) is None

        github.update_pull_request_body.assert_not_awaited()


class TestIssueCommentEvent:
    @pytest.mark.asyncio
    async def test_approve_updates_row(self):
        github = _github(body=_table_body())

        with patch("docs_bot.services.approval_workflow._utc_today", return_value="2026-02-13"):
            result = await handle_issue_comment_event(_services(github), "delivery-1", _comment_payload("/approve it"))

        row = result.rows[0]
        assert (row.domain, row.status, row.approved_by, row.date) == ("it", "Approved", "@alex", "2026-02-13")
        assert row.required_approver == "it.security@x.com"
        new_body = github.update_pull_request_body.await_args[0][3]
        assert "| it | it.security@x.com | Approved | @alex | 2026-02-13 |" in new_body
        assert new_body.startswith("Update security policy\n\n")

    @pytest.mark.asyncio
    async def test_unknown_domain_is_ignored(self):
        github = _github(body=_table_body())

        result = await handle_issue_comment_event(_services(github), "delivery-1", _comment_payload("/approve Finance"))

        assert [row.domain for row in result.rows] == ["IT", "Legal"]
        github.update_pull_request_body.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_table_is_left_alone(self):
        github = _github(body="No table yet")

        result = await handle_issue_comment_event(_services(github), "delivery-1", _comment_payload("/reject IT"))

        assert result is None
        github.update_pull_request_body.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_plain_comment_is_ignored(self):
        github = _github(body=_table_body())

        assert await handle_issue_comment_event(_services(github), "delivery-1", _comment_payload("LGTM")) is None
        github.get_pull_request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_issue_comment_outside_pull_request_is_ignored(self):
        github = _github(body=_table_body())

        payload = _comment_payload("/approve IT", on_pr=False)

        assert await handle_issue_comment_event(_services(github), "delivery-1", payload) is None
        github.get_pull_request.assert_not_awaited()
