"""Pull-request approval workflow.

Keeps the approval table in a pull request's description in step with the
domains its changes touch, and records /approve and /reject comments.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from fnmatch import fnmatch
from typing import Any

from docs_bot.core.approvals import (
    ApprovalMergeResult,
    ApprovalUpdate,
    merge_approval_table,
)
from docs_bot.core.errors import ApprovalTableNotFoundError
from docs_bot.core.logging import get_logger, log_with_context
from docs_bot.core.schemas_governance import CrossDomainRule
from docs_bot.services.config_loader import load_from_db_or_default, split_repo_full_name
from docs_bot.services.container import Services

logger = get_logger(__name__)

PR_ACTIONS = {"opened", "reopened", "synchronize"}
STATUS_APPROVED = "Approved"
STATUS_REJECTED = "Rejected"

_COMMAND_PATTERN = re.compile(r"^/(approve|reject)\s+(\S.*?)\s*$", re.IGNORECASE)


def _utc_today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def required_domains(files: list[str], rules: list[CrossDomainRule]) -> list[str]:
    """Union of rule domains whose pattern matches any file, first-seen order."""
    domains: list[str] = []
    seen: set[str] = set()
    for rule in rules:
        if not any(fnmatch(path, rule.pattern) for path in files):
            continue
        for domain in rule.domains:
            if domain.lower() not in seen:
                seen.add(domain.lower())
                domains.append(domain)
    return domains


def parse_approval_command(comment_body: str) -> tuple[str, str] | None:
    """
    Parse "/approve <domain>" or "/reject <domain>" from a comment's first line.

    Returns:
        (status, domain), or None when the comment is not a command
    """
    first_line = comment_body.strip().split("\n", 1)[0].strip()
    match = _COMMAND_PATTERN.match(first_line)
    if not match:
        return None
    status = STATUS_APPROVED if match.group(1).lower() == "approve" else STATUS_REJECTED
    return status, match.group(2)


async def handle_pull_request_event(
    services: Services,
    delivery_id: str,
    payload: dict[str, Any],
) -> ApprovalMergeResult | None:
    """
    Add or extend the approval table when a pull request opens or changes.

    Returns:
        The merge result, or None when nothing applied
    """
    action = payload.get("action")
    if action not in PR_ACTIONS:
        return None

    repo_full_name = payload.get("repository", {}).get("full_name", "")
    names = split_repo_full_name(repo_full_name)
    if names is None:
        logger.error(f"Invalid repo full name: {repo_full_name}")
        return None
    owner, repo = names
    number = payload["pull_request"]["number"]

    config = load_from_db_or_default(repo_full_name)
    if not config.approval_required:
        log_with_context(logger, logging.INFO, f"Approval not required for {repo_full_name}", delivery_id=delivery_id)
        return None

    files = await services.github.list_pull_request_files(owner, repo, number)
    domains = required_domains(files, config.cross_domain_rules)
    if not domains:
        log_with_context(
            logger, logging.INFO, f"No approval domains for {repo_full_name}#{number}", delivery_id=delivery_id
        )
        return None

    pull_request = await services.github.get_pull_request(owner, repo, number)
    body = pull_request.get("body") or ""
    result = merge_approval_table(
        body,
        [ApprovalUpdate(domain=domain) for domain in domains],
        create_if_missing=True,
        allow_append=True,
    )

    if result.body != body:
        await services.github.update_pull_request_body(owner, repo, number, result.body)
        log_with_context(
            logger, logging.INFO, f"Approval table updated on {repo_full_name}#{number}",
            delivery_id=delivery_id, domains=",".join(domains),
        )
    return result


async def handle_issue_comment_event(
    services: Services,
    delivery_id: str,
    payload: dict[str, Any],
) -> ApprovalMergeResult | None:
    """
    Apply an /approve or /reject command posted on a pull request.

    Unknown domains are ignored; a pull request without an approval table is
    logged and left alone.

    Returns:
        The merge result, or None when nothing applied
    """
    if payload.get("action") != "created":
        return None

    issue = payload.get("issue", {})
    if "pull_request" not in issue:
        return None

    comment = payload.get("comment", {})
    command = parse_approval_command(comment.get("body") or "")
    if command is None:
        return None
    status, domain = command

    repo_full_name = payload.get("repository", {}).get("full_name", "")
    names = split_repo_full_name(repo_full_name)
    if names is None:
        logger.error(f"Invalid repo full name: {repo_full_name}")
        return None
    owner, repo = names
    number = issue["number"]
    login = comment.get("user", {}).get("login", "unknown")

    pull_request = await services.github.get_pull_request(owner, repo, number)
    body = pull_request.get("body") or ""
    update = ApprovalUpdate(domain=domain, status=status, approved_by=f"@{login}", date=_utc_today())

    try:
        result = merge_approval_table(body, [update])
    except ApprovalTableNotFoundError:
        log_with_context(
            logger, logging.WARNING, f"No approval table on {repo_full_name}#{number}", delivery_id=delivery_id
        )
        return None

    if not any(row.domain.lower() == domain.lower() for row in result.rows):
        log_with_context(
            logger, logging.INFO, f"Domain '{domain}' not in approval table, ignoring", delivery_id=delivery_id
        )
        return result
    if result.body == body:
        return result

    await services.github.update_pull_request_body(owner, repo, number, result.body)
    log_with_context(
        logger, logging.INFO, f"{status} {domain} on {repo_full_name}#{number} by @{login}", delivery_id=delivery_id
    )
    return result
