"""Approval table helpers for pull-request bodies.

The approval table is a markdown table fenced between a fixed title line and a
"managed by" footer. The pull-request body is the only store: everything is
parsed from, and written back into, that fenced span. Text outside the fence
is never modified.
"""

import re
from dataclasses import dataclass, replace

from docs_bot.core.errors import ApprovalTableNotFoundError

APPROVAL_TITLE = "## Approval Status"
APPROVAL_HEADER = "| Domain | Required Approver | Status | Approved By | Date |"
APPROVAL_DIVIDER = "| ------ | ----------------- | ------ | ----------- | ---- |"
APPROVAL_FOOTER = "_Managed by Docs Bot. Do not edit manually._"

DEFAULT_CELL = "-"
DEFAULT_STATUS = "Pending"

_SECTION_PATTERN = re.compile(
    f"{re.escape(APPROVAL_TITLE)}[\\s\\S]*?{re.escape(APPROVAL_FOOTER)}"
)


@dataclass(frozen=True)
class ApprovalRow:
    """One domain's approval state."""

    domain: str
    required_approver: str
    status: str
    approved_by: str
    date: str


@dataclass(frozen=True)
class ApprovalUpdate:
    """Sparse patch for a row, matched by domain (case-insensitive).

    Fields left as None keep the existing row's value.
    """

    domain: str
    required_approver: str | None = None
    status: str | None = None
    approved_by: str | None = None
    date: str | None = None


@dataclass(frozen=True)
class ApprovalTable:
    """Rows parsed from a body plus the verbatim span they came from."""

    rows: list[ApprovalRow]
    markdown: str


@dataclass(frozen=True)
class ApprovalMergeResult:
    body: str
    rows: list[ApprovalRow]


def render_approval_table(rows: list[ApprovalRow]) -> str:
    """
    Render rows as the fenced approval table markdown.

    Args:
        rows: Rows in display order (may be empty)

    Returns:
        Markdown with title, header, divider, rows, rule and footer
    """
    row_lines = [
        f"| {row.domain} | {row.required_approver} | {row.status} | {row.approved_by} | {row.date} |"
        for row in rows
    ]

    return "\n".join(
        [
            APPROVAL_TITLE,
            "",
            APPROVAL_HEADER,
            APPROVAL_DIVIDER,
            *row_lines,
            "",
            "---",
            "",
            APPROVAL_FOOTER,
        ]
    )


def extract_approval_section(body: str) -> str | None:
    """Return the first fenced approval span in body, or None."""
    match = _SECTION_PATTERN.search(body)
    return match.group(0) if match else None


def parse_approval_rows(section: str) -> list[ApprovalRow]:
    """
    Parse data rows from a fenced approval section.

    Reading starts on the line after the divider and stops at the first blank
    line, the first line not starting with a pipe, or another divider-like
    line. Rows with a missing cell are skipped.

    Args:
        section: Fenced approval markdown

    Returns:
        Parsed rows in order
    """
    lines = [line.strip() for line in section.split("\n")]
    try:
        header_index = lines.index(APPROVAL_HEADER)
    except ValueError:
        return []

    rows: list[ApprovalRow] = []
    for line in lines[header_index + 2 :]:
        if not line:
            break
        if not line.startswith("|"):
            break
        if "---" in line:
            break

        cells = [cell.strip() for cell in line.split("|")]
        if len(cells) < 7:
            continue

        domain, required_approver, status, approved_by, date = cells[1:6]
        if not all((domain, required_approver, status, approved_by, date)):
            continue

        rows.append(
            ApprovalRow(
                domain=domain,
                required_approver=required_approver,
                status=status,
                approved_by=approved_by,
                date=date,
            )
        )

    return rows


def extract_approval_table(body: str) -> ApprovalTable | None:
    """
    Locate and parse the approval table embedded in free text.

    Args:
        body: Pull-request body (or any text)

    Returns:
        ApprovalTable, or None when the body has no fenced table
    """
    section = extract_approval_section(body)
    if section is None:
        return None

    return ApprovalTable(rows=parse_approval_rows(section), markdown=section)


def apply_approval_updates(
    rows: list[ApprovalRow],
    updates: list[ApprovalUpdate],
    allow_append: bool,
) -> list[ApprovalRow]:
    """
    Merge sparse updates into rows.

    Matching is by lowercased domain. A matched row takes the update's domain
    spelling and every field the update sets. Unmatched updates are appended
    with defaults when allow_append is set and dropped otherwise.
    """
    merged = list(rows)
    index_by_domain = {row.domain.lower(): i for i, row in enumerate(merged)}

    for update in updates:
        key = update.domain.lower()
        index = index_by_domain.get(key)

        if index is None:
            if not allow_append:
                continue
            merged.append(
                ApprovalRow(
                    domain=update.domain,
                    required_approver=_or_default(update.required_approver, DEFAULT_CELL),
                    status=_or_default(update.status, DEFAULT_STATUS),
                    approved_by=_or_default(update.approved_by, DEFAULT_CELL),
                    date=_or_default(update.date, DEFAULT_CELL),
                )
            )
            index_by_domain[key] = len(merged) - 1
            continue

        current = merged[index]
        merged[index] = replace(
            current,
            domain=update.domain,
            required_approver=_or_default(update.required_approver, current.required_approver),
            status=_or_default(update.status, current.status),
            approved_by=_or_default(update.approved_by, current.approved_by),
            date=_or_default(update.date, current.date),
        )

    return merged


def merge_approval_table(
    body: str,
    updates: list[ApprovalUpdate],
    create_if_missing: bool = False,
    default_rows: list[ApprovalRow] | None = None,
    allow_append: bool = False,
) -> ApprovalMergeResult:
    """
    Apply updates to the approval table inside body.

    Args:
        body: Pull-request body
        updates: Sparse row updates, applied in order
        create_if_missing: Append a new table when body has none
        default_rows: Starting rows for a newly created table
        allow_append: Append rows for unmatched domains of an existing table

    Returns:
        ApprovalMergeResult with the new body and the merged rows

    Raises:
        ApprovalTableNotFoundError: If body has no table and create_if_missing is False
    """
    existing = extract_approval_table(body)

    if existing is None:
        if not create_if_missing:
            raise ApprovalTableNotFoundError()

        merged_rows = apply_approval_updates(list(default_rows or []), updates, True)
        new_table = render_approval_table(merged_rows)
        trimmed = body.strip()
        delimiter = "\n\n" if trimmed else ""
        return ApprovalMergeResult(body=f"{trimmed}{delimiter}{new_table}", rows=merged_rows)

    merged_rows = apply_approval_updates(existing.rows, updates, allow_append)
    new_table = render_approval_table(merged_rows)

    return ApprovalMergeResult(
        body=body.replace(existing.markdown, new_table, 1),
        rows=merged_rows,
    )


def _or_default(value: str | None, default: str) -> str:
    return default if value is None else value
