"""Tests for frontmatter parsing and title resolution."""

from docs_bot.core.frontmatter import ParsedDocument, parse_frontmatter, resolve_title


def test_parse_frontmatter_splits_metadata_and_body():
    text = "---\ntitle: Remote Work\nowner: hr\n---\n# Heading\n\nBody text\n"

    document = parse_frontmatter(text)

    assert document.metadata == {"title": "Remote Work", "owner": "hr"}
    assert document.body == "# Heading\n\nBody text\n"


def test_document_without_frontmatter_is_all_body():
    text = "# Heading\n\nBody"

    document = parse_frontmatter(text)

    assert document.metadata == {}
    assert document.body == text


def test_invalid_yaml_frontmatter_is_ignored():
    text = "---\ntitle: [unclosed\n---\nBody"

    document = parse_frontmatter(text)

    assert document.metadata == {}
    assert document.body == text


def test_non_mapping_frontmatter_is_ignored():
    text = "---\n- a\n- b\n---\nBody"

    assert parse_frontmatter(text).metadata == {}


def test_title_prefers_frontmatter():
    document = ParsedDocument(metadata={"title": " Leave Policy "}, body="# Other\n")

    assert resolve_title(document, "policies/leave.md") == "Leave Policy"


def test_title_falls_back_to_first_h1():
    document = ParsedDocument(metadata={}, body="Intro\n\n## Sub\n\n# Travel Policy\n")

    assert resolve_title(document, "policies/travel.md") == "Travel Policy"


def test_title_falls_back_to_file_stem():
    document = ParsedDocument(metadata={}, body="No headings here")

    assert resolve_title(document, "policies/hr/code-of-conduct.md") == "code-of-conduct"
