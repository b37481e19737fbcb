"""YAML frontmatter parsing for policy documents."""

import posixpath
import re
from dataclasses import dataclass, field
from typing import Any

import yaml

from docs_bot.core.logging import get_logger

logger = get_logger(__name__)

_FRONTMATTER_PATTERN = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
_H1_PATTERN = re.compile(r"^#\s+(.+?)\s*#*\s*$", re.MULTILINE)


@dataclass
class ParsedDocument:
    """A markdown document split into metadata and body."""

    metadata: dict[str, Any] = field(default_factory=dict)
    body: str = ""


def parse_frontmatter(text: str) -> ParsedDocument:
    """
    Split leading YAML frontmatter from markdown.

    A document without frontmatter, or whose frontmatter is not a YAML
    mapping, is returned whole as the body with empty metadata.

    Args:
        text: Raw markdown file content

    Returns:
        ParsedDocument with metadata and body
    """
    match = _FRONTMATTER_PATTERN.match(text)
    if not match:
        return ParsedDocument(metadata={}, body=text)

    try:
        metadata = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        logger.warning(f"Ignoring unparsable frontmatter: {e}")
        return ParsedDocument(metadata={}, body=text)

    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        logger.warning("Ignoring frontmatter that is not a mapping")
        return ParsedDocument(metadata={}, body=text)

    return ParsedDocument(metadata=metadata, body=text[match.end() :])


def resolve_title(document: ParsedDocument, path: str) -> str:
    """Title from frontmatter, else the first H1, else the file name stem."""
    title = document.metadata.get("title")
    if isinstance(title, str) and title.strip():
        return title.strip()

    heading = _H1_PATTERN.search(document.body)
    if heading:
        return heading.group(1).strip()

    stem, _ = posixpath.splitext(posixpath.basename(path))
    return stem
