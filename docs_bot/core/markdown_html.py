"""Markdown to HTML conversion."""

import re

import markdown

MARKDOWN_EXTENSIONS = ["tables", "fenced_code", "sane_lists"]

# GFM task list items: "- [ ] todo" / "- [x] done"
_TASK_ITEM_PATTERN = re.compile(r"<li>(\s*<p>)?\s*\[([ xX])\]\s+")


def _render_task_item(match: re.Match) -> str:
    paragraph = match.group(1) or ""
    checked = " checked" if match.group(2) in ("x", "X") else ""
    return f'<li>{paragraph}<input type="checkbox" disabled{checked}> '


def markdown_to_html(text: str) -> str:
    """
    Convert markdown content to HTML.

    Tables, fenced code blocks and task lists are rendered the way GitHub
    renders them.
    """
    html = markdown.markdown(text, extensions=MARKDOWN_EXTENSIONS, output_format="html")
    return _TASK_ITEM_PATTERN.sub(_render_task_item, html)
