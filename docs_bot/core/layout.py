"""HTML to page-layout tree conversion.

Turns converted markdown HTML into typed layout nodes and groups them into
keep-together units so the paginator never strands a heading at the bottom of
a page or splits a short block mid-way. Long tables remain splittable row by
row; they carry a repeating header row instead.
"""

import re
from dataclasses import dataclass, field
from typing import Union

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

CHECKED_BOX = "[x]"
UNCHECKED_BOX = "[\u00a0\u00a0]"

# Glyphs the PDF fonts cannot draw. Check marks are kept as bracket notation.
_CHECKED_GLYPHS = re.compile("[✅✔☑✓]️?")
_UNCHECKED_GLYPHS = re.compile("[☐⬜]️?")
_EMOJI_PATTERN = re.compile(
    "(?:["
    "\U0001F600-\U0001F64F"
    "\U0001F300-\U0001F5FF"
    "\U0001F680-\U0001F6FF"
    "\U0001F700-\U0001F77F"
    "\U0001F780-\U0001F7FF"
    "\U0001F800-\U0001F8FF"
    "\U0001F900-\U0001F9FF"
    "\U0001FA00-\U0001FA6F"
    "\U0001FA70-\U0001FAFF"
    "☀-⛿"
    "✀-➿"
    "⌀-⏿"
    "⭐-⭕"
    "‍"
    "️"
    "\U0001F1E0-\U0001F1FF"
    "])+ ?"
)

_CHECKBOX_CHECKED = re.compile(
    r"<input[^>]*\bchecked\b[^>]*type=[\"']?checkbox[\"']?[^>]*>"
    r"|<input[^>]*type=[\"']?checkbox[\"']?[^>]*\bchecked\b[^>]*>",
    re.IGNORECASE,
)
_CHECKBOX_ANY = re.compile(r"<input[^>]*type=[\"']?checkbox[\"']?[^>]*>", re.IGNORECASE)

_WHITESPACE = re.compile(r"[ \t\r\n\f\v]+")
_HEADING_TAGS = {"h1", "h2", "h3", "h4", "h5", "h6"}
_CONTAINER_TAGS = {"div", "section", "article", "main", "body", "html", "details", "figure", "header", "footer"}


@dataclass
class TextRun:
    """A span of inline text with uniform formatting."""

    text: str
    bold: bool = False
    italic: bool = False
    code: bool = False
    strike: bool = False
    href: str | None = None
    line_break: bool = False


@dataclass
class Heading:
    level: int
    runs: list[TextRun] = field(default_factory=list)


@dataclass
class Paragraph:
    runs: list[TextRun] = field(default_factory=list)


@dataclass
class ListItem:
    runs: list[TextRun] = field(default_factory=list)
    children: list["LayoutNode"] = field(default_factory=list)


@dataclass
class ListBlock:
    ordered: bool
    items: list[ListItem] = field(default_factory=list)
    start: int = 1


@dataclass
class TableBlock:
    """A table; header_rows repeat at the top of every continuation page."""

    rows: list[list[list[TextRun]]] = field(default_factory=list)
    header_rows: int = 0


@dataclass
class ImageBlock:
    src: str
    alt: str = ""


@dataclass
class CodeBlock:
    text: str


@dataclass
class Quote:
    children: list["LayoutNode"] = field(default_factory=list)


@dataclass
class Rule:
    pass


@dataclass
class KeepTogether:
    """Nodes the paginator keeps on one page when they fit."""

    children: list["LayoutNode"] = field(default_factory=list)


LayoutNode = Union[Heading, Paragraph, ListBlock, TableBlock, ImageBlock, CodeBlock, Quote, Rule, KeepTogether]

KEEP_TOGETHER_TYPES = (TableBlock, ListBlock, ImageBlock, Paragraph)


def substitute_glyphs(text: str) -> str:
    """Replace check-mark glyphs with bracket notation and drop other emoji."""
    text = _CHECKED_GLYPHS.sub(CHECKED_BOX, text)
    text = _UNCHECKED_GLYPHS.sub(UNCHECKED_BOX, text)
    return _EMOJI_PATTERN.sub("", text)


def preprocess_html(html: str) -> str:
    """Convert task-list checkboxes to bold bracket text and strip emoji."""
    html = substitute_glyphs(html)
    html = _CHECKBOX_CHECKED.sub(f"<b>{CHECKED_BOX}</b> ", html)
    return _CHECKBOX_ANY.sub(f"<b>{UNCHECKED_BOX}</b> ", html)


def html_to_layout_tree(html: str) -> list[LayoutNode]:
    """
    Convert HTML into a grouped layout tree.

    Args:
        html: HTML produced by markdown_to_html (or any fragment)

    Returns:
        Top-level layout nodes, with keep-together groups applied
    """
    soup = BeautifulSoup(preprocess_html(html), "html.parser")
    nodes = _convert_children(soup)
    return group_keep_together(nodes)


def group_keep_together(nodes: list[LayoutNode]) -> list[LayoutNode]:
    """
    Wrap top-level blocks as keep-together units and attach leading headings.

    Tables, lists, images and paragraphs each become a KeepTogether. A run of
    consecutive headings immediately followed by such a unit is merged into
    it. Only the top level is wrapped, so nested lists stay part of their
    parent list.
    """
    wrapped: list[LayoutNode] = [
        KeepTogether(children=[node]) if isinstance(node, KEEP_TOGETHER_TYPES) else node
        for node in nodes
    ]

    grouped: list[LayoutNode] = []
    i = 0
    while i < len(wrapped):
        current = wrapped[i]
        if not isinstance(current, Heading):
            grouped.append(current)
            i += 1
            continue

        j = i
        while j < len(wrapped) and isinstance(wrapped[j], Heading):
            j += 1
        headings = wrapped[i:j]

        following = wrapped[j] if j < len(wrapped) else None
        if isinstance(following, KeepTogether):
            grouped.append(KeepTogether(children=[*headings, *following.children]))
            i = j + 1
        else:
            grouped.extend(headings)
            i = j

    return grouped


def collect_image_sources(nodes: list[LayoutNode]) -> list[str]:
    """List image sources in document order, without duplicates."""
    sources: list[str] = []

    def visit(node: LayoutNode) -> None:
        if isinstance(node, ImageBlock):
            if node.src and node.src not in sources:
                sources.append(node.src)
        elif isinstance(node, (KeepTogether, Quote)):
            for child in node.children:
                visit(child)
        elif isinstance(node, ListBlock):
            for item in node.items:
                for child in item.children:
                    visit(child)

    for node in nodes:
        visit(node)
    return sources


# =============================================================================
# Block conversion
# =============================================================================


def _convert_children(parent: Tag) -> list[LayoutNode]:
    nodes: list[LayoutNode] = []
    inline_buffer: list[TextRun] = []

    def flush_inline() -> None:
        runs = _strip_runs(inline_buffer)
        if runs:
            nodes.append(Paragraph(runs=runs))
        inline_buffer.clear()

    for child in parent.children:
        if isinstance(child, Comment):
            continue
        if isinstance(child, NavigableString):
            inline_buffer.extend(_runs_from_node(child, TextRun("")))
            continue
        if not isinstance(child, Tag):
            continue

        if _is_block(child):
            flush_inline()
            nodes.extend(_convert_block(child))
        else:
            inline_buffer.extend(_runs_from_node(child, TextRun("")))

    flush_inline()
    return nodes


def _is_block(tag: Tag) -> bool:
    return (
        tag.name in _HEADING_TAGS
        or tag.name in _CONTAINER_TAGS
        or tag.name in {"p", "ul", "ol", "table", "img", "pre", "blockquote", "hr"}
    )


def _convert_block(tag: Tag) -> list[LayoutNode]:
    name = tag.name

    if name in _HEADING_TAGS:
        runs = _strip_runs(_runs_from_children(tag, TextRun("", bold=True)))
        return [Heading(level=int(name[1]), runs=runs)] if runs else []

    if name == "p":
        return _convert_paragraph(tag)

    if name in ("ul", "ol"):
        block = _convert_list(tag)
        return [block] if block.items else []

    if name == "table":
        table = _convert_table(tag)
        return [table] if table.rows else []

    if name == "img":
        return [_image_from_tag(tag)]

    if name == "pre":
        text = tag.get_text().rstrip("\n")
        return [CodeBlock(text=text)] if text.strip() else []

    if name == "blockquote":
        children = _convert_children(tag)
        return [Quote(children=children)] if children else []

    if name == "hr":
        return [Rule()]

    # Generic container: flatten
    return _convert_children(tag)


def _convert_paragraph(tag: Tag) -> list[LayoutNode]:
    """Split a paragraph around any images it contains."""
    nodes: list[LayoutNode] = []
    runs: list[TextRun] = []

    def flush() -> None:
        stripped = _strip_runs(runs)
        if stripped:
            nodes.append(Paragraph(runs=stripped))
        runs.clear()

    for child in tag.children:
        if isinstance(child, Tag) and child.name == "img":
            flush()
            nodes.append(_image_from_tag(child))
        elif isinstance(child, Tag) and child.find("img") is not None and child.name == "a":
            # Linked image: keep the image, drop the link
            flush()
            for img in child.find_all("img"):
                nodes.append(_image_from_tag(img))
        else:
            runs.extend(_runs_from_node(child, TextRun("")))

    flush()
    return nodes


def _convert_list(tag: Tag) -> ListBlock:
    ordered = tag.name == "ol"
    start = 1
    if ordered and tag.get("start"):
        try:
            start = int(tag["start"])
        except (TypeError, ValueError):
            start = 1

    block = ListBlock(ordered=ordered, start=start)
    for li in tag.find_all("li", recursive=False):
        block.items.append(_convert_list_item(li))
    return block


def _convert_list_item(li: Tag) -> ListItem:
    item = ListItem()
    for child in li.children:
        if isinstance(child, Tag) and child.name in ("ul", "ol"):
            nested = _convert_list(child)
            if nested.items:
                item.children.append(nested)
        elif isinstance(child, Tag) and child.name == "p":
            paragraph_nodes = _convert_paragraph(child)
            if not item.runs and not item.children and paragraph_nodes and isinstance(paragraph_nodes[0], Paragraph):
                item.runs = paragraph_nodes.pop(0).runs
            item.children.extend(paragraph_nodes)
        elif isinstance(child, Tag) and child.name in ("pre", "table", "blockquote", "img"):
            item.children.extend(_convert_block(child))
        elif not item.children:
            item.runs.extend(_runs_from_node(child, TextRun("")))
    item.runs = _strip_runs(item.runs)
    return item


def _convert_table(tag: Tag) -> TableBlock:
    rows: list[list[list[TextRun]]] = []
    header_rows = 0

    for tr in tag.find_all("tr"):
        # Skip rows belonging to nested tables
        if tr.find_parent("table") is not tag:
            continue
        cells = tr.find_all(["th", "td"], recursive=False)
        if not cells:
            continue
        row = [_strip_runs(_runs_from_children(cell, TextRun(""))) for cell in cells]
        rows.append(row)

        in_thead = tr.find_parent("thead") is not None
        all_th = all(cell.name == "th" for cell in cells)
        if (in_thead or all_th) and header_rows == len(rows) - 1:
            header_rows += 1

    return TableBlock(rows=rows, header_rows=min(header_rows, 1) if rows else 0)


def _image_from_tag(tag: Tag) -> ImageBlock:
    return ImageBlock(src=str(tag.get("src", "")), alt=str(tag.get("alt", "")))


# =============================================================================
# Inline runs
# =============================================================================


def _runs_from_children(tag: Tag, style: TextRun) -> list[TextRun]:
    runs: list[TextRun] = []
    for child in tag.children:
        runs.extend(_runs_from_node(child, style))
    return runs


def _runs_from_node(node, style: TextRun) -> list[TextRun]:
    if isinstance(node, Comment):
        return []
    if isinstance(node, NavigableString):
        text = _WHITESPACE.sub(" ", str(node))
        if not text:
            return []
        return [_styled(style, text)]
    if not isinstance(node, Tag):
        return []

    name = node.name
    if name == "br":
        return [_styled(style, "", line_break=True)]
    if name == "img":
        alt = str(node.get("alt", "")).strip()
        return [_styled(style, alt, italic=True)] if alt else []
    if name in ("strong", "b"):
        return _runs_from_children(node, _styled(style, "", bold=True))
    if name in ("em", "i"):
        return _runs_from_children(node, _styled(style, "", italic=True))
    if name == "code":
        return _runs_from_children(node, _styled(style, "", code=True))
    if name in ("del", "s", "strike"):
        return _runs_from_children(node, _styled(style, "", strike=True))
    if name == "a":
        href = node.get("href")
        return _runs_from_children(node, _styled(style, "", href=str(href) if href else None))
    if name in ("ul", "ol"):
        return []
    return _runs_from_children(node, style)


def _styled(base: TextRun, text: str, **overrides) -> TextRun:
    values = {
        "bold": base.bold,
        "italic": base.italic,
        "code": base.code,
        "strike": base.strike,
        "href": base.href,
        "line_break": False,
    }
    values.update(overrides)
    return TextRun(text=text, **values)


def _strip_runs(runs: list[TextRun]) -> list[TextRun]:
    """Drop whitespace-only runs at the edges and trim the outermost text."""
    result = [run for run in runs if run.line_break or run.text != ""]

    while result and not result[0].line_break and not result[0].text.strip():
        result.pop(0)
    while result and (result[-1].line_break or not result[-1].text.strip()):
        result.pop()

    if not result:
        return []

    first, last = result[0], result[-1]
    result[0] = _styled(first, first.text.lstrip(), line_break=first.line_break)
    last = result[-1]
    result[-1] = _styled(last, last.text.rstrip(), line_break=last.line_break)
    return result
