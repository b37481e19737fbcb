"""PDF rendering for policy documents.

Layout trees are laid out with reportlab platypus onto fixed-size pages.
Header and footer bands are drawn once pagination is complete, so page
placeholders resolve against the real page total.
"""

import io
import os
from dataclasses import dataclass, field
from functools import partial
from typing import Any
from xml.sax.saxutils import escape

from reportlab.lib.colors import HexColor
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4, LEGAL, LETTER, landscape, portrait
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas
from reportlab.platypus import (
    HRFlowable,
    Image,
    Indenter,
    KeepTogether,
    ListFlowable,
    ListItem,
    Paragraph,
    Preformatted,
    SimpleDocTemplate,
    Table,
    TableStyle,
)

from docs_bot.core import layout
from docs_bot.core.errors import ConfigurationError
from docs_bot.core.logging import get_logger
from docs_bot.core.markdown_html import markdown_to_html

logger = get_logger(__name__)

PAGE_SIZES = {"A4": A4, "LETTER": LETTER, "LEGAL": LEGAL}

DEFAULT_MARGINS = (72.0, 99.0, 57.0, 72.0)
DEFAULT_BAND_MARGINS = (42.0, 42.0)
DEFAULT_FONT_SIZE = 11
LINE_HEIGHT_FACTOR = 1.3

HEADER_BAND_PADDING = 30
FOOTER_BAND_PADDING = 15
DEFAULT_BAND_IMAGE_WIDTH = 110.0
ESTIMATED_BAND_IMAGE_HEIGHT = 24.0
DEFAULT_BAND_FONT_SIZE = 8
DEFAULT_BAND_COLOR = "#1B1F1B"

TEXT_COLOR = "#1b1f1b"
LINK_COLOR = "#3C69E6"
CODE_BACKGROUND = "#e3e8e7"
TABLE_LINE_COLOR = "#c7d1cf"
TABLE_HEADER_FILL = "#dde3e2"
QUOTE_COLOR = "#50645c"

HEADING_STYLES = {
    1: (16, "#253E34"),
    2: (12, "#50645c"),
    3: (10, "#1b1f1b"),
    4: (10, "#1b1f1b"),
    5: (9, "#1b1f1b"),
    6: (8, "#1b1f1b"),
}

FONT_FILE_SUFFIXES = {
    "normal": "Normal",
    "bold": "Medium",
    "italic": "NormalOblique",
    "bold_italic": "MediumOblique",
}


@dataclass
class HeaderFooterSection:
    """One column of a header or footer band."""

    text: str | list[str] = ""
    image: str | None = None
    image_width: float = DEFAULT_BAND_IMAGE_WIDTH
    image_height: float | None = None
    font_size: float = DEFAULT_BAND_FONT_SIZE
    color: str = DEFAULT_BAND_COLOR

    def lines(self) -> list[str]:
        if isinstance(self.text, list):
            return [line for line in self.text if line is not None]
        return self.text.split("\n") if self.text else []


@dataclass
class HeaderFooterDef:
    left: HeaderFooterSection | None = None
    center: HeaderFooterSection | None = None
    right: HeaderFooterSection | None = None
    margins: tuple[float, float] = DEFAULT_BAND_MARGINS
    vertical_align: str = "top"

    def sections(self) -> dict[str, HeaderFooterSection]:
        return {
            name: section
            for name, section in (("left", self.left), ("center", self.center), ("right", self.right))
            if section is not None
        }


@dataclass
class PdfOptions:
    """Page geometry and bands. Margins are (left, top, right, bottom) in points."""

    page_size: str = "A4"
    orientation: str = "portrait"
    margins: tuple[float, float, float, float] = DEFAULT_MARGINS
    header: HeaderFooterDef | None = None
    footer: HeaderFooterDef | None = None
    title: str | None = None
    font_size: float = DEFAULT_FONT_SIZE


@dataclass
class PdfResult:
    content: bytes
    page_count: int


@dataclass(frozen=True)
class FontSet:
    normal: str = "Helvetica"
    bold: str = "Helvetica-Bold"
    italic: str = "Helvetica-Oblique"
    bold_italic: str = "Helvetica-BoldOblique"


# =============================================================================
# Band geometry
# =============================================================================


def estimate_section_height(section: HeaderFooterSection) -> float:
    """
    Estimate the drawn height of a band column.

    Images count as their explicit height, or a fixed estimate when none is
    given; each text line counts font_size * 1.3.
    """
    image_height = 0.0
    if section.image:
        image_height = section.image_height or ESTIMATED_BAND_IMAGE_HEIGHT
    return image_height + len(section.lines()) * section.font_size * LINE_HEIGHT_FACTOR


def column_offsets(band: HeaderFooterDef) -> dict[str, float]:
    """
    Vertical offset per column so columns share the band's alignment.

    Args:
        band: Header or footer definition

    Returns:
        Mapping of column name (left/center/right) to downward offset in points
    """
    heights = {name: estimate_section_height(section) for name, section in band.sections().items()}
    if not heights:
        return {}

    tallest = max(heights.values())
    offsets: dict[str, float] = {}
    for name, height in heights.items():
        if band.vertical_align == "center":
            offsets[name] = (tallest - height) / 2
        elif band.vertical_align == "bottom":
            offsets[name] = tallest - height
        else:
            offsets[name] = 0.0
    return offsets


def resolve_placeholders(text: str, current_page: int, total_pages: int) -> str:
    return text.replace("{currentPage}", str(current_page)).replace("{totalPages}", str(total_pages))


def _page_dimensions(options: PdfOptions) -> tuple[float, float]:
    size = PAGE_SIZES.get(options.page_size.upper(), A4)
    if options.orientation == "landscape":
        return landscape(size)
    return portrait(size)


class _BandPainter:
    """Draws header and footer bands on a finished page."""

    def __init__(self, options: PdfOptions, fonts: FontSet, band_images: dict[str, ImageReader]):
        self.options = options
        self.fonts = fonts
        self.band_images = band_images
        self.page_width, self.page_height = _page_dimensions(options)
        self.page_count = 0

    def paint(self, pdf: canvas.Canvas, page_number: int, total_pages: int) -> None:
        self.page_count = total_pages
        if self.options.header:
            self._draw_band(pdf, self.options.header, self.page_height - HEADER_BAND_PADDING, page_number, total_pages)
        if self.options.footer:
            bottom_margin = self.options.margins[3]
            self._draw_band(pdf, self.options.footer, bottom_margin - FOOTER_BAND_PADDING, page_number, total_pages)

    def _draw_band(
        self,
        pdf: canvas.Canvas,
        band: HeaderFooterDef,
        top: float,
        page_number: int,
        total_pages: int,
    ) -> None:
        left_margin, right_margin = band.margins
        column_width = (self.page_width - left_margin - right_margin) / 3
        offsets = column_offsets(band)

        for index, name in enumerate(("left", "center", "right")):
            section = band.sections().get(name)
            if section is None:
                continue

            x = left_margin + index * column_width
            cursor = top - offsets[name]

            if section.image:
                cursor = self._draw_band_image(pdf, section, name, x, column_width, cursor)

            pdf.setFillColor(HexColor(section.color))
            pdf.setFont(self.fonts.normal, section.font_size)
            for line in section.lines():
                text = resolve_placeholders(line, page_number, total_pages)
                baseline = cursor - section.font_size
                if name == "left":
                    pdf.drawString(x, baseline, text)
                elif name == "center":
                    pdf.drawCentredString(x + column_width / 2, baseline, text)
                else:
                    pdf.drawRightString(x + column_width, baseline, text)
                cursor -= section.font_size * LINE_HEIGHT_FACTOR

    def _draw_band_image(
        self,
        pdf: canvas.Canvas,
        section: HeaderFooterSection,
        name: str,
        x: float,
        column_width: float,
        cursor: float,
    ) -> float:
        reader = self.band_images[section.image]
        width = section.image_width
        if section.image_height:
            height = section.image_height
        else:
            natural_width, natural_height = reader.getSize()
            height = width * natural_height / natural_width if natural_width else ESTIMATED_BAND_IMAGE_HEIGHT

        if name == "center":
            x += (column_width - width) / 2
        elif name == "right":
            x += column_width - width

        pdf.drawImage(reader, x, cursor - height, width=width, height=height, mask="auto")
        return cursor - height


class _BandCanvas(canvas.Canvas):
    """Canvas that holds finished pages until the total page count is known."""

    def __init__(self, *args: Any, band_painter: _BandPainter | None = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._band_painter = band_painter
        self._saved_page_states: list[dict[str, Any]] = []

    def showPage(self) -> None:
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self) -> None:
        total_pages = len(self._saved_page_states)
        for page_number, state in enumerate(self._saved_page_states, start=1):
            self.__dict__.update(state)
            if self._band_painter is not None:
                self._band_painter.paint(self, page_number, total_pages)
            super().showPage()
        super().save()


# =============================================================================
# Styles and story
# =============================================================================


def _make_styles(fonts: FontSet, font_size: float) -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    leading = font_size * LINE_HEIGHT_FACTOR

    styles = {
        "body": ParagraphStyle(
            "DocBody",
            parent=base["Normal"],
            fontName=fonts.normal,
            fontSize=font_size,
            leading=leading,
            textColor=HexColor(TEXT_COLOR),
            spaceAfter=8,
        ),
        "quote": ParagraphStyle(
            "DocQuote",
            parent=base["Normal"],
            fontName=fonts.italic,
            fontSize=font_size,
            leading=leading,
            textColor=HexColor(QUOTE_COLOR),
            spaceAfter=6,
        ),
        "code": ParagraphStyle(
            "DocCode",
            parent=base["Code"],
            fontName="Courier",
            fontSize=9,
            leading=12,
            backColor=HexColor(CODE_BACKGROUND),
            borderPadding=4,
            spaceBefore=4,
            spaceAfter=10,
        ),
        "cell": ParagraphStyle(
            "DocCell",
            parent=base["Normal"],
            fontName=fonts.normal,
            fontSize=font_size - 2,
            leading=(font_size - 2) * LINE_HEIGHT_FACTOR,
            textColor=HexColor(TEXT_COLOR),
        ),
        "cell_header": ParagraphStyle(
            "DocCellHeader",
            parent=base["Normal"],
            fontName=fonts.bold,
            fontSize=font_size - 2,
            leading=(font_size - 2) * LINE_HEIGHT_FACTOR,
            textColor=HexColor(TEXT_COLOR),
        ),
        "alt": ParagraphStyle(
            "DocImageAlt",
            parent=base["Normal"],
            fontName=fonts.italic,
            fontSize=font_size - 1,
            leading=(font_size - 1) * LINE_HEIGHT_FACTOR,
            textColor=HexColor(QUOTE_COLOR),
            alignment=TA_CENTER,
            spaceAfter=8,
        ),
    }

    for level, (size, color) in HEADING_STYLES.items():
        styles[f"h{level}"] = ParagraphStyle(
            f"DocHeading{level}",
            parent=base[f"Heading{min(level, 6)}"],
            fontName=fonts.bold,
            fontSize=size,
            leading=size * LINE_HEIGHT_FACTOR,
            textColor=HexColor(color),
            spaceBefore=10 if level > 1 else 0,
            spaceAfter=6,
        )
    return styles


def runs_to_markup(runs: list[layout.TextRun]) -> str:
    """Convert text runs to reportlab paragraph markup."""
    parts: list[str] = []
    for run in runs:
        if run.line_break:
            parts.append("<br/>")
            continue
        text = escape(run.text)
        if not text:
            continue
        if run.code:
            text = f'<font face="Courier">{text}</font>'
        if run.bold:
            text = f"<b>{text}</b>"
        if run.italic:
            text = f"<i>{text}</i>"
        if run.strike:
            text = f"<strike>{text}</strike>"
        if run.href:
            if run.href.startswith(("http://", "https://", "mailto:")):
                href = escape(run.href, {'"': "&quot;"})
                text = f'<a href="{href}" color="{LINK_COLOR}"><u>{text}</u></a>'
            else:
                text = f'<font color="{LINK_COLOR}"><u>{text}</u></font>'
        parts.append(text)
    return "".join(parts)


class _StoryBuilder:
    """Converts layout nodes into platypus flowables."""

    def __init__(
        self,
        styles: dict[str, ParagraphStyle],
        fonts: FontSet,
        images: dict[str, bytes],
        frame_width: float,
        frame_height: float,
    ):
        self.styles = styles
        self.fonts = fonts
        self.images = images
        self.frame_width = frame_width
        self.frame_height = frame_height

    def build(self, nodes: list[layout.LayoutNode], paragraph_style: str = "body") -> list:
        story: list = []
        for node in nodes:
            story.extend(self._flowables(node, paragraph_style))
        return story

    def _flowables(self, node: layout.LayoutNode, paragraph_style: str) -> list:
        if isinstance(node, layout.KeepTogether):
            children = self.build(node.children, paragraph_style)
            return [KeepTogether(children)] if children else []

        if isinstance(node, layout.Heading):
            return [Paragraph(runs_to_markup(node.runs), self.styles[f"h{node.level}"])]

        if isinstance(node, layout.Paragraph):
            markup = runs_to_markup(node.runs)
            return [Paragraph(markup, self.styles[paragraph_style])] if markup else []

        if isinstance(node, layout.ListBlock):
            return [self._list(node, paragraph_style)]

        if isinstance(node, layout.TableBlock):
            table = self._table(node)
            return [table] if table is not None else []

        if isinstance(node, layout.ImageBlock):
            return [self._image(node)]

        if isinstance(node, layout.CodeBlock):
            return [Preformatted(node.text, self.styles["code"])]

        if isinstance(node, layout.Quote):
            return [Indenter(left=20), *self.build(node.children, "quote"), Indenter(left=-20)]

        if isinstance(node, layout.Rule):
            return [HRFlowable(width="100%", thickness=0.5, color=HexColor(TABLE_LINE_COLOR), spaceBefore=4, spaceAfter=6)]

        return []

    def _list(self, block: layout.ListBlock, paragraph_style: str) -> ListFlowable:
        items = []
        for item in block.items:
            content: list = []
            markup = runs_to_markup(item.runs)
            if markup:
                content.append(Paragraph(markup, self.styles[paragraph_style]))
            content.extend(self.build(item.children, paragraph_style))
            if not content:
                content.append(Paragraph("", self.styles[paragraph_style]))
            items.append(ListItem(content))

        if block.ordered:
            return ListFlowable(
                items,
                bulletType="1",
                start=block.start,
                leftIndent=18,
                bulletFontName=self.fonts.normal,
                bulletFontSize=self.styles["body"].fontSize,
            )
        return ListFlowable(
            items,
            bulletType="bullet",
            start="•",
            leftIndent=14,
            bulletFontName=self.fonts.normal,
            bulletFontSize=self.styles["body"].fontSize,
        )

    def _table(self, block: layout.TableBlock) -> Table | None:
        column_count = max((len(row) for row in block.rows), default=0)
        if column_count == 0:
            return None

        data = []
        for row_index, row in enumerate(block.rows):
            style = self.styles["cell_header"] if row_index < block.header_rows else self.styles["cell"]
            cells = [Paragraph(runs_to_markup(cell), style) for cell in row]
            cells.extend(Paragraph("", style) for _ in range(column_count - len(cells)))
            data.append(cells)

        table = Table(
            data,
            colWidths=[self.frame_width / column_count] * column_count,
            repeatRows=block.header_rows,
        )
        commands = [
            ("GRID", (0, 0), (-1, -1), 0.5, HexColor(TABLE_LINE_COLOR)),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("LEFTPADDING", (0, 0), (-1, -1), 6),
            ("RIGHTPADDING", (0, 0), (-1, -1), 6),
            ("TOPPADDING", (0, 0), (-1, -1), 4),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
        ]
        if block.header_rows:
            commands.append(("BACKGROUND", (0, 0), (-1, block.header_rows - 1), HexColor(TABLE_HEADER_FILL)))
        table.setStyle(TableStyle(commands))
        return table

    def _image(self, block: layout.ImageBlock):
        data = self.images.get(block.src)
        if data is None:
            logger.warning(f"No image data for {block.src}, using alt text")
            return self._alt_text(block)

        try:
            natural_width, natural_height = ImageReader(io.BytesIO(data)).getSize()
        except Exception as e:
            logger.warning(f"Unreadable image {block.src}: {e}")
            return self._alt_text(block)

        width = min(float(natural_width), self.frame_width)
        height = width * natural_height / natural_width if natural_width else 0
        max_height = self.frame_height * 0.8
        if height > max_height:
            width = width * max_height / height
            height = max_height

        image = Image(io.BytesIO(data), width=width, height=height)
        image.hAlign = "CENTER"
        return image

    def _alt_text(self, block: layout.ImageBlock) -> Paragraph:
        label = block.alt or os.path.basename(block.src) or "image"
        return Paragraph(escape(f"[Image: {label}]"), self.styles["alt"])


# =============================================================================
# Renderer
# =============================================================================


def register_font_family(font_dir: str, family: str) -> FontSet:
    """
    Register a TrueType font family from font_dir.

    Expects {family}-Normal.ttf, -Medium.ttf, -NormalOblique.ttf and
    -MediumOblique.ttf.

    Raises:
        ConfigurationError: If the directory or any font file is missing
    """
    if not os.path.isdir(font_dir):
        raise ConfigurationError(f"PDF font directory not found: {font_dir}")

    paths = {variant: os.path.join(font_dir, f"{family}-{suffix}.ttf") for variant, suffix in FONT_FILE_SUFFIXES.items()}
    for path in paths.values():
        if not os.path.isfile(path):
            raise ConfigurationError(f"PDF font file not found: {path}")

    names: dict[str, str] = {}
    for variant, path in paths.items():
        name = family if variant == "normal" else f"{family}-{FONT_FILE_SUFFIXES[variant]}"
        pdfmetrics.registerFont(TTFont(name, path))
        names[variant] = name

    pdfmetrics.registerFontFamily(
        family,
        normal=names["normal"],
        bold=names["bold"],
        italic=names["italic"],
        boldItalic=names["bold_italic"],
    )
    return FontSet(**names)


class PdfRenderer:
    """Renders layout trees to PDF with a fixed font family and brand assets."""

    def __init__(
        self,
        font_dir: str | None = None,
        font_family: str = "ABCNormal",
        asset_paths: list[str] | None = None,
    ):
        """
        Initialize the renderer.

        Args:
            font_dir: Directory with the TrueType family, or None for Helvetica
            font_family: Font file prefix inside font_dir
            asset_paths: Image files header/footer bands will reference

        Raises:
            ConfigurationError: If a configured font or asset is missing
        """
        self.fonts = register_font_family(font_dir, font_family) if font_dir else FontSet()
        self._assets: dict[str, ImageReader] = {}
        for path in asset_paths or []:
            self._assets[path] = self._load_asset(path)

    def _load_asset(self, path: str) -> ImageReader:
        if path in self._assets:
            return self._assets[path]
        if not os.path.isfile(path):
            raise ConfigurationError(f"PDF asset not found: {path}")
        with open(path, "rb") as f:
            return ImageReader(io.BytesIO(f.read()))

    def render(
        self,
        content: list[layout.LayoutNode],
        options: PdfOptions | None = None,
        images: dict[str, bytes] | None = None,
    ) -> PdfResult:
        """
        Lay out content on pages and draw header/footer bands.

        Args:
            content: Layout tree from html_to_layout_tree
            options: Page geometry and bands
            images: Image bytes keyed by the src used in the content

        Returns:
            PdfResult with the PDF bytes and the real page count
        """
        options = options or PdfOptions()
        page_width, page_height = _page_dimensions(options)
        left, top, right, bottom = options.margins

        band_images: dict[str, ImageReader] = {}
        for band in (options.header, options.footer):
            if band is None:
                continue
            for section in band.sections().values():
                if section.image:
                    band_images[section.image] = self._load_asset(section.image)

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=(page_width, page_height),
            leftMargin=left,
            topMargin=top,
            rightMargin=right,
            bottomMargin=bottom,
            title=options.title or "",
        )

        builder = _StoryBuilder(
            styles=_make_styles(self.fonts, options.font_size),
            fonts=self.fonts,
            images=images or {},
            frame_width=doc.width,
            frame_height=doc.height,
        )
        story = builder.build(content)
        if not story:
            story = [Paragraph("", builder.styles["body"])]

        painter = _BandPainter(options, self.fonts, band_images)
        doc.build(story, canvasmaker=partial(_BandCanvas, band_painter=painter))

        return PdfResult(content=buffer.getvalue(), page_count=painter.page_count)


_default_renderer: PdfRenderer | None = None


def _get_default_renderer() -> PdfRenderer:
    global _default_renderer
    if _default_renderer is None:
        _default_renderer = PdfRenderer()
    return _default_renderer


def render_to_document(
    content: list[layout.LayoutNode],
    options: PdfOptions | None = None,
    images: dict[str, bytes] | None = None,
    renderer: PdfRenderer | None = None,
) -> PdfResult:
    """Render a layout tree with the given (or the built-in Helvetica) renderer."""
    return (renderer or _get_default_renderer()).render(content, options, images)


def markdown_to_pdf(
    markdown: str,
    options: PdfOptions | None = None,
    images: dict[str, bytes] | None = None,
    renderer: PdfRenderer | None = None,
) -> PdfResult:
    """Run markdown through HTML conversion, layout and PDF rendering."""
    html = markdown_to_html(markdown)
    tree = layout.html_to_layout_tree(html)
    return render_to_document(tree, options, images, renderer)
