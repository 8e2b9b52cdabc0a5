# layout.py - Page-count estimator and PDF renderer
#
# The estimator and the renderer share the geometry below so that the page
# budget the orchestrator works against matches what the renderer produces.

import logging
import math
from io import BytesIO

from fpdf import FPDF
from fpdf.errors import FPDFException
from markdown_it import MarkdownIt
from PIL import Image
from pypdf import PdfReader, PdfWriter

from models import LayoutOptions, parse_hex_color
from setup_fonts import FONT_PATHS, fonts_available

# --- Page Geometry (mm) ---
PAGE_WIDTH_MM = 210
PAGE_HEIGHT_MM = 297
MARGIN_MM = 20
LINE_HEIGHT_MM = 7
HEADER_FOOTER_BAND_MM = 20
USABLE_WIDTH_MM = PAGE_WIDTH_MM - MARGIN_MM * 2
CONTENT_HEIGHT_PER_PAGE_MM = PAGE_HEIGHT_MM - MARGIN_MM * 2 - HEADER_FOOTER_BAND_MM
CHAPTER_HEADING_MM = 20
PARAGRAPH_GAP_MM = 5
IMAGE_GAP_MM = 10
IMAGE_HEIGHT_MM = USABLE_WIDTH_MM * 9 / 16
# Empirical characters-to-width factor standing in for real text shaping.
CHARS_WIDTH_FACTOR = 0.25

# Renderer positions
CONTENT_TOP_MM = MARGIN_MM + 15
BOTTOM_LIMIT_MM = PAGE_HEIGHT_MM - MARGIN_MM - 10
TITLE_LINE_HEIGHT_MM = 13
CHART_MIN_SPACE_MM = 60
LOGO_SIZE_MM = 30
GREY = (150, 150, 150)
ATTRIBUTION = "Généré par EbookAI SaaS Premium"

CORE_FONTS = {"sans": "helvetica", "serif": "times", "monospace": "courier"}
IMAGE_MAX_PX = {"standard": 1024, "high": 2048, "ultra": None}

# Characters outside Latin-1 that are common in generated French text.
LATIN1_REPLACEMENTS = {
    "\u2018": "'", "\u2019": "'", "\u201c": '"', "\u201d": '"',
    "\u2013": "-", "\u2014": "-", "\u2026": "...", "\u2022": "-",
    "\u202f": " ", "\u2009": " ", "\u0153": "oe", "\u0152": "OE", "\u20ac": "EUR",
}

md_parser = MarkdownIt()


# --- Estimator ---
def estimate_page_count(chapters, options=None):
    """Predicts the page count of a rendered ebook without rendering it.

    Title page and table of contents count for two pages. Each chapter adds
    the pages its heading, image and wrapped paragraphs fill, plus one page
    when it carries chart data. Deterministic and monotonic in content
    length. `options` is accepted for parity with render_pdf(); the page
    geometry is fixed.
    """
    total_pages = 2
    for chapter in chapters:
        offset = CHAPTER_HEADING_MM
        if chapter.image:
            offset += IMAGE_HEIGHT_MM + IMAGE_GAP_MM
        for paragraph in chapter.content.split("\n\n"):
            if not paragraph.strip():
                continue
            lines = math.ceil((len(paragraph) * CHARS_WIDTH_FACTOR) / USABLE_WIDTH_MM)
            offset += lines * LINE_HEIGHT_MM + PARAGRAPH_GAP_MM
        total_pages += math.ceil(offset / CONTENT_HEIGHT_PER_PAGE_MM)
        if chapter.chart:
            total_pages += 1
    return total_pages


# --- Markdown flattening ---
def _inline_text(token):
    if token.type in ("text", "code_inline"):
        return token.content
    if token.type in ("softbreak", "hardbreak"):
        return "\n"
    return ""


def markdown_blocks(paragraph):
    """Splits one paragraph of Markdown into (plain_text, is_heading) blocks."""
    blocks = []
    heading = False
    prefix = ""
    for token in md_parser.parse(paragraph):
        if token.type == "heading_open":
            heading = True
        elif token.type == "heading_close":
            heading = False
        elif token.type == "list_item_open":
            prefix = "- "
        elif token.type == "inline":
            text = "".join(_inline_text(child) for child in token.children or [])
            if text.strip():
                blocks.append((prefix + text, heading))
            prefix = ""
        elif token.type in ("fence", "code_block"):
            blocks.append((token.content.rstrip("\n"), False))
    if not blocks:
        blocks.append((paragraph, False))
    return blocks


# --- PDF Output Class ---
class EbookPDF(FPDF):
    """A4 document with a manual cursor; header() decorates every page but the title page."""

    def __init__(self, options):
        super().__init__(orientation="P", unit="mm", format="A4")
        self.options = options
        self.primary_rgb = parse_hex_color(options.primary_color)
        self.cursor_y = CONTENT_TOP_MM
        self.set_auto_page_break(auto=False)
        self.set_margins(left=MARGIN_MM, top=MARGIN_MM, right=MARGIN_MM)
        self.set_compression(not options.no_compression)
        lossless = options.no_compression or options.quality == "ultra"
        self.set_image_filter("FlateDecode" if lossless else "DCTDecode")
        self.font_name, self.unicode_fonts = self._register_fonts(options.font)

    def _register_fonts(self, family):
        if family not in CORE_FONTS:
            logging.warning(f"Unknown font family '{family}'. Using 'sans'.")
            family = "sans"
        if fonts_available(family):
            name = f"dejavu-{family}"
            self.add_font(name, "", FONT_PATHS[family]["regular"])
            self.add_font(name, "B", FONT_PATHS[family]["bold"])
            return name, True
        logging.warning(f"DejaVu '{family}' fonts not installed. Using core font '{CORE_FONTS[family]}' (Latin-1 only).")
        return CORE_FONTS[family], False

    # --- Text helpers ---
    def clean(self, text):
        if self.unicode_fonts:
            return text
        for char, replacement in LATIN1_REPLACEMENTS.items():
            text = text.replace(char, replacement)
        return text.encode("latin-1", "replace").decode("latin-1")

    def set_style(self, size, bold=False, color=None):
        self.set_font(self.font_name, "B" if bold else "", size)
        self.set_text_color(*(color or (0, 0, 0)))

    def wrap(self, text, width=USABLE_WIDTH_MM):
        """Word-wraps text to a width in mm with the current font."""
        lines = []
        for raw_line in text.split("\n"):
            current = ""
            for word in raw_line.split():
                candidate = f"{current} {word}" if current else word
                if self.get_string_width(candidate) <= width:
                    current = candidate
                    continue
                if current:
                    lines.append(current)
                while self.get_string_width(word) > width:
                    cut = len(word) - 1
                    while cut > 1 and self.get_string_width(word[:cut]) > width:
                        cut -= 1
                    lines.append(word[:cut])
                    word = word[cut:]
                current = word
            lines.append(current)
        return lines

    def centered_text(self, text, y):
        self.text(PAGE_WIDTH_MM / 2 - self.get_string_width(text) / 2, y, text)

    def new_content_page(self):
        self.add_page()
        self.cursor_y = CONTENT_TOP_MM

    def write_block(self, text, size, bold=False, color=None):
        """Writes wrapped lines at the cursor, breaking pages at the bottom limit."""
        self.set_style(size, bold, color)
        for line in self.wrap(self.clean(text)):
            if self.cursor_y + LINE_HEIGHT_MM > BOTTOM_LIMIT_MM:
                self.new_content_page()
                self.set_style(size, bold, color)
            self.text(MARGIN_MM, self.cursor_y, line)
            self.cursor_y += LINE_HEIGHT_MM

    # --- Header / footer / watermark ---
    def header(self):
        if self.page_no() == 1:
            return
        opts = self.options
        self.set_style(8, color=GREY)
        if opts.header_text:
            self.centered_text(self.clean(opts.header_text), 10)
        if opts.footer_text:
            self.centered_text(self.clean(opts.footer_text), PAGE_HEIGHT_MM - 5)
        if opts.watermark:
            with self.local_context(fill_opacity=0.05):
                self.set_style(60, color=GREY)
                with self.rotation(45, x=PAGE_WIDTH_MM / 2, y=PAGE_HEIGHT_MM / 2):
                    self.centered_text(self.clean(opts.watermark), PAGE_HEIGHT_MM / 2)

    # --- Images ---
    def prepare_image(self, data, max_px):
        try:
            img = Image.open(BytesIO(data))
            img.load()
        except (OSError, ValueError) as e:
            logging.warning(f"Skipping undecodable image: {e}")
            return None
        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")
        if max_px and max(img.size) > max_px:
            img.thumbnail((max_px, max_px))
        return img

    def place_image(self, data, x, y, w, h):
        img = self.prepare_image(data, IMAGE_MAX_PX.get(self.options.quality))
        if img is None:
            return False
        try:
            self.image(img, x=x, y=y, w=w, h=h)
        except (FPDFException, OSError, ValueError) as e:
            logging.warning(f"Skipping image that could not be embedded: {e}")
            return False
        return True

    # --- Document sections ---
    def title_page(self, title):
        self.add_page()
        if self.options.logo:
            self.place_image(self.options.logo, PAGE_WIDTH_MM / 2 - LOGO_SIZE_MM / 2, 20, LOGO_SIZE_MM, LOGO_SIZE_MM)
        self.set_style(32, bold=True, color=self.primary_rgb)
        title_lines = self.wrap(self.clean(title))
        y = PAGE_HEIGHT_MM / 2 - (len(title_lines) * 10) / 2
        for line in title_lines:
            self.centered_text(line, y)
            y += TITLE_LINE_HEIGHT_MM
        self.set_style(14, color=(100, 100, 100))
        self.centered_text(self.clean(ATTRIBUTION), PAGE_HEIGHT_MM - 30)

    def toc_page(self, chapters):
        self.new_content_page()
        self.write_block("Table des matières", 24, bold=True, color=self.primary_rgb)
        self.cursor_y += 10
        for index, chapter in enumerate(chapters):
            self.write_block(f"{index + 1}. {chapter.title}", 12)
            self.cursor_y += 2

    def chapter_pages(self, index, chapter):
        self.new_content_page()
        self.write_block(f"Chapitre {index + 1}: {chapter.title}", 22, bold=True, color=self.primary_rgb)
        self.cursor_y += 10

        if chapter.image:
            if self.cursor_y + IMAGE_HEIGHT_MM > BOTTOM_LIMIT_MM:
                self.new_content_page()
            if self.place_image(chapter.image, MARGIN_MM, self.cursor_y, USABLE_WIDTH_MM, IMAGE_HEIGHT_MM):
                self.cursor_y += IMAGE_HEIGHT_MM + IMAGE_GAP_MM

        for paragraph in chapter.content.split("\n\n"):
            if not paragraph.strip():
                continue
            for text, is_heading in markdown_blocks(paragraph.strip()):
                if is_heading:
                    self.write_block(text, 13, bold=True, color=self.primary_rgb)
                else:
                    self.write_block(text, 11)
            self.cursor_y += PARAGRAPH_GAP_MM

        if chapter.chart:
            if self.cursor_y + CHART_MIN_SPACE_MM > PAGE_HEIGHT_MM - MARGIN_MM:
                self.new_content_page()
            self.write_block(f"Graphique: {chapter.chart.title}", 16, bold=True, color=self.primary_rgb)
            self.cursor_y += 10
            for point in chapter.chart.data:
                self.write_block(f"{point.label}: {format_value(point.value)}", 10)


def format_value(value):
    return str(int(value)) if float(value).is_integer() else str(value)


# --- Page numbering pass ---
def stamp_page_numbers(pdf_bytes, options, title=None):
    """Second pass: stamps 'Page n sur N' on every page once N is known."""
    reader = PdfReader(BytesIO(pdf_bytes))
    total_pages = len(reader.pages)

    sheet = FPDF(orientation="P", unit="mm", format="A4")
    sheet.set_auto_page_break(auto=False)
    sheet.set_compression(not options.no_compression)
    for page_number in range(1, total_pages + 1):
        sheet.add_page()
        sheet.set_font("helvetica", "", 10)
        sheet.set_text_color(*GREY)
        label = f"Page {page_number} sur {total_pages}"
        sheet.text(PAGE_WIDTH_MM / 2 - sheet.get_string_width(label) / 2, PAGE_HEIGHT_MM - 10, label)
    stamps = PdfReader(BytesIO(bytes(sheet.output())))

    writer = PdfWriter()
    for page, stamp in zip(reader.pages, stamps.pages):
        writer.add_page(page).merge_page(stamp)
    if not options.no_compression:
        for page in writer.pages:
            page.compress_content_streams()
    if title:
        writer.add_metadata({"/Title": title})
    output = BytesIO()
    writer.write(output)
    return output.getvalue()


def render_pdf(title, chapters, options=None):
    """Lays out title page, contents and chapters, then numbers the pages.

    Returns the PDF as bytes; persisting it is up to the caller. Undecodable
    images are skipped; any other failure propagates.
    """
    options = options or LayoutOptions()
    logging.info(f"--- Rendering PDF '{title}' ({len(chapters)} chapters, quality: {options.quality}) ---")
    pdf = EbookPDF(options)
    pdf.set_title(title)
    pdf.title_page(title)
    pdf.toc_page(chapters)
    for index, chapter in enumerate(chapters):
        pdf.chapter_pages(index, chapter)
    logging.info(f"Layout pass done ({pdf.page_no()} pages). Numbering pages...")
    artifact = stamp_page_numbers(bytes(pdf.output()), options, title=title)
    logging.info(f"PDF rendered ({len(artifact) / (1024 * 1024):.2f} MB)")
    return artifact


def count_pages(pdf_bytes):
    return len(PdfReader(BytesIO(pdf_bytes)).pages)
