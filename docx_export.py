# docx_export.py - Editable DOCX companion of the rendered PDF

import logging
from io import BytesIO

from docx import Document
from docx.enum.text import WD_PARAGRAPH_ALIGNMENT
from docx.shared import Inches, Mm, Pt, RGBColor
from PIL import Image

from layout import (MARGIN_MM, PAGE_HEIGHT_MM, PAGE_WIDTH_MM, USABLE_WIDTH_MM,
                    format_value, markdown_blocks)
from models import LayoutOptions, parse_hex_color

DOCX_FONTS = {"sans": "Arial", "serif": "Times New Roman", "monospace": "Courier New"}


def _picture_stream(data):
    """PNG stream python-docx can always embed, or None for undecodable bytes."""
    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (OSError, ValueError) as e:
        logging.warning(f"Skipping undecodable image in DOCX: {e}")
        return None
    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    stream = BytesIO()
    img.save(stream, format="PNG")
    stream.seek(0)
    return stream


def render_docx(title, chapters, options=None):
    """Builds a DOCX with the same structure as the PDF and returns its bytes."""
    options = options or LayoutOptions()
    logging.info(f"--- Creating DOCX '{title}' ({len(chapters)} chapters) ---")
    primary = RGBColor(*parse_hex_color(options.primary_color))

    doc = Document()
    section = doc.sections[0]
    section.page_width = Mm(PAGE_WIDTH_MM)
    section.page_height = Mm(PAGE_HEIGHT_MM)
    for margin in ['left_margin', 'right_margin', 'top_margin', 'bottom_margin']:
        setattr(section, margin, Mm(MARGIN_MM))
    normal = doc.styles['Normal']
    normal.font.name = DOCX_FONTS.get(options.font, "Arial")
    normal.font.size = Pt(11)
    if options.header_text:
        section.header.paragraphs[0].text = options.header_text
        section.header.paragraphs[0].alignment = WD_PARAGRAPH_ALIGNMENT.CENTER
    if options.footer_text:
        section.footer.paragraphs[0].text = options.footer_text
        section.footer.paragraphs[0].alignment = WD_PARAGRAPH_ALIGNMENT.CENTER

    # Title page
    if options.logo:
        logo = _picture_stream(options.logo)
        if logo:
            doc.add_picture(logo, width=Inches(1.2))
            doc.paragraphs[-1].alignment = WD_PARAGRAPH_ALIGNMENT.CENTER
    heading = doc.add_heading(title, level=0)
    heading.alignment = WD_PARAGRAPH_ALIGNMENT.CENTER
    for run in heading.runs:
        run.font.color.rgb = primary

    # Table of contents
    doc.add_page_break()
    doc.add_heading("Table des matières", level=1)
    for index, chapter in enumerate(chapters):
        doc.add_paragraph(f"{index + 1}. {chapter.title}")

    for index, chapter in enumerate(chapters):
        doc.add_page_break()
        chapter_heading = doc.add_heading(f"Chapitre {index + 1}: {chapter.title}", level=1)
        for run in chapter_heading.runs:
            run.font.color.rgb = primary
        if chapter.image:
            picture = _picture_stream(chapter.image)
            if picture:
                doc.add_picture(picture, width=Mm(USABLE_WIDTH_MM))
        for paragraph in chapter.content.split("\n\n"):
            if not paragraph.strip():
                continue
            for text, is_heading in markdown_blocks(paragraph.strip()):
                if is_heading:
                    doc.add_heading(text, level=3)
                else:
                    doc.add_paragraph(text)
        if chapter.chart:
            doc.add_heading(f"Graphique: {chapter.chart.title}", level=2)
            for point in chapter.chart.data:
                doc.add_paragraph(f"{point.label}: {format_value(point.value)}", style="List Bullet")

    output = BytesIO()
    doc.save(output)
    logging.info("DOCX created.")
    return output.getvalue()
