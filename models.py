# models.py - Data model shared by the generator, the layout engine and exports

import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

import config

HEX_COLOR_PATTERN = re.compile(r"^#?([0-9a-fA-F]{2})([0-9a-fA-F]{2})([0-9a-fA-F]{2})$")
FONT_FAMILIES = ("sans", "serif", "monospace")
QUALITY_TIERS = ("standard", "high", "ultra")


# --- Outline ---
class SectionPlan(BaseModel):
    title: str


class ChapterPlan(BaseModel):
    title: str
    sections: List[SectionPlan] = Field(default_factory=list)


class Outline(BaseModel):
    """Title and chapter plans returned by the outline call."""

    title: str
    chapters: List[ChapterPlan] = Field(min_length=1)

    @property
    def has_section_detail(self):
        return any(plan.sections for plan in self.chapters)

    @classmethod
    def reconstruct(cls, title, chapters):
        return ReconstructedOutline(
            title=title,
            chapters=[ChapterPlan(title=chapter.title, sections=[]) for chapter in chapters],
        )


class ReconstructedOutline(Outline):
    """Outline rebuilt from a saved chapter list. It never carries section titles.

    A saved record may hold no chapters at all, so the list can be empty.
    """

    chapters: List[ChapterPlan] = Field(default_factory=list)

    @property
    def has_section_detail(self):
        return False


# --- Side payloads ---
class ChartPoint(BaseModel):
    label: str
    value: float


class ChartData(BaseModel):
    type: Literal["bar", "line", "pie"]
    title: str
    data: List[ChartPoint]


class MarketingAssets(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kdp_description: str = Field(alias="kdpDescription")
    seo_keywords: List[str] = Field(alias="seoKeywords")
    sales_page: str = Field(alias="salesPage")
    marketing_email: str = Field(alias="marketingEmail")
    suggested_price: str = Field(alias="suggestedPrice")


# --- Chapters ---
@dataclass
class Chapter:
    title: str
    content: str
    image: Optional[bytes] = None
    chart: Optional[ChartData] = None

    def to_dict(self):
        """Plain JSON-ready record, image stored as a base64 data URL."""
        data = {"title": self.title, "content": self.content, "image": None, "chart": None}
        if self.image:
            encoded = base64.b64encode(self.image).decode("ascii")
            data["image"] = f"data:{_sniff_mime(self.image)};base64,{encoded}"
        if self.chart:
            data["chart"] = self.chart.model_dump()
        return data

    @classmethod
    def from_dict(cls, data):
        image = None
        raw_image = data.get("image")
        if raw_image:
            payload = raw_image.partition(",")[2] if raw_image.startswith("data:") else raw_image
            try:
                image = base64.b64decode(payload, validate=True) or None
            except (binascii.Error, ValueError) as e:
                logging.warning(f"Dropping undecodable image of chapter '{data.get('title')}': {e}")
            if image is None and not payload:
                logging.warning(f"Dropping empty image of chapter '{data.get('title')}'.")
        chart = ChartData.model_validate(data["chart"]) if data.get("chart") else None
        return cls(title=data["title"], content=data.get("content", ""), image=image, chart=chart)


def _sniff_mime(image_bytes):
    if image_bytes.startswith(b"\x89PNG"):
        return "image/png"
    if image_bytes.startswith(b"RIFF") and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


# --- Layout options ---
@dataclass
class LayoutOptions:
    primary_color: str = "#4f46e5"
    font: str = "sans"
    header_text: Optional[str] = None
    footer_text: Optional[str] = None
    logo: Optional[bytes] = None
    watermark: Optional[str] = None
    quality: str = "high"
    no_compression: bool = True

    @classmethod
    def from_config(cls):
        """Layout defaults from config.py. Invalid values fall back with a warning."""
        font = getattr(config, "LAYOUT_FONT", "sans")
        if font not in FONT_FAMILIES:
            logging.warning(f"LAYOUT_FONT '{font}' invalid. Using 'sans'.")
            font = "sans"
        quality = getattr(config, "LAYOUT_QUALITY", "high")
        if quality not in QUALITY_TIERS:
            logging.warning(f"LAYOUT_QUALITY '{quality}' invalid. Using 'high'.")
            quality = "high"
        logo = None
        logo_path = getattr(config, "LAYOUT_LOGO_PATH", "")
        if logo_path:
            try:
                with open(logo_path, "rb") as f:
                    logo = f.read()
            except OSError as e:
                logging.warning(f"Could not read logo {logo_path}: {e}")
        return cls(
            primary_color=getattr(config, "LAYOUT_PRIMARY_COLOR", "#4f46e5"),
            font=font,
            header_text=getattr(config, "LAYOUT_HEADER_TEXT", "") or None,
            footer_text=getattr(config, "LAYOUT_FOOTER_TEXT", "") or None,
            logo=logo,
            watermark=getattr(config, "LAYOUT_WATERMARK", "") or None,
            quality=quality,
            no_compression=bool(getattr(config, "LAYOUT_NO_COMPRESSION", True)),
        )


def parse_hex_color(value):
    """'#RRGGBB' -> (r, g, b). Anything unparsable renders black."""
    match = HEX_COLOR_PATTERN.match((value or "").strip())
    if not match:
        logging.warning(f"Invalid color '{value}'. Falling back to black.")
        return (0, 0, 0)
    return tuple(int(channel, 16) for channel in match.groups())


# --- Pipeline records ---
@dataclass
class ProgressEvent:
    state: Literal["outline", "content", "pdf", "done", "error"]
    chapters: List[Chapter] = field(default_factory=list)
    chapter_index: int = 0
    chapter_count: int = 0
    estimated_pages: int = 0
    message: str = ""


@dataclass
class EbookResult:
    outline: Outline
    chapters: List[Chapter]
    artifact: Optional[bytes] = None
    marketing: Optional[object] = None  # Future resolving to MarketingAssets or None
