import pytest
from pydantic import ValidationError

import config
from models import Chapter, ChartData, LayoutOptions, Outline, parse_hex_color

from conftest import CHART_PAYLOAD, make_png


@pytest.mark.parametrize("value, expected", [
    ("#4f46e5", (79, 70, 229)),
    ("4F46E5", (79, 70, 229)),
    ("#zzzzzz", (0, 0, 0)),
    ("#fff", (0, 0, 0)),
    ("", (0, 0, 0)),
    (None, (0, 0, 0)),
])
def test_parse_hex_color(value, expected):
    assert parse_hex_color(value) == expected


def test_chart_data_rejects_unknown_type():
    with pytest.raises(ValidationError):
        ChartData.model_validate({"type": "radar", "title": "x", "data": []})
    chart = ChartData.model_validate(CHART_PAYLOAD)
    assert chart.data[1].value == 27.5


def test_outline_requires_a_chapter():
    with pytest.raises(ValidationError):
        Outline.model_validate({"title": "T", "chapters": []})


def test_chapter_dict_round_trip_keeps_image_and_chart():
    chapter = Chapter("Un", "Texte", image=make_png(), chart=ChartData.model_validate(CHART_PAYLOAD))
    data = chapter.to_dict()
    assert data["image"].startswith("data:image/png;base64,")
    assert Chapter.from_dict(data) == chapter


def test_undecodable_stored_image_is_dropped():
    chapter = Chapter.from_dict({"title": "Un", "content": "Texte", "image": "data:image/png;base64,@@@"})
    assert chapter.image is None
    assert chapter.content == "Texte"


def test_layout_options_from_config(monkeypatch, tmp_path):
    logo = tmp_path / "logo.png"
    logo.write_bytes(make_png(32, 32))
    monkeypatch.setattr(config, "LAYOUT_FONT", "gothic")
    monkeypatch.setattr(config, "LAYOUT_QUALITY", "ultra")
    monkeypatch.setattr(config, "LAYOUT_LOGO_PATH", str(logo))
    monkeypatch.setattr(config, "LAYOUT_WATERMARK", "")

    options = LayoutOptions.from_config()
    assert options.font == "sans"
    assert options.quality == "ultra"
    assert options.logo == logo.read_bytes()
    assert options.watermark is None


def test_missing_logo_file_is_ignored(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "LAYOUT_LOGO_PATH", str(tmp_path / "absent.png"))
    assert LayoutOptions.from_config().logo is None


def test_data_url_without_payload_is_dropped():
    chapter = Chapter.from_dict({"title": "Un", "content": "Texte", "image": "data:image/png"})
    assert chapter.image is None


def test_reconstructed_outline_may_be_empty():
    outline = Outline.reconstruct("Vide", [])
    assert outline.chapters == []
    assert outline.has_section_detail is False
