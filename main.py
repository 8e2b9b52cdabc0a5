# main.py - Gemini Ebook Generator command line driver

import argparse
import datetime
import json
import logging
import os
import string
import sys
import time
from concurrent.futures import TimeoutError as FutureTimeoutError

import config
from docx_export import render_docx
from errors import GenerationError, InputValidationError
from gemini_client import GeminiBackend, setup_environment
from layout import count_pages
from models import Chapter, LayoutOptions
from orchestrator import download_artifact, generate_ebook, reconstruct_outline
from setup_fonts import setup_fonts

DEFAULT_EBOOK_TYPE = "Business"
DEFAULT_IMAGE_STYLE = "business"
DEFAULT_TARGET_PAGES = 20
MARKETING_WAIT_SECONDS = 300


# --- Helper Functions ---
def clean_filename(name):
    valid_chars = "-_.() %s%s" % (string.ascii_letters, string.digits)
    cleaned_name = ''.join(c for c in name if c in valid_chars).replace(' ', '_')[:100]
    return cleaned_name.lower() if cleaned_name else "untitled_ebook"


def save_history_record(path, title, topic, target_pages, chapters):
    record = {
        "title": title,
        "topic": topic,
        "date": datetime.date.today().isoformat(),
        "pages": target_pages,
        "chapters": [chapter.to_dict() for chapter in chapters],
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(record, f, ensure_ascii=False, indent=2)
    logging.info(f"Chapters saved to: {os.path.abspath(path)}")


def write_outputs(title, chapters, options, base_path, with_docx=True):
    pdf_bytes = download_artifact(title, chapters, options)
    return _write_files(title, chapters, options, base_path, pdf_bytes, with_docx)


def _write_files(title, chapters, options, base_path, pdf_bytes, with_docx):
    pdf_path = f"{base_path}.pdf"
    with open(pdf_path, "wb") as f:
        f.write(pdf_bytes)
    logging.info(f"PDF saved to: {os.path.abspath(pdf_path)} ({count_pages(pdf_bytes)} pages, {len(pdf_bytes) / (1024 * 1024):.2f} MB)")
    if with_docx:
        docx_path = f"{base_path}.docx"
        with open(docx_path, "wb") as f:
            f.write(render_docx(title, chapters, options))
        logging.info(f"DOCX saved to: {os.path.abspath(docx_path)}")
    return pdf_path


def read_settings(args):
    """Merges config.py with command line overrides. Invalid optional values fall back with a warning."""
    ebook_type = args.type or getattr(config, 'EBOOK_TYPE', DEFAULT_EBOOK_TYPE)
    if ebook_type not in config.EBOOK_TYPES:
        logging.warning(f"EBOOK_TYPE '{ebook_type}' is not a known type. Using it as free text.")
    image_style = (args.style or getattr(config, 'IMAGE_STYLE', DEFAULT_IMAGE_STYLE)).lower()
    if image_style not in config.IMAGE_STYLES:
        logging.warning(f"IMAGE_STYLE '{image_style}' invalid. Using '{DEFAULT_IMAGE_STYLE}'.")
        image_style = DEFAULT_IMAGE_STYLE
    prototype = getattr(config, 'PROTOTYPE_MODE', True) if args.prototype is None else args.prototype
    return {
        "topic": (args.topic or getattr(config, 'BOOK_TOPIC', '')).strip(),
        "ebook_type": ebook_type,
        "target_pages": args.pages if args.pages is not None else getattr(config, 'TARGET_PAGES', DEFAULT_TARGET_PAGES),
        "prototype": bool(prototype),
        "image_style": image_style,
    }


def print_progress(event):
    if event.state == "content":
        logging.info(f"[{event.chapter_index + 1}/{event.chapter_count}] {event.message} Estimated pages: {event.estimated_pages}")
    else:
        logging.info(f"[{event.state}] {event.message}")


def rerender_from_json(path, options, with_docx):
    """Re-renders a saved chapter list without any Gemini call."""
    with open(path, "r", encoding="utf-8") as f:
        record = json.load(f)
    chapters = [Chapter.from_dict(item) for item in record.get("chapters") or []]
    outline = reconstruct_outline(record.get("title") or "Ebook", chapters)
    if not chapters:
        logging.warning(f"'{path}' holds no chapters. Rendering title page and contents only.")
    logging.info(f"Reloaded '{outline.title}' ({len(outline.chapters)} chapters, no section detail).")
    base_path = os.path.join(config.OUTPUT_DIR, clean_filename(outline.title))
    return write_outputs(outline.title, chapters, options, base_path, with_docx)


def collect_marketing(future, timeout=MARKETING_WAIT_SECONDS):
    """Marketing assets from the background task, or None. Never raises."""
    if future is None:
        return None
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        logging.warning(f"Marketing assets not ready after {timeout}s. Skipping.")
    except Exception as e:
        logging.warning(f"Marketing task failed: {e}. Skipping.")
    return None


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Generate a paginated ebook (PDF + DOCX) with Gemini.")
    parser.add_argument("--topic", help="Overrides BOOK_TOPIC")
    parser.add_argument("--pages", type=int, help="Overrides TARGET_PAGES (10-200)")
    parser.add_argument("--type", help="Overrides EBOOK_TYPE")
    parser.add_argument("--style", help="Overrides IMAGE_STYLE")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--prototype", dest="prototype", action="store_true", default=None)
    mode.add_argument("--full", dest="prototype", action="store_false")
    parser.add_argument("--from-json", help="Re-render a saved chapter list instead of generating")
    parser.add_argument("--no-docx", action="store_true", help="Skip the DOCX export")
    return parser.parse_args(argv)


def main(argv=None):
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    args = parse_args(argv)
    start_time = time.time()
    logging.info("========= Gemini Ebook Generator =========")
    os.makedirs(config.OUTPUT_DIR, exist_ok=True)

    if not setup_fonts():
        logging.warning("DejaVu fonts unavailable. Falling back to core PDF fonts (Latin-1 only).")
    options = LayoutOptions.from_config()

    if args.from_json:
        rerender_from_json(args.from_json, options, not args.no_docx)
        return 0

    settings = read_settings(args)
    logging.info(f"Topic: '{settings['topic']}' ({settings['ebook_type']}), target: {settings['target_pages']} pages, "
                 f"prototype: {settings['prototype']}, images: {settings['image_style']}")

    api_key = setup_environment()
    if not api_key:
        return 1
    backend = GeminiBackend(api_key)

    try:
        result = generate_ebook(backend, on_progress=print_progress, options=options, **settings)
    except InputValidationError as e:
        logging.error(f"Invalid request: {e}")
        return 1
    except GenerationError as e:
        logging.error(f"Generation failed: {e}")
        if e.chapters:
            title = e.outline.title if e.outline else settings["topic"]
            partial_path = os.path.join(config.OUTPUT_DIR, f"{clean_filename(title)}_partial.json")
            save_history_record(partial_path, title, settings["topic"], settings["target_pages"], e.chapters)
            logging.error(f"{len(e.chapters)} finished chapter(s) kept. Re-render them with --from-json {partial_path}")
        return 1

    base_path = os.path.join(config.OUTPUT_DIR, clean_filename(result.outline.title))
    _write_files(result.outline.title, result.chapters, options, base_path, result.artifact, not args.no_docx)
    save_history_record(f"{base_path}.json", result.outline.title, settings["topic"], settings["target_pages"], result.chapters)

    marketing = collect_marketing(result.marketing)
    if marketing:
        with open(f"{base_path}_marketing.json", "w", encoding="utf-8") as f:
            json.dump(marketing.model_dump(), f, ensure_ascii=False, indent=2)
        logging.info(f"Marketing assets saved (suggested price: {marketing.suggested_price}).")
    else:
        logging.warning("Marketing assets unavailable.")

    duration = time.time() - start_time
    logging.info("========= Generation Summary =========")
    logging.info(f"Ebook Title: {result.outline.title}")
    logging.info(f"Chapters: {len(result.chapters)} / Illustrated: {sum(1 for c in result.chapters if c.image)}")
    logging.info(f"Total execution time: {duration:.2f} seconds")
    return 0


if __name__ == "__main__":
    sys.exit(main())
