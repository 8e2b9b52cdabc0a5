# orchestrator.py - Page-budget driven ebook generation
#
# Every operation here is stateless: chapter lists come in as arguments and
# go out as new lists. The caller owns the session (outline, chapters,
# history) and may persist it however it likes.

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

import config
from errors import BackendError, GenerationCancelled, GenerationError, InputValidationError
from generation import (REFINE_ACTIONS, generate_chapter_content, generate_chart_data, generate_faq,
                        generate_image, generate_marketing_assets, generate_outline, refine_text)
from layout import estimate_page_count, render_pdf
from models import Chapter, EbookResult, LayoutOptions, Outline, ProgressEvent

FAQ_HEADING = "### Foire Aux Questions"


def validate_request(topic, target_pages):
    if not topic or not topic.strip():
        raise InputValidationError("Le sujet de l'ebook ne peut pas être vide.")
    if (isinstance(target_pages, bool) or not isinstance(target_pages, int)
            or not config.MIN_TARGET_PAGES <= target_pages <= config.MAX_TARGET_PAGES):
        raise InputValidationError(
            f"Le nombre de pages doit être compris entre {config.MIN_TARGET_PAGES} et {config.MAX_TARGET_PAGES}.")


def _emit(on_progress, state, **fields):
    if on_progress:
        on_progress(ProgressEvent(state=state, **fields))


def _check_cancel(should_cancel, chapters, outline):
    if should_cancel and should_cancel():
        logging.warning(f"Generation cancelled after {len(chapters)} chapter(s).")
        raise GenerationCancelled("Génération annulée.", chapters, outline)


def enrich_chapter(backend, chapters, title, content, target_pages, options=None,
                   should_cancel=None, outline=None):
    """Rewrites a chapter richer until the running estimate reaches target_pages.

    Stops at the size ceiling, after ENRICH_MAX_ROUNDS rewrites, or as soon as
    a rewrite no longer lengthens the text.

    Returns:
        tuple: (content, number of enrichment calls made)
    """
    rounds = 0
    estimated = estimate_page_count(chapters + [Chapter(title, content)], options)
    while (estimated < target_pages and len(content) < config.ENRICH_MAX_CHARS
           and rounds < config.ENRICH_MAX_ROUNDS):
        _check_cancel(should_cancel, chapters, outline)
        logging.info(f"Enriching '{title}' (estimate {estimated}/{target_pages} pages, {len(content)} chars)...")
        enriched = refine_text(backend, content, "enrich")
        rounds += 1
        if len(enriched) <= len(content):
            logging.warning(f"Enrichment no longer lengthens '{title}'. Keeping current text.")
            break
        content = enriched
        estimated = estimate_page_count(chapters + [Chapter(title, content)], options)
    return content, rounds


def _start_marketing(backend, topic, ebook_title):
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="marketing")
    future = executor.submit(generate_marketing_assets, backend, topic, ebook_title)
    executor.shutdown(wait=False)
    return future


def generate_ebook(backend, topic, ebook_type, target_pages, prototype=False, options=None,
                   image_style="business", on_progress=None, should_cancel=None, render=True):
    """Runs outline -> chapters -> enrichment -> images -> PDF.

    Args:
        backend: generation backend (see gemini_client.GeminiBackend).
        topic (str): subject of the ebook.
        ebook_type (str): genre used for the outline persona.
        target_pages (int): requested page count, 10 to 200.
        prototype (bool): 2 short chapters, all illustrated, no enrichment.
        options (LayoutOptions): layout used for estimates and rendering.
        image_style (str): key of config.IMAGE_STYLES.
        on_progress (callable): receives a ProgressEvent after each step.
        should_cancel (callable): polled between chapters and enrichment rounds.
        render (bool): render the PDF once all chapters are written.

    Returns:
        EbookResult: outline, chapters, PDF bytes and a Future for marketing assets.

    Raises:
        InputValidationError: before any Gemini call.
        GenerationError: terminal failure; .chapters holds the finished chapters.
    """
    validate_request(topic, target_pages)
    options = options or LayoutOptions()
    chapters = []
    outline = None

    try:
        _emit(on_progress, "outline", message="Génération du plan...")
        outline = generate_outline(backend, topic, ebook_type, target_pages, prototype)
        chapter_count = len(outline.chapters)
        pages_per_chapter = math.ceil(target_pages / chapter_count)
        image_every = 1 if prototype else config.IMAGE_EVERY_N_CHAPTERS
        logging.info(f"{chapter_count} chapters, ~{pages_per_chapter} pages each.")

        for index, plan in enumerate(outline.chapters):
            _check_cancel(should_cancel, chapters, outline)
            logging.info(f">>> Chapter {index + 1}/{chapter_count}: '{plan.title}'")
            content = generate_chapter_content(
                backend, outline.title, plan.title, [section.title for section in plan.sections],
                pages_per_chapter, prototype)
            if not prototype:
                content, _ = enrich_chapter(
                    backend, chapters, plan.title, content, (index + 1) * pages_per_chapter, options,
                    should_cancel=should_cancel, outline=outline)

            image = None
            if index % image_every == 0:
                image = generate_image(backend, plan.title, image_style)

            chapters.append(Chapter(title=plan.title, content=content, image=image))
            estimated = estimate_page_count(chapters, options)
            _emit(on_progress, "content", chapters=list(chapters), chapter_index=index,
                  chapter_count=chapter_count, estimated_pages=estimated,
                  message=f"Chapitre {index + 1}/{chapter_count} terminé.")
    except GenerationError as e:
        e.chapters = e.chapters or list(chapters)
        e.outline = e.outline or outline
        _emit(on_progress, "error", chapters=list(chapters), message=str(e))
        raise
    except BackendError as e:
        logging.error(f"Generation stopped after {len(chapters)} chapter(s): {e}")
        _emit(on_progress, "error", chapters=list(chapters), message=f"Une erreur est survenue : {e}")
        raise GenerationError(f"Une erreur est survenue : {e}", chapters, outline) from e

    marketing = _start_marketing(backend, topic, outline.title)

    artifact = None
    message = "Chapitres prêts."
    if render:
        _emit(on_progress, "pdf", chapters=list(chapters), estimated_pages=estimate_page_count(chapters, options),
              message="Création du PDF...")
        try:
            artifact = render_pdf(outline.title, chapters, options)
        except Exception as e:
            logging.error(f"PDF rendering failed: {e}")
            _emit(on_progress, "error", chapters=list(chapters), message=f"Erreur lors de la création du PDF : {e}")
            raise GenerationError(f"Erreur lors de la création du PDF : {e}", chapters, outline) from e
        message = f"Ebook prêt ({len(artifact) / (1024 * 1024):.2f} Mo)."

    _emit(on_progress, "done", chapters=list(chapters), chapter_index=len(chapters) - 1,
          chapter_count=len(chapters), estimated_pages=estimate_page_count(chapters, options), message=message)
    return EbookResult(outline=outline, chapters=chapters, artifact=artifact, marketing=marketing)


def download_artifact(title, chapters, options=None):
    return render_pdf(title, chapters, options)


def reconstruct_outline(title, chapters):
    """Outline for a chapter list reloaded from history (no section titles)."""
    return Outline.reconstruct(title, chapters)


# --- Single-chapter operations ---
def _check_index(chapters, index):
    if not 0 <= index < len(chapters):
        raise InputValidationError(f"Chapitre {index} introuvable ({len(chapters)} chapitres).")


def _best_effort(label, func, *args):
    """Result of func(*args), or None when the backend fails."""
    try:
        return func(*args)
    except BackendError as e:
        logging.warning(f"{label} failed: {e}. Chapter left unchanged.")
        return None


def refine_chapter(backend, chapters, index, action):
    """New chapter list with the content of chapters[index] rewritten by `action`."""
    if action not in REFINE_ACTIONS:
        raise InputValidationError(f"Action inconnue : {action}")
    _check_index(chapters, index)
    updated = list(chapters)
    refined = _best_effort(f"Refine ({action})", refine_text, backend, chapters[index].content, action)
    if refined:
        updated[index] = replace(chapters[index], content=refined)
    return updated


def add_faq(backend, chapters, index):
    """New chapter list with a FAQ section appended to chapters[index]."""
    _check_index(chapters, index)
    updated = list(chapters)
    faq = _best_effort("FAQ generation", generate_faq, backend, chapters[index].content)
    if faq:
        chapter = chapters[index]
        updated[index] = replace(chapter, content=f"{chapter.content}\n\n{FAQ_HEADING}\n{faq}")
    return updated


def add_chart(backend, chapters, index, topic=None):
    """New chapter list with generated chart data attached to chapters[index]."""
    _check_index(chapters, index)
    updated = list(chapters)
    chart = generate_chart_data(backend, topic or chapters[index].title)
    if chart:
        updated[index] = replace(chapters[index], chart=chart)
    return updated
