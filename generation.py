# generation.py - Prompts and parsing for every Gemini call of the pipeline

import json
import logging
import math
import re

from pydantic import ValidationError

import config
from errors import BackendError, GenerationError
from models import ChartData, MarketingAssets, Outline

REFINE_PROMPTS = {
    "rewrite": "Réécris ce texte pour le rendre plus percutant et professionnel.",
    "simplify": "Simplifie ce texte pour le rendre accessible à un débutant tout en gardant l'expertise.",
    "enrich": "Enrichis ce texte avec plus de détails, d'exemples et de profondeur pédagogique.",
    "formal": "Adapte le ton de ce texte pour qu'il soit très formel et académique.",
    "storytelling": "Réécris ce texte en utilisant des techniques de storytelling pour captiver le lecteur.",
}
REFINE_ACTIONS = tuple(REFINE_PROMPTS)

CODE_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def parse_json_response(text):
    """json.loads() tolerant of a Markdown code fence around the payload."""
    cleaned = (text or "").strip()
    fenced = CODE_FENCE_PATTERN.match(cleaned)
    if fenced:
        cleaned = fenced.group(1)
    return json.loads(cleaned)


def chapter_count_for(target_pages, prototype):
    if prototype:
        return config.PROTOTYPE_CHAPTERS
    return max(config.MIN_CHAPTERS, math.ceil(target_pages / config.PAGES_PER_OUTLINE_CHAPTER))


def target_words_for(pages_per_chapter, prototype):
    if prototype:
        return config.PROTOTYPE_WORDS
    return pages_per_chapter * config.WORDS_PER_PAGE


# --- Outline ---
def generate_outline(backend, topic, ebook_type, target_pages, prototype=False):
    """Requests and validates the ebook outline.

    Args:
        backend: object exposing generate_text(prompt, json_mode, grounded).
        topic (str): subject of the ebook.
        ebook_type (str): genre used for the author persona.
        target_pages (int): page count the finished PDF should reach.
        prototype (bool): fixed small chapter count when True.

    Returns:
        Outline: parsed outline with at least one chapter.

    Raises:
        BackendError: the call itself failed.
        GenerationError: the answer does not match the outline shape.
    """
    chapters_count = chapter_count_for(target_pages, prototype)
    logging.info(f"--- Generating outline (~{chapters_count} chapters for {target_pages} pages) ---")
    prompt = f"""Agis comme un auteur expert en {ebook_type}. Crée un plan détaillé pour un ebook sur le sujet : "{topic}".
L'ebook doit faire exactement {target_pages} pages au final.
Génère un plan de {chapters_count} chapitres, avec au moins 5 sous-sections par chapitre pour garantir la profondeur.
Rédige tout en français.
Réponds uniquement avec un objet JSON de la forme :
{{"title": "titre de l'ebook", "chapters": [{{"title": "titre du chapitre", "sections": [{{"title": "titre de la sous-section"}}]}}]}}"""
    raw = backend.generate_text(prompt, json_mode=True)
    try:
        outline = Outline.model_validate(parse_json_response(raw))
    except (ValueError, ValidationError) as e:
        logging.error(f"Failed to parse outline JSON: {e}")
        raise GenerationError("Erreur lors de la génération du plan.") from e

    thin = [plan.title for plan in outline.chapters if not plan.sections]
    if thin:
        logging.warning(f"Chapters without sections in outline: {', '.join(thin)}")
    logging.info(f"Outline '{outline.title}': {len(outline.chapters)} chapters.")
    return outline


# --- Chapter prose ---
def generate_chapter_content(backend, ebook_title, chapter_title, sections, pages_per_chapter, prototype=False):
    target_words = target_words_for(pages_per_chapter, prototype)
    logging.info(f"--- Generating chapter '{chapter_title}' (target: ~{target_words} words) ---")
    sections_list = "\n".join(f"- {section}" for section in sections)
    prompt = f"""Agis comme un auteur expert. Rédige le contenu détaillé du chapitre "{chapter_title}" pour un ebook intitulé "{ebook_title}".
Ce chapitre doit couvrir les sous-sections suivantes :
{sections_list}

Le contenu doit être extrêmement riche, informatif et basé sur l'actualité de 2026.
OBJECTIF DE LONGUEUR : Tu dois rédiger environ {target_words} mots pour ce chapitre spécifique.
C'est CRITIQUE pour atteindre l'objectif de pagination de l'ebook.
Structure le texte avec des paragraphes longs et détaillés, séparés par une ligne vide, des analyses approfondies et des exemples concrets.
Rédige tout en français."""
    content = backend.generate_text(prompt, grounded=True)
    actual_words = len(content.split())
    logging.info(f"Chapter word count: {actual_words} (target: {target_words})")
    if actual_words < target_words * 0.8:
        logging.warning(f"Chapter '{chapter_title}' shorter than target.")
    return content


# --- Best effort calls ---
def generate_image(backend, subject, style="business"):
    """One 16:9 illustration, or None when the backend fails."""
    style_prompt = config.IMAGE_STYLES.get((style or "").lower(), config.IMAGE_STYLES["business"])
    prompt = f"Une illustration pour un livre. Sujet: {subject}. Style: {style_prompt}. Qualité premium, 4k."
    try:
        return backend.generate_image(prompt, aspect_ratio="16:9")
    except BackendError as e:
        logging.warning(f"Image generation failed for '{subject}': {e}. Continuing without image.")
        return None


def generate_marketing_assets(backend, topic, ebook_title):
    logging.info(f"--- Generating marketing assets for '{ebook_title}' ---")
    prompt = f"""Génère des outils marketing pour l'ebook intitulé "{ebook_title}" sur le sujet "{topic}".
Retourne un objet JSON contenant :
- kdpDescription: Une description optimisée pour Amazon KDP (HTML autorisé).
- seoKeywords: Un tableau de 10 mots-clés SEO.
- salesPage: Un plan de page de vente persuasif (titre, bénéfices, appel à l'action).
- marketingEmail: Un email de lancement captivant.
- suggestedPrice: Une estimation de prix conseillé en Euros.
Rédige tout en français."""
    try:
        return MarketingAssets.model_validate(parse_json_response(backend.generate_text(prompt, json_mode=True)))
    except BackendError as e:
        logging.warning(f"Marketing assets unavailable: {e}")
    except (ValueError, ValidationError) as e:
        logging.warning(f"Marketing assets response did not match the expected shape: {e}")
    return None


def generate_chart_data(backend, topic):
    prompt = f"""Génère des données fictives mais réalistes pour un graphique lié au sujet : "{topic}".
Le graphique doit être pertinent pour un ebook professionnel.
Retourne un objet JSON avec :
- type: "bar" | "line" | "pie"
- title: le titre du graphique
- data: un tableau d'objets {{ "label": string, "value": number }}
Rédige tout en français."""
    try:
        return ChartData.model_validate(parse_json_response(backend.generate_text(prompt, json_mode=True)))
    except BackendError as e:
        logging.warning(f"Chart data unavailable: {e}")
    except (ValueError, ValidationError) as e:
        logging.warning(f"Chart data response did not match the expected shape: {e}")
    return None


# --- Rewrites ---
def refine_text(backend, text, action):
    """Transformed text. An empty answer keeps the original; backend errors propagate."""
    prompt = f"{REFINE_PROMPTS[action]}\n\nTexte original :\n{text}"
    refined = backend.generate_text(prompt)
    return refined or text


def generate_faq(backend, content):
    prompt = ("Génère une section FAQ (3-5 questions/réponses) basée sur le contenu suivant. "
              "Les questions doivent être pertinentes pour un lecteur qui souhaite approfondir le sujet."
              f"\n\nContenu :\n{content}")
    return backend.generate_text(prompt)
