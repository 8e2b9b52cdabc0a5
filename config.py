# config.py - Configuration for the Gemini Ebook Generator

# === Essential Settings ===

# The main topic or idea of the ebook.
BOOK_TOPIC = "Comment devenir un expert en IA générative en 2026"

# Kind of ebook, one of EBOOK_TYPES below. Used to set the author persona.
EBOOK_TYPE = "Business"

# Number of pages the finished PDF should reach (10 to 200).
TARGET_PAGES = 20

# Prototype mode: 2 chapters of ~300 words, an image for every chapter and
# no enrichment pass. Useful to validate an idea quickly.
PROTOTYPE_MODE = True

# Illustration style, one of IMAGE_STYLES below.
IMAGE_STYLE = "Business"


# === Gemini Models ===

# Text model, used for the outline, chapters, refinement, FAQ and marketing.
GEMINI_MODEL = 'gemini-2.5-pro'

# Image model, used for chapter illustrations (16:9).
GEMINI_IMAGE_MODEL = 'gemini-2.5-flash-image'

GEMINI_TEMPERATURE = 0.7

# Ground chapter prose with Google Search results.
USE_GOOGLE_SEARCH = True


# === API Behaviour ===

# Number of attempts per API call. Critical path calls are not retried by
# default: a failure stops the generation and keeps the finished chapters.
MAX_API_RETRIES = 1
RETRY_DELAY_SECONDS = 5

# Responses are cached on disk keyed by prompt hash. Set to None to disable.
CACHE_DIR = "api_cache"
OUTPUT_DIR = "output"


# === Page Budget ===

MIN_TARGET_PAGES = 10
MAX_TARGET_PAGES = 200

# Approximate words on one A4 page of body text.
WORDS_PER_PAGE = 450

# Outline sizing: max(MIN_CHAPTERS, ceil(pages / PAGES_PER_OUTLINE_CHAPTER)).
MIN_CHAPTERS = 10
PAGES_PER_OUTLINE_CHAPTER = 5

PROTOTYPE_CHAPTERS = 2
PROTOTYPE_WORDS = 300

# One illustration every N chapters (prototype mode illustrates them all).
IMAGE_EVERY_N_CHAPTERS = 3

# Enrichment loop limits: a chapter is never enriched beyond this size, nor
# more than ENRICH_MAX_ROUNDS times.
ENRICH_MAX_CHARS = 15000
ENRICH_MAX_ROUNDS = 5


# === Layout Defaults ===

LAYOUT_PRIMARY_COLOR = "#4f46e5"
# 'sans', 'serif' or 'monospace'
LAYOUT_FONT = "sans"
LAYOUT_HEADER_TEXT = "EbookAI SaaS Premium"
LAYOUT_FOOTER_TEXT = "Confidentiel - 2026"
# Optional path to a PNG/JPEG logo for the title page.
LAYOUT_LOGO_PATH = ""
LAYOUT_WATERMARK = ""
# 'standard', 'high' or 'ultra'
LAYOUT_QUALITY = "high"
LAYOUT_NO_COMPRESSION = True


# === Presets ===

EBOOK_TYPES = [
    "Business", "Marketing digital", "E-commerce", "Formation",
    "Éducatif", "Scientifique", "Développement personnel",
    "IA & Technologie", "Storytelling",
]

# Style name -> prompt fragment appended to image requests.
IMAGE_STYLES = {
    "business": "style corporate business, professionnel, graphique, propre",
    "réel": "photographie ultra réaliste, haute résolution, éclairage studio",
    "minimaliste": "style minimaliste, épuré, design moderne, aplats de couleurs",
    "3d": "rendu 3D, style tech moderne, vibrant, détaillé",
    "infographie": "style infographie, icônes propres, informatif, vectoriel",
    "artistique": "illustration artistique, peinture numérique, créatif, expressif",
}

COLOR_PALETTES = {
    "Indigo Modern": "#4f46e5",
    "Emerald Growth": "#059669",
    "Rose Premium": "#e11d48",
    "Slate Professional": "#334155",
    "Amber Creative": "#d97706",
}

PAGE_PRESETS = [10, 15, 20, 25, 30, 40, 50, 60, 80, 100, 150, 200]
