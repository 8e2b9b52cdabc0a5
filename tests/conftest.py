import json
import re
from io import BytesIO

import pytest
from PIL import Image

from errors import BackendError
from generation import REFINE_PROMPTS
from models import Chapter, LayoutOptions


def make_png(width=160, height=90, color=(30, 120, 200)):
    buffer = BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def words(count, word="analyse"):
    """`count` words in paragraphs of 60 words separated by blank lines."""
    tokens = [word] * count
    return "\n\n".join(" ".join(tokens[i:i + 60]) for i in range(0, count, 60))


def outline_payload(chapter_count, title="Le Guide"):
    return {
        "title": title,
        "chapters": [
            {"title": f"Chapitre numéro {i + 1}",
             "sections": [{"title": f"Section {i + 1}.{j + 1}"} for j in range(5)]}
            for i in range(chapter_count)
        ],
    }


MARKETING_PAYLOAD = {
    "kdpDescription": "<p>Un guide complet.</p>",
    "seoKeywords": ["productivité", "organisation"],
    "salesPage": "Titre, bénéfices, appel à l'action",
    "marketingEmail": "Bonjour !",
    "suggestedPrice": "9,99 €",
}

CHART_PAYLOAD = {
    "type": "bar",
    "title": "Adoption par année",
    "data": [{"label": "2024", "value": 12}, {"label": "2025", "value": 27.5}],
}


def classify(prompt):
    if "Crée un plan détaillé" in prompt:
        return "outline"
    if "Rédige le contenu détaillé du chapitre" in prompt:
        return "chapter"
    if "Génère une section FAQ" in prompt:
        return "faq"
    if "outils marketing" in prompt:
        return "marketing"
    if "graphique lié au sujet" in prompt:
        return "chart"
    if prompt.startswith(REFINE_PROMPTS["enrich"]):
        return "enrich"
    for action, instruction in REFINE_PROMPTS.items():
        if prompt.startswith(instruction):
            return action
    return "unknown"


class FakeBackend:
    """In-memory backend recording every call.

    `responses` maps a call kind to a string or to a callable taking the
    prompt; kinds listed in `failing` raise BackendError.
    """

    def __init__(self, responses=None, failing=(), image=None):
        self.responses = responses or {}
        self.failing = set(failing)
        self.image = make_png() if image is None else image
        self.calls = []

    def kinds(self):
        return [kind for kind, _ in self.calls]

    def generate_text(self, prompt, json_mode=False, grounded=False):
        kind = classify(prompt)
        self.calls.append((kind, prompt))
        if kind in self.failing:
            raise BackendError(f"{kind} unavailable")
        response = self.responses.get(kind)
        if response is None:
            return self.default_response(kind, prompt)
        return response(prompt) if callable(response) else response

    def generate_image(self, prompt, aspect_ratio="16:9"):
        self.calls.append(("image", prompt))
        if "image" in self.failing:
            raise BackendError("image unavailable")
        return self.image

    def default_response(self, kind, prompt):
        if kind == "outline":
            count = int(re.search(r"plan de (\d+) chapitres", prompt).group(1))
            return json.dumps(outline_payload(count))
        if kind == "chapter":
            target = int(re.search(r"environ (\d+) mots", prompt).group(1))
            return words(target)
        if kind == "enrich":
            original = prompt.split("Texte original :\n", 1)[1]
            return original + "\n\n" + words(60, "exemple")
        if kind == "faq":
            return "Q: Pourquoi ?\nR: Parce que."
        if kind == "marketing":
            return json.dumps(MARKETING_PAYLOAD)
        if kind == "chart":
            return json.dumps(CHART_PAYLOAD)
        return "Texte réécrit entièrement."


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def options():
    return LayoutOptions(header_text="En-tête", footer_text="Pied de page")


@pytest.fixture
def sample_chapters():
    return [
        Chapter(title="Introduction", content=words(400), image=make_png()),
        Chapter(title="Méthodes", content="## Sous-titre\n\n" + words(250) + "\n\nUn **point** clé."),
        Chapter(title="Conclusion", content=words(120)),
    ]
