import pytest

import config
from errors import GenerationCancelled, GenerationError, InputValidationError
from layout import count_pages
from models import Chapter, MarketingAssets
from orchestrator import (FAQ_HEADING, add_chart, add_faq, enrich_chapter, generate_ebook,
                          reconstruct_outline, refine_chapter, validate_request)

from conftest import FakeBackend, words


@pytest.mark.parametrize("pages", [5, 9, 201, 250])
def test_out_of_range_page_counts_are_rejected_before_any_call(backend, pages):
    with pytest.raises(InputValidationError):
        generate_ebook(backend, "Productivity", "Business", pages)
    assert backend.calls == []


@pytest.mark.parametrize("topic", ["", "   ", None])
def test_empty_topic_is_rejected(backend, topic):
    with pytest.raises(InputValidationError):
        generate_ebook(backend, topic, "Business", 20)
    assert backend.calls == []


def test_validate_request_accepts_bounds():
    validate_request("Sujet", 10)
    validate_request("Sujet", 200)
    with pytest.raises(InputValidationError):
        validate_request("Sujet", True)


def test_prototype_scenario(backend):
    events = []
    result = generate_ebook(backend, "Productivity", "Business", 10, prototype=True, on_progress=events.append)

    assert len(result.outline.chapters) == 2
    assert [c.title for c in result.chapters] == [p.title for p in result.outline.chapters]
    for chapter in result.chapters:
        assert 250 <= len(chapter.content.split()) <= 350
        assert chapter.image is not None
    assert count_pages(result.artifact) >= 2 + 2

    assert isinstance(result.marketing.result(timeout=10), MarketingAssets)
    assert "enrich" not in backend.kinds()
    assert backend.kinds().count("image") == 2

    states = [event.state for event in events]
    assert states[0] == "outline"
    assert states[-1] == "done"
    content_events = [event for event in events if event.state == "content"]
    assert [len(event.chapters) for event in content_events] == [1, 2]
    assert content_events[-1].estimated_pages >= 4


def test_normal_mode_sizes_outline_and_illustrates_every_third_chapter(backend):
    result = generate_ebook(backend, "Productivity", "Business", 10, render=False)
    result.marketing.result(timeout=10)

    assert len(result.chapters) == 10
    assert result.artifact is None
    assert [i for i, c in enumerate(result.chapters) if c.image] == [0, 3, 6, 9]
    assert "Chapitre numéro 1" in backend.calls[1][1]
    assert "environ 450 mots" in backend.calls[1][1]


@pytest.mark.parametrize("pages", [10, 37, 200])
def test_chapter_count_matches_outline(pages):
    backend = FakeBackend()
    result = generate_ebook(backend, "Sujet", "Formation", pages, render=False)
    result.marketing.result(timeout=10)
    assert len(result.chapters) == len(result.outline.chapters) == max(10, -(-pages // 5))


def test_enrichment_loop_is_bounded_per_chapter():
    backend = FakeBackend(responses={"chapter": "Un paragraphe court."})
    result = generate_ebook(backend, "Sujet", "Business", 20, render=False)
    result.marketing.result(timeout=10)

    enrich_calls = backend.kinds().count("enrich")
    assert 0 < enrich_calls <= len(result.chapters) * config.ENRICH_MAX_ROUNDS


def test_enrich_chapter_stops_at_round_cap():
    backend = FakeBackend()
    content, rounds = enrich_chapter(backend, [], "Titre", "Court.", target_pages=50)
    assert rounds == config.ENRICH_MAX_ROUNDS
    assert len(content) > len("Court.")


def test_enrich_chapter_stops_when_text_stops_growing():
    backend = FakeBackend(responses={"enrich": "Court."})
    content, rounds = enrich_chapter(backend, [], "Titre", "Court.", target_pages=50)
    assert rounds == 1
    assert content == "Court."


def test_enrich_chapter_stops_at_size_ceiling():
    backend = FakeBackend(responses={"enrich": "z" * (config.ENRICH_MAX_CHARS + 10)})
    content, rounds = enrich_chapter(backend, [], "Titre", "Court.", target_pages=500)
    assert rounds == 1
    assert len(content) > config.ENRICH_MAX_CHARS


def test_enrich_chapter_skips_when_estimate_is_reached():
    backend = FakeBackend()
    _, rounds = enrich_chapter(backend, [], "Titre", words(100), target_pages=3)
    assert rounds == 0
    assert backend.calls == []


def test_outline_parse_failure_is_terminal():
    backend = FakeBackend(responses={"outline": "ceci n'est pas du JSON"})
    events = []
    with pytest.raises(GenerationError) as excinfo:
        generate_ebook(backend, "Sujet", "Business", 20, on_progress=events.append)
    assert excinfo.value.chapters == []
    assert backend.kinds() == ["outline"]
    assert events[-1].state == "error"


def test_chapter_failure_keeps_previous_chapters():
    calls = {"n": 0}

    def flaky_chapter(prompt):
        calls["n"] += 1
        if calls["n"] == 2:
            raise GenerationError("transport")
        return words(300)

    backend = FakeBackend(responses={"chapter": flaky_chapter})
    with pytest.raises(GenerationError) as excinfo:
        generate_ebook(backend, "Sujet", "Business", 10, prototype=True)
    assert [c.title for c in excinfo.value.chapters] == ["Chapitre numéro 1"]
    assert excinfo.value.outline.title == "Le Guide"


def test_backend_error_on_chapter_becomes_generation_error():
    backend = FakeBackend(failing={"chapter"})
    with pytest.raises(GenerationError) as excinfo:
        generate_ebook(backend, "Sujet", "Business", 10, prototype=True)
    assert excinfo.value.chapters == []
    assert excinfo.value.outline is not None
    assert "image" not in backend.kinds()


def test_image_failure_is_not_fatal():
    backend = FakeBackend(failing={"image"})
    result = generate_ebook(backend, "Sujet", "Business", 10, prototype=True)
    assert all(chapter.image is None for chapter in result.chapters)
    assert count_pages(result.artifact) >= 4


def test_marketing_failure_resolves_to_none():
    backend = FakeBackend(failing={"marketing"})
    result = generate_ebook(backend, "Sujet", "Business", 10, prototype=True, render=False)
    assert result.marketing.result(timeout=10) is None
    assert len(result.chapters) == 2


def test_cancellation_between_chapters_keeps_finished_ones():
    backend = FakeBackend()
    finished = []
    with pytest.raises(GenerationCancelled) as excinfo:
        generate_ebook(backend, "Sujet", "Business", 10, prototype=True,
                       on_progress=lambda e: finished.extend(e.chapters[-1:] if e.state == "content" else []),
                       should_cancel=lambda: len(finished) >= 1)
    assert len(excinfo.value.chapters) == 1
    assert backend.kinds().count("chapter") == 1


# --- Single-chapter operations ---
def test_refine_replaces_content_without_touching_input(backend):
    chapters = [Chapter("A", "Ancien texte."), Chapter("B", "Autre.")]
    updated = refine_chapter(backend, chapters, 0, "rewrite")
    assert updated[0].content == "Texte réécrit entièrement."
    assert "Ancien texte." not in updated[0].content
    assert chapters[0].content == "Ancien texte."
    assert updated[1] is chapters[1]


def test_refine_failure_leaves_content_unchanged():
    backend = FakeBackend(failing={"simplify"})
    chapters = [Chapter("A", "Ancien texte.")]
    assert refine_chapter(backend, chapters, 0, "simplify")[0].content == "Ancien texte."


def test_refine_rejects_unknown_action_and_index(backend):
    with pytest.raises(InputValidationError):
        refine_chapter(backend, [Chapter("A", "x")], 0, "translate")
    with pytest.raises(InputValidationError):
        refine_chapter(backend, [Chapter("A", "x")], 3, "rewrite")
    assert backend.calls == []


def test_add_faq_appends_after_original_content(backend):
    chapters = [Chapter("A", "Contenu d'origine.")]
    updated = add_faq(backend, chapters, 0)
    assert updated[0].content.startswith("Contenu d'origine.")
    assert f"\n\n{FAQ_HEADING}\nQ: Pourquoi ?" in updated[0].content


def test_add_faq_failure_leaves_content_unchanged():
    backend = FakeBackend(failing={"faq"})
    chapters = [Chapter("A", "Contenu d'origine.")]
    assert add_faq(backend, chapters, 0)[0].content == "Contenu d'origine."


def test_add_chart_attaches_chart_or_nothing():
    chapters = [Chapter("A", "Contenu.")]
    updated = add_chart(FakeBackend(), chapters, 0)
    assert updated[0].chart.type == "bar"
    assert chapters[0].chart is None

    broken = FakeBackend(responses={"chart": '{"type": "radar", "title": "x", "data": []}'})
    assert add_chart(broken, chapters, 0)[0].chart is None


def test_reconstructed_outline_has_no_section_detail():
    outline = reconstruct_outline("Ancien ebook", [Chapter("Un", "x"), Chapter("Deux", "y")])
    assert outline.title == "Ancien ebook"
    assert [plan.title for plan in outline.chapters] == ["Un", "Deux"]
    assert all(plan.sections == [] for plan in outline.chapters)
    assert outline.has_section_detail is False
