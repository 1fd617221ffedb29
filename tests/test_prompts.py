import json

import pytest

from backend.prompts import ContentKind, build_prompt


def test_outline_prompt_names_the_topic():
    spec = build_prompt(ContentKind.OUTLINE, topic="Photosynthesis", action="generateOutlineHTML")
    assert "Photosynthesis" in spec.system
    assert 'class="section-card"' in spec.system
    assert json.loads(spec.user)["topic"] == "Photosynthesis"


def test_messages_are_system_then_user():
    spec = build_prompt("notes", title="Biology", sectionTitle="Cells", subtopic="Mitosis", model="m-1")
    assert [m["role"] for m in spec.messages()] == ["system", "user"]
    assert spec.model == "m-1"
    assert "Mitosis" in spec.system and "Cells" in spec.system


def test_quiz_prompt_asks_for_correct_markers():
    spec = build_prompt(ContentKind.QUIZ, title="Biology", sectionTitle="Cells", subtopic="Mitosis")
    assert 'data-correct="true"' in spec.system


def test_dive_deeper_prompt_carries_the_chain():
    chain = "Main Topic: 'Biology', Section: 'Cells', Subtopic: 'Mitosis'"
    spec = build_prompt(ContentKind.DIVE_DEEPER, topicChain=chain, followUpQuestion="Why?")
    assert chain in spec.system
    assert "Why?" in spec.system


@pytest.mark.parametrize("kind, fields", [
    (ContentKind.OUTLINE, {}),
    (ContentKind.SUB_OUTLINE, {"subtopic": "Cells"}),
    (ContentKind.NOTES, {"title": "Biology", "sectionTitle": "  ", "subtopic": "Mitosis"}),
    (ContentKind.DIVE_DEEPER, {"topicChain": "x"}),
])
def test_missing_fields_raise_value_error(kind, fields):
    with pytest.raises(ValueError):
        build_prompt(kind, **fields)
