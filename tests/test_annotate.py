from bs4 import BeautifulSoup

from backend.prompts import ContentKind
from navigator.annotate import annotate, navigable_items

OUTLINE = """
<div class="outline-sections">
  <div class="section-card">
    <h3 class="section-title">Chapter 1: Light reactions</h3>
    <div class="subsection-container">
      <div class="subtopic-item"><span>Photosystem II</span></div>
      <div class="subtopic-item"><span>Electron transport</span></div>
    </div>
  </div>
  <div class="section-card">
    <h3 class="section-title">Chapter 2: Calvin cycle</h3>
    <div class="subsection-container">
      <div class="subtopic-item"><span>Carbon fixation</span></div>
    </div>
  </div>
</div>
"""

NESTED_LIST = "<ul><li>Causes<ul><li>Economic pressure</li><li>Alliances</li></ul></li><li>Aftermath</li></ul>"


def _text(html):
    return BeautifulSoup(html, "html.parser").get_text()


def test_outline_items_carry_title_and_parent():
    soup = BeautifulSoup(annotate(OUTLINE, ContentKind.OUTLINE), "html.parser")

    heading = soup.find("h3")
    assert heading["data-title"] == "Chapter 1: Light reactions"
    assert "outline-item" in heading["class"]
    assert heading["role"] == "button"
    assert not heading.has_attr("data-parent")

    item = soup.find(attrs={"data-title": "Electron transport"})
    assert item["data-parent"] == "Chapter 1: Light reactions"
    assert "enhanced-section-card" in soup.find(class_="section-card")["class"]


def test_navigable_items_in_document_order():
    items = navigable_items(annotate(OUTLINE, ContentKind.OUTLINE))
    assert [i.title for i in items] == [
        "Chapter 1: Light reactions",
        "Photosystem II",
        "Electron transport",
        "Chapter 2: Calvin cycle",
        "Carbon fixation",
    ]
    assert items[-1].parent == "Chapter 2: Calvin cycle"


def test_nested_list_items_use_their_own_text():
    annotated = annotate(NESTED_LIST, ContentKind.SUB_OUTLINE)
    items = {i.title: i.parent for i in navigable_items(annotated)}
    assert items["Causes"] is None
    assert items["Alliances"] == "Causes"
    assert "suboutline-item" in BeautifulSoup(annotated, "html.parser").find("li")["class"]


def test_annotation_is_idempotent_and_keeps_text():
    once = annotate(OUTLINE, ContentKind.OUTLINE)
    assert annotate(once, ContentKind.OUTLINE) == once
    assert _text(once) == _text(OUTLINE)


def test_notes_pass_through_untouched():
    html = "<h2>Notes</h2><ul><li>Point</li></ul>"
    assert annotate(html, ContentKind.NOTES) == html
    assert annotate(html, ContentKind.DIVE_DEEPER) == html


def test_quiz_options_are_normalized():
    html = (
        '<div class="question"><h3>Q1</h3>'
        '<div class="option" data-correct="TRUE ">A</div>'
        '<div class="option">B</div></div>'
    )
    soup = BeautifulSoup(annotate(html, ContentKind.QUIZ), "html.parser")
    options = soup.find_all(class_="quiz-option")
    assert [o["data-correct"] for o in options] == ["true", "false"]
    assert soup.find(class_="question")["data-question"] == "0"


SUB_OUTLINE = (
    '<section class="section"><h3>Light reactions</h3>'
    "<ul><li>Photosystem II<ul><li>Water splitting</li></ul></li><li>ATP synthase</li></ul></section>"
)
QUIZ = (
    '<div class="question"><h3>Q1</h3><div class="option" data-correct="true">A</div>'
    '<div class="quiz-option">B</div><span data-correct="no">C</span></div>'
)
NOTES = "<h2>Light reactions</h2><p>Water is <em>split</em>.</p><ul><li>Oxygen</li></ul>"


def test_annotation_is_idempotent_for_every_kind():
    fragments = [
        (SUB_OUTLINE, ContentKind.SUB_OUTLINE),
        (NESTED_LIST, ContentKind.SUB_OUTLINE),
        (QUIZ, ContentKind.QUIZ),
        (NOTES, ContentKind.NOTES),
        (NOTES, ContentKind.DIVE_DEEPER),
    ]
    for html, kind in fragments:
        once = annotate(html, kind)
        assert annotate(once, kind) == once, kind
        assert _text(once) == _text(html), kind


def test_sub_outline_headings_are_navigable():
    items = {i.title: i.parent for i in navigable_items(annotate(SUB_OUTLINE, ContentKind.SUB_OUTLINE))}
    assert items["Light reactions"] is None
    assert items["Photosystem II"] == "Light reactions"
    assert items["Water splitting"] == "Light reactions"
