"""
Annotation pass over finished HTML fragments.

Marks every navigable element (chapter headings, subtopic cards, list items)
with `data-title` / `data-parent` and a clickable class so the UI can map a
click straight back to a tree node. Runs on a parsed tree, never on a
browser document, and leaves visible text untouched.
"""

from dataclasses import dataclass
from typing import List, Optional

from bs4 import BeautifulSoup, NavigableString, Tag

from backend.prompts import ContentKind

NAV_CLASS = {
    ContentKind.OUTLINE: "outline-item",
    ContentKind.SUB_OUTLINE: "suboutline-item",
}
HEADINGS = ["h1", "h2", "h3", "h4", "h5", "h6"]
NESTED_LISTS = ("ul", "ol")


@dataclass
class NavItem:
    title: str
    parent: Optional[str] = None


def annotate(html: str, kind) -> str:
    """Attach navigation/quiz attributes for `kind`; notes and dive-deeper pass through."""
    kind = ContentKind(kind)
    if kind not in NAV_CLASS and kind != ContentKind.QUIZ:
        return html
    soup = BeautifulSoup(html, "html.parser")
    if kind == ContentKind.QUIZ:
        _annotate_quiz(soup)
    else:
        _annotate_outline(soup, kind)
    return str(soup)


def navigable_items(html: str) -> List[NavItem]:
    """List (title, parent) of every annotated clickable element, in document order."""
    soup = BeautifulSoup(html, "html.parser")
    nav_classes = set(NAV_CLASS.values())
    items, seen = [], set()
    for el in soup.find_all(attrs={"data-title": True}):
        if not nav_classes.intersection(el.get("class", [])):
            continue
        title = el["data-title"]
        if not title or title in seen:
            continue
        seen.add(title)
        items.append(NavItem(title=title, parent=el.get("data-parent")))
    return items


def clean_text(text: str) -> str:
    return " ".join(text.split())


def _add_class(el: Tag, name: str):
    classes = list(el.get("class", []))
    if name not in classes:
        el["class"] = classes + [name]


def _has_class(el: Tag, name: str) -> bool:
    return name in el.get("class", [])


def _own_text(el: Tag) -> str:
    """Text of el without nested lists (a parent li should not absorb its children)."""
    parts = []
    for child in el.children:
        if isinstance(child, NavigableString):
            parts.append(str(child))
        elif isinstance(child, Tag) and child.name not in NESTED_LISTS:
            parts.append(child.get_text())
    return clean_text("".join(parts))


def _item_title(el: Tag) -> str:
    if _has_class(el, "subtopic-item"):
        span = el.find("span")
        if span is not None:
            return clean_text(span.get_text())
    if el.name == "li":
        return _own_text(el)
    return clean_text(el.get_text())


def _section_title(el: Tag) -> Optional[str]:
    card = el.find_parent(lambda t: _has_class(t, "section-card"))
    if card is not None:
        heading = card.find(class_="section-title") or card.find(HEADINGS)
        if heading is not None:
            return clean_text(heading.get_text())
    section = el.find_parent(
        lambda t: t.name == "section" or (t.name == "div" and any("section" in c for c in t.get("class", [])))
    )
    if section is not None:
        heading = section.find(HEADINGS)
        if heading is not None and heading is not el:
            return clean_text(heading.get_text())
    outer_li = el.find_parent("li")
    if outer_li is not None:
        return _own_text(outer_li)
    heading = el.find_previous(HEADINGS)
    if heading is not None:
        return clean_text(heading.get_text())
    return None


def _is_navigable(el: Tag, kind: ContentKind) -> bool:
    if _has_class(el, "section-title") or _has_class(el, "subtopic-item") or el.name == "li":
        return True
    return kind == ContentKind.SUB_OUTLINE and el.name == "h3"


def _annotate_outline(soup: BeautifulSoup, kind: ContentKind):
    nav_class = NAV_CLASS[kind]
    for el in soup.find_all(lambda t: _is_navigable(t, kind)):
        title = _item_title(el)
        if not title:
            continue
        el["data-title"] = title
        is_heading = el.name in HEADINGS or _has_class(el, "section-title")
        parent = None if is_heading else _section_title(el)
        if parent and parent != title:
            el["data-parent"] = parent
        _add_class(el, nav_class)
        el["role"] = "button"
        el["tabindex"] = "0"
    for card in soup.find_all(class_="section-card"):
        _add_class(card, "enhanced-section-card")


def is_option(el: Tag) -> bool:
    return _has_class(el, "option") or _has_class(el, "quiz-option") or el.has_attr("data-correct")


def _annotate_quiz(soup: BeautifulSoup):
    for index, question in enumerate(soup.find_all(class_="question")):
        question["data-question"] = str(index)
    for option in soup.find_all(is_option):
        _add_class(option, "quiz-option")
        correct = str(option.get("data-correct", "")).strip().lower() == "true"
        option["data-correct"] = "true" if correct else "false"
