"""
System prompts for each content kind.

Every prompt asks for a bare HTML fragment with fixed class names so the
annotation pass and the stylesheet can target structural elements.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List

from .config import DEFAULT_MODEL_NAME


class ContentKind(str, Enum):
    OUTLINE = "outline"
    SUB_OUTLINE = "sub_outline"
    NOTES = "notes"
    QUIZ = "quiz"
    DIVE_DEEPER = "dive_deeper"


@dataclass
class PromptSpec:
    system: str
    user: str
    model: str = DEFAULT_MODEL_NAME

    def messages(self) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]


HTML_RULES = (
    "Output ONLY an HTML fragment. Do not wrap it in <html>, <head> or <body>. "
    "Do not use markdown or code fences (no ```html). "
    "Do not set any color or background-color. "
    "Keep font sizes consistent and readable on every screen size."
)

OUTLINE_EXAMPLE = """
<div class="outline-sections">
  <div class="section-card">
    <h3 class="section-title">Chapter 1: Foundations</h3>
    <div class="subsection-container">
      <div class="subtopic-item"><span>Fundamental principles</span></div>
      <div class="subtopic-item"><span>Key terminology</span></div>
    </div>
  </div>
  <div class="section-card">
    <h3 class="section-title">Chapter 2: Applications</h3>
    <div class="subsection-container">
      <div class="subtopic-item"><span>Practical applications</span></div>
      <div class="subtopic-item"><span>Future implications</span></div>
    </div>
  </div>
</div>
"""

QUIZ_EXAMPLE = """
<div class="question">
  <h3>Question text goes here</h3>
  <div class="options">
    <div class="option" data-correct="false">Option A</div>
    <div class="option" data-correct="true">Option B</div>
    <div class="option" data-correct="false">Option C</div>
    <div class="option" data-correct="false">Option D</div>
  </div>
</div>
"""

SYSTEM_PREAMBLE = "You are an AI assistant specialized in creating study guides. "

# kind -> (required fields, system prompt template)
PROMPTS = {
    ContentKind.OUTLINE: (
        ("topic",),
        SYSTEM_PREAMBLE
        + "When given a topic, create a very detailed outline, organised like the "
        "chapters of a book, that covers everything that needs to be known about {topic}. "
        "Follow exactly this structure, replacing the titles:\n" + OUTLINE_EXAMPLE + "\n" + HTML_RULES,
    ),
    ContentKind.SUB_OUTLINE: (
        ("subtopic", "mainTopic"),
        SYSTEM_PREAMBLE
        + "The user clicked the section '{subtopic}' of the subject '{mainTopic}'. "
        "Create a very detailed sub-outline that covers everything that needs to be known "
        "for this section. Follow exactly this structure, replacing the titles:\n"
        + OUTLINE_EXAMPLE + "\n" + HTML_RULES,
    ),
    ContentKind.NOTES: (
        ("title", "sectionTitle", "subtopic"),
        SYSTEM_PREAMBLE
        + "Write very detailed notes on the subsection '{subtopic}' of the section "
        "'{sectionTitle}' in the subject '{title}'. Include explanations and examples, "
        "using headings, paragraphs and lists. " + HTML_RULES,
    ),
    ContentKind.QUIZ: (
        ("title", "sectionTitle", "subtopic"),
        "You are an educational quiz generator. Create a quiz on '{subtopic}' "
        "(section '{sectionTitle}', subject '{title}'). "
        "Generate 5 multiple-choice questions with 4 options each, using this structure "
        "for every question:\n" + QUIZ_EXAMPLE + "\n"
        "Mark exactly ONE option per question with data-correct=\"true\" and the others "
        "with data-correct=\"false\". Make the questions challenging but fair and factually "
        "accurate. Do not add explanations outside the HTML structure. " + HTML_RULES,
    ),
    ContentKind.DIVE_DEEPER: (
        ("topicChain", "followUpQuestion"),
        SYSTEM_PREAMBLE
        + "This is a follow-up (dive deeper) request. Based on the topic context "
        "{topicChain}, answer the follow-up question: {followUpQuestion}. " + HTML_RULES,
    ),
}


def build_prompt(kind: ContentKind, model: str = DEFAULT_MODEL_NAME, **fields) -> PromptSpec:
    """
    Map named fields to the system instruction and user message for `kind`.

    Raises ValueError when a required field is missing or blank.
    """
    kind = ContentKind(kind)
    required, template = PROMPTS[kind]
    missing = [name for name in required if not str(fields.get(name) or "").strip()]
    if missing:
        raise ValueError(f"Missing fields for {kind.value} prompt: {', '.join(missing)}")
    values = {name: str(fields[name]).strip() for name in required}
    system = template.format(**values)
    return PromptSpec(system=system, user=json.dumps(fields, ensure_ascii=False), model=model)
