"""
Client-side quiz scoring over the annotated quiz fragment.

Each option carries `data-correct="true|false"`; a fragment without
`.question` wrappers is treated as a single question.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from bs4 import BeautifulSoup

from .annotate import HEADINGS, clean_text, is_option


@dataclass
class QuizOption:
    text: str
    correct: bool


@dataclass
class QuizQuestion:
    prompt: str
    options: List[QuizOption] = field(default_factory=list)


@dataclass
class QuizScore:
    correct: int
    total: int

    @property
    def percent(self) -> int:
        if not self.total:
            return 0
        return round(self.correct / self.total * 100)

    @property
    def progress_increase(self) -> int:
        """0-5 progress points for a finished quiz."""
        return round(self.percent / 20)

    def __str__(self) -> str:
        return f"{self.correct}/{self.total} ({self.percent}%)"


def parse_quiz(html: str) -> List[QuizQuestion]:
    soup = BeautifulSoup(html, "html.parser")
    blocks = soup.find_all(class_="question") or [soup]
    questions = []
    for block in blocks:
        options = [
            QuizOption(text=clean_text(opt.get_text()),
                       correct=str(opt.get("data-correct", "")).strip().lower() == "true")
            for opt in block.find_all(is_option)
        ]
        if not options:
            continue
        heading = block.find(HEADINGS)
        prompt = clean_text(heading.get_text()) if heading is not None else ""
        questions.append(QuizQuestion(prompt=prompt, options=options))
    return questions


def score_quiz(html: str, selections: Dict[int, Optional[int]]) -> QuizScore:
    """
    Count correct answers.

    `selections` maps question index to the chosen option index; unanswered
    questions count as wrong.
    """
    questions = parse_quiz(html)
    correct = 0
    for index, question in enumerate(questions):
        choice = selections.get(index)
        if choice is None or not 0 <= choice < len(question.options):
            continue
        if question.options[choice].correct:
            correct += 1
    return QuizScore(correct=correct, total=len(questions))


def feedback(score: QuizScore) -> str:
    if score.percent >= 80:
        return "Excellent work! You have a strong understanding of this topic."
    if score.percent >= 50:
        return "Good effort! Consider reviewing the material to strengthen your knowledge."
    return "You might need more study time with this topic. Try reviewing the notes again."
