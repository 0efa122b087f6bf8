"""
Scoring evaluator for intake answers.

A single loop over the question schema replaces per-question scoring code:
each select question contributes the points of the option matching its
answer, everything else contributes nothing.

Scoring Rules:
- Match the answer against option values first, then option labels
  (producers may submit either).
- Unanswered or unmatched select questions score 0.
- Conditional floor: when the parent answer is the question's trigger option
  and the dependent sub-answer is filled in, the question scores at least the
  trigger option's points.
- text / email / tel questions are captured but never scored.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional

from .question_schema import Question, QuestionOption

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeadScore:
    """Evaluator result: total plus per-question points."""
    total: int
    breakdown: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"total": self.total, "breakdown": dict(self.breakdown)}


def _answer(answers: Mapping[str, Optional[str]], key: str) -> Optional[str]:
    value = answers.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _match_option(question: Question, answer: str) -> Optional[QuestionOption]:
    for option in question.options:
        if option.value == answer:
            return option
    for option in question.options:
        if option.label == answer:
            return option
    return None


def _same_choice(answer: str, show_when: str) -> bool:
    return answer.casefold() == show_when.strip().casefold()


def score_question(question: Question, answers: Mapping[str, Optional[str]]) -> int:
    """Points for one question given the full answer set."""
    if not question.is_scored or not question.options:
        return 0

    answer = _answer(answers, question.id)
    if answer is None:
        return 0

    option = _match_option(question, answer)
    points = option.points if option else 0

    conditional = question.conditional_field
    if conditional and _same_choice(answer, conditional.show_when):
        if _answer(answers, conditional.id) and points == 0:
            trigger = question.trigger_option()
            if trigger:
                points = trigger.points

    return max(points, 0)


def evaluate(answers: Mapping[str, Optional[str]], questions: Iterable[Question]) -> LeadScore:
    """
    Score an answer set against a schema.

    Pure: identical inputs always give identical output. Called fresh on
    every merge so that totals never drift from the stored answers.

    Args:
        answers: Question id to answer value (extra ids are ignored)
        questions: Schema questions, in any order

    Returns:
        LeadScore with total and breakdown keyed by question id
    """
    breakdown: Dict[str, int] = {}
    for question in questions:
        if not question.is_scored:
            continue
        breakdown[question.id] = score_question(question, answers)

    return LeadScore(total=sum(breakdown.values()), breakdown=breakdown)
