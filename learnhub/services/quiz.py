"""Quiz scoring."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from config.settings import settings


@dataclass
class QuizOutcome:
    correct: int
    total: int
    score: int  # percent
    passed: bool


def percent(correct: int, total: int) -> int:
    """Whole percent, halves rounded up (7/10 -> 70, 1/8 -> 13)."""
    if total <= 0:
        return 0
    return int(math.floor(correct * 100 / total + 0.5))


def score_quiz(
    questions: list[dict[str, Any]],
    answers: Mapping[str, Any],
    pass_score: Optional[int] = None,
) -> QuizOutcome:
    """Grade selected option indexes against each question's `correct` index.

    Answers are keyed by question id as a string (JSON object keys).
    """
    if pass_score is None:
        pass_score = settings.QUIZ_PASS_SCORE
    correct = 0
    for question in questions:
        chosen = answers.get(str(question.get("id")))
        if chosen is not None and chosen == question.get("correct"):
            correct += 1
    score = percent(correct, len(questions))
    return QuizOutcome(correct=correct, total=len(questions), score=score, passed=score >= pass_score)
