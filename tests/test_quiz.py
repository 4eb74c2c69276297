"""Tests for quiz scoring."""
from __future__ import annotations

import pytest

from learnhub.services.quiz import percent, score_quiz


def _questions(n):
    return [{"id": i, "options": ["a", "b"], "correct": 1} for i in range(1, n + 1)]


@pytest.mark.parametrize("correct,total,expected", [
    (7, 10, 70),
    (1, 8, 13),   # 12.5 rounds up
    (1, 3, 33),
    (2, 3, 67),
    (0, 5, 0),
    (5, 5, 100),
    (0, 0, 0),
])
def test_percent(correct, total, expected):
    assert percent(correct, total) == expected


def test_seven_of_ten_passes():
    answers = {str(i): 1 for i in range(1, 8)}
    answers.update({"8": 0, "9": 0, "10": 0})
    outcome = score_quiz(_questions(10), answers, pass_score=70)
    assert outcome.correct == 7
    assert outcome.score == 70
    assert outcome.passed is True


def test_six_of_ten_fails():
    answers = {str(i): 1 for i in range(1, 7)}
    outcome = score_quiz(_questions(10), answers, pass_score=70)
    assert outcome.score == 60
    assert outcome.passed is False


def test_unanswered_questions_count_as_wrong():
    outcome = score_quiz(_questions(4), {}, pass_score=70)
    assert outcome.correct == 0
    assert outcome.total == 4


def test_default_pass_score_from_settings():
    answers = {str(i): 1 for i in range(1, 11)}
    assert score_quiz(_questions(10), answers).passed is True
