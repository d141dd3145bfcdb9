"""
Scoring Service - Computes marks with negative marking for test attempts.

Implements the scoring formula:
1. Only answers in the "answered" state count; review/flagged/unanswered
   answers contribute 0 even if an option is selected
2. correct answers add positive_scoring, wrong answers subtract
   negative_scoring (0 when unset)
3. total_score = clamp(sum, 0, max_score)
4. passed = max_score > 0 and total_score / max_score * 100 >= cut_off
"""

import time
from typing import NamedTuple

from testseries.models.attempt import AnswerState
from testseries.logging_config import get_logger, log_with_context

# Channel logger for scoring operations
logger = get_logger("scoring")


class ScoreResult(NamedTuple):
    total_score: float
    passed: bool
    correct: int
    wrong: int
    skipped: int


def score(answers: list, scoring_config: dict, max_score: float) -> ScoreResult:
    """
    Compute the total score and pass/fail for a list of answers.

    Args:
        answers: Answer dicts with "state" and "is_correct"
        scoring_config: {"positive_scoring", "negative_scoring", "cut_off"}
        max_score: The attempt's max_score snapshot

    Returns:
        ScoreResult with the clamped total, pass/fail and answer counts
    """
    start_time = time.time()

    positive = scoring_config.get("positive_scoring") or 0
    negative = scoring_config.get("negative_scoring") or 0
    cut_off = scoring_config.get("cut_off") or 0

    correct_count = 0
    wrong_count = 0
    skipped_count = 0

    for answer in answers:
        if answer.get("state") != AnswerState.ANSWERED:
            skipped_count += 1
        elif answer.get("is_correct"):
            correct_count += 1
        else:
            wrong_count += 1

    raw_total = correct_count * positive - wrong_count * negative

    # Never below zero; never above the snapshot even if the test's
    # positive_scoring was raised after the attempt started
    total_score = min(max(0, raw_total), max(0, max_score))

    if max_score > 0:
        passed = total_score / max_score * 100 >= cut_off
    else:
        passed = False

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "DEBUG",
        "Score computed: {} of {} (correct={}, wrong={}, skipped={})".format(
            total_score, max_score, correct_count, wrong_count, skipped_count),
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "raw_total": raw_total,
            "passed": passed
        })

    return ScoreResult(
        total_score=total_score,
        passed=passed,
        correct=correct_count,
        wrong=wrong_count,
        skipped=skipped_count,
    )
