"""
Attempts API routes - the test-attempt lifecycle.

Provides endpoints for:
- Starting an attempt (or resolving an existing active one)
- Recording an answer for one question
- Submitting an attempt
- Listing the caller's attempts for a test

Any of the mutating endpoints may answer with an automatically submitted
attempt when the test duration has run out; that is a 200, not an error.
"""

import time
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from testseries.database import get_db
from testseries.dependencies import get_caller, get_clock
from testseries.errors import ConflictError
from testseries.models.attempt import Attempt
from testseries.services import expiry
from testseries.services.lifecycle import AttemptLifecycleManager, LifecycleOutcome
from testseries.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")

AUTO_SUBMITTED_MESSAGE = "Test duration expired. Test has been automatically submitted."


# ── Pydantic schemas ─────────────────────────────────────────

class StartAttemptRequest(BaseModel):
    """Schema for starting an attempt."""
    test_id: str = Field(..., description="Test to attempt")


class AnswerRequest(BaseModel):
    """Schema for recording the answer to one question. Replaces the whole slot."""
    question_id: str = Field(..., description="Question being answered")
    selected_option: Optional[str] = Field(None, description="Option id, omitted to clear")
    state: Optional[str] = Field(None, description="answered | unanswered | marked_for_review | flagged_for_later")


def _iso(value: Optional[datetime]):
    return value.isoformat() if value else None


def serialize_attempt(attempt: Attempt, now: Optional[datetime] = None) -> dict:
    """Serialize an Attempt ORM object to a dict for API response."""
    test = attempt.test
    is_expired = False
    if not attempt.is_finalized and test is not None and now is not None:
        is_expired = expiry.evaluate(attempt.start_time, test.timing, now).expired

    answers = attempt.answers_list
    percentage = attempt.percentage
    return {
        "id": str(attempt.id),
        "test_id": str(attempt.test_id),
        "user_id": attempt.user_id,
        "status": "finalized" if attempt.is_finalized else "active",
        "start_time": _iso(attempt.start_time),
        "submission_time": _iso(attempt.submission_time),
        "deadline": _iso(expiry.deadline(attempt.start_time, test.timing)) if test else None,
        "is_expired": is_expired,
        "answers": answers,
        "total_questions": len(answers),
        "total_answered": attempt.total_answered,
        "total_unanswered": attempt.total_unanswered,
        "total_score": float(attempt.total_score),
        "max_score": float(attempt.max_score),
        "percentage": round(percentage, 2) if percentage is not None else None,
        "passed": attempt.passed,
        "test": {
            "id": str(test.id),
            "test_name": test.test_name,
            "timing": test.timing,
            "positive_scoring": test.positive_scoring,
            "negative_scoring": test.negative_scoring,
            "cut_off": test.cut_off,
        } if test else None,
    }


def _outcome_response(outcome: LifecycleOutcome, now: datetime, success_message: str,
                      success_status: int = status.HTTP_200_OK):
    if outcome.auto_submitted:
        return JSONResponse(status_code=status.HTTP_200_OK, content={
            "message": AUTO_SUBMITTED_MESSAGE,
            "auto_submitted": True,
            "attempt": serialize_attempt(outcome.attempt, now),
        })
    return JSONResponse(status_code=success_status, content={
        "message": success_message,
        "auto_submitted": False,
        "attempt": serialize_attempt(outcome.attempt, now),
    })


def _conflict_response(exc: ConflictError, now: datetime):
    return JSONResponse(status_code=exc.status_code, content={
        "error": exc.error_code,
        "message": exc.message,
        "details": exc.details,
        "attempt": serialize_attempt(exc.attempt, now),
    })


@router.post("/api/attempts")
def start_attempt(request: StartAttemptRequest,
                  caller: str = Depends(get_caller),
                  clock=Depends(get_clock),
                  db: Session = Depends(get_db)):
    """Start an attempt. 409 with the existing attempt when one is already running."""
    start_time = time.time()
    manager = AttemptLifecycleManager(db, now=clock)
    try:
        outcome = manager.start(request.test_id, caller)
    except ConflictError as exc:
        if exc.attempt is None:
            raise
        return _conflict_response(exc, clock())

    log_with_context(logger, "INFO", "Start attempt handled: {}".format(outcome.status),
                     context={"attempt_id": outcome.attempt.id, "user_id": caller},
                     extra_data={"duration_ms": round((time.time() - start_time) * 1000, 2)})
    return _outcome_response(outcome, clock(), "Attempt started", status.HTTP_201_CREATED)


@router.put("/api/attempts/{attempt_id}/answers")
def record_answer(attempt_id: str, request: AnswerRequest,
                  caller: str = Depends(get_caller),
                  clock=Depends(get_clock),
                  db: Session = Depends(get_db)):
    """Record the answer for one question of an active attempt."""
    manager = AttemptLifecycleManager(db, now=clock)
    outcome = manager.record_answer(attempt_id, caller, request.question_id,
                                    request.selected_option, request.state)
    return _outcome_response(outcome, clock(), "Answer recorded")


@router.put("/api/attempts/{attempt_id}/submit")
def submit_attempt(attempt_id: str,
                   caller: str = Depends(get_caller),
                   clock=Depends(get_clock),
                   db: Session = Depends(get_db)):
    """Submit an active attempt. 409 if it was already submitted."""
    manager = AttemptLifecycleManager(db, now=clock)
    outcome = manager.submit(attempt_id, caller)
    return _outcome_response(outcome, clock(), "Attempt submitted")


@router.get("/api/attempts")
def list_attempts(test_id: str = Query(..., description="Test to list attempts for"),
                  caller: str = Depends(get_caller),
                  clock=Depends(get_clock),
                  db: Session = Depends(get_db)):
    """List the caller's attempts for a test, newest first."""
    start_time = time.time()
    manager = AttemptLifecycleManager(db, now=clock)
    attempts = manager.list_attempts(test_id, caller)
    now = clock()

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Listed {} attempts for test {}".format(len(attempts), test_id),
        context={"user_id": caller},
        extra_data={"duration_ms": round(duration_ms, 2)})

    return {"data": [serialize_attempt(a, now) for a in attempts]}
