"""
Attempt Lifecycle - start, answer, submit and finalize timed attempts.

Every mutating operation follows the same gate:
1. Load the attempt and check ownership
2. Reject if it is already finalized
3. Ask the expiry evaluator whether the deadline has passed; if so,
   finalize at the deadline and return that result instead of applying
   the requested change
4. Apply the change and commit

Writes are guarded by the attempt's version column. When another request
changed the attempt between our read and our write, the whole operation is
re-run from a fresh read (including the expiry check).
"""

import os
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, NamedTuple, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from testseries.errors import (
    ConflictError, InternalError, InvalidInputError, NotFoundError, UnauthorizedError
)
from testseries.models.attempt import Attempt, AnswerState, blank_answer
from testseries.models.test import Test
from testseries.repositories import AttemptStore, QuestionStore, TestStore
from testseries.services import expiry, scoring
from testseries.logging_config import get_logger, log_with_context

logger = get_logger("lifecycle")

ATTEMPT_WRITE_RETRIES = int(os.getenv("ATTEMPT_WRITE_RETRIES", "3"))


def utcnow() -> datetime:
    """Current time as naive UTC, matching how timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def require_id(value, field: str) -> str:
    try:
        return str(uuid.UUID(str(value)))
    except (ValueError, TypeError):
        raise InvalidInputError(field, "malformed identifier")


class LifecycleOutcome(NamedTuple):
    attempt: Attempt
    # created | updated | submitted | auto_submitted
    status: str

    @property
    def auto_submitted(self):
        return self.status == "auto_submitted"


class AttemptLifecycleManager:
    """The only component that mutates attempts."""

    def __init__(self, db: Session, now: Callable[[], datetime] = utcnow,
                 max_retries: int = ATTEMPT_WRITE_RETRIES):
        self.db = db
        self.now = now
        self.max_retries = max(1, max_retries)
        self.tests = TestStore(db)
        self.questions = QuestionStore(db)
        self.attempts = AttemptStore(db)

    # ── public operations ──────────────────────────────────────

    def start(self, test_id: str, caller: str) -> LifecycleOutcome:
        """
        Start an attempt, or resolve the caller's existing active one.

        An active attempt still in time is a Conflict carrying that attempt.
        An active attempt past its deadline is finalized and returned; no new
        attempt is created in the same call.
        """
        test_id = require_id(test_id, "test_id")
        return self._with_retry(lambda: self._start(test_id, caller), test_id=test_id, user_id=caller)

    def record_answer(self, attempt_id: str, caller: str, question_id: str,
                      selected_option: Optional[str] = None,
                      desired_state: Optional[str] = None) -> LifecycleOutcome:
        """
        Replace the answer slot for one question.

        The answer itself is validated only after the expiry gate, so any
        request against an expired attempt finalizes it.
        """
        attempt_id = require_id(attempt_id, "attempt_id")
        return self._with_retry(
            lambda: self._record_answer(attempt_id, caller, question_id, selected_option, desired_state),
            attempt_id=attempt_id, user_id=caller)

    def submit(self, attempt_id: str, caller: str) -> LifecycleOutcome:
        """
        Finalize the caller's active attempt at min(now, deadline).

        Submitting an attempt that is already finalized is a Conflict and
        never recomputes its score or submission time.
        """
        attempt_id = require_id(attempt_id, "attempt_id")
        return self._with_retry(lambda: self._submit(attempt_id, caller),
                                attempt_id=attempt_id, user_id=caller)

    def list_attempts(self, test_id: str, caller: str):
        """The caller's attempts for a test, newest first. No lifecycle side effects."""
        test_id = require_id(test_id, "test_id")
        return self.attempts.list_for_user(test_id, caller)

    # ── operation bodies (re-run on stale writes) ──────────────

    def _start(self, test_id: str, caller: str) -> LifecycleOutcome:
        test = self.tests.get(test_id)
        if test is None:
            raise NotFoundError("Test", {"test_id": test_id})

        now = self.now()
        existing = self.attempts.find_active(caller, test_id)
        if existing is not None:
            check = expiry.evaluate(existing.start_time, test.timing, now)
            if check.expired:
                self._finalize(existing, test, check.effective_end_time)
                self.db.commit()
                self._log_finalized(existing, "Attempt auto-submitted on start: duration expired")
                return LifecycleOutcome(existing, "auto_submitted")

            log_with_context(logger, "WARNING", "Start rejected: attempt already in progress",
                             context=self._context(existing))
            raise ConflictError("You have an ongoing attempt for this test",
                                details={"attempt_id": existing.id}, attempt=existing)

        attempt = Attempt(
            id=str(uuid.uuid4()),
            test_id=test.id,
            user_id=caller,
            start_time=now,
            total_score=0,
            max_score=test.max_score,
            passed=None,
        )
        attempt.set_answers([blank_answer(qid) for qid in test.question_ids])

        try:
            self.attempts.add(attempt)
        except IntegrityError:
            # A concurrent start for the same (user, test) won the unique index
            self.db.rollback()
            winner = self.attempts.find_active(caller, test_id)
            raise ConflictError("You have an ongoing attempt for this test",
                                details={"attempt_id": winner.id if winner else None},
                                attempt=winner)

        first_attempt = self.tests.mark_has_history(test.id)
        self.db.commit()

        log_with_context(logger, "INFO", "Attempt started",
                         context=self._context(attempt),
                         extra_data={
                             "questions": len(attempt.answers_list),
                             "max_score": attempt.max_score,
                             "first_attempt_for_test": first_attempt
                         })
        return LifecycleOutcome(attempt, "created")

    def _record_answer(self, attempt_id, caller, question_id, selected_option, desired_state):
        attempt, test = self._load_owned(attempt_id, caller)
        if attempt.is_finalized:
            raise ConflictError("Cannot update a submitted attempt",
                                details={"attempt_id": attempt.id}, attempt=attempt)

        check = expiry.evaluate(attempt.start_time, test.timing, self.now())
        if check.expired:
            self._finalize(attempt, test, check.effective_end_time)
            self.db.commit()
            self._log_finalized(attempt, "Attempt auto-submitted on answer: duration expired",
                                {"dropped_question_id": question_id})
            return LifecycleOutcome(attempt, "auto_submitted")

        question_id = require_id(question_id, "question_id")
        if selected_option is not None:
            selected_option = require_id(selected_option, "selected_option")
        if desired_state is not None and desired_state not in AnswerState.ALL:
            raise InvalidInputError("state", "must be one of {}".format(", ".join(AnswerState.ALL)))

        answers = attempt.answers_list
        slot = next((i for i, a in enumerate(answers) if a["question_id"] == question_id), None)
        if slot is None:
            raise InvalidInputError("question_id", "question is not part of this attempt",
                                    {"question_id": question_id})

        question = self.questions.get(question_id)
        if question is None:
            raise NotFoundError("Question", {"question_id": question_id})

        is_correct = False
        if selected_option is not None:
            option = question.find_option(selected_option)
            if option is None:
                raise InvalidInputError("selected_option", "option does not belong to the question",
                                        {"question_id": question_id, "selected_option": selected_option})
            is_correct = option["key"] == question.correct_answer

        # Full replace of the slot; nothing carries over from the previous value
        answers[slot] = {
            "question_id": question_id,
            "selected_option": selected_option,
            "is_correct": is_correct,
            "state": desired_state or AnswerState.ANSWERED,
        }
        attempt.set_answers(answers)
        self.db.commit()

        log_with_context(logger, "INFO", "Answer recorded",
                         context={**self._context(attempt), "question_id": question_id},
                         extra_data={"state": answers[slot]["state"]})
        return LifecycleOutcome(attempt, "updated")

    def _submit(self, attempt_id: str, caller: str) -> LifecycleOutcome:
        attempt, test = self._load_owned(attempt_id, caller)
        if attempt.is_finalized:
            raise ConflictError("Attempt has already been submitted",
                                details={"attempt_id": attempt.id}, attempt=attempt)

        end_time = expiry.clamped_end_time(attempt.start_time, test.timing, self.now())
        self._finalize(attempt, test, end_time)
        self.db.commit()
        self._log_finalized(attempt, "Attempt submitted")
        return LifecycleOutcome(attempt, "submitted")

    # ── shared steps ───────────────────────────────────────────

    def _finalize(self, attempt: Attempt, test: Test, effective_end_time: datetime):
        """Score the attempt and lock it. Callers check is_finalized first."""
        if attempt.is_finalized:
            raise ConflictError("Attempt has already been submitted",
                                details={"attempt_id": attempt.id}, attempt=attempt)

        result = scoring.score(attempt.answers_list, test.scoring_config, attempt.max_score)
        attempt.submission_time = effective_end_time
        attempt.total_score = result.total_score
        attempt.passed = result.passed
        self.db.flush()
        return attempt

    def _load_owned(self, attempt_id: str, caller: str):
        attempt = self.attempts.get(attempt_id)
        if attempt is None:
            raise NotFoundError("Attempt", {"attempt_id": attempt_id})
        if attempt.user_id != caller:
            log_with_context(logger, "WARNING", "Attempt accessed by non-owner",
                             context={"attempt_id": attempt_id, "user_id": caller})
            raise UnauthorizedError(details={"attempt_id": attempt_id})
        test = self.tests.get(attempt.test_id)
        if test is None:
            raise NotFoundError("Test", {"test_id": attempt.test_id})
        return attempt, test

    def _with_retry(self, operation, **context):
        start_time = time.time()
        for try_no in range(1, self.max_retries + 1):
            try:
                return operation()
            except StaleDataError:
                self.db.rollback()
                log_with_context(logger, "WARNING", "Attempt changed concurrently, retrying",
                                 context=context,
                                 extra_data={"try": try_no, "max_retries": self.max_retries})
            except SQLAlchemyError as exc:
                self.db.rollback()
                log_with_context(logger, "ERROR", "Storage failure while changing attempt",
                                 context=context, exc_info=True)
                raise InternalError("Storage failure while changing attempt", details=context) from exc

        log_with_context(logger, "ERROR", "Gave up after concurrent modifications",
                         context=context,
                         extra_data={"duration_ms": round((time.time() - start_time) * 1000, 2)})
        raise ConflictError("Attempt was modified concurrently, please retry", details=context)

    @staticmethod
    def _context(attempt: Attempt) -> dict:
        return {"attempt_id": attempt.id, "test_id": attempt.test_id, "user_id": attempt.user_id}

    def _log_finalized(self, attempt: Attempt, message: str, extra: dict = None):
        log_with_context(logger, "INFO", message,
                         context=self._context(attempt),
                         extra_data={
                             "total_score": attempt.total_score,
                             "max_score": attempt.max_score,
                             "passed": attempt.passed,
                             "submission_time": attempt.submission_time,
                             **(extra or {})
                         })
