"""
Attempt model - one user's timed session against one test.

Each attempt contains:
- One answer entry per test question, stored as JSON in test order
- start_time (immutable) and submission_time (set once, at finalize)
- total_score / passed, written only by finalize
- max_score, snapshotted from the test when the attempt is created
- version, bumped on every UPDATE so concurrent read-modify-write
  cycles are detected instead of silently overwriting each other
"""

import uuid
import json
from sqlalchemy import Column, Text, Integer, Float, Boolean, DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import relationship
from testseries.database import Base


class AnswerState:
    UNANSWERED = "unanswered"
    ANSWERED = "answered"
    MARKED_FOR_REVIEW = "marked_for_review"
    FLAGGED_FOR_LATER = "flagged_for_later"

    ALL = (UNANSWERED, ANSWERED, MARKED_FOR_REVIEW, FLAGGED_FOR_LATER)


def blank_answer(question_id: str) -> dict:
    return {
        "question_id": question_id,
        "selected_option": None,
        "is_correct": False,
        "state": AnswerState.UNANSWERED,
    }


class Attempt(Base):
    """
    SQLAlchemy model for the attempts table.

    States: active (submission_time is NULL) and finalized. At most one
    active attempt may exist per (user_id, test_id); the partial unique
    index enforces it at the storage layer.
    """
    __tablename__ = "attempts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique attempt identifier")
    test_id = Column(String(36), ForeignKey("tests.id"), nullable=False,
                     doc="Reference to the test being attempted")
    user_id = Column(String(64), nullable=False,
                     doc="Authenticated caller who owns the attempt")
    answers = Column(Text, nullable=False, default="[]",
                     doc="Answers as JSON: [{question_id, selected_option, is_correct, state}]")
    start_time = Column(DateTime, nullable=False,
                        doc="When the attempt was started (UTC)")
    submission_time = Column(DateTime, nullable=True,
                             doc="Effective end time; NULL while the attempt is active")
    total_score = Column(Float, nullable=False, default=0,
                         doc="Score computed at finalize, 0 before")
    max_score = Column(Float, nullable=False,
                       doc="Snapshot of the test's max_score at creation")
    passed = Column(Boolean, nullable=True,
                    doc="Pass/fail, NULL until finalized")
    version = Column(Integer, nullable=False,
                     doc="Optimistic concurrency counter")

    test = relationship("Test")

    __table_args__ = (
        Index("ix_attempts_user_test", "user_id", "test_id"),
        Index("ix_attempts_start_time", "start_time"),
        Index(
            "uq_attempts_one_active",
            "user_id", "test_id",
            unique=True,
            sqlite_where=text("submission_time IS NULL"),
            postgresql_where=text("submission_time IS NULL"),
        ),
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def answers_list(self):
        """Parse answers JSON string to a list."""
        if isinstance(self.answers, list):
            return self.answers
        try:
            return json.loads(self.answers) if self.answers else []
        except (json.JSONDecodeError, TypeError):
            return []

    def set_answers(self, answers):
        self.answers = json.dumps(answers)

    @property
    def is_finalized(self):
        return self.submission_time is not None

    @property
    def total_answered(self):
        return sum(1 for a in self.answers_list if a["state"] == AnswerState.ANSWERED)

    @property
    def total_unanswered(self):
        return sum(1 for a in self.answers_list if a["state"] == AnswerState.UNANSWERED)

    @property
    def percentage(self):
        if not self.is_finalized or not self.max_score:
            return None
        return self.total_score / self.max_score * 100

    def __repr__(self):
        state = "finalized" if self.is_finalized else "active"
        return f"<Attempt(id={self.id}, user={self.user_id}, test={self.test_id}, {state})>"
