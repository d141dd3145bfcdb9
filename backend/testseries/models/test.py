"""
Test model - a timed multiple-choice test authored by an administrator.

Each test carries its scoring configuration (positive/negative marks and
cut-off percentage), its duration in minutes, and an ordered list of
questions. max_score and total_questions are derived values written by the
authoring service whenever the question list or scoring changes.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, Integer, Float, Boolean, DateTime, String, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from testseries.database import Base


class Test(Base):
    """
    SQLAlchemy model for the tests table.

    has_history flips to True the first time any attempt is started
    against the test and never reverts.
    """
    __tablename__ = "tests"
    __test__ = False  # not a pytest class

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique test identifier")
    test_name = Column(Text, nullable=False,
                       doc="Test name/title")
    timing = Column(Integer, nullable=False,
                    doc="Duration of an attempt in minutes")
    positive_scoring = Column(Float, nullable=False,
                              doc="Marks awarded for each correct answer")
    negative_scoring = Column(Float, nullable=False, default=0,
                              doc="Marks deducted for each wrong answer")
    cut_off = Column(Float, nullable=False, default=35,
                     doc="Minimum passing percentage of max_score (0-100)")
    total_questions = Column(Integer, nullable=False, default=0,
                             doc="Number of questions in the test")
    max_score = Column(Float, nullable=False, default=0,
                       doc="total_questions * positive_scoring")
    has_history = Column(Boolean, nullable=False, default=False,
                         doc="True once any attempt has been started")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="Timestamp when test was created")

    question_links = relationship("TestQuestion", back_populates="test",
                                  order_by="TestQuestion.position",
                                  cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("cut_off >= 0 AND cut_off <= 100", name="ck_tests_cut_off_range"),
        CheckConstraint("timing > 0", name="ck_tests_timing_positive"),
    )

    @property
    def question_ids(self):
        """Question ids in test order."""
        return [link.question_id for link in self.question_links]

    @property
    def scoring_config(self):
        return {
            "positive_scoring": self.positive_scoring,
            "negative_scoring": self.negative_scoring or 0,
            "cut_off": self.cut_off,
        }

    def __repr__(self):
        return f"<Test(id={self.id}, name='{self.test_name}', max_score={self.max_score})>"


class TestQuestion(Base):
    """Ordered membership of a question in a test."""
    __tablename__ = "test_questions"
    __test__ = False

    test_id = Column(String(36), ForeignKey("tests.id"), primary_key=True)
    question_id = Column(String(36), ForeignKey("questions.id"), primary_key=True)
    position = Column(Integer, nullable=False,
                      doc="Zero-based position of the question within the test")

    test = relationship("Test", back_populates="question_links")
    question = relationship("Question")
