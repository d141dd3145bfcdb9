"""
Question model - a multiple-choice question with keyed options.

Options are stored as JSON: [{"id": "<uuid>", "key": 1, "content": "..."}].
An attempt records the option id the student picked; correctness compares
that option's key with correct_answer.
"""

import uuid
import json
from datetime import datetime, timezone
from sqlalchemy import Column, Text, Integer, DateTime, String, ForeignKey, Table
from sqlalchemy.orm import relationship
from testseries.database import Base


question_tags = Table(
    "question_tags",
    Base.metadata,
    Column("question_id", String(36), ForeignKey("questions.id"), primary_key=True),
    Column("tag_id", String(36), ForeignKey("tags.id"), primary_key=True),
)


class Question(Base):
    """SQLAlchemy model for the questions table."""
    __tablename__ = "questions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique question identifier")
    content = Column(Text, nullable=False,
                     doc="Question prompt")
    options = Column(Text, nullable=False, default="[]",
                     doc="Options as JSON: [{id, key, content}]")
    correct_answer = Column(Integer, nullable=False,
                            doc="Key of the correct option")
    reasoning = Column(Text, nullable=True,
                       doc="Explanation shown after review")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    tags = relationship("Tag", secondary=question_tags, order_by="Tag.tag_name")

    @property
    def options_list(self):
        """Parse options JSON string to a list."""
        if isinstance(self.options, list):
            return self.options
        try:
            return json.loads(self.options) if self.options else []
        except (json.JSONDecodeError, TypeError):
            return []

    def find_option(self, option_id):
        for option in self.options_list:
            if option["id"] == option_id:
                return option
        return None

    @property
    def tag_ids(self):
        return [tag.id for tag in self.tags]

    def __repr__(self):
        return f"<Question(id={self.id}, options={len(self.options_list)})>"
