"""
Tag model - a label attached to questions, reference counted.

count is the number of questions currently referencing the tag. It is only
ever changed by atomic UPDATE statements in TagStore; a tag whose count
drops to zero is deleted.
"""

import uuid
from sqlalchemy import Column, Text, Integer, String, CheckConstraint
from testseries.database import Base


def normalize_tag_name(name: str) -> str:
    """Lookup key for a tag name: trimmed and case-folded."""
    return name.strip().casefold()


class Tag(Base):
    """SQLAlchemy model for the tags table."""
    __tablename__ = "tags"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique tag identifier")
    tag_name = Column(Text, nullable=False,
                      doc="Display name as first given (trimmed)")
    name_key = Column(String(255), nullable=False, unique=True,
                      doc="Trimmed, case-folded name used for uniqueness and lookup")
    count = Column(Integer, nullable=False, default=0,
                   doc="Number of questions referencing this tag")

    __table_args__ = (
        CheckConstraint("count >= 0", name="ck_tags_count_non_negative"),
    )

    def __repr__(self):
        return f"<Tag(id={self.id}, name='{self.tag_name}', count={self.count})>"
