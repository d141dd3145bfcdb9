"""
Repositories - narrow persistence interfaces over a SQLAlchemy session.

Services receive a session and build the stores they need, so nothing in
the service layer touches module-level database state. Transactions are
committed by the service that owns the operation, not by the stores.
"""

from typing import List, Optional

from sqlalchemy import select, update, delete, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from testseries.models.attempt import Attempt
from testseries.models.question import Question
from testseries.models.tag import Tag, normalize_tag_name
from testseries.models.test import Test, TestQuestion
from testseries.logging_config import get_logger, log_with_context

db_logger = get_logger("db")


class TestStore:
    __test__ = False

    def __init__(self, db: Session):
        self.db = db

    def get(self, test_id: str) -> Optional[Test]:
        return self.db.get(Test, test_id)

    def add(self, test: Test) -> Test:
        self.db.add(test)
        self.db.flush()
        return test

    def mark_has_history(self, test_id: str) -> bool:
        """Flip has_history once; returns True only for the call that flipped it."""
        result = self.db.execute(
            update(Test)
            .where(Test.id == test_id, Test.has_history.is_(False))
            .values(has_history=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class QuestionStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, question_id: str) -> Optional[Question]:
        return self.db.get(Question, question_id)

    def get_many(self, question_ids: List[str]) -> List[Question]:
        if not question_ids:
            return []
        rows = self.db.scalars(
            select(Question).where(Question.id.in_(question_ids))
        ).all()
        return list(rows)

    def add(self, question: Question) -> Question:
        self.db.add(question)
        self.db.flush()
        return question

    def in_use(self, question_id: str) -> bool:
        return self.db.scalar(
            select(TestQuestion.test_id).where(TestQuestion.question_id == question_id).limit(1)
        ) is not None

    def delete(self, question: Question):
        self.db.delete(question)
        self.db.flush()


class AttemptStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, attempt_id: str) -> Optional[Attempt]:
        return self.db.get(Attempt, attempt_id)

    def find_active(self, user_id: str, test_id: str) -> Optional[Attempt]:
        return self.db.scalars(
            select(Attempt).where(
                Attempt.user_id == user_id,
                Attempt.test_id == test_id,
                Attempt.submission_time.is_(None),
            )
        ).first()

    def list_for_user(self, test_id: str, user_id: str) -> List[Attempt]:
        rows = self.db.scalars(
            select(Attempt)
            .options(selectinload(Attempt.test))
            .where(Attempt.test_id == test_id, Attempt.user_id == user_id)
            .order_by(Attempt.start_time.desc())
        ).all()
        return list(rows)

    def add(self, attempt: Attempt) -> Attempt:
        self.db.add(attempt)
        self.db.flush()
        return attempt


class TagStore:
    """
    Tag counters, changed only through single UPDATE statements so that
    concurrent increments and decrements never lose updates.
    """

    def __init__(self, db: Session):
        self.db = db

    def increment(self, tag_name: str) -> str:
        """Find-or-create the tag and add one to its count. Returns the tag id."""
        name = tag_name.strip()
        key = normalize_tag_name(name)
        while True:
            result = self.db.execute(
                update(Tag)
                .where(Tag.name_key == key)
                .values(count=Tag.count + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount:
                return self.db.scalar(select(Tag.id).where(Tag.name_key == key))

            tag = Tag(tag_name=name, name_key=key, count=1)
            try:
                with self.db.begin_nested():
                    self.db.add(tag)
            except IntegrityError:
                # Another request created it first; count on its row instead
                log_with_context(db_logger, "DEBUG", "Tag insert raced, retrying increment",
                                 context={"tag": key})
                continue
            return tag.id

    def decrement(self, tag_id: str) -> Optional[int]:
        """
        Subtract one from the tag's count and delete it at zero.

        Returns the remaining count, 0 when the tag was removed, or None
        when the tag did not exist.
        """
        result = self.db.execute(
            update(Tag)
            .where(Tag.id == tag_id, Tag.count > 0)
            .values(count=Tag.count - 1)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            return None
        deleted = self.db.execute(
            delete(Tag)
            .where(Tag.id == tag_id, Tag.count <= 0)
            .execution_options(synchronize_session=False)
        )
        if deleted.rowcount:
            stale = self.db.identity_map.get(self.db.identity_key(Tag, tag_id))
            if stale is not None:
                self.db.expunge(stale)
            return 0
        return self.db.scalar(select(Tag.count).where(Tag.id == tag_id))

    def get_many(self, tag_ids: List[str]) -> List[Tag]:
        if not tag_ids:
            return []
        rows = self.db.scalars(
            select(Tag)
            .where(Tag.id.in_(tag_ids))
            .execution_options(populate_existing=True)
        ).all()
        by_id = {tag.id: tag for tag in rows}
        return [by_id[tag_id] for tag_id in tag_ids if tag_id in by_id]

    def get_by_name(self, tag_name: str) -> Optional[Tag]:
        return self.db.scalars(
            select(Tag)
            .where(Tag.name_key == normalize_tag_name(tag_name))
            .execution_options(populate_existing=True)
        ).first()

    def list_all(self) -> List[Tag]:
        return list(self.db.scalars(select(Tag).order_by(Tag.tag_name)).all())

    def search(self, query: str) -> List[Tag]:
        pattern = "%{}%".format(normalize_tag_name(query))
        return list(self.db.scalars(
            select(Tag)
            .where(or_(Tag.name_key.like(pattern), Tag.tag_name.ilike(pattern)))
            .order_by(Tag.tag_name)
        ).all())
