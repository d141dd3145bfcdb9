"""
Authoring Service - creates tests and manages questions and their tags.

Derived test values are computed here at named steps rather than on save:
- total_questions = number of questions in the test
- max_score = total_questions * positive_scoring

Question tag changes go through TagRefCounter. On an update the new tags
are counted before the old ones are released, so a tag kept on the
question never drops to zero in between.
"""

import uuid
import json
from typing import List, Optional

from sqlalchemy.orm import Session

from testseries.errors import ConflictError, InvalidInputError, NotFoundError
from testseries.models.question import Question
from testseries.models.test import Test, TestQuestion
from testseries.repositories import QuestionStore, TagStore, TestStore
from testseries.services.lifecycle import require_id
from testseries.services.tag_counter import TagRefCounter
from testseries.logging_config import get_logger, log_with_context

logger = get_logger("db")


def _validate_scoring(timing, positive_scoring, negative_scoring, cut_off):
    if timing is None or timing <= 0:
        raise InvalidInputError("timing", "must be a positive number of minutes")
    if positive_scoring is None or positive_scoring <= 0:
        raise InvalidInputError("positive_scoring", "must be greater than 0")
    if negative_scoring is not None and negative_scoring < 0:
        raise InvalidInputError("negative_scoring", "cannot be negative")
    if cut_off is None or not 0 <= cut_off <= 100:
        raise InvalidInputError("cut_off", "must be between 0 and 100")


class AuthoringService:
    def __init__(self, db: Session):
        self.db = db
        self.tests = TestStore(db)
        self.questions = QuestionStore(db)
        self.tag_store = TagStore(db)
        self.tag_counter = TagRefCounter(db)

    # ── tests ──────────────────────────────────────────────────

    def create_test(self, test_name: str, timing: int, positive_scoring: float,
                    negative_scoring: Optional[float] = 0, cut_off: float = 35,
                    question_ids: List[str] = None) -> Test:
        if not test_name or not test_name.strip():
            raise InvalidInputError("test_name", "cannot be empty")
        _validate_scoring(timing, positive_scoring, negative_scoring, cut_off)

        test = Test(
            id=str(uuid.uuid4()),
            test_name=test_name.strip(),
            timing=timing,
            positive_scoring=positive_scoring,
            negative_scoring=negative_scoring or 0,
            cut_off=cut_off,
            has_history=False,
        )
        self._set_questions(test, question_ids or [])
        self.tests.add(test)
        self.db.commit()

        log_with_context(logger, "INFO", "Created test: {}".format(test.test_name),
                         context={"test_id": test.id},
                         extra_data={"total_questions": test.total_questions, "max_score": test.max_score})
        return test

    def update_test_questions(self, test_id: str, question_ids: List[str]) -> Test:
        """Replace the question list. Attempts already started keep their max_score snapshot."""
        test = self.get_test(test_id)
        self._set_questions(test, question_ids)
        self.db.commit()

        log_with_context(logger, "INFO", "Updated test questions",
                         context={"test_id": test.id},
                         extra_data={"total_questions": test.total_questions, "max_score": test.max_score})
        return test

    def get_test(self, test_id: str) -> Test:
        test = self.tests.get(require_id(test_id, "test_id"))
        if test is None:
            raise NotFoundError("Test", {"test_id": test_id})
        return test

    def _set_questions(self, test: Test, question_ids: List[str]):
        ids = [require_id(qid, "question_ids") for qid in question_ids]
        if len(set(ids)) != len(ids):
            raise InvalidInputError("question_ids", "contains duplicates")
        found = {q.id for q in self.questions.get_many(ids)}
        missing = [qid for qid in ids if qid not in found]
        if missing:
            raise NotFoundError("Question", {"question_ids": missing})

        test.question_links = [
            TestQuestion(question_id=qid, position=position)
            for position, qid in enumerate(ids)
        ]
        test.total_questions = len(ids)
        test.max_score = test.total_questions * test.positive_scoring

    # ── questions ──────────────────────────────────────────────

    def create_question(self, content: str, options: List[dict], correct_answer: int,
                        reasoning: Optional[str] = None, tags: List[str] = None) -> Question:
        if not content or not content.strip():
            raise InvalidInputError("content", "cannot be empty")
        stored_options = self._build_options(options, correct_answer)

        question = Question(
            id=str(uuid.uuid4()),
            content=content,
            options=json.dumps(stored_options),
            correct_answer=correct_answer,
            reasoning=reasoning,
        )
        tag_ids = self.tag_counter.associate(tags or [])
        question.tags = self.tag_store.get_many(tag_ids)
        self.questions.add(question)
        self.db.commit()

        log_with_context(logger, "INFO", "Created question",
                         context={"question_id": question.id},
                         extra_data={"options": len(stored_options), "tags": len(tag_ids)})
        return question

    def update_question(self, question_id: str, content: Optional[str] = None,
                        options: Optional[List[dict]] = None,
                        correct_answer: Optional[int] = None,
                        reasoning: Optional[str] = None,
                        tags: Optional[List[str]] = None) -> Question:
        """
        Update fields that were supplied. tags=None leaves tags untouched;
        an empty list removes them all.
        """
        question = self.get_question(question_id)

        if content is not None:
            if not content.strip():
                raise InvalidInputError("content", "cannot be empty")
            question.content = content
        if options is not None or correct_answer is not None:
            new_key = correct_answer if correct_answer is not None else question.correct_answer
            if options is not None:
                question.options = json.dumps(self._build_options(options, new_key))
            elif new_key not in {o["key"] for o in question.options_list}:
                raise InvalidInputError("correct_answer", "must match one of the option keys")
            question.correct_answer = new_key
        if reasoning is not None:
            question.reasoning = reasoning

        if tags is not None:
            old_tag_ids = question.tag_ids
            new_tag_ids = self.tag_counter.associate(tags)
            question.tags = self.tag_store.get_many(new_tag_ids)
            self.db.flush()
            self.tag_counter.dissociate(old_tag_ids)

        self.db.commit()
        log_with_context(logger, "INFO", "Updated question", context={"question_id": question.id})
        return question

    def delete_question(self, question_id: str):
        question = self.get_question(question_id)
        if self.questions.in_use(question.id):
            raise ConflictError("Question is part of a test and cannot be deleted",
                                details={"question_id": question.id})
        tag_ids = question.tag_ids
        self.questions.delete(question)
        self.tag_counter.dissociate(tag_ids)
        self.db.commit()
        log_with_context(logger, "INFO", "Deleted question",
                         context={"question_id": question_id},
                         extra_data={"released_tags": len(tag_ids)})

    def get_question(self, question_id: str) -> Question:
        question = self.questions.get(require_id(question_id, "question_id"))
        if question is None:
            raise NotFoundError("Question", {"question_id": question_id})
        return question

    @staticmethod
    def _build_options(options: List[dict], correct_answer) -> List[dict]:
        if not options or len(options) < 2:
            raise InvalidInputError("options", "at least two options are required")
        keys = [o.get("key") for o in options]
        if len(set(keys)) != len(keys):
            raise InvalidInputError("options", "option keys must be unique")
        if correct_answer not in keys:
            raise InvalidInputError("correct_answer", "must match one of the option keys")
        return [
            {"id": str(uuid.uuid4()), "key": o["key"], "content": o.get("content", "")}
            for o in options
        ]
