"""
Tests API routes - test authoring.

max_score and total_questions are always derived by the authoring service;
clients never send them.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from testseries.database import get_db
from testseries.models.test import Test
from testseries.services.authoring import AuthoringService

router = APIRouter()


class CreateTestRequest(BaseModel):
    test_name: str
    timing: int = Field(..., description="Duration in minutes")
    positive_scoring: float
    negative_scoring: Optional[float] = 0
    cut_off: float = Field(35, description="Passing percentage, 0-100")
    question_ids: List[str] = Field(default_factory=list)


class QuestionListUpdate(BaseModel):
    question_ids: List[str]


def serialize_test(test: Test) -> dict:
    return {
        "id": str(test.id),
        "test_name": test.test_name,
        "timing": test.timing,
        "positive_scoring": test.positive_scoring,
        "negative_scoring": test.negative_scoring,
        "cut_off": test.cut_off,
        "total_questions": test.total_questions,
        "max_score": test.max_score,
        "has_history": test.has_history,
        "question_ids": test.question_ids,
    }


@router.post("/api/tests", status_code=status.HTTP_201_CREATED)
def create_test(request: CreateTestRequest, db: Session = Depends(get_db)):
    test = AuthoringService(db).create_test(
        request.test_name,
        request.timing,
        request.positive_scoring,
        negative_scoring=request.negative_scoring,
        cut_off=request.cut_off,
        question_ids=request.question_ids,
    )
    return serialize_test(test)


@router.put("/api/tests/{test_id}/questions")
def update_test_questions(test_id: str, request: QuestionListUpdate, db: Session = Depends(get_db)):
    test = AuthoringService(db).update_test_questions(test_id, request.question_ids)
    return serialize_test(test)


@router.get("/api/tests/{test_id}")
def get_test(test_id: str, db: Session = Depends(get_db)):
    return serialize_test(AuthoringService(db).get_test(test_id))
