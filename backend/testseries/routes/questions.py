"""
Questions API routes - question authoring.

Creating, retagging and deleting questions keeps tag reference counts in
step; see services/tag_counter.py.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from testseries.database import get_db
from testseries.models.question import Question
from testseries.services.authoring import AuthoringService

router = APIRouter()


# ── Pydantic schemas ─────────────────────────────────────────

class OptionIn(BaseModel):
    key: int = Field(..., description="Option key, e.g. 1-4")
    content: str = Field(..., description="Option text")


class QuestionCreate(BaseModel):
    content: str
    options: List[OptionIn]
    correct_answer: int = Field(..., description="Key of the correct option")
    reasoning: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class QuestionUpdate(BaseModel):
    """Every field optional; tags=null keeps the current tags, [] clears them."""
    content: Optional[str] = None
    options: Optional[List[OptionIn]] = None
    correct_answer: Optional[int] = None
    reasoning: Optional[str] = None
    tags: Optional[List[str]] = None


def serialize_question(question: Question) -> dict:
    return {
        "id": str(question.id),
        "content": question.content,
        "options": question.options_list,
        "correct_answer": question.correct_answer,
        "reasoning": question.reasoning,
        "tags": [
            {"id": str(t.id), "tag_name": t.tag_name, "count": t.count}
            for t in question.tags
        ],
    }


@router.post("/api/questions", status_code=status.HTTP_201_CREATED)
def create_question(request: QuestionCreate, db: Session = Depends(get_db)):
    question = AuthoringService(db).create_question(
        request.content,
        [o.model_dump() for o in request.options],
        request.correct_answer,
        reasoning=request.reasoning,
        tags=request.tags,
    )
    return serialize_question(question)


@router.put("/api/questions/{question_id}")
def update_question(question_id: str, request: QuestionUpdate, db: Session = Depends(get_db)):
    question = AuthoringService(db).update_question(
        question_id,
        content=request.content,
        options=[o.model_dump() for o in request.options] if request.options is not None else None,
        correct_answer=request.correct_answer,
        reasoning=request.reasoning,
        tags=request.tags,
    )
    return serialize_question(question)


@router.get("/api/questions/{question_id}")
def get_question(question_id: str, db: Session = Depends(get_db)):
    return serialize_question(AuthoringService(db).get_question(question_id))


@router.delete("/api/questions/{question_id}")
def delete_question(question_id: str, db: Session = Depends(get_db)):
    AuthoringService(db).delete_question(question_id)
    return {"message": "Question deleted successfully", "question_id": question_id}
