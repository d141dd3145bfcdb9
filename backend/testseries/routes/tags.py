"""
Tags API routes - read-only views of tags and their reference counts.

Tags are created and deleted only as a side effect of question authoring.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from testseries.database import get_db
from testseries.errors import NotFoundError
from testseries.repositories import TagStore

router = APIRouter()


def serialize_tag(tag) -> dict:
    return {"id": str(tag.id), "tag_name": tag.tag_name, "count": tag.count}


@router.get("/api/tags")
def list_tags(db: Session = Depends(get_db)):
    """All tags with their counts."""
    return {"data": [serialize_tag(t) for t in TagStore(db).list_all()]}


@router.get("/api/tags/search/{query}")
def search_tags(query: str, db: Session = Depends(get_db)):
    """Case-insensitive substring search on tag names."""
    tags = TagStore(db).search(query)
    if not tags:
        raise NotFoundError("Tag", {"query": query})
    return {"data": [serialize_tag(t) for t in tags]}
