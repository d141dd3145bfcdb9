"""
Tag reference counting for question authoring.

Each question association adds exactly one to a tag's count and each
removal subtracts one; a tag reaching zero is deleted. Counters are only
changed through the atomic statements in TagStore.
"""

from typing import Iterable, List

from sqlalchemy.orm import Session

from testseries.errors import InvalidInputError
from testseries.models.tag import normalize_tag_name
from testseries.repositories import TagStore
from testseries.logging_config import get_logger, log_with_context

logger = get_logger("tags")


class TagRefCounter:
    def __init__(self, db: Session):
        self.tags = TagStore(db)

    def associate(self, tag_names: Iterable[str]) -> List[str]:
        """
        Resolve tag names to ids, creating missing tags, and count one
        reference per distinct name. Names are matched case-insensitively
        after trimming; a new tag keeps the name as given.
        """
        names = []
        seen = set()
        for name in tag_names or []:
            if not isinstance(name, str) or not name.strip():
                raise InvalidInputError("tags", "tag name cannot be empty")
            key = normalize_tag_name(name)
            if key in seen:
                continue
            seen.add(key)
            names.append(name)

        tag_ids = []
        for name in names:
            tag_id = self.tags.increment(name)
            tag_ids.append(tag_id)
            log_with_context(logger, "INFO", "Tag reference added: {}".format(name.strip()),
                             context={"tag_id": tag_id})
        return tag_ids

    def dissociate(self, tag_ids: Iterable[str]):
        """Drop one reference per tag id. Unknown ids are ignored."""
        for tag_id in dict.fromkeys(tag_ids or []):
            remaining = self.tags.decrement(tag_id)
            if remaining is None:
                log_with_context(logger, "DEBUG", "Tag already gone, nothing to release",
                                 context={"tag_id": tag_id})
            elif remaining == 0:
                log_with_context(logger, "INFO", "Tag deleted after last reference removed",
                                 context={"tag_id": tag_id})
            else:
                log_with_context(logger, "INFO", "Tag reference removed",
                                 context={"tag_id": tag_id},
                                 extra_data={"count": remaining})
