"""
Tests for tag reference counting through question authoring.
"""

import uuid

import pytest
from sqlalchemy import insert

from testseries.errors import ConflictError, InvalidInputError
from testseries.models.tag import Tag
from testseries.repositories import TagStore
from testseries.services.tag_counter import TagRefCounter

OPTIONS = [{"key": 1, "content": "yes"}, {"key": 2, "content": "no"}]


def count_of(db_session, name):
    tag = TagStore(db_session).get_by_name(name)
    return tag.count if tag else None


class TestQuestionTagLifecycle:
    def test_two_questions_then_deletes_remove_tag_at_zero(self, authoring, db_session):
        first = authoring.create_question("x + 1 = 2?", OPTIONS, 1, tags=["algebra"])
        second = authoring.create_question("x - 1 = 0?", OPTIONS, 1, tags=["algebra"])
        assert count_of(db_session, "algebra") == 2

        authoring.delete_question(first.id)
        assert count_of(db_session, "algebra") == 1

        authoring.delete_question(second.id)
        assert count_of(db_session, "algebra") is None
        assert db_session.query(Tag).count() == 0

    def test_retagging_counts_new_before_releasing_old(self, authoring, db_session):
        question = authoring.create_question("q", OPTIONS, 1, tags=["algebra", "geometry"])

        authoring.update_question(question.id, tags=["algebra", "calculus"])

        assert count_of(db_session, "algebra") == 1
        assert count_of(db_session, "calculus") == 1
        assert count_of(db_session, "geometry") is None
        assert sorted(t.tag_name for t in question.tags) == ["algebra", "calculus"]

    def test_update_without_tags_keeps_them(self, authoring, db_session):
        question = authoring.create_question("q", OPTIONS, 1, tags=["algebra"])
        authoring.update_question(question.id, content="q, reworded")
        assert count_of(db_session, "algebra") == 1

    def test_question_used_by_test_cannot_be_deleted(self, authoring, db_session):
        question = authoring.create_question("q", OPTIONS, 1, tags=["algebra"])
        authoring.create_test("T", timing=10, positive_scoring=1, question_ids=[question.id])

        with pytest.raises(ConflictError):
            authoring.delete_question(question.id)
        db_session.rollback()
        assert count_of(db_session, "algebra") == 1


class TestTagRefCounter:
    def test_names_match_case_insensitively_and_keep_first_spelling(self, db_session):
        counter = TagRefCounter(db_session)
        first = counter.associate(["  Algebra "])
        second = counter.associate(["algebra"])
        db_session.commit()

        assert first == second
        tag = TagStore(db_session).get_by_name("ALGEBRA")
        assert tag.tag_name == "Algebra"
        assert tag.count == 2

    def test_duplicate_names_in_one_call_count_once(self, db_session):
        counter = TagRefCounter(db_session)
        ids = counter.associate(["algebra", "ALGEBRA"])
        db_session.commit()
        assert len(ids) == 1
        assert count_of(db_session, "algebra") == 1

    def test_blank_name_is_rejected(self, db_session):
        with pytest.raises(InvalidInputError) as exc_info:
            TagRefCounter(db_session).associate(["algebra", "   "])
        assert exc_info.value.details["field"] == "tags"
        assert count_of(db_session, "algebra") is None

    def test_dissociating_unknown_tag_is_a_noop(self, db_session):
        TagRefCounter(db_session).dissociate(["00000000-0000-0000-0000-000000000000"])
        db_session.commit()

    def test_insert_race_falls_back_to_counting_existing_row(self, db_session, monkeypatch):
        real_execute = db_session.execute
        raced = []

        def execute(statement, *args, **kwargs):
            result = real_execute(statement, *args, **kwargs)
            if not raced:
                # A competing writer creates the tag after the UPDATE matched nothing
                raced.append(result.rowcount)
                real_execute(insert(Tag).values(
                    id=str(uuid.uuid4()), tag_name="Algebra", name_key="algebra", count=1))
            return result

        monkeypatch.setattr(db_session, "execute", execute)
        tag_id = TagStore(db_session).increment("algebra ")
        monkeypatch.undo()
        db_session.commit()

        assert raced == [0]
        assert db_session.query(Tag).count() == 1
        tag = db_session.get(Tag, tag_id)
        assert tag.tag_name == "Algebra"
        assert tag.count == 2

    def test_count_never_goes_negative(self, db_session):
        counter = TagRefCounter(db_session)
        [tag_id] = counter.associate(["algebra"])
        db_session.commit()

        store = TagStore(db_session)
        assert store.decrement(tag_id) == 0
        assert store.decrement(tag_id) is None
        db_session.commit()
        assert db_session.get(Tag, tag_id) is None


class TestTagRoutes:
    def test_list_and_search(self, client, authoring):
        authoring.create_question("q", OPTIONS, 1, tags=["Algebra", "geometry"])

        response = client.get("/api/tags")
        assert response.status_code == 200
        names = {t["tag_name"]: t["count"] for t in response.json()["data"]}
        assert names == {"Algebra": 1, "geometry": 1}

        response = client.get("/api/tags/search/ALG")
        assert response.status_code == 200
        assert [t["tag_name"] for t in response.json()["data"]] == ["Algebra"]

        assert client.get("/api/tags/search/topology").status_code == 404

    def test_question_routes_drive_counts(self, client):
        body = {"content": "q", "options": OPTIONS, "correct_answer": 1, "tags": ["algebra"]}
        first = client.post("/api/questions", json=body).json()
        client.post("/api/questions", json=body)

        tags = client.get("/api/tags").json()["data"]
        assert tags[0]["count"] == 2

        assert client.delete("/api/questions/{}".format(first["id"])).status_code == 200
        assert client.get("/api/tags").json()["data"][0]["count"] == 1
