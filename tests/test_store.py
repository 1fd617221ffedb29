from datetime import datetime, timedelta

import pytest
from sqlalchemy.pool import StaticPool

from backend.db import EntityKind, Store, init_db, make_engine
from backend.errors import PersistenceError


def _store() -> Store:
    return Store(init_db(make_engine("sqlite://", poolclass=StaticPool)))


def test_insert_then_find_one():
    store = _store()
    row = store.insert(EntityKind.TOPIC, {"user_id": "u1", "title": "Photosynthesis", "html_outline": "<h3>x</h3>"})

    found = store.find_one(EntityKind.TOPIC, "u1", "Photosynthesis")

    assert found["id"] == row["id"]
    assert found["html_outline"] == "<h3>x</h3>"
    assert found["progress"] == 0
    assert store.find_one(EntityKind.TOPIC, "u2", "Photosynthesis") is None
    assert store.exists(EntityKind.TOPIC, "u1", "Photosynthesis")


def test_duplicate_titles_resolve_to_most_recently_accessed():
    store = _store()
    topic = store.insert(EntityKind.TOPIC, {"user_id": "u1", "title": "World War I"})
    now = datetime.utcnow()
    older = store.insert(EntityKind.SUBTOPIC, {
        "topic_id": topic["id"], "title": "Causes", "html_content": "<p>old</p>",
        "last_accessed": now - timedelta(days=2),
    })
    newer = store.insert(EntityKind.SUBTOPIC, {
        "topic_id": topic["id"], "title": "Causes", "html_content": "<p>new</p>",
        "last_accessed": now - timedelta(days=1),
    })

    assert store.find_one(EntityKind.SUBTOPIC, topic["id"], "Causes")["id"] == newer["id"]

    store.touch_last_accessed(EntityKind.SUBTOPIC, older["id"])

    assert store.find_one(EntityKind.SUBTOPIC, topic["id"], "Causes")["html_content"] == "<p>old</p>"


def test_latest_quiz_is_returned_without_title():
    store = _store()
    first = store.insert(EntityKind.QUIZ, {"note_id": 7, "html_content": "<p>1</p>"})
    second = store.insert(EntityKind.QUIZ, {"note_id": 7, "html_content": "<p>2</p>"})

    found = store.find_one(EntityKind.QUIZ, 7)

    assert found["id"] == second["id"] != first["id"]
    assert found["last_score"] == 0


def test_update_changes_fields():
    store = _store()
    row = store.insert(EntityKind.TOPIC, {"user_id": "u1", "title": "Cells"})

    updated = store.update(EntityKind.TOPIC, row["id"], {"progress": 40, "total_study_time": 12})

    assert (updated["progress"], updated["total_study_time"]) == (40, 12)
    assert store.find_one(EntityKind.TOPIC, "u1", "Cells")["progress"] == 40


def test_update_missing_row_raises():
    with pytest.raises(PersistenceError) as exc:
        _store().update(EntityKind.NOTE, 999, {"html_content": "x"})
    assert exc.value.operation == "update"


def test_touch_is_noop_for_kinds_without_access_stamp():
    store = _store()
    row = store.insert(EntityKind.DIVE_DEEPER, {"note_id": 1, "question": "Why?", "html_content": "<p>a</p>"})
    store.touch_last_accessed(EntityKind.DIVE_DEEPER, row["id"])
    assert store.find_one(EntityKind.DIVE_DEEPER, 1, "Why?")["id"] == row["id"]


def test_constraint_failure_is_wrapped():
    with pytest.raises(PersistenceError) as exc:
        _store().insert(EntityKind.TOPIC, {"title": "no user"})
    assert exc.value.operation == "insert"


def test_file_database_creates_its_directory(tmp_path):
    url = f"sqlite:///{tmp_path / 'data' / 'tree.db'}"
    store = Store(init_db(make_engine(url)))
    store.insert(EntityKind.TOPIC, {"user_id": "u1", "title": "Cells"})
    assert (tmp_path / "data" / "tree.db").exists()
