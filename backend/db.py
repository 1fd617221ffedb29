# ---------- backend/db.py ----------
"""
Database helpers: engine, session factory, and the Store used by the navigator.

The navigator never issues queries itself; it only calls find_one, insert,
update, touch_last_accessed and exists, so the backing database can change
without touching it.
"""
import logging
import os
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .config import DEFAULT_DATABASE_URL
from .errors import PersistenceError
from .models import Base, Topic, Subtopic, Note, Quiz, DiveDeeper

logger = logging.getLogger("store")
logger.setLevel(logging.INFO)

DATABASE_URL = os.environ.get('DATABASE_URL', DEFAULT_DATABASE_URL)


class EntityKind(str, Enum):
    TOPIC = "topic"
    SUBTOPIC = "subtopic"
    NOTE = "note"
    QUIZ = "quiz"
    DIVE_DEEPER = "dive_deeper"


# kind -> (model, parent column, title column or None, last-accessed column or None)
ENTITIES = {
    EntityKind.TOPIC: (Topic, "user_id", "title", "last_accessed"),
    EntityKind.SUBTOPIC: (Subtopic, "topic_id", "title", "last_accessed"),
    EntityKind.NOTE: (Note, "subtopic_id", "title", "updated_at"),
    EntityKind.QUIZ: (Quiz, "note_id", None, None),
    EntityKind.DIVE_DEEPER: (DiveDeeper, "note_id", "question", None),
}


def make_engine(url: str = DATABASE_URL, **kwargs):
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        path = url.split("///", 1)[-1]
        if path and path != ":memory:" and "///" in url:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, **kwargs)


def init_db(engine=None):
    engine = engine or make_engine()
    Base.metadata.create_all(bind=engine)
    return engine


def to_record(row) -> Dict[str, Any]:
    return {c.name: getattr(row, c.name) for c in row.__table__.columns}


def recency(record: Dict[str, Any], accessed_column: Optional[str]):
    stamp = record.get(accessed_column) if accessed_column else None
    return (stamp or record.get("created_at") or datetime.min, record.get("id") or 0)


class Store:
    """
    Persistence adapter over SQLAlchemy.

    Records go in and come out as plain dicts; every SQLAlchemy failure is
    raised as PersistenceError.
    """

    def __init__(self, engine=None):
        self.engine = engine or make_engine()
        self.Session = sessionmaker(bind=self.engine, autocommit=False, autoflush=False,
                                    expire_on_commit=False)

    def _entity(self, kind):
        return ENTITIES[EntityKind(kind)]

    def find_one(self, kind, parent_key, title: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Return the row scoped by (parent_key, title); most recent wins on duplicates."""
        model, parent_col, title_col, accessed_col = self._entity(kind)
        filters = {parent_col: parent_key}
        if title_col and title is not None:
            filters[title_col] = title
        try:
            with self.Session() as db:
                rows = [to_record(r) for r in db.query(model).filter_by(**filters).all()]
        except SQLAlchemyError as e:
            raise PersistenceError("find_one", str(e))
        if not rows:
            return None
        if len(rows) > 1:
            logger.info(f"Found {len(rows)} {EntityKind(kind).value} rows titled {title!r}; using the most recent one")
        return max(rows, key=lambda r: recency(r, accessed_col))

    def exists(self, kind, parent_key, title: Optional[str] = None) -> bool:
        return self.find_one(kind, parent_key, title) is not None

    def insert(self, kind, record: Dict[str, Any]) -> Dict[str, Any]:
        model = self._entity(kind)[0]
        try:
            with self.Session() as db:
                row = model(**record)
                db.add(row)
                db.commit()
                db.refresh(row)
                return to_record(row)
        except SQLAlchemyError as e:
            raise PersistenceError("insert", str(e))

    def update(self, kind, entity_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        model = self._entity(kind)[0]
        try:
            with self.Session() as db:
                row = db.get(model, entity_id)
                if row is None:
                    raise PersistenceError("update", f"{EntityKind(kind).value} {entity_id} not found")
                for name, value in fields.items():
                    setattr(row, name, value)
                db.commit()
                db.refresh(row)
                return to_record(row)
        except SQLAlchemyError as e:
            raise PersistenceError("update", str(e))

    def touch_last_accessed(self, kind, entity_id: int) -> None:
        accessed_col = self._entity(kind)[3]
        if accessed_col is None:
            return
        self.update(kind, entity_id, {accessed_col: datetime.utcnow()})
# ---------- end of backend/db.py ----------
