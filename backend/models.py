# ---------- backend/models.py ----------
"""
SQLAlchemy models for topics, subtopics, notes, quizzes and dive_deeper.

Titles are not unique per parent; duplicates are resolved on read by the
most recently accessed row.
"""
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey, Index
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Topic(Base):
    __tablename__ = 'topics'
    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    html_outline = Column(Text)
    progress = Column(Integer, nullable=False, default=0)
    category = Column(String)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_accessed = Column(DateTime)
    total_study_time = Column(Integer, nullable=False, default=0)
    subtopics = relationship('Subtopic', back_populates='topic')

    __table_args__ = (
        Index('ix_topics_user_title', 'user_id', 'title'),
    )


class Subtopic(Base):
    __tablename__ = 'subtopics'
    id = Column(Integer, primary_key=True)
    topic_id = Column(Integer, ForeignKey('topics.id'), nullable=False)
    title = Column(String, nullable=False)
    html_content = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_accessed = Column(DateTime)
    topic = relationship('Topic', back_populates='subtopics')
    notes = relationship('Note', back_populates='subtopic')

    __table_args__ = (
        Index('ix_subtopics_topic_title', 'topic_id', 'title'),
    )


class Note(Base):
    __tablename__ = 'notes'
    id = Column(Integer, primary_key=True)
    subtopic_id = Column(Integer, ForeignKey('subtopics.id'), nullable=False)
    title = Column(String, nullable=False)
    html_content = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    subtopic = relationship('Subtopic', back_populates='notes')
    quizzes = relationship('Quiz', back_populates='note')
    dive_deeper = relationship('DiveDeeper', back_populates='note')

    __table_args__ = (
        Index('ix_notes_subtopic_title', 'subtopic_id', 'title'),
    )


class Quiz(Base):
    __tablename__ = 'quizzes'
    id = Column(Integer, primary_key=True)
    note_id = Column(Integer, ForeignKey('notes.id'), nullable=False, index=True)
    html_content = Column(Text)
    last_score = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    note = relationship('Note', back_populates='quizzes')


class DiveDeeper(Base):
    __tablename__ = 'dive_deeper'
    id = Column(Integer, primary_key=True)
    note_id = Column(Integer, ForeignKey('notes.id'), nullable=False, index=True)
    question = Column(Text, nullable=False)
    html_content = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    note = relationship('Note', back_populates='dive_deeper')
# ---------- end of backend/models.py ----------
