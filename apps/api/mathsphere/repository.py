from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from .models import Lesson, Reference
from .schemas import LessonSummary, ReferenceDocument

logger = logging.getLogger(__name__)


class ReferenceStore:
    """Read-only view over pedagogical references."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def get_many(self, reference_ids: Iterable[str]) -> list[ReferenceDocument]:
        ordered: list[str] = []
        for ref_id in reference_ids:
            if ref_id not in ordered:
                ordered.append(ref_id)
        if not ordered:
            return []
        with Session(self.engine) as session:
            rows = session.exec(select(Reference).where(col(Reference.id).in_(ordered))).all()
            by_id = {row.id: row.to_document() for row in rows}
        documents = []
        for ref_id in ordered:
            document = by_id.get(ref_id)
            if document is None:
                logger.warning("Reference %s not found; skipping", ref_id)
                continue
            documents.append(document)
        return documents

    def all(self) -> list[ReferenceDocument]:
        with Session(self.engine) as session:
            rows = session.exec(select(Reference).order_by(col(Reference.created_at).desc())).all()
            return [row.to_document() for row in rows]

    def by_tag(self, tag: str) -> list[ReferenceDocument]:
        return [doc for doc in self.all() if doc.has_tag(tag)]


class LessonStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def get(self, lesson_id: str) -> Optional[LessonSummary]:
        with Session(self.engine) as session:
            lesson = session.exec(select(Lesson).where(Lesson.id == lesson_id)).first()
            if not lesson:
                return None
            return lesson.to_summary()

    def save_content(self, lesson_id: str, markdown: str) -> None:
        with Session(self.engine) as session:
            lesson = session.exec(select(Lesson).where(Lesson.id == lesson_id)).first()
            if not lesson:
                raise ValueError("Lesson not found")
            lesson.content = markdown
            lesson.updated_at = datetime.utcnow()
            session.add(lesson)
            session.commit()


def add_reference(engine: Engine, reference: Reference) -> Reference:
    with Session(engine) as session:
        session.add(reference)
        session.commit()
        session.refresh(reference)
    return reference


def add_lesson(engine: Engine, lesson: Lesson) -> Lesson:
    with Session(engine) as session:
        session.add(lesson)
        session.commit()
        session.refresh(lesson)
    return lesson
