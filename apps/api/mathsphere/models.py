from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlmodel import Field, SQLModel

from .schemas import LessonSummary, ReferenceDocument


class Lesson(SQLModel, table=True):
    id: str = Field(default_factory=lambda: uuid4().hex, primary_key=True)
    title: str
    level: str = Field(default="", index=True)
    stream: Optional[str] = None
    content: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def to_summary(self) -> LessonSummary:
        return LessonSummary(
            id=self.id,
            title=self.title,
            level=self.level,
            stream=self.stream,
            content=self.content,
        )


class Reference(SQLModel, table=True):
    id: str = Field(default_factory=lambda: uuid4().hex, primary_key=True)
    title: str
    level: str = Field(default="", index=True)
    # Comma-separated reference types, e.g. "MANUEL,EXERCICE".
    types: str = ""
    text_content: Optional[str] = None
    file_url: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def type_list(self) -> list[str]:
        return [t.strip() for t in self.types.split(",") if t.strip()]

    def to_document(self) -> ReferenceDocument:
        tags = set(self.type_list())
        if self.level:
            tags.add(self.level)
        return ReferenceDocument(
            id=self.id,
            title=self.title,
            text_content=self.text_content,
            file_url=self.file_url,
            tags=tags,
        )
