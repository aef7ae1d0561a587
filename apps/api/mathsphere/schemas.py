from __future__ import annotations

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field


class ReferenceDocument(BaseModel):
    id: str
    title: str
    text_content: Optional[str] = None
    file_url: Optional[str] = None
    tags: set[str] = Field(default_factory=set)

    def has_tag(self, tag: str) -> bool:
        wanted = tag.strip().lower()
        return any(t.strip().lower() == wanted for t in self.tags)


class LessonSummary(BaseModel):
    id: str
    title: str
    level: str = ""
    stream: Optional[str] = None
    content: Optional[str] = None


class TextBlock(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class AttachmentBlock(BaseModel):
    kind: Literal["attachment"] = "attachment"
    data: bytes
    mime_type: str


ContentBlock = Union[TextBlock, AttachmentBlock]


class Snippet(BaseModel):
    reference_id: str
    title: str
    excerpt: str


class AuditResult(BaseModel):
    success: bool
    message: str = ""
    markdown: Optional[str] = None
    lesson_title: Optional[str] = None
    references_used: list[str] = Field(default_factory=list)
    attempts: int = 0
    error: Optional[str] = None


class ReviewRequest(BaseModel):
    reference_ids: list[str] = Field(default_factory=list)
    instructions: str = ""


class RenderRequest(BaseModel):
    document: dict[str, Any]
    header: Optional[str] = None
    kind: Literal["lesson", "exercise"] = "lesson"
    for_pdf: bool = False


class RenderResponse(BaseModel):
    markdown: str


class RepairRequest(BaseModel):
    raw: str


class RepairResponse(BaseModel):
    repaired: str
    decoded: Optional[dict[str, Any]] = None
    error: Optional[str] = None


class SnippetSearchResponse(BaseModel):
    snippets: list[Snippet]


class ReferenceCreate(BaseModel):
    title: str
    level: str = ""
    types: list[str] = Field(default_factory=list)
    text_content: Optional[str] = None
    file_url: Optional[str] = None
