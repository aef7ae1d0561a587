from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from . import prompts
from .config import Settings
from .errors import AttachmentUnavailable
from .repository import ReferenceStore
from .schemas import AttachmentBlock, ContentBlock, LessonSummary, ReferenceDocument, TextBlock
from .snippets import extract
from .storage import FileStorage

logger = logging.getLogger(__name__)

ATTACHABLE_MIME_PREFIXES = ("application/pdf", "image/")


@dataclass
class AssembledPrompt:
    blocks: list[ContentBlock]
    reference_titles: list[str] = field(default_factory=list)

    def text_preview(self, limit: int = 4000) -> str:
        parts = []
        for block in self.blocks:
            if isinstance(block, TextBlock):
                parts.append(block.text)
            else:
                parts.append(f"<{block.mime_type} attachment, {len(block.data)} bytes>")
        return "\n\n".join(parts)[:limit]


class PromptAssembler:
    def __init__(self, references: ReferenceStore, files: FileStorage, config: Settings) -> None:
        self.references = references
        self.files = files
        self.config = config

    def attachment_mime_type(self, reference: ReferenceDocument) -> Optional[str]:
        mime_type = self.files.guess_mime_type(reference.file_url)
        if mime_type and mime_type.startswith(ATTACHABLE_MIME_PREFIXES):
            return mime_type
        return None

    def wants_attachment(self, reference: ReferenceDocument) -> bool:
        if self.attachment_mime_type(reference) is None:
            return False
        text = reference.text_content or ""
        low_content = len(text) < self.config.attachment_min_text_chars
        typed = any(reference.has_tag(tag) for tag in self.config.attachment_tags)
        return low_content or typed

    def excerpt_block(self, reference: ReferenceDocument) -> TextBlock:
        text = (reference.text_content or "")[: self.config.excerpt_max_chars]
        if not text.strip():
            text = prompts.UNREADABLE_DOCUMENT
        return TextBlock(text=prompts.DOCUMENT_LABEL.format(title=reference.title, text=text))

    def reference_blocks(self, reference: ReferenceDocument) -> list[ContentBlock]:
        if not self.wants_attachment(reference):
            return [self.excerpt_block(reference)]
        mime_type = self.attachment_mime_type(reference)
        try:
            data = self.files.read_bytes(reference.file_url or "")
        except AttachmentUnavailable as exc:
            logger.warning("Failed to load file for reference %s: %s", reference.title, exc.message)
            return [self.excerpt_block(reference)]
        return [
            TextBlock(text=prompts.ATTACHMENT_LABEL.format(title=reference.title)),
            AttachmentBlock(data=data, mime_type=mime_type or "application/octet-stream"),
        ]

    def fallback_blocks(self, lesson: LessonSummary) -> tuple[list[ContentBlock], list[str]]:
        corpus = self.references.all()
        snippets = extract(
            corpus,
            lesson.title,
            tag_filter=lesson.level or None,
            before=self.config.snippet_chars_before,
            after=self.config.snippet_chars_after,
        )
        if not snippets:
            logger.info("No reference snippets found for lesson %r", lesson.title)
            return [], []
        text = "\n\n".join(
            prompts.DOCUMENT_LABEL.format(title=s.title, text=s.excerpt) for s in snippets
        )
        return [TextBlock(text=prompts.RECOMMENDED_DOCUMENTS + text)], [s.title for s in snippets]

    def assemble(
        self,
        lesson: LessonSummary,
        reference_ids: Sequence[str],
        instructions: str = "",
    ) -> AssembledPrompt:
        content = (lesson.content or "").strip() or prompts.EMPTY_LESSON_CONTENT
        content = content[: self.config.lesson_content_max_chars]
        blocks: list[ContentBlock] = [
            TextBlock(text=prompts.LESSON_HEADER.format(title=lesson.title, content=content))
        ]
        titles: list[str] = []

        if reference_ids:
            for reference in self.references.get_many(reference_ids):
                if reference.title not in titles:
                    titles.append(reference.title)
                blocks.extend(self.reference_blocks(reference))
        else:
            extra, titles = self.fallback_blocks(lesson)
            blocks.extend(extra)

        blocks.append(TextBlock(text=prompts.task_instructions(lesson.title, instructions)))
        return AssembledPrompt(blocks=blocks, reference_titles=titles)
