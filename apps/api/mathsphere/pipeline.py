from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional, Sequence

from sqlalchemy.engine import Engine

from .assembler import PromptAssembler
from .config import Settings
from .errors import DecodeFailure, LessonNotFound, PipelineError, describe_provider_error
from .extraction import extract_text
from .invocation import FatalFailure, InvocationCoordinator
from .llm import LLMClient
from .models import Reference
from .parsing import decode_structured, strip_code_fences
from .prompts import LATEX_FORMATTING_SYSTEM_PROMPT
from .rendering import render
from .repository import LessonStore, ReferenceStore, add_reference
from .runs import save_run
from .schemas import AuditResult, ReferenceCreate, ReferenceDocument, Snippet
from .snippets import extract
from .storage import FileStorage

logger = logging.getLogger(__name__)


class LessonAuditService:
    """Reviews a stored lesson against reference documents and saves the result.

    One instance is shared by the hosting app. The only state it carries
    between calls is the credential rotation counter inside the coordinator.
    """

    def __init__(
        self,
        engine: Engine,
        client: LLMClient,
        config: Settings,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.config = config
        self.engine = engine
        self.client = client
        self.references = ReferenceStore(engine)
        self.lessons = LessonStore(engine)
        self.files = FileStorage(config.uploads_dir)
        self.assembler = PromptAssembler(self.references, self.files, config)
        coordinator_kwargs = {"sleep": sleep} if sleep is not None else {}
        self.coordinator = InvocationCoordinator(client, config, **coordinator_kwargs)

    @property
    def runs_dir(self) -> Path:
        return self.config.data_dir / "runs"

    def to_markdown(self, raw: str) -> tuple[str, bool]:
        """Rendered markdown and whether the response decoded as structured data."""
        try:
            document = decode_structured(raw)
        except DecodeFailure as exc:
            # Not valid JSON: keep the model text itself, not the repaired payload.
            # Repair turns newlines inside quoted runs into "\\n" escapes, which
            # would leak into the saved prose.
            logger.warning("Could not decode model output, saving raw text: %s", exc.message)
            return strip_code_fences(raw), False
        return render(document), True

    def review_lesson(
        self,
        lesson_id: str,
        reference_ids: Sequence[str] = (),
        instructions: str = "",
    ) -> AuditResult:
        try:
            return self._review(lesson_id, reference_ids, instructions)
        except PipelineError as exc:
            logger.error("Review of lesson %s failed: %s", lesson_id, exc.tagged())
            return AuditResult(success=False, message=exc.message, error=exc.tagged())
        except Exception as exc:  # noqa: BLE001
            logger.exception("Review of lesson %s failed", lesson_id)
            return AuditResult(
                success=False,
                message=str(exc) or "Audit failed",
                error=f"[{PipelineError.category}] {exc}",
            )

    def _review(self, lesson_id: str, reference_ids: Sequence[str], instructions: str) -> AuditResult:
        lesson = self.lessons.get(lesson_id)
        if lesson is None:
            raise LessonNotFound("Lesson not found")

        prompt = self.assembler.assemble(lesson, reference_ids, instructions)
        logger.info(
            "Reviewing lesson %r with %d content blocks (%d references)",
            lesson.title,
            len(prompt.blocks),
            len(prompt.reference_titles),
        )

        outcome = self.coordinator.invoke(prompt.blocks, LATEX_FORMATTING_SYSTEM_PROMPT)
        if isinstance(outcome, FatalFailure):
            error = outcome.reason.tagged()
            self.record(prompt.text_preview(), {"error": error}, {"lesson_id": lesson_id})
            return AuditResult(
                success=False,
                message=describe_provider_error(outcome.reason),
                lesson_title=lesson.title,
                attempts=outcome.attempts,
                error=error,
            )

        markdown, structured = self.to_markdown(outcome.raw_text)
        self.lessons.save_content(lesson_id, markdown)
        self.record(
            prompt.text_preview(),
            outcome.raw_text,
            {
                "lesson_id": lesson_id,
                "structured": structured,
                "attempts": outcome.attempts,
                "references": prompt.reference_titles,
            },
        )
        return AuditResult(
            success=True,
            message=f"Updated using references: {', '.join(prompt.reference_titles)}",
            markdown=markdown,
            lesson_title=lesson.title,
            references_used=prompt.reference_titles,
            attempts=outcome.attempts,
        )

    def register_reference(self, payload: ReferenceCreate) -> ReferenceDocument:
        """Store a reference, extracting its text from the uploaded file when none is given.

        Raises ``AttachmentUnavailable`` or ``UnsupportedDocument`` when the
        file cannot be read.
        """
        text = payload.text_content
        if payload.file_url and not (text and text.strip()):
            data = self.files.read_bytes(payload.file_url)
            mime_type = self.files.guess_mime_type(payload.file_url) or "application/octet-stream"
            text = extract_text(data, mime_type)
        reference = add_reference(
            self.engine,
            Reference(
                title=payload.title,
                level=payload.level,
                types=",".join(t.strip().upper() for t in payload.types if t.strip()),
                text_content=text,
                file_url=payload.file_url,
            ),
        )
        logger.info("Registered reference %r (%d chars of text)", reference.title, len(text or ""))
        return reference.to_document()

    def search_references(self, query: str, level: Optional[str] = None) -> list[Snippet]:
        return extract(
            self.references.all(),
            query,
            tag_filter=level or None,
            before=self.config.snippet_chars_before,
            after=self.config.snippet_chars_after,
        )

    def record(self, prompt: str, response: object, meta: dict) -> None:
        if not self.config.runs_enabled:
            return
        save_run(self.runs_dir, "lesson_review", prompt, response, self.client.model, meta)
