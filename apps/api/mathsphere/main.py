from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .db import init_db
from .errors import DecodeFailure, PipelineError
from .llm import get_llm_client
from .logging_setup import configure_logging
from .parsing import decode_structured, prepare_payload
from .pipeline import LessonAuditService
from .rendering import render, render_exercise
from .schemas import (
    AuditResult,
    ReferenceCreate,
    ReferenceDocument,
    RenderRequest,
    RenderResponse,
    RepairRequest,
    RepairResponse,
    ReviewRequest,
    SnippetSearchResponse,
)

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def build_service() -> LessonAuditService:
    configure_logging(settings.log_level)
    engine = init_db(settings)
    client = get_llm_client(settings)
    logger.info("Lesson audit service ready (provider=%s, model=%s)", client.name, client.model)
    return LessonAuditService(engine, client, settings)


@app.on_event("startup")
def _startup() -> None:
    app.state.audit_service = build_service()


def _service(request: Request) -> LessonAuditService:
    service: Optional[LessonAuditService] = getattr(request.app.state, "audit_service", None)
    if service is None:
        # Mounted sub-applications do not receive startup events.
        service = build_service()
        request.app.state.audit_service = service
    return service


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/lessons/{lesson_id}/review", response_model=AuditResult)
async def review_lesson(lesson_id: str, payload: ReviewRequest, request: Request) -> AuditResult:
    service = _service(request)
    if service.lessons.get(lesson_id) is None:
        raise HTTPException(status_code=404, detail="Lesson not found")
    return await asyncio.to_thread(
        service.review_lesson, lesson_id, payload.reference_ids, payload.instructions
    )


@app.get("/references/search", response_model=SnippetSearchResponse)
async def search_references(request: Request, q: str, level: Optional[str] = None) -> SnippetSearchResponse:
    if not q.strip():
        raise HTTPException(status_code=400, detail="Query must not be empty")
    snippets = _service(request).search_references(q, level)
    return SnippetSearchResponse(snippets=snippets)


@app.post("/render", response_model=RenderResponse)
async def render_document(payload: RenderRequest) -> RenderResponse:
    if payload.kind == "exercise":
        return RenderResponse(markdown=render_exercise(payload.document, for_pdf=payload.for_pdf))
    return RenderResponse(markdown=render(payload.document, header=payload.header))


@app.post("/repair", response_model=RepairResponse)
async def repair_payload(payload: RepairRequest) -> RepairResponse:
    repaired = prepare_payload(payload.raw)
    try:
        decoded = decode_structured(payload.raw)
    except DecodeFailure as exc:
        return RepairResponse(repaired=repaired, error=exc.tagged())
    return RepairResponse(repaired=repaired, decoded=decoded)


@app.post("/references", response_model=ReferenceDocument)
async def register_reference(payload: ReferenceCreate, request: Request) -> ReferenceDocument:
    service = _service(request)
    try:
        return await asyncio.to_thread(service.register_reference, payload)
    except PipelineError as exc:
        raise HTTPException(status_code=400, detail=exc.tagged())
