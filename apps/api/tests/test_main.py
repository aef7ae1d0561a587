from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from mathsphere.config import Settings
from mathsphere.llm import MockLLMClient
from mathsphere.main import app
from mathsphere.models import Lesson, Reference
from mathsphere.pipeline import LessonAuditService
from mathsphere.repository import add_lesson, add_reference


@pytest.fixture
def client(engine, config: Settings):
    app.state.audit_service = LessonAuditService(engine, MockLLMClient(), config, sleep=lambda _: None)
    yield TestClient(app)
    del app.state.audit_service


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_review_endpoint(client: TestClient, engine) -> None:
    lesson = add_lesson(engine, Lesson(title="Logarithme", level="2BAC"))
    ref = add_reference(engine, Reference(title="Manuel", level="2BAC", text_content="ln " * 300))

    response = client.post(f"/lessons/{lesson.id}/review", json={"reference_ids": [ref.id]})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["references_used"] == ["Manuel"]


def test_review_unknown_lesson(client: TestClient) -> None:
    response = client.post("/lessons/nope/review", json={})
    assert response.status_code == 404


def test_search_endpoint(client: TestClient, engine) -> None:
    add_reference(engine, Reference(title="Cours", level="TC", text_content="Les ensembles de nombres."))
    response = client.get("/references/search", params={"q": "ensembles", "level": "TC"})
    assert response.status_code == 200
    assert response.json()["snippets"][0]["title"] == "Cours"


def test_render_endpoint(client: TestClient) -> None:
    response = client.post("/render", json={"document": {"summary": "Fin."}})
    assert response.json()["markdown"] == "## 1. Résumé\n\nFin.\n\n"


def test_repair_endpoint_reports_decode_errors(client: TestClient) -> None:
    ok = client.post("/repair", json={"raw": '{"m": "$\\\\frac{1}{2}$"}'}).json()
    assert ok["decoded"] == {"m": "$\\frac{1}{2}$"}
    broken = client.post("/repair", json={"raw": '{"m": "unterminated'}).json()
    assert broken["decoded"] is None
    assert broken["error"].startswith("[DecodeFailure]")
