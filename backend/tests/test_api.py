from __future__ import annotations

import pytest

pytest.importorskip("httpx")

from io import BytesIO

from fastapi.testclient import TestClient
from PIL import Image, ImageDraw

from autograde.ai.openai_scoring import MockScoringClient, get_scoring_client
from autograde.main import app
from autograde.pipeline.orchestrator import GENERIC_RUN_ERROR, NO_MODEL_ANSWER_MESSAGE
from autograde.settings import settings
from autograde.state import reset_app_state


def make_image_bytes(text: str) -> bytes:
    image = Image.new("RGB", (400, 200), color="white")
    draw = ImageDraw.Draw(image)
    draw.text((10, 80), text, fill="black")
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class FailingClient:
    async def invoke(self, segments):
        raise RuntimeError("scoring service unavailable")


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("OPENAI_MOCK", "1")
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _stage_page(client: TestClient, name: str = "page1.png"):
    return client.post("/pipeline/files", files=[("files", (name, make_image_bytes("F = ma"), "image/png"))])


def test_seed_subjects_and_history_on_first_start(client: TestClient) -> None:
    subjects = client.get("/subjects").json()

    assert [s["name"] for s in subjects] == ["Physics", "History", "Mathematics", "Computer Science"]
    assert all(s["has_model_answer"] for s in subjects)

    history = client.get("/submissions", params={"subject": "Physics"}).json()
    assert [s["studentName"] for s in history] == ["Bob Smith", "Alice Johnson"]

    stats = client.get("/submissions/stats", params={"subject": "Physics"}).json()
    assert stats == {"subject": "Physics", "submission_count": 2, "average_score": 74}


def test_student_run_end_to_end(client: TestClient) -> None:
    assert client.put("/session", json={"role": "student", "name": "Alice Johnson"}).status_code == 200
    assert client.post("/pipeline/subject", json={"subject": "Physics"}).json()["subject"] == "Physics"

    staged = _stage_page(client)
    assert staged.status_code == 200
    assert staged.json()["staged_files"][0]["mimeType"] == "image/png"

    run = client.post("/pipeline/run", json={})
    assert run.status_code == 201
    submission = run.json()
    assert submission["studentName"] == "Alice Johnson"
    assert submission["subject"] == "Physics"
    assert submission["score"] == 74
    assert submission["result"]["questionGrades"][0]["questionNumber"] == "1"

    status = client.get("/pipeline").json()
    assert status["step"] == "REPORT"
    assert status["result"]["mlScore"] == 74
    assert status["error"] is None

    history = client.get("/submissions", params={"student": "Alice Johnson"}).json()
    assert history[0]["id"] == submission["id"]
    assert len(client.get("/submissions").json()) == 3
    assert client.get(f"/submissions/{submission['id']}").json()["score"] == 74

    export = client.get("/submissions/export", params={"subject": "Physics"}).json()
    assert export["question_columns"] == ["1", "2"]
    seeded_rows = [row for row in export["rows"] if row["student_name"] == "Bob Smith"]
    assert seeded_rows[0]["question_marks"] == {"1": "-", "2": "-"}

    assert client.post("/pipeline/reset").json()["step"] == "UPLOAD"


def test_history_survives_restart(client: TestClient) -> None:
    _stage_page(client)
    submission_id = client.post("/pipeline/run", json={"student_name": "Dana"}).json()["id"]

    reset_app_state()
    with TestClient(app) as restarted:
        ids = [s["id"] for s in restarted.get("/submissions").json()]
        session = restarted.get("/session")

    assert submission_id in ids
    assert len(ids) == 3
    assert session.status_code == 404


def test_subject_without_model_answer_blocks_run(client: TestClient) -> None:
    assert client.post("/subjects", json={"name": "Chemistry"}).status_code == 201
    assert client.post("/subjects", json={"name": "Chemistry"}).status_code == 200
    assert client.get("/subjects/Chemistry").json()["has_model_answer"] is False

    client.post("/pipeline/subject", json={"subject": "Chemistry"})
    _stage_page(client)
    response = client.post("/pipeline/run", json={})

    assert response.status_code == 400
    assert response.json()["detail"] == NO_MODEL_ANSWER_MESSAGE
    assert len(client.get("/submissions").json()) == 2
    assert len(client.get("/pipeline").json()["staged_files"]) == 1


def test_run_without_pages_is_rejected(client: TestClient) -> None:
    response = client.post("/pipeline/run", json={})

    assert response.status_code == 400


def test_unsupported_upload_type_is_rejected(client: TestClient) -> None:
    response = client.post("/pipeline/files", files=[("files", ("notes.exe", b"MZ", "application/octet-stream"))])

    assert response.status_code == 400
    assert client.get("/pipeline").json()["staged_files"] == []


def test_teacher_configures_file_model_answer(client: TestClient) -> None:
    client.post("/subjects", json={"name": "Biology"})
    upload = client.post(
        "/subjects/Biology/model-answer-files",
        files=[
            ("files", ("key.pdf", b"%PDF-1.7 model answer", "application/pdf")),
            ("files", ("empty.png", b"", "image/png")),
        ],
    )
    assert upload.status_code == 200
    body = upload.json()
    assert body["added"] == 1
    assert body["skipped"] == ["empty.png"]

    updated = client.put("/subjects/Biology", json={"model_answer_type": "file"}).json()
    assert updated["has_model_answer"] is True
    file_id = updated["config"]["modelAnswerFiles"][0]["id"]

    paper = client.post("/subjects/Biology/question-paper-files", files=[("files", ("paper.png", make_image_bytes("Q1"), "image/png"))])
    assert len(paper.json()["subject"]["config"]["questionPaperFiles"]) == 1

    client.post("/pipeline/subject", json={"subject": "Biology"})
    _stage_page(client)
    assert client.post("/pipeline/run", json={}).status_code == 201

    client.post("/pipeline/reset")
    removed = client.delete(f"/subjects/Biology/files/{file_id}").json()
    assert removed["has_model_answer"] is False


def test_scoring_failure_returns_to_upload_and_keeps_pages(client: TestClient) -> None:
    app.dependency_overrides[get_scoring_client] = FailingClient
    _stage_page(client)

    response = client.post("/pipeline/run", json={})

    assert response.status_code == 502
    assert response.json()["detail"] == GENERIC_RUN_ERROR
    status = client.get("/pipeline").json()
    assert status["step"] == "UPLOAD"
    assert status["error"] == GENERIC_RUN_ERROR
    assert len(status["staged_files"]) == 1
    assert len(client.get("/submissions").json()) == 2

    app.dependency_overrides[get_scoring_client] = MockScoringClient
    assert client.post("/pipeline/run", json={}).status_code == 201


def test_replay_and_staging_conflicts(client: TestClient) -> None:
    replay = client.post("/pipeline/replay/1")
    assert replay.status_code == 200
    assert replay.json()["step"] == "REPORT"

    assert _stage_page(client).status_code == 409
    assert client.post("/pipeline/replay/missing").status_code == 404


def test_data_reset_restores_seeds_and_keeps_session(client: TestClient) -> None:
    client.put("/session", json={"role": "teacher", "name": "Ms Rivera"})
    client.post("/subjects", json={"name": "Chemistry"})
    _stage_page(client)
    client.post("/pipeline/run", json={})

    response = client.post("/data/reset")

    assert response.status_code == 200
    assert response.json()["degraded"] is False
    assert len(client.get("/submissions").json()) == 2
    assert "Chemistry" not in [s["name"] for s in client.get("/subjects").json()]
    assert client.get("/session").json() == {"role": "teacher", "name": "Ms Rivera"}
    assert client.get("/pipeline").json()["step"] == "UPLOAD"


def test_sign_out_clears_session(client: TestClient) -> None:
    client.put("/session", json={"role": "student", "name": "Bob Smith"})

    assert client.delete("/session").status_code == 204
    assert client.get("/session").status_code == 404


def test_quota_overflow_degrades_persistence_but_keeps_working(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_MOCK", "1")
    monkeypatch.setattr(settings, "storage_quota_mb", 0.001)

    with TestClient(app) as client:
        assert client.post("/subjects", json={"name": "Chemistry"}).status_code == 201
        status = client.get("/data/storage").json()
        subjects = [s["name"] for s in client.get("/subjects").json()]

    assert status["degraded"] is True
    assert "quota" in status["warning"]
    assert "Chemistry" in subjects
