import pytest

pytest.importorskip("httpx")

from fastapi.testclient import TestClient

from autograde.main import app
from autograde.settings import settings


@pytest.mark.parametrize(
    ("api_key", "expected_openai_configured"),
    [("test-key", True), ("   ", False)],
)
def test_health_returns_openai_configuration_status(monkeypatch, api_key: str, expected_openai_configured: bool) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", api_key)

    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200

    payload = response.json()
    assert payload["ok"] is True
    assert payload["openai_configured"] is expected_openai_configured


def test_health_deep_returns_storage_and_db_diagnostics(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")

    with TestClient(app) as client:
        client.put("/session", json={"role": "teacher", "name": "Ms Rivera"})
        response = client.get("/health/deep")

    assert response.status_code == 200
    payload = response.json()
    assert payload["ok"] is True
    assert payload["openai_configured"] is True
    assert payload["storage_writable"] is True
    assert payload["db_ok"] is True
    assert payload["data_dir"] == str(settings.data_path)
    assert payload["storage_regions"] == ["autograde_data", "autograde_session"]
    assert payload["storage_warning"] is None


def test_preflight_request_is_accepted() -> None:
    with TestClient(app) as client:
        response = client.options(
            "/subjects",
            headers={"Origin": "https://grader.example.com", "Access-Control-Request-Method": "POST"},
        )

    assert response.status_code in {200, 204}
