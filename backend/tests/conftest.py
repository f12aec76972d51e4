from __future__ import annotations

import sys
from pathlib import Path

import pytest
from sqlmodel import create_engine

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _reset_storage_provider() -> None:
    from autograde.storage_provider import reset_storage_provider

    reset_storage_provider()
    yield
    reset_storage_provider()


@pytest.fixture(autouse=True)
def isolated_data(tmp_path: Path, monkeypatch):
    """Point settings, the engine and the app state at a per-test data directory."""
    from autograde import db
    from autograde.settings import settings
    from autograde.state import reset_app_state

    data_dir = tmp_path / "data"
    monkeypatch.setattr(settings, "data_dir", str(data_dir))
    monkeypatch.setattr(settings, "sqlite_path", str(tmp_path / "test.db"))
    monkeypatch.setattr(settings, "step_interval_seconds", 0.0)
    monkeypatch.setattr(db, "engine", create_engine(settings.sqlite_url, connect_args={"check_same_thread": False}))
    monkeypatch.delenv("OPENAI_MOCK", raising=False)

    reset_app_state()
    yield data_dir
    reset_app_state()
