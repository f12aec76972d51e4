from __future__ import annotations

from autograde.settings import Settings


def test_data_dir_defaults_to_tmp_on_vercel(monkeypatch) -> None:
    monkeypatch.setenv("VERCEL", "1")
    monkeypatch.delenv("VERCEL_ENV", raising=False)
    monkeypatch.delenv("AUTOGRADE_DATA_DIR", raising=False)
    monkeypatch.delenv("DATA_DIR", raising=False)

    settings = Settings()

    assert settings.data_path.as_posix() == "/tmp/autograde"
    assert settings.sqlite_path == "/tmp/autograde/autograde.db"


def test_data_dir_defaults_to_local_when_not_on_vercel(monkeypatch) -> None:
    monkeypatch.delenv("VERCEL", raising=False)
    monkeypatch.delenv("VERCEL_ENV", raising=False)
    monkeypatch.delenv("AUTOGRADE_VERCEL_ENVIRONMENT", raising=False)
    monkeypatch.delenv("AUTOGRADE_DATA_DIR", raising=False)
    monkeypatch.delenv("DATA_DIR", raising=False)

    settings = Settings()

    assert settings.data_path.as_posix().endswith("/backend/data")


def test_cors_allow_origins_defaults_to_wildcard(monkeypatch) -> None:
    monkeypatch.delenv("AUTOGRADE_CORS_ALLOW_ORIGINS", raising=False)
    monkeypatch.delenv("CORS_ALLOW_ORIGINS", raising=False)

    settings = Settings()

    assert settings.cors_origin_list == ["*"]


def test_cors_allow_origins_from_env(monkeypatch) -> None:
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://grader-a.vercel.app, https://grader-b.vercel.app")

    settings = Settings()

    assert settings.cors_origin_list == [
        "https://grader-a.vercel.app",
        "https://grader-b.vercel.app",
    ]


def test_scoring_and_quota_settings_from_env(monkeypatch) -> None:
    monkeypatch.setenv("AUTOGRADE_SCORING_MODEL", "gpt-test")
    monkeypatch.setenv("AUTOGRADE_STORAGE_QUOTA_MB", "1")
    monkeypatch.setenv("AUTOGRADE_STEP_INTERVAL_SECONDS", "0")

    settings = Settings()

    assert settings.scoring_model == "gpt-test"
    assert settings.storage_quota_bytes == 1024 * 1024
    assert settings.step_interval_seconds == 0.0
