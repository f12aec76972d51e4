"""Durable key/value regions backing the configuration and submission stores."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, delete, select

from autograde.models import StorageRegion, utcnow
from autograde.schemas import APP_DATA_VERSION, AppData, SessionState
from autograde.seed import seed_configs, seed_submissions

logger = logging.getLogger(__name__)

APP_DATA_KEY = "autograde_data"
SESSION_KEY = "autograde_session"

# Split keys written by the first browser-only release.
LEGACY_CONFIGS_KEY = "autograde_configs"
LEGACY_SUBMISSIONS_KEY = "autograde_submissions"


@dataclass
class StorageQuotaError(Exception):
    message: str
    size_bytes: int = 0

    def __str__(self) -> str:
        return self.message


_EMPTY_SCORE_DETAILS = {"correctness": 0, "completeness": 0, "clarity": 0}


def _upgrade_submission(raw: dict[str, Any]) -> dict[str, Any]:
    submission = dict(raw)
    result = dict(submission.get("result") or {})
    score = submission.get("score", result.get("mlScore", 0))
    submission.setdefault("score", score)
    result.setdefault("extractedText", "")
    result.setdefault("similarityScore", 0)
    result.setdefault("mlScore", score)
    result.setdefault("mlScoreDetails", dict(_EMPTY_SCORE_DETAILS))
    result.setdefault("questionGrades", [])
    result.setdefault("feedback", "")
    result.setdefault("keyConceptsFound", [])
    result.setdefault("missedConcepts", [])
    submission["result"] = result
    return submission


def _upgrade_subject_config(raw: dict[str, Any]) -> dict[str, Any]:
    config = dict(raw)
    config.setdefault("modelAnswerType", "text")
    config.setdefault("modelAnswerText", "")
    config.setdefault("modelAnswerFiles", [])
    config.setdefault("questionPaperFiles", [])
    return config


def upgrade_app_data_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Bring an older application-data payload up to the current shape."""
    if not isinstance(payload, dict):
        raise ValueError("application data must be a JSON object")
    subjects = payload.get("subjects", {})
    submissions = payload.get("submissions", [])
    if not isinstance(subjects, dict) or not isinstance(submissions, list):
        raise ValueError("application data has an unexpected shape")
    return {
        "version": APP_DATA_VERSION,
        "subjects": {name: _upgrade_subject_config(config) for name, config in subjects.items()},
        "submissions": [_upgrade_submission(item) for item in submissions],
    }


class PersistenceLayer:
    """Reads and writes the two durable regions in the ``storageregion`` table."""

    def __init__(self, engine: Engine, quota_bytes: int) -> None:
        self._engine = engine
        self._quota_bytes = quota_bytes

    def _read(self, key: str) -> str | None:
        with Session(self._engine) as session:
            row = session.get(StorageRegion, key)
            return row.value if row else None

    def _legacy_payload(self) -> dict[str, Any] | None:
        raw_configs = self._read(LEGACY_CONFIGS_KEY)
        raw_submissions = self._read(LEGACY_SUBMISSIONS_KEY)
        if raw_configs is None and raw_submissions is None:
            return None

        logger.info("migrating legacy storage keys", extra={"stage": "load_app_data"})
        subjects = json.loads(raw_configs) if raw_configs is not None else AppData(subjects=seed_configs()).to_json_dict()["subjects"]
        if raw_submissions is not None:
            submissions = json.loads(raw_submissions)
        else:
            submissions = AppData(submissions=seed_submissions()).to_json_dict()["submissions"]
        return {"subjects": subjects, "submissions": submissions}

    def load_app_data(self) -> AppData | None:
        """Return the stored application data, or None when absent or unreadable."""
        try:
            raw = self._read(APP_DATA_KEY)
            payload = json.loads(raw) if raw is not None else self._legacy_payload()
            if payload is None:
                return None
            return AppData.model_validate(upgrade_app_data_payload(payload))
        except (json.JSONDecodeError, ValidationError, ValueError, TypeError):
            logger.exception("application data region unreadable; falling back to defaults", extra={"stage": "load_app_data"})
            return None

    def load_session(self) -> SessionState | None:
        try:
            raw = self._read(SESSION_KEY)
            if raw is None:
                return None
            return SessionState.model_validate_json(raw)
        except (ValidationError, ValueError):
            logger.exception("session region unreadable; starting signed out", extra={"stage": "load_session"})
            return None

    def write(self, app_data: AppData, session_state: SessionState | None) -> None:
        """Write both regions in one transaction."""
        data_json = json.dumps(app_data.to_json_dict(), ensure_ascii=False)
        session_json = json.dumps(session_state.to_json_dict(), ensure_ascii=False) if session_state else None
        data_size = len(data_json.encode("utf-8"))
        session_size = len(session_json.encode("utf-8")) if session_json else 0
        total_size = data_size + session_size
        if total_size > self._quota_bytes:
            raise StorageQuotaError(
                f"Stored data would take {total_size} bytes, over the {self._quota_bytes} byte quota",
                size_bytes=total_size,
            )

        try:
            with Session(self._engine) as session:
                session.merge(StorageRegion(key=APP_DATA_KEY, value=data_json, size_bytes=data_size, updated_at=utcnow()))
                if session_json is None:
                    session.exec(delete(StorageRegion).where(StorageRegion.key == SESSION_KEY))
                else:
                    session.merge(StorageRegion(key=SESSION_KEY, value=session_json, size_bytes=session_size, updated_at=utcnow()))
                session.exec(delete(StorageRegion).where(StorageRegion.key.in_([LEGACY_CONFIGS_KEY, LEGACY_SUBMISSIONS_KEY])))
                session.commit()
        except OperationalError as exc:
            if "full" in str(exc).lower():
                raise StorageQuotaError(f"Storage is full: {exc.orig}", size_bytes=total_size) from exc
            raise

        logger.debug(
            "storage regions written",
            extra={"stage": "write_regions", "data_bytes": data_size, "session_bytes": session_size},
        )

    def clear_app_data(self) -> None:
        with Session(self._engine) as session:
            session.exec(
                delete(StorageRegion).where(StorageRegion.key.in_([APP_DATA_KEY, LEGACY_CONFIGS_KEY, LEGACY_SUBMISSIONS_KEY]))
            )
            session.commit()

    def region_keys(self) -> list[str]:
        with Session(self._engine) as session:
            return list(session.exec(select(StorageRegion.key).order_by(StorageRegion.key)).all())
