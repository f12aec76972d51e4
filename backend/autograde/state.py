"""Process-wide application state: stores, persistence mirror, session and pipeline."""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from autograde import db
from autograde.persistence import PersistenceLayer, StorageQuotaError
from autograde.pipeline.orchestrator import DEFAULT_STUDENT_NAME, PipelineOrchestrator
from autograde.schemas import AppData, SessionState
from autograde.seed import seed_configs, seed_submissions
from autograde.settings import settings
from autograde.storage import ensure_dir
from autograde.stores import ConfigurationStore, SubmissionStore

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Physics"


class AppState:
    """Owns both stores and mirrors every mutation to durable storage."""

    def __init__(self, persistence: PersistenceLayer) -> None:
        self.persistence = persistence
        self.configs = ConfigurationStore()
        self.submissions = SubmissionStore()
        self.session: SessionState | None = None
        self.storage_warning: str | None = None
        self.orchestrator = PipelineOrchestrator(
            self.configs,
            self.submissions,
            default_student_name=self._student_name,
        )
        self._loaded = False
        self.configs.subscribe(self._mirror)
        self.submissions.subscribe(self._mirror)

    def _student_name(self) -> str:
        if self.session and self.session.name.strip():
            return self.session.name.strip()
        return DEFAULT_STUDENT_NAME

    def load(self) -> None:
        """Rehydrate both stores and the session, seeding defaults where nothing usable is stored."""
        self._loaded = False
        app_data = self.persistence.load_app_data()
        if app_data is None:
            self.configs.replace_all(seed_configs())
            self.submissions.reset(seed_submissions())
        else:
            self.configs.replace_all(app_data.subjects)
            self.submissions.reset(app_data.submissions)
        self.session = self.persistence.load_session()

        subjects = self.configs.list_subjects()
        if self.orchestrator.subject not in subjects:
            self.orchestrator.subject = DEFAULT_SUBJECT if DEFAULT_SUBJECT in subjects else (subjects[0] if subjects else "")
        self._loaded = True
        logger.info(
            "application state loaded",
            extra={
                "stage": "load",
                "seeded": app_data is None,
                "subjects": len(subjects),
                "submissions": len(self.submissions),
                "signed_in": self.session is not None,
            },
        )

    def _mirror(self) -> None:
        if self._loaded:
            self.flush()

    def flush(self) -> bool:
        """Write both regions; a quota failure only degrades persistence."""
        app_data = AppData(subjects=self.configs.snapshot(), submissions=self.submissions.list_all())
        try:
            self.persistence.write(app_data, self.session)
        except StorageQuotaError as exc:
            logger.warning("storage quota exceeded; data kept in memory only", extra={"stage": "flush", "size_bytes": exc.size_bytes})
            self.storage_warning = f"Changes are not being saved: {exc}"
            return False
        except SQLAlchemyError as exc:
            logger.exception("storage write failed; data kept in memory only", extra={"stage": "flush"})
            self.storage_warning = f"Changes are not being saved: {exc.__class__.__name__}"
            return False
        self.storage_warning = None
        return True

    def set_session(self, session: SessionState | None) -> None:
        self.session = session
        self.flush()

    def reset(self) -> None:
        """Wipe stored application data and return to the seed subjects and history."""
        self.orchestrator.reset()
        self.persistence.clear_app_data()
        self.load()
        self.flush()
        logger.info("application data reset", extra={"stage": "reset"})


_state: AppState | None = None


def _create_state() -> AppState:
    ensure_dir(settings.data_path)
    ensure_dir(Path(settings.sqlite_path or settings.data_path).parent)
    db.create_db_and_tables(db.engine)
    state = AppState(PersistenceLayer(db.engine, quota_bytes=settings.storage_quota_bytes))
    state.load()
    return state


def get_app_state() -> AppState:
    global _state
    if _state is None:
        _state = _create_state()
    return _state


def reset_app_state() -> None:
    global _state
    _state = None
