"""SQLModel ORM models and shared enums for AutoGrade."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Return timezone-aware UTC now timestamp."""
    return datetime.now(timezone.utc)


class ModelAnswerType(str, Enum):
    TEXT = "text"
    FILE = "file"


class UserRole(str, Enum):
    TEACHER = "teacher"
    STUDENT = "student"


class PipelineStep(str, Enum):
    UPLOAD = "UPLOAD"
    PREPROCESSING = "PREPROCESSING"
    OCR = "OCR"
    TEXT_PROCESSING = "TEXT_PROCESSING"
    SIMILARITY = "SIMILARITY"
    ML_SCORING = "ML_SCORING"
    REPORT = "REPORT"


class StorageRegion(SQLModel, table=True):
    """One keyed region of the durable client-side key space."""

    key: str = Field(primary_key=True)
    value: str
    size_bytes: int = 0
    updated_at: datetime = Field(default_factory=utcnow)
