"""Domain records and request/response schemas."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from autograde.models import ModelAnswerType, PipelineStep, UserRole, utcnow


APP_DATA_VERSION = 2


class CamelModel(BaseModel):
    """Base for records whose wire and persisted form uses camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class AttachedFile(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    name: str
    mime_type: str = "application/octet-stream"
    data: str | None = None
    url: str | None = None

    @model_validator(mode="after")
    def _require_content_source(self) -> "AttachedFile":
        if not self.data and not self.url:
            raise ValueError("AttachedFile needs either data or url")
        return self


class SubjectConfig(CamelModel):
    model_answer_type: ModelAnswerType = ModelAnswerType.TEXT
    model_answer_text: str = ""
    model_answer_files: list[AttachedFile] = Field(default_factory=list)
    question_paper_files: list[AttachedFile] = Field(default_factory=list)

    @property
    def has_model_answer(self) -> bool:
        if self.model_answer_type == ModelAnswerType.TEXT:
            return bool(self.model_answer_text.strip())
        return len(self.model_answer_files) > 0


class QuestionGrade(CamelModel):
    question_number: str
    max_marks: float
    obtained_marks: float
    remarks: str


class MlScoreDetails(CamelModel):
    correctness: float
    completeness: float
    clarity: float


class AssessmentResult(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    extracted_text: str
    similarity_score: float
    ml_score: float
    ml_score_details: MlScoreDetails
    question_grades: list[QuestionGrade]
    feedback: str
    key_concepts_found: list[str]
    missed_concepts: list[str]


class Submission(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    student_name: str
    subject: str
    score: float
    timestamp: datetime = Field(default_factory=utcnow)
    result: AssessmentResult

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class SessionState(CamelModel):
    role: UserRole
    name: str = ""


class AppData(CamelModel):
    version: int = APP_DATA_VERSION
    subjects: dict[str, SubjectConfig] = Field(default_factory=dict)
    submissions: list[Submission] = Field(default_factory=list)


class PipelineLogEntry(CamelModel):
    id: str
    step: PipelineStep
    message: str
    status: Literal["pending", "active", "completed"] = "pending"


class SubjectCreate(BaseModel):
    name: str


class SubjectConfigUpdate(BaseModel):
    model_answer_type: ModelAnswerType | None = None
    model_answer_text: str | None = None


class SubjectRead(BaseModel):
    name: str
    config: SubjectConfig
    has_model_answer: bool


class FileUploadResult(BaseModel):
    subject: SubjectRead
    added: int
    skipped: list[str] = Field(default_factory=list)


class PipelineSubjectSelect(BaseModel):
    subject: str


class PipelineRunRequest(BaseModel):
    student_name: str | None = None


class PipelineStatus(BaseModel):
    step: PipelineStep
    subject: str
    running: bool
    staged_files: list[AttachedFile]
    result: AssessmentResult | None = None
    error: str | None = None
    warnings: list[str] = Field(default_factory=list)
    logs: list[PipelineLogEntry] = Field(default_factory=list)


class ExportRow(BaseModel):
    student_name: str
    submitted_on: str
    total_score: float
    question_marks: dict[str, float | str]
    feedback: str


class ExportTable(BaseModel):
    subject: str | None = None
    question_columns: list[str]
    rows: list[ExportRow]


class SubjectStats(BaseModel):
    subject: str | None = None
    submission_count: int
    average_score: int


class StorageStatus(BaseModel):
    degraded: bool
    warning: str | None = None
