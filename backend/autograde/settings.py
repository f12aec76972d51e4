"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[1]
DEFAULT_LOCAL_DATA_DIR = BASE_DIR / "data"
DEFAULT_VERCEL_DATA_DIR = Path("/tmp/autograde")


TRUTHY_VALUES = {"1", "true", "yes", "on"}


def _is_truthy(value: str | None) -> bool:
    return bool(value and value.strip().lower() in TRUTHY_VALUES)


def _running_on_vercel() -> bool:
    return bool(os.getenv("VERCEL") or os.getenv("VERCEL_ENV") or _is_truthy(os.getenv("AUTOGRADE_VERCEL_ENVIRONMENT")))


def _default_data_dir() -> str:
    if _running_on_vercel():
        return str(DEFAULT_VERCEL_DATA_DIR)
    return str(DEFAULT_LOCAL_DATA_DIR)


class Settings(BaseSettings):
    """Runtime configuration for the AutoGrade backend."""

    model_config = SettingsConfigDict(env_prefix="AUTOGRADE_", extra="ignore")

    app_name: str = "AutoGrade API"
    data_dir: str = Field(
        default_factory=_default_data_dir,
        validation_alias=AliasChoices("AUTOGRADE_DATA_DIR", "DATA_DIR"),
    )
    sqlite_path: str | None = Field(
        default=None,
        validation_alias=AliasChoices("AUTOGRADE_SQLITE_PATH", "SQLITE_PATH"),
    )
    max_upload_mb: int = 25

    # Durable key space budget, mirrors the browser storage limit of the dashboards
    storage_quota_mb: float = 5.0

    # Scoring service
    scoring_model: str = "gpt-5-mini"
    scoring_timeout_seconds: float = 120.0
    scoring_retry_backoffs: tuple[float, ...] = (1.0, 2.0)
    step_interval_seconds: float = 0.8
    fetch_timeout_seconds: float = 30.0

    # Evidence handling
    offload_uploads: bool = False
    normalize_page_images: bool = False
    page_max_width: int = 1600

    # Object storage for offloaded uploads
    storage_backend: str = "local"
    s3_bucket: str | None = None
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None
    s3_endpoint_url: str | None = None
    s3_region: str | None = None

    # Deployment toggles
    vercel_environment: bool = False

    # CORS configuration
    cors_allow_origins: str = Field(
        default="*",
        validation_alias=AliasChoices("AUTOGRADE_CORS_ALLOW_ORIGINS", "CORS_ALLOW_ORIGINS"),
    )

    @model_validator(mode="after")
    def _set_sqlite_path(self) -> "Settings":
        if not self.sqlite_path:
            self.sqlite_path = str(Path(self.data_dir) / "autograde.db")
        return self

    @property
    def sqlite_url(self) -> str:
        return f"sqlite:///{self.sqlite_path}"

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir)

    @property
    def storage_quota_bytes(self) -> int:
        return int(self.storage_quota_mb * 1024 * 1024)

    @property
    def cors_origin_list(self) -> list[str]:
        if self.cors_allow_origins.strip() == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]


settings = Settings()
