"""Filesystem storage utilities."""

from __future__ import annotations

from pathlib import Path

from autograde.settings import settings


def ensure_dir(path: Path) -> Path:
    """Create directory if needed and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def objects_dir() -> Path:
    return settings.data_path / "objects"


def object_key(prefix: str, file_id: str, filename: str) -> str:
    """Build a storage key for an offloaded upload."""
    clean_name = Path(filename or "upload.bin").name
    return f"{prefix.strip('/')}/{file_id}/{clean_name}"
