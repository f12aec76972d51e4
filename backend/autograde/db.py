"""Database engine helpers."""

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from autograde.settings import settings


engine = create_engine(settings.sqlite_url, connect_args={"check_same_thread": False})


def create_db_and_tables(bind: Engine | None = None) -> None:
    """Create all SQLModel tables if they do not exist and add late columns."""
    target = bind if bind is not None else engine
    SQLModel.metadata.create_all(target)
    with target.begin() as conn:
        columns = {row[1] for row in conn.exec_driver_sql("PRAGMA table_info('storageregion')") if len(row) > 1}
        if "size_bytes" not in columns:
            conn.execute(text("ALTER TABLE storageregion ADD COLUMN size_bytes INTEGER DEFAULT 0"))
        if "updated_at" not in columns:
            conn.execute(text("ALTER TABLE storageregion ADD COLUMN updated_at DATETIME"))
