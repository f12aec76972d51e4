"""FastAPI application entrypoint."""

import os
from uuid import uuid4

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from sqlalchemy import text
from sqlmodel import Session

from autograde import db
from autograde.routers.data import router as data_router
from autograde.routers.files import router as files_router
from autograde.routers.pipeline import router as pipeline_router
from autograde.routers.session import router as session_router
from autograde.routers.subjects import router as subjects_router
from autograde.routers.submissions import router as submissions_router
from autograde.settings import settings
from autograde.state import get_app_state
from autograde.storage import ensure_dir

app = FastAPI(title=settings.app_name, version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(subjects_router)
app.include_router(pipeline_router)
app.include_router(submissions_router)
app.include_router(session_router)
app.include_router(data_router)
app.include_router(files_router)


@app.on_event("startup")
def on_startup() -> None:
    get_app_state()


@app.get("/health", tags=["meta"])
def health() -> dict[str, bool]:
    openai_api_key = os.getenv("OPENAI_API_KEY", "")
    return {"ok": True, "openai_configured": bool(openai_api_key.strip())}


@app.get("/health/deep", tags=["meta"])
def deep_health() -> dict[str, bool | str | list[str] | None]:
    openai_api_key = os.getenv("OPENAI_API_KEY", "")
    data_dir = settings.data_path

    storage_writable = False
    try:
        ensure_dir(data_dir)
        probe_path = data_dir / f".health_probe_{uuid4().hex}"
        probe_path.write_text("ok", encoding="utf-8")
        probe_path.unlink(missing_ok=True)
        storage_writable = True
    except OSError:
        storage_writable = False

    db_ok = False
    try:
        with Session(db.engine) as session:
            session.exec(text("SELECT 1"))
        db_ok = True
    except Exception:
        db_ok = False

    state = get_app_state()
    return {
        "ok": True,
        "openai_configured": bool(openai_api_key.strip()),
        "storage_writable": storage_writable,
        "data_dir": str(data_dir),
        "db_ok": db_ok,
        "storage_regions": state.persistence.region_keys() if db_ok else [],
        "storage_warning": state.storage_warning,
    }


@app.options("/{path:path}", include_in_schema=False)
async def preflight(path: str) -> Response:
    del path
    return Response(status_code=204)
