"""FastAPI entrypoint: submission endpoint, home page and job lookup."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response

from .config import Settings
from .pipeline import Pipeline, build_pipeline
from .stages.intake import ACCEPTED_MESSAGE, SubmissionError

logging.basicConfig(
    level=os.getenv("TITLEDOCTOR_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("titledoctor.api")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _json(status_code: int, body: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body, headers={"Access-Control-Allow-Origin": "*"})


def _pipeline(request: Request) -> Pipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not started")
    return pipeline


def create_app(settings: Optional[Settings] = None, pipeline: Optional[Pipeline] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        active = pipeline
        if active is None:
            resolved = settings or Settings.from_env()
            resolved.validate()
            active = build_pipeline(resolved)
        await active.start()
        app.state.pipeline = active
        app.state.settings = active.settings
        try:
            yield
        finally:
            await active.stop()
            app.state.pipeline = None

    app = FastAPI(title="Title Doctor", version="0.1.0", lifespan=lifespan)
    app.state.pipeline = None

    @app.post("/submit")
    async def submit(request: Request) -> JSONResponse:
        active = _pipeline(request)
        try:
            body = await request.json()
        except ValueError:
            return _json(400, {"error": "Request body must be JSON"})
        if not isinstance(body, dict):
            body = {}

        try:
            job = await active.submit(body.get("channel"), body.get("email"))
        except SubmissionError as exc:
            return _json(400, {"error": str(exc)})
        except Exception as exc:
            logger.exception("Error in submission handler")
            return _json(500, {"error": str(exc) or "Internal server error"})
        return _json(202, {"success": True, "jobId": job.job_id, "message": ACCEPTED_MESSAGE})

    @app.options("/submit")
    async def submit_preflight() -> Response:
        return Response(status_code=204, headers=CORS_HEADERS)

    @app.get("/", response_class=HTMLResponse)
    @app.get("/home", response_class=HTMLResponse)
    async def home(request: Request) -> Response:
        public_dir = _public_dir(request)
        try:
            page = (public_dir / "index.html").read_text(encoding="utf-8")
        except OSError as exc:
            logger.error("Failed to load homepage from %s: %s", public_dir, exc)
            return JSONResponse(status_code=500, content={"error": "Failed to load homepage", "message": str(exc)})
        return HTMLResponse(page)

    @app.get("/jobs/{job_id}")
    async def get_job(job_id: str, request: Request) -> Dict[str, Any]:
        job = await _pipeline(request).jobs.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return job.to_dict()

    @app.get("/events/recent")
    async def recent_events(request: Request, limit: int = Query(20, ge=1, le=200)) -> Dict[str, Any]:
        return {"events": _pipeline(request).bus.recent(limit)}

    @app.get("/healthz")
    async def healthz(request: Request) -> Dict[str, Any]:
        active = _pipeline(request)
        return {
            "status": "ok",
            "bus": active.bus.mode,
            "store": active.jobs.backend,
            "topics": active.bus.topics,
        }

    return app


def _public_dir(request: Request) -> Path:
    settings = getattr(request.app.state, "settings", None)
    return settings.public_dir if settings is not None else Path("public")


app = create_app()
