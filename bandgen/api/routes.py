"""REST API routes for the band generation pipeline."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from bandgen.bootstrap import Pipeline, build_pipeline
from bandgen.errors import InvalidTransition, RecordNotFound, StageRejected
from bandgen.models.status import RecordType
from bandgen.pipeline.triggers import resolve_trigger

log = logging.getLogger(__name__)


class CreateBandRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str = ""
    user_id: str = Field(default="anonymous", alias="userId")
    use_mock: bool = Field(default=False, alias="useMock")


class PollRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    force: bool = False
    song_id: Optional[str] = Field(default=None, alias="songId")


def _record_type(value: str) -> RecordType:
    try:
        return RecordType(value.rstrip("s"))
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown record type: {value}")


def create_app(pipeline: Pipeline | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    pipeline = pipeline or build_pipeline()
    orchestrator = pipeline.orchestrator

    app = FastAPI(
        title="Bandgen API",
        description="Virtual band generation pipeline: profiles, lyrics, audio and polling",
        version="0.1.0",
    )
    app.state.pipeline = pipeline

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StageRejected)
    async def rejected_handler(request: Request, exc: StageRejected) -> JSONResponse:
        return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})

    @app.exception_handler(RecordNotFound)
    async def not_found_handler(request: Request, exc: RecordNotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"success": False, "error": str(exc)})

    @app.exception_handler(InvalidTransition)
    async def conflict_handler(request: Request, exc: InvalidTransition) -> JSONResponse:
        return JSONResponse(status_code=409, content={"success": False, "error": str(exc)})

    @app.post("/api/bands")
    async def create_band(request: CreateBandRequest) -> dict:
        """Generate a band profile, album, song stubs and images from a prompt."""
        result = await orchestrator.create_band(
            request.prompt, user_id=request.user_id, use_mock=request.use_mock
        )
        return {"success": result.error is None, **result.model_dump()}

    @app.post("/api/stages/run")
    async def run_stage(body: dict[str, Any] = Body(...)) -> dict:
        """Resume a record's next stage.

        Accepts a direct call (``{"songId": ...}`` / ``{"bandId": ...}``,
        optional ``waitForCompletion``) or a document event carrying ``$id``.
        """
        trigger = resolve_trigger(body, pipeline.config.collections)
        result = await orchestrator.run_stage(
            trigger, wait_for_completion=bool(body.get("waitForCompletion"))
        )
        return {"success": result.ok, **result.model_dump()}

    @app.post("/api/bands/{band_id}/lyrics")
    async def generate_lyrics(band_id: str) -> dict:
        batch = await orchestrator.generate_lyrics_for_band(band_id)
        return {"summary": batch.summary(), **batch.model_dump()}

    @app.post("/api/bands/{band_id}/audio")
    async def submit_audio(band_id: str) -> dict:
        batch = await orchestrator.submit_audio_for_band(band_id)
        return {"summary": batch.summary(), **batch.model_dump()}

    @app.post("/api/poll")
    async def poll(request: Optional[PollRequest] = None) -> dict:
        """Run one poll cycle over in-flight songs."""
        request = request or PollRequest()
        summary = await orchestrator.run_poll(force=request.force, song_id=request.song_id)
        return {"checked": summary.checked, **summary.model_dump()}

    @app.post("/api/records/{record_type}/{record_id}/retry")
    async def retry_record(record_type: str, record_id: str) -> dict:
        record = await orchestrator.retry_record(_record_type(record_type), record_id)
        return record.model_dump(mode="json")

    @app.get("/api/records/{record_type}/{record_id}")
    async def get_record(record_type: str, record_id: str) -> dict:
        record = await pipeline.store.get(_record_type(record_type), record_id)
        return record.model_dump(mode="json")

    @app.get("/api/health")
    async def health_check() -> dict:
        """Health check endpoint."""
        return {
            "status": "ok",
            "llm": pipeline.executor.llm.is_configured(),
            "images": pipeline.executor.images.is_configured(),
            "audio": pipeline.poller.tasks.is_configured(),
        }

    return app
