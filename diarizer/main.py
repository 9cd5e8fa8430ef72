"""
FastAPI app: WebSocket endpoint for long-session speaker diarization;
HTTP API: engine status and re-query of finalized session results.

Client sends binary PCM 16-bit mono at SAMPLE_RATE plus JSON control frames.
Server responds with JSON events; the final one is
{ "type": "diarization-result", "data": { "segments": [{start_ms, end_ms, speaker}], ... } }
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from diarizer.config import Settings, get_settings
from diarizer.diarization.worker import WorkerStatus
from diarizer.engine.base import DiarizationEngine, EngineUnavailableError
from diarizer.engine.sherpa import load_sherpa_engine
from diarizer.schemas.diarization import DiarizationResultOut, EngineStatusOut
from diarizer.session_store import delete_session, get_session
from diarizer.websocket_manager import WebSocketManager

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Apply LOG_LEVEL; also write to LOG_FILE when set."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.LOG_FILE:
        handlers.append(logging.FileHandler(settings.LOG_FILE, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        handlers=handlers,
        force=True,
    )


def _load_engine(settings: Settings) -> tuple[DiarizationEngine | None, WorkerStatus, str | None]:
    """
    Load the diarization engine once. Missing models degrade diarization to a no-op;
    they must never keep the app from starting.
    """
    if not settings.DIARIZATION_ENABLED:
        return None, WorkerStatus.NOT_AVAILABLE, "Diarization disabled"
    try:
        return load_sherpa_engine(settings), WorkerStatus.READY, None
    except EngineUnavailableError as e:
        logger.info("Diarization not available: %s", e)
        return None, WorkerStatus.NOT_AVAILABLE, str(e)
    except Exception as e:
        logger.exception("Diarization engine init error")
        return None, WorkerStatus.ERROR, str(e) or "Unknown initialization error"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings)
    app.state.engine = None
    app.state.engine_status = WorkerStatus.LOADING
    app.state.engine_detail = None
    # Model load is blocking (seconds); keep the loop free while it runs
    loop = asyncio.get_running_loop()
    engine, status, detail = await loop.run_in_executor(None, _load_engine, settings)
    app.state.engine = engine
    app.state.engine_status = status
    app.state.engine_detail = detail
    yield
    app.state.engine = None


app = FastAPI(
    title="Long-session Speaker Diarization",
    description="Chunked diarization with cross-chunk speaker reconciliation",
    lifespan=lifespan,
)


@app.websocket("/ws/diarize")
async def websocket_diarize(websocket: WebSocket) -> None:
    """
    WebSocket: client sends raw PCM 16-bit mono (binary) and control frames (JSON text).
    Server sends JSON events: session, status, diarization-result, error.
    """
    await websocket.accept()
    manager = WebSocketManager(
        websocket,
        getattr(websocket.app.state, "engine", None),
        engine_status=getattr(websocket.app.state, "engine_status", None),
    )
    try:
        await manager.run()
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("Diarization WebSocket failed")
        try:
            await websocket.close()
        except Exception:
            pass


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/api/diarization/status", response_model=EngineStatusOut)
async def diarization_status() -> EngineStatusOut:
    settings = get_settings()
    engine: DiarizationEngine | None = getattr(app.state, "engine", None)
    status = getattr(app.state, "engine_status", WorkerStatus.LOADING)
    return EngineStatusOut(
        status=status.value,
        detail=getattr(app.state, "engine_detail", None),
        sample_rate=engine.sample_rate if engine else settings.SAMPLE_RATE,
        chunk_seconds=settings.DIARIZATION_CHUNK_SECONDS,
        overlap_seconds=settings.DIARIZATION_OVERLAP_SECONDS,
    )


@app.get("/api/sessions/{session_id}/diarization", response_model=DiarizationResultOut)
async def get_session_diarization(session_id: str) -> DiarizationResultOut:
    """Last result of a session (final after stop, snapshot after run-diarization)."""
    session = get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return DiarizationResultOut.build(
        session.get("segments", []),
        session_id=session_id,
        finalized=session.get("finalized", False),
        error=session.get("error"),
    )


@app.delete("/api/sessions/{session_id}/diarization")
async def delete_session_diarization(session_id: str) -> dict:
    if not delete_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"session_id": session_id, "deleted": True}


def run() -> None:
    """Console entry point: serve the app with uvicorn on HOST:PORT."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("diarizer.main:app", host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
