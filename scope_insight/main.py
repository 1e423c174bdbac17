"""
FastAPI entrypoint.

The browser front-end drives one session per tab:
- POST /session creates it; every other call carries the id in `x-session-id`
- inputs (dataset text / file / demo, job scope, ambition level) are edited in place
- /session/analyze and /session/chat run the generation calls
- every route returns the full session snapshot for re-rendering
"""

import os
import logging
from dotenv import load_dotenv, find_dotenv

# Load environment variables from .env file (optional).
# In hosted deployments secrets come from the process environment instead.
# Some editors save .env as UTF-16 on Windows; support both UTF-8 and UTF-16.
_dotenv_path = find_dotenv(usecwd=True) or None
if _dotenv_path:
    try:
        load_dotenv(_dotenv_path)
    except UnicodeError:
        load_dotenv(_dotenv_path, encoding="utf-16")
else:
    load_dotenv()

# Configure logging with environment-based level
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

from typing import Optional

from fastapi import FastAPI, File, Header, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool

from .charts import result_to_plotly
from .config import get_settings, has_api_key
from .errors import SessionNotFoundError, ValidationError
from .ingest import preview_dataset
from .orchestrator import Orchestrator, SessionStore
from .prompts import BANDS, band_for_level
from .schemas import (
    AmbitionInfo,
    BandInfo,
    CapabilitiesResponse,
    ChatRequest,
    InputsUpdate,
    SessionResponse,
)
from .session import Session

SETTINGS = get_settings()
logger.info("Service starting with LOG_LEVEL=%s settings=%r", LOG_LEVEL, SETTINGS)


def _log_transition(session: Session, event: str) -> None:
    logger.info(
        "session.%s session_id=%s status=%s chat_pending=%s history=%d error_code=%s",
        event,
        session.session_id,
        session.status,
        session.is_chat_pending,
        len(session.chat_history),
        session.error_code,
    )


STORE = SessionStore(settings=SETTINGS)
STORE.add_listener(_log_transition)

app = FastAPI(title="Scope Insight Studio")


@app.get("/")
def root():
    return {"ok": True, "service": "scope_insight"}


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.get("/capabilities", response_model=CapabilitiesResponse)
def capabilities():
    """What the UI needs before the first render: key present? slider bands?"""
    bands = [
        BandInfo(band=b.band, max_level=b.max_level, label=b.label, description=b.description, color=b.color)
        for b in BANDS
    ]
    return CapabilitiesResponse(
        has_api_key=has_api_key(SETTINGS),
        model=SETTINGS.model_name,
        ambition=AmbitionInfo(bands=bands),
    )


def _get(session_id: Optional[str]) -> Orchestrator:
    try:
        return STORE.get(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


def _snapshot(session: Session, accepted: Optional[bool] = None) -> SessionResponse:
    # parses the whole dataset for the preview; async routes call this via run_in_threadpool
    return SessionResponse(
        session_id=session.session_id,
        status=session.status,
        awaiting_chat_reply=session.awaiting_chat_reply,
        dataset_text=session.dataset_text,
        scope_text=session.scope_text,
        ambition_level=session.ambition_level,
        ambition_band=band_for_level(session.ambition_level).band,
        result=session.result,
        chart=result_to_plotly(session.result) if session.result else None,
        chat_history=list(session.chat_history),
        error=session.error,
        error_code=session.error_code,
        dataset_preview=preview_dataset(session.dataset_text),
        accepted=accepted,
    )


@app.post("/session", response_model=SessionResponse)
def create_session():
    return _snapshot(STORE.create().session)


@app.get("/session", response_model=SessionResponse)
def get_session(x_session_id: Optional[str] = Header(None)):
    return _snapshot(_get(x_session_id).session)


@app.delete("/session")
def delete_session(x_session_id: Optional[str] = Header(None)):
    _get(x_session_id)
    STORE.drop(x_session_id)
    return {"ok": True}


@app.put("/session/inputs", response_model=SessionResponse)
def put_inputs(req: InputsUpdate, x_session_id: Optional[str] = Header(None)):
    orchestrator = _get(x_session_id)
    try:
        session = orchestrator.update_inputs(
            dataset_text=req.dataset_text,
            scope_text=req.scope_text,
            ambition_level=req.ambition_level,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _snapshot(session)


@app.post("/session/upload", response_model=SessionResponse)
async def upload_dataset(file: UploadFile = File(...), x_session_id: Optional[str] = Header(None)):
    orchestrator = _get(x_session_id)
    raw = await file.read()
    accepted = orchestrator.load_file(file.filename, raw)
    return await run_in_threadpool(_snapshot, orchestrator.session, accepted)


@app.post("/session/demo", response_model=SessionResponse)
def load_demo(x_session_id: Optional[str] = Header(None)):
    return _snapshot(_get(x_session_id).load_demo())


@app.post("/session/analyze", response_model=SessionResponse)
async def analyze_endpoint(x_session_id: Optional[str] = Header(None)):
    orchestrator = _get(x_session_id)
    logger.info(
        "analyze.request session_id=%s level=%d has_api_key=%s",
        x_session_id,
        orchestrator.session.ambition_level,
        has_api_key(SETTINGS),
    )
    accepted = await orchestrator.analyze()
    return await run_in_threadpool(_snapshot, orchestrator.session, accepted)


@app.post("/session/chat", response_model=SessionResponse)
async def chat_endpoint(req: ChatRequest, x_session_id: Optional[str] = Header(None)):
    orchestrator = _get(x_session_id)
    accepted = await orchestrator.send_chat(req.message)
    return await run_in_threadpool(_snapshot, orchestrator.session, accepted)
