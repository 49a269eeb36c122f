import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from typing import Optional

import uvicorn
from fastapi import Cookie, Depends, FastAPI, Form, Response
from fastapi.responses import JSONResponse

from .config import settings
from .errors import (
    AlreadyAnswered,
    EmptyQueue,
    QuestionNotFound,
    QuestionOutOfOrder,
    SessionClosed,
    SessionNotCompleted,
)
from .models import AnswerOutcome, SessionHandle
from .persistence import ProgressWriter
from .redis_session import SessionStore, redis_client
from .session import SessionOrchestrator
from .storage import RedisProgressStore
from .vocabulary import VocabularyManager

logger = logging.getLogger(__name__)


# --- Logging Setup ---
def configure_logging():
    package_logger = logging.getLogger("vocadrill")
    package_logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    if not os.path.exists(settings.LOG_DIR):
        os.makedirs(settings.LOG_DIR)
    log_path = os.path.join(settings.LOG_DIR, settings.LOG_FILE)
    file_handler = RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=3)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    )
    package_logger.addHandler(file_handler)


# --- Engine Wiring ---
vocab_manager = VocabularyManager(settings.VOCAB_DIR)
progress_store = RedisProgressStore(redis_client)
progress_writer = ProgressWriter(progress_store)
orchestrator = SessionOrchestrator(vocab_manager, progress_store, progress_writer)
session_store = SessionStore(redis_client)


# --- Lifecycle ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    vocab_manager.load_all()
    yield
    progress_writer.shutdown()


app = FastAPI(
    title=settings.PROJECT_NAME,
    debug=settings.DEBUG,
    lifespan=lifespan,
)


# --- Dependencies ---
def get_orchestrator() -> SessionOrchestrator:
    return orchestrator


def get_session_store() -> SessionStore:
    return session_store


def get_session_id(
    session_id: Optional[str] = Cookie(None, alias=settings.SESSION_COOKIE_NAME),
) -> Optional[str]:
    return session_id


def get_active_session(
    session_id: Optional[str] = Depends(get_session_id),
    store: SessionStore = Depends(get_session_store),
) -> Optional[SessionHandle]:
    if not session_id:
        return None

    handle = store.get(session_id)
    if not handle:
        return None

    if datetime.now(timezone.utc) - handle.created_at > timedelta(
        minutes=settings.SESSION_TIMEOUT_MINUTES
    ):
        store.delete(session_id)
        return None
    return handle


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


# --- Routes ---
@app.get("/api/units")
def get_units(engine: SessionOrchestrator = Depends(get_orchestrator)):
    return engine.catalog.get_topics()


@app.post("/start")
def start_practice_session(
    student_id: str = Form(...),
    unit_id: str = Form(...),
    size: int = Form(settings.DEFAULT_SESSION_SIZE),
    mode: str = Form("standard"),
    typo_tolerant: bool = Form(False),
    language: Optional[str] = Form(None),
    engine: SessionOrchestrator = Depends(get_orchestrator),
    store: SessionStore = Depends(get_session_store),
):
    try:
        handle = engine.generate_session(
            student_id,
            unit_id,
            size=size,
            mode=mode,
            typo_tolerant=typo_tolerant,
            language=language,
        )
    except EmptyQueue as e:
        return _error(str(e), 422)
    except ValueError as e:
        return _error(str(e), 400)

    store.save(handle)

    response = JSONResponse(
        {
            "session_id": handle.session_id,
            "total_questions": handle.total_questions,
            "adaptive_difficulty": handle.adaptive_difficulty,
        },
        status_code=201,
    )
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=handle.session_id,
        httponly=True,
        samesite="Lax",
    )
    return response


@app.get("/api/quiz/{index}")
def get_question_data(
    index: int, handle: Optional[SessionHandle] = Depends(get_active_session)
):
    if not handle:
        return _error("Session invalid", 401)
    if not (0 <= index < handle.total_questions):
        return _error("Index error", 404)

    question = handle.questions[index]
    record = None
    if question.is_finalized:
        record = {
            "user_answer": question.user_answer,
            "correct_answer": question.correct_answer,
            "is_correct": question.is_correct,
            "grade": question.grade.name if question.grade is not None else None,
            "outcome": question.outcome.value,
        }

    return {
        "question_type": question.question_type.value,
        "prompt": question.prompt,
        "options": question.options,
        "audio_url": question.audio_url,
        "image_url": question.image_url,
        "current_index": index,
        "position": handle.position,
        "total_questions": handle.total_questions,
        "status": handle.status.value,
        "answer_record": record,
    }


@app.post("/submit_answer", response_model=AnswerOutcome)
def submit_answer(
    current_index: int = Form(...),
    answer: str = Form(""),
    time_spent_ms: int = Form(0),
    hint_used: bool = Form(False),
    handle: Optional[SessionHandle] = Depends(get_active_session),
    engine: SessionOrchestrator = Depends(get_orchestrator),
    store: SessionStore = Depends(get_session_store),
):
    if not handle:
        return _error("Invalid session", 401)

    try:
        outcome = engine.submit_answer(
            handle, current_index, answer, time_spent_ms, hint_used
        )
    except QuestionNotFound as e:
        return _error(str(e), 404)
    except AlreadyAnswered:
        return _error("Already answered", 400)
    except (QuestionOutOfOrder, SessionClosed) as e:
        return _error(str(e), 409)

    store.save(handle)
    return outcome


@app.post("/skip")
def skip_question(
    handle: Optional[SessionHandle] = Depends(get_active_session),
    engine: SessionOrchestrator = Depends(get_orchestrator),
    store: SessionStore = Depends(get_session_store),
):
    if not handle:
        return _error("Invalid session", 401)

    try:
        engine.skip_current(handle)
    except SessionClosed as e:
        return _error(str(e), 409)

    store.save(handle)
    return {
        "position": handle.position,
        "total_questions": handle.total_questions,
        "status": handle.status.value,
    }


@app.get("/api/result")
def get_result_data(
    handle: Optional[SessionHandle] = Depends(get_active_session),
    engine: SessionOrchestrator = Depends(get_orchestrator),
):
    if not handle:
        return _error("Session invalid", 401)

    try:
        return engine.get_summary(handle)
    except SessionNotCompleted as e:
        return _error(str(e), 409)


@app.post("/api/reset")
def reset_session(
    response: Response,
    handle: Optional[SessionHandle] = Depends(get_active_session),
    engine: SessionOrchestrator = Depends(get_orchestrator),
    store: SessionStore = Depends(get_session_store),
):
    if handle:
        engine.abandon(handle)
        engine.writer.forget(handle.session_id)
        store.delete(handle.session_id)
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return {"status": "success"}


if __name__ == "__main__":
    uvicorn.run("vocadrill.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
