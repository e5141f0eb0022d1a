from fastapi import Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
from sqlmodel import SQLModel
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Dict, Optional, Tuple

import asyncio
import logging
import re
import time
import uuid

from . import crud, game
from .cache import cleanup_cache_periodically, get_cache
from .config import config
from .leaderboard import LeaderboardView
from .logging_utils import get_logger, request_id_ctx, setup_logging
from .notify import CollectingSink
from .phrases import load_pool
from .runner import GameRunner
from .scheduler import AsyncioScheduler
from .session import Outcome
from .store import SqlLeaderboardStore

setup_logging(logging.INFO)
logger = get_logger("jbbly")
app = FastAPI(title="jbbly")

_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')


# Rate limiting - recent request times per client IP
_RATE_LIMIT_STORE: dict = {}


def check_rate_limit(request: Request, max_requests: int = 30, window_seconds: int = 60) -> bool:
    """In-memory sliding window; True if the request is allowed."""
    client_ip = request.client.host if request.client else "unknown"
    now = time.time()
    cutoff = now - window_seconds
    recent = [t for t in _RATE_LIMIT_STORE.get(client_ip, []) if t > cutoff]
    if len(recent) >= max_requests:
        _RATE_LIMIT_STORE[client_ip] = recent
        return False
    recent.append(now)
    _RATE_LIMIT_STORE[client_ip] = recent
    return True


def rate_limit_dependency(max_requests: int = 30, window_seconds: int = 60):
    def dependency(request: Request):
        if not check_rate_limit(request, max_requests, window_seconds):
            raise HTTPException(status_code=429, detail="Too many requests")
    return dependency


# Process-wide collaborators, created on first use
_POOL = None
# the serving loop, captured at startup; session timers run on it
_LOOP: Optional[asyncio.AbstractEventLoop] = None
_STORE: Optional[SqlLeaderboardStore] = None


def get_pool():
    global _POOL
    if _POOL is None:
        _POOL = load_pool()
    return _POOL


def get_store() -> SqlLeaderboardStore:
    global _STORE
    if _STORE is None:
        _STORE = SqlLeaderboardStore()
    return _STORE


def _app_loop() -> asyncio.AbstractEventLoop:
    if _LOOP is None or _LOOP.is_closed():
        raise HTTPException(status_code=503, detail="Service is starting, try again")
    return _LOOP


# In-progress games live here only; nothing is persisted until a finish is submitted.
# session id -> (runner, sink, created_at)
_SESSIONS: Dict[str, Tuple[GameRunner, CollectingSink, float]] = {}


def _drop_session(sid: str) -> None:
    entry = _SESSIONS.pop(sid, None)
    if entry is None:
        return
    entry[0].close()


def _prune_sessions() -> None:
    cutoff = time.time() - config.SESSION_TTL_MINUTES * 60
    for sid in [sid for sid, (_, _, created) in _SESSIONS.items() if created < cutoff]:
        _drop_session(sid)
    cleanup_cache_periodically()


def _get_runner(sid: str) -> Tuple[GameRunner, CollectingSink]:
    entry = _SESSIONS.get(sid)
    if entry is None:
        raise HTTPException(status_code=404, detail="session not found")
    return entry[0], entry[1]


def _respond(runner: GameRunner, sink: CollectingSink) -> dict:
    body = {
        "session": runner.snapshot(),
        "notices": [n.to_dict() for n in sink.drain()],
    }
    if runner.submitted is not None:
        try:
            body["placement"] = get_store().placement(runner.submitted.date, runner.submitted.seconds)
        except Exception as e:
            logger.warning("placement_lookup_failed", extra={"error": str(e)})
    return body


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = request_id_ctx.set(rid)
        start = time.time()
        response = None
        try:
            response = await call_next(request)
            return response
        except Exception:
            logger.exception("request_error", extra={"path": str(request.url), "method": request.method})
            raise
        finally:
            logger.info(
                "request",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": getattr(response, "status_code", 500),
                    "duration_ms": int((time.time() - start) * 1000),
                    "client": request.client.host if request.client else "-",
                },
            )
            if response is not None:
                response.headers["X-Request-ID"] = rid
            request_id_ctx.reset(token)


app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:8000",
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Accept", "Content-Type", "X-Requested-With"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("validation_error", extra={"method": request.method, "path": request.url.path, "errors": str(exc.errors())})
    return JSONResponse(
        status_code=422,
        content={"detail": [str(e.get("msg")) for e in exc.errors()], "message": "Input validation failed"},
    )


@app.on_event("startup")
async def on_startup():
    from .migrations import run_migrations

    global _LOOP
    _LOOP = asyncio.get_running_loop()

    engine = crud.engine or crud.make_engine()
    SQLModel.metadata.create_all(engine)
    try:
        run_migrations(engine)
    except Exception as e:
        logger.warning("migrations_failed", extra={"error": str(e)})
    crud.engine = engine

    try:
        game.daily_selection(get_pool(), game.today_str())
        logger.info("daily_selection_warmed", extra={"date": game.today_str()})
    except Exception as e:
        logger.warning("daily_selection_warm_failed", extra={"error": str(e)})


@app.on_event("shutdown")
def on_shutdown():
    global _LOOP
    for sid in list(_SESSIONS):
        _drop_session(sid)
    for view in list(_WS_CONNECTIONS.values()):
        view.close()
    _LOOP = None


@app.get("/health", include_in_schema=False)
def health():
    return JSONResponse({"status": "ok"})


@app.get("/api/cache/stats", include_in_schema=False)
def cache_stats():
    return JSONResponse({"cache_stats": get_cache().get_stats(), "status": "ok"})


def _validate_date_param(date: str) -> str:
    if date and not _DATE_RE.match(date):
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD")
    try:
        return game.as_date(date).isoformat()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date")


@app.get("/api/daily")
def get_daily(date: str = ""):
    """The day's puzzles: gibberish only, answers stay on the server."""
    actual_date = _validate_date_param(date)
    selection = game.daily_selection(get_pool(), actual_date)
    return {
        "date": actual_date,
        "count": len(selection),
        "phrases": [p.gibberish for p in selection],
    }


@app.get("/api/leaderboard")
def leaderboard(
    date: str = "",
    limit: int = 10,
    _: None = Depends(rate_limit_dependency(max_requests=30, window_seconds=60)),
):
    if limit < 1 or limit > 100:
        raise HTTPException(status_code=400, detail="Limit must be between 1 and 100")
    actual_date = _validate_date_param(date)
    try:
        leaders = get_store().query(actual_date, limit)
    except Exception as e:
        logger.warning("leaderboard_query_failed", extra={"date": actual_date, "error": str(e)})
        leaders = []
    return {"date": actual_date, "leaders": [e.to_public() for e in leaders]}


class StartSessionRequest(BaseModel):
    name: str = Field("", max_length=64)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = (v or "").strip()
        if len(v) > config.MAX_NAME_LENGTH:
            raise ValueError(f"Name too long (max {config.MAX_NAME_LENGTH} characters)")
        return v


class GuessRequest(BaseModel):
    text: str = Field("", max_length=200)


@app.post("/api/sessions", status_code=201)
def start_session(
    body: StartSessionRequest,
    _: None = Depends(rate_limit_dependency(max_requests=20, window_seconds=60)),
):
    _prune_sessions()
    date = game.today_str()
    sink = CollectingSink()
    store = get_store()
    runner = GameRunner(
        phrases=game.daily_selection(get_pool(), date),
        store=store,
        scheduler=AsyncioScheduler(loop=_app_loop(), offload=True),
        sink=sink,
        date=date,
        tick_interval_ms=None,
    )
    runner.start(body.name)
    if runner.state.outcome != Outcome.IN_PROGRESS:
        runner.close()
        raise HTTPException(status_code=400, detail="Enter your name to start")
    runner.view = LeaderboardView(store, date=date, sink=sink)
    _SESSIONS[runner.session_id] = (runner, sink, time.time())
    return _respond(runner, sink)


@app.get("/api/sessions/{session_id}")
def get_session_state(session_id: str):
    runner, sink = _get_runner(session_id)
    runner.tick()
    return _respond(runner, sink)


@app.post("/api/sessions/{session_id}/guess")
def submit_guess(session_id: str, body: GuessRequest):
    runner, sink = _get_runner(session_id)
    runner.submit_guess(body.text)
    return _respond(runner, sink)


@app.post("/api/sessions/{session_id}/hint")
def use_hint(session_id: str):
    runner, sink = _get_runner(session_id)
    runner.use_hint()
    return _respond(runner, sink)


@app.post("/api/sessions/{session_id}/skip")
def skip(session_id: str):
    runner, sink = _get_runner(session_id)
    runner.skip()
    return _respond(runner, sink)


@app.post("/api/sessions/{session_id}/give_up")
def give_up(session_id: str):
    runner, sink = _get_runner(session_id)
    runner.give_up()
    return _respond(runner, sink)


@app.delete("/api/sessions/{session_id}")
def end_session(session_id: str):
    _get_runner(session_id)
    _drop_session(session_id)
    return {"session_id": session_id, "closed": True}


# websocket -> the LeaderboardView feeding it
_WS_CONNECTIONS: dict = {}


def _leaderboard_message(date: str, entries) -> dict:
    return {"type": "leaderboard", "date": date, "leaders": [e.to_public() for e in entries]}


async def _send_to_websocket(ws: WebSocket, payload: dict) -> bool:
    try:
        await ws.send_json(payload)
        return True
    except Exception as send_exc:
        logger.debug("ws_send_error", extra={"error": str(send_exc)})
        return False


@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket, date: str = ""):
    await ws.accept()
    actual_date = date if date and _DATE_RE.match(date) else game.today_str()
    loop = asyncio.get_running_loop()

    def push(entries) -> None:
        # inserts may come from another thread's loop
        asyncio.run_coroutine_threadsafe(_send_to_websocket(ws, _leaderboard_message(actual_date, entries)), loop)

    view = LeaderboardView(get_store(), date=actual_date, on_change=push)
    _WS_CONNECTIONS[ws] = view
    logger.debug("ws_connected", extra={"ws_count": len(_WS_CONNECTIONS)})
    try:
        entries = await run_in_threadpool(view.fetch_top)
        await _send_to_websocket(ws, _leaderboard_message(actual_date, entries))
        while True:
            msg = await ws.receive_text()
            if msg == "refresh":
                await run_in_threadpool(view.refresh)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.debug("ws_error", extra={"error": str(e)})
    finally:
        view.close()
        _WS_CONNECTIONS.pop(ws, None)
