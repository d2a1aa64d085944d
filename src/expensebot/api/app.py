"""
Core API backend for expensebot.

This module exposes the agent loop through a RESTful API that's used by frontends.
It exposes the following endpoints:
- **GET /health**  - liveness probe for health checks.
- **POST /sessions** - create a new conversation, returns its ID and a welcome message.
- **GET /sessions** - list stored conversations.
- **GET /sessions/{session_id}** - full history of a conversation.
- **DELETE /sessions/{session_id}** - clear a conversation.
- **POST /agent**   - multi-turn interaction: {"message": "...", "session_id": "..."}; an unknown
  session_id is a 404, a missing one starts a new session.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import (
    AsyncIterator,
    Dict,
    List,
    Optional,
)

from fastapi import (
    Depends,
    FastAPI,
    HTTPException,
)

from expensebot.agent.agent_loop import (
    AgentLoop,
    welcome_message,
)
from expensebot.agent.llm_backends import load_backend
from expensebot.agent.orchestrator import RequestOrchestrator
from expensebot.api.models import (
    HistoryResponse,
    MessageRequest,
    MessageResponse,
    Observation,
    SessionResponse,
)
from expensebot.common import (
    AnsiColors,
    colored_print,
)
from expensebot.config import settings
from expensebot.core.schema import (
    Turn,
    TurnRole,
)
from expensebot.memory.memory_store import (
    ConversationStore,
    ConversationStoreError,
)
from expensebot.tools import (
    ToolFault,
    missing_implementations,
)
from expensebot.tools.expenses import get_spending_history

logger = logging.getLogger(__name__)

app = FastAPI(
    title="expensebot API", version="0.1.0", description="Conversational expense tracker API"
)

# One submission at a time per conversation; entries live while someone holds or awaits them
_session_locks: Dict[str, "_SessionLock"] = {}
_store: Optional[ConversationStore] = None
_orchestrator: Optional[RequestOrchestrator] = None


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_store() -> ConversationStore:
    """Process-wide conversation store."""
    global _store  # pylint: disable=global-statement
    if _store is None:
        _store = ConversationStore()
    return _store


def get_orchestrator() -> RequestOrchestrator:
    """Process-wide orchestrator bound to the configured backend."""
    global _orchestrator  # pylint: disable=global-statement
    if _orchestrator is None:
        _orchestrator = RequestOrchestrator(load_backend())
    return _orchestrator


def get_agent(orchestrator: RequestOrchestrator = Depends(get_orchestrator)) -> AgentLoop:
    return AgentLoop(orchestrator)


class _SessionLock:
    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


@asynccontextmanager
async def _session_lock(session_id: str) -> AsyncIterator[None]:
    """Serialise work on *session_id*; the entry is dropped once nobody holds or awaits it."""
    entry = _session_locks.get(session_id)
    if entry is None:
        entry = _session_locks[session_id] = _SessionLock()
    entry.users += 1
    try:
        async with entry.lock:
            yield
    finally:
        entry.users -= 1
        if entry.users == 0:
            _session_locks.pop(session_id, None)


async def _create_session(store: ConversationStore, orchestrator: RequestOrchestrator) -> str:
    session_id = uuid.uuid4().hex
    try:
        todays = get_spending_history(period="today")
    except ToolFault as exc:
        logger.warning("Cannot load today's expenses for the welcome message: %s", exc)
        todays = []
    welcome = await welcome_message(orchestrator, todays)
    store.save(session_id, [Turn.final(0, welcome)])
    return session_id


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.post("/sessions", response_model=SessionResponse, summary="Create a new session")
async def create_session(
    store: ConversationStore = Depends(get_store),
    orchestrator: RequestOrchestrator = Depends(get_orchestrator),
) -> SessionResponse:
    """Create a new conversation, greeting the user with a summary of today's spending."""
    try:
        session_id = await _create_session(store, orchestrator)
    except ConversationStoreError as exc:
        logger.error("Failed to create session: %s", exc)
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    welcome = store.load(session_id)[0].content
    return SessionResponse(session_id=session_id, welcome=welcome)


@app.get("/sessions", response_model=List[str], summary="List stored sessions")
async def list_sessions(store: ConversationStore = Depends(get_store)) -> List[str]:
    """List all stored session IDs."""
    return store.list_ids()


def _checked_id(store: ConversationStore, session_id: str) -> str:
    try:
        known = store.exists(session_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not known:
        raise HTTPException(status_code=404, detail=f"Unknown session {session_id}")
    return session_id


@app.get("/sessions/{session_id}", response_model=HistoryResponse, summary="Session history")
async def get_session(
    session_id: str, store: ConversationStore = Depends(get_store)
) -> HistoryResponse:
    """Return every stored turn of a session, in order."""
    _checked_id(store, session_id)
    return HistoryResponse(session_id=session_id, turns=store.load(session_id))


@app.delete("/sessions/{session_id}", summary="Clear a session")
async def delete_session(
    session_id: str, store: ConversationStore = Depends(get_store)
) -> dict[str, str]:
    """Forget a conversation."""
    _checked_id(store, session_id)
    async with _session_lock(session_id):
        if not store.delete(session_id):
            raise HTTPException(status_code=404, detail=f"Unknown session {session_id}")
    return {"status": "deleted"}


@app.post("/agent", response_model=MessageResponse, summary="Process a message")
async def agent_endpoint(
    req: MessageRequest,
    store: ConversationStore = Depends(get_store),
    agent: AgentLoop = Depends(get_agent),
) -> MessageResponse:
    """Process a user message with optional session context."""
    session_id = req.session_id
    if session_id is None:
        try:
            session_id = await _create_session(store, agent.orchestrator)
        except ConversationStoreError as exc:
            logger.error("Failed to create session: %s", exc)
            raise HTTPException(status_code=503, detail=str(exc)) from exc
    else:
        _checked_id(store, session_id)

    def persist(_turn: Turn, history: tuple) -> None:
        store.save(session_id, history)

    async with _session_lock(session_id):
        # The session may have been deleted while this request was waiting
        _checked_id(store, session_id)
        try:
            result = await agent.run(store.load(session_id), req.message, on_turn=persist)
        except ConversationStoreError as exc:
            logger.error("Conversation %s could not be persisted: %s", session_id, exc)
            raise HTTPException(status_code=503, detail=str(exc)) from exc

    observations = [
        Observation(tool_name=turn.tool_name, result=turn.content)
        for turn in result.new_turns
        if turn.role is TurnRole.OBSERVATION
    ]
    return MessageResponse(
        reply=result.reply,
        outcome=result.outcome,
        session_id=session_id,
        observations=observations,
    )


@app.get("/", summary="API root")
async def root() -> dict[str, str]:
    """Return a simple welcome message."""
    return {"message": "Welcome to the expensebot API! Use /docs for API documentation."}


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in dev docker-compose).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn an optional dependency at pkg‑import time
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting expensebot API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )

    get_store().init()
    missing = missing_implementations()
    if missing:
        logger.warning("Tools without an implementation: %s", ", ".join(missing))

    colored_print(f"💸 expensebot API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "expensebot.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m expensebot.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
