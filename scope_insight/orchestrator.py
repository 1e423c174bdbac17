"""
Per-session orchestration.

Sequences analyze / follow-up / file-load intents against the generation
operations and swaps in new Session snapshots. All snapshot swaps happen on
the event-loop thread; the blocking Gemini call runs in the threadpool and
is the only await point, so each Orchestrator has a single writer.
"""

import logging
import time
from collections import OrderedDict
from typing import Callable, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool

from . import analyzer
from .config import Settings, get_settings
from .errors import (
    ANALYSIS_FAILED_MESSAGE,
    CHAT_FALLBACK_MESSAGE,
    FileReadError,
    ScopeInsightError,
    ServiceError,
    SessionNotFoundError,
    ValidationError,
)
from .ingest import DEMO_DATA, DEMO_SCOPE, read_dataset_file
from .session import (
    Session,
    begin_analysis,
    begin_chat,
    complete_analysis,
    complete_chat,
    fail_analysis,
    record_error,
    update_inputs,
)

logger = logging.getLogger(__name__)

Listener = Callable[[Session, str], None]


class Orchestrator:
    def __init__(
        self,
        session: Optional[Session] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._session = session or Session()
        self._settings = settings
        self._clock = clock
        self._listeners: List[Listener] = []

    @property
    def session(self) -> Session:
        return self._session

    def subscribe(self, listener: Listener) -> None:
        """Register for (snapshot, event) after every transition."""
        self._listeners.append(listener)

    def _publish(self, session: Session, event: str) -> None:
        self._session = session
        for listener in list(self._listeners):
            try:
                listener(session, event)
            except Exception:
                logger.warning("session.listener_failed event=%s", event, exc_info=True)

    # ---- inputs ----

    def update_inputs(
        self,
        *,
        dataset_text: Optional[str] = None,
        scope_text: Optional[str] = None,
        ambition_level: Optional[int] = None,
    ) -> Session:
        """Raises ValidationError for an out-of-range ambition level; nothing changes then."""
        updated = update_inputs(
            self._session,
            dataset_text=dataset_text,
            scope_text=scope_text,
            ambition_level=ambition_level,
        )
        if updated is not self._session:
            self._publish(updated, "inputs_updated")
        return self._session

    def load_file(self, filename: Optional[str], raw: bytes) -> bool:
        """Replace the dataset text with an uploaded file. On failure the old dataset stays."""
        try:
            text = read_dataset_file(filename, raw, self._settings)
        except FileReadError as e:
            logger.warning("ingest.failed session_id=%s detail=%s", self._session.session_id, e.detail)
            self._publish(record_error(self._session, e.message, e.code), "file_failed")
            return False
        self._publish(update_inputs(self._session, dataset_text=text), "file_loaded")
        return True

    def load_demo(self) -> Session:
        self._publish(update_inputs(self._session, dataset_text=DEMO_DATA, scope_text=DEMO_SCOPE), "demo_loaded")
        return self._session

    # ---- analysis ----

    async def analyze(self) -> bool:
        """
        Run one analysis over the current inputs.

        Returns True when a generation call was issued. Returns False without
        calling out when an analysis is already in flight or the inputs are
        invalid (the validation message becomes the session error).
        """
        session = self._session
        if not session.can_analyze():
            logger.info("analyze.ignored session_id=%s reason=in_flight", session.session_id)
            return False

        try:
            request = analyzer.build_request(session.dataset_text, session.scope_text, session.ambition_level)
        except ValidationError as e:
            self._publish(record_error(session, e.message, e.code), "analysis_rejected")
            return False

        self._publish(begin_analysis(session, request), "analysis_started")

        try:
            result = await run_in_threadpool(analyzer.run_analysis, request, self._settings)
        except ScopeInsightError as e:
            logger.error(
                "analyze.failed session_id=%s code=%s detail=%s",
                session.session_id,
                e.code,
                e.detail or e.message,
            )
            self._publish(fail_analysis(self._session, ANALYSIS_FAILED_MESSAGE, e.code), "analysis_failed")
            return True
        except Exception:
            logger.exception("analyze.unexpected_error session_id=%s", session.session_id)
            self._publish(fail_analysis(self._session, ANALYSIS_FAILED_MESSAGE, ServiceError.code), "analysis_failed")
            return True

        self._publish(complete_analysis(self._session, result), "analysis_completed")
        return True

    # ---- follow-up chat ----

    async def send_chat(self, text: str) -> bool:
        """
        Ask one follow-up question about the current result.

        No-op (False) for blank text, when there is no result, or while a
        previous question is still awaiting its reply. Failures never raise;
        they become the fallback apology as the assistant turn.
        """
        session = self._session
        if not session.can_chat(text):
            logger.info(
                "chat.ignored session_id=%s has_result=%s pending=%s blank=%s",
                session.session_id,
                session.result is not None,
                session.is_chat_pending,
                not (text and text.strip()),
            )
            return False

        prior_history = session.chat_history
        context = session.analysis_context
        epoch = session.analysis_epoch
        updated, question = begin_chat(session, text, self._clock())
        self._publish(updated, "chat_sent")

        try:
            answer = await run_in_threadpool(
                analyzer.ask_follow_up,
                question.content,
                context.dataset_text,
                context.scope_text,
                prior_history,
                self._settings,
            )
        except Exception as e:
            code = getattr(e, "code", type(e).__name__)
            logger.warning("chat.failed session_id=%s code=%s", session.session_id, code, exc_info=True)
            answer = CHAT_FALLBACK_MESSAGE

        if self._session.analysis_epoch != epoch:
            # a new analysis started meanwhile; this reply belongs to the old context
            logger.info("chat.reply_discarded session_id=%s", session.session_id)
            return True

        self._publish(complete_chat(self._session, answer, self._clock()), "chat_answered")
        return True


class SessionStore:
    """
    In-memory sessions keyed by id. Lost on restart.

    Browser tabs never say goodbye, so sessions idle longer than
    SESSION_TTL_MINUTES are expired and, past MAX_SESSIONS, the least
    recently used ones are evicted when a new session is created.
    """

    def __init__(self, settings: Optional[Settings] = None, clock: Callable[[], float] = time.monotonic):
        self._settings = settings
        self._clock = clock
        settings = settings or get_settings()
        self._ttl = settings.session_ttl_seconds
        self._max_sessions = max(1, settings.max_sessions)
        # least recently used first
        self._sessions: OrderedDict[str, Orchestrator] = OrderedDict()
        self._touched: Dict[str, float] = {}
        self._listeners: List[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _expire(self, now: float) -> None:
        for session_id in [sid for sid, at in self._touched.items() if now - at > self._ttl]:
            self._remove(session_id)
            logger.info("session.expired session_id=%s", session_id)

    def _remove(self, session_id: str) -> None:
        del self._sessions[session_id]
        del self._touched[session_id]

    def create(self) -> Orchestrator:
        now = self._clock()
        self._expire(now)
        while len(self._sessions) >= self._max_sessions:
            oldest = next(iter(self._sessions))
            self._remove(oldest)
            logger.info("session.evicted session_id=%s", oldest)

        orchestrator = Orchestrator(settings=self._settings)
        for listener in self._listeners:
            orchestrator.subscribe(listener)
        session_id = orchestrator.session.session_id
        self._sessions[session_id] = orchestrator
        self._touched[session_id] = now
        logger.info("session.created session_id=%s total=%d", session_id, len(self))
        return orchestrator

    def get(self, session_id: Optional[str]) -> Orchestrator:
        """Look up a session and mark it as used. Expired sessions are gone."""
        now = self._clock()
        self._expire(now)
        orchestrator = self._sessions.get(session_id or "")
        if orchestrator is None:
            raise SessionNotFoundError(f"Unknown session: {session_id}")
        self._sessions.move_to_end(session_id)
        self._touched[session_id] = now
        return orchestrator

    def drop(self, session_id: Optional[str]) -> None:
        self.get(session_id)
        self._remove(session_id)
        logger.info("session.dropped session_id=%s total=%d", session_id, len(self))

    def __len__(self) -> int:
        return len(self._sessions)
