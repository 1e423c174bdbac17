"""
Session state and its transitions.

A Session is an immutable snapshot. Every transition is a pure function
returning a new Session; the Orchestrator swaps snapshots and the API layer
renders whichever one is current.

    idle --begin_analysis--> analyzing --complete_analysis--> has_result
                             analyzing --fail_analysis-----> idle
    has_result --begin_chat--> (awaiting reply) --complete_chat--> has_result
"""

import uuid
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .prompts import validate_ambition_level
from .schemas import AMBITION_DEFAULT, AnalysisRequest, AnalysisResult, ChatMessage


class Session(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    dataset_text: str = ""
    scope_text: str = ""
    ambition_level: int = AMBITION_DEFAULT
    result: Optional[AnalysisResult] = None
    chat_history: Tuple[ChatMessage, ...] = ()
    is_analyzing: bool = False
    is_chat_pending: bool = False
    error: Optional[str] = None
    error_code: Optional[str] = None
    # bumped on every new analysis; replies from an older context are discarded
    analysis_epoch: int = 0
    # inputs the current result and transcript are grounded on
    analysis_context: Optional[AnalysisRequest] = None

    @property
    def status(self) -> str:
        if self.is_analyzing:
            return "analyzing"
        if self.result is not None:
            return "has_result"
        return "idle"

    @property
    def awaiting_chat_reply(self) -> bool:
        return self.is_chat_pending

    def can_analyze(self) -> bool:
        return not self.is_analyzing

    def can_chat(self, text: str) -> bool:
        return (
            bool(text and text.strip())
            and self.result is not None
            and self.analysis_context is not None
            and not self.is_analyzing
            and not self.is_chat_pending
        )


def _next_timestamp(history: Tuple[ChatMessage, ...], now: float) -> float:
    # Wall clocks can step backwards; the transcript must not.
    if history and history[-1].timestamp > now:
        return history[-1].timestamp
    return now


def update_inputs(
    session: Session,
    *,
    dataset_text: Optional[str] = None,
    scope_text: Optional[str] = None,
    ambition_level: Optional[int] = None,
) -> Session:
    changes = {}
    if dataset_text is not None:
        changes["dataset_text"] = dataset_text
    if scope_text is not None:
        changes["scope_text"] = scope_text
    if ambition_level is not None:
        changes["ambition_level"] = validate_ambition_level(ambition_level)
    if not changes:
        return session
    changes["error"] = None
    changes["error_code"] = None
    return session.model_copy(update=changes)


def record_error(session: Session, message: str, code: Optional[str] = None) -> Session:
    return session.model_copy(update={"error": message, "error_code": code})


def begin_analysis(session: Session, request: AnalysisRequest) -> Session:
    """Enter analyzing; previous result, transcript and error are dropped now, not on completion."""
    return session.model_copy(
        update={
            "is_analyzing": True,
            "analysis_epoch": session.analysis_epoch + 1,
            "analysis_context": request,
            "is_chat_pending": False,
            "result": None,
            "chat_history": (),
            "error": None,
            "error_code": None,
        }
    )


def complete_analysis(session: Session, result: AnalysisResult) -> Session:
    return session.model_copy(update={"is_analyzing": False, "result": result})


def fail_analysis(session: Session, message: str, code: Optional[str] = None) -> Session:
    return session.model_copy(
        update={
            "is_analyzing": False,
            "result": None,
            "analysis_context": None,
            "error": message,
            "error_code": code,
        }
    )


def begin_chat(session: Session, question: str, now: float) -> Tuple[Session, ChatMessage]:
    message = ChatMessage(role="user", content=question, timestamp=_next_timestamp(session.chat_history, now))
    updated = session.model_copy(
        update={"chat_history": session.chat_history + (message,), "is_chat_pending": True}
    )
    return updated, message


def complete_chat(session: Session, answer: str, now: float) -> Session:
    message = ChatMessage(role="assistant", content=answer, timestamp=_next_timestamp(session.chat_history, now))
    return session.model_copy(
        update={"chat_history": session.chat_history + (message,), "is_chat_pending": False}
    )
