import asyncio
import itertools
from dataclasses import replace

import pytest

from scope_insight.config import Settings
from scope_insight.errors import (
    ANALYSIS_FAILED_MESSAGE,
    CHAT_FALLBACK_MESSAGE,
    FILE_READ_FAILED_MESSAGE,
    MISSING_SCOPE_MESSAGE,
    ConfigurationError,
    ServiceError,
    SessionNotFoundError,
    ValidationError,
)
from scope_insight.orchestrator import Orchestrator, SessionStore
from scope_insight.schemas import AnalysisRequest, AnalysisResult, ChatMessage
from scope_insight.session import Session, begin_analysis


def _ticks(start=1000.0):
    counter = itertools.count()
    return lambda: start + next(counter)


def _with_result(minimal_result, history=()):
    request = AnalysisRequest(dataset_text="Month,Sales\nJan,100", scope_text="sales reporting", ambition_level=50)
    return Session(
        dataset_text=request.dataset_text,
        scope_text=request.scope_text,
        result=AnalysisResult.model_validate(minimal_result),
        analysis_context=request,
        analysis_epoch=1,
        chat_history=tuple(history),
    )


def _analyze(orch):
    return asyncio.run(orch.analyze())


def _chat(orch, text):
    return asyncio.run(orch.send_chat(text))


def test_analyze_success_scenario(llm_calls, settings, result_json, minimal_result):
    orch = Orchestrator(settings=settings, clock=_ticks())
    orch.update_inputs(dataset_text="Month,Sales\nJan,100", scope_text="sales reporting", ambition_level=50)
    statuses = [orch.session.status]
    orch.subscribe(lambda s, event: statuses.append(s.status))
    llm_calls.replies.append(result_json)

    assert _analyze(orch) is True

    assert statuses == ["idle", "analyzing", "has_result"]
    assert len(llm_calls.calls) == 1
    assert orch.session.result == AnalysisResult.model_validate(minimal_result)
    assert orch.session.chat_history == ()
    assert orch.session.error is None


def test_analyze_empty_response_scenario(llm_calls, settings):
    orch = Orchestrator(settings=settings)
    orch.update_inputs(dataset_text="Month,Sales\nJan,100", scope_text="sales reporting", ambition_level=50)
    statuses = []
    orch.subscribe(lambda s, event: statuses.append(s.status))
    llm_calls.replies.append("")

    assert _analyze(orch) is True

    assert statuses == ["analyzing", "idle"]
    assert orch.session.result is None
    assert orch.session.error == ANALYSIS_FAILED_MESSAGE
    assert orch.session.error_code == "empty_response"


@pytest.mark.parametrize("dataset,scope", [("", "scope"), ("data", "   "), (" \n ", "\t")])
def test_analyze_with_blank_inputs_never_calls_out(llm_calls, settings, dataset, scope):
    orch = Orchestrator(settings=settings)
    orch.update_inputs(dataset_text=dataset, scope_text=scope)

    assert _analyze(orch) is False

    assert llm_calls.calls == []
    assert orch.session.status == "idle"
    assert orch.session.error_code == ValidationError.code


def test_blank_scope_reports_scope_message(llm_calls, settings):
    orch = Orchestrator(settings=settings)
    orch.update_inputs(dataset_text="a,b\n1,2", scope_text="")
    _analyze(orch)
    assert orch.session.error == MISSING_SCOPE_MESSAGE


def test_new_analysis_clears_result_and_history_before_the_call_resolves(llm_calls, settings, minimal_result):
    history = [
        ChatMessage(role="user", content="old1", timestamp=1.0),
        ChatMessage(role="assistant", content="old2", timestamp=2.0),
    ]
    orch = Orchestrator(session=_with_result(minimal_result, history), settings=settings)
    seen = {}

    def _inspect(prompt, kwargs):
        seen["result"] = orch.session.result
        seen["history"] = orch.session.chat_history
        seen["status"] = orch.session.status

    llm_calls.on_call = _inspect
    llm_calls.replies.append(ServiceError("Gemini API error: 500"))

    _analyze(orch)

    assert seen == {"result": None, "history": (), "status": "analyzing"}
    assert orch.session.result is None
    assert orch.session.chat_history == ()
    assert orch.session.error_code == "service"


def test_analyze_is_ignored_while_one_is_in_flight(llm_calls, settings):
    busy = Session(dataset_text="a,b\n1,2", scope_text="scope", is_analyzing=True)
    orch = Orchestrator(session=busy, settings=settings)

    assert _analyze(orch) is False
    assert llm_calls.calls == []
    assert orch.session is busy


def test_missing_key_surfaces_as_analysis_failure():
    orch = Orchestrator(settings=Settings(api_key=None))
    orch.update_inputs(dataset_text="a,b\n1,2", scope_text="scope")

    assert _analyze(orch) is True
    assert orch.session.status == "idle"
    assert orch.session.error == ANALYSIS_FAILED_MESSAGE
    assert orch.session.error_code == ConfigurationError.code


def test_chat_scenario_appends_user_then_assistant(llm_calls, settings, minimal_result):
    history = [
        ChatMessage(role="user", content="old1", timestamp=1.0),
        ChatMessage(role="assistant", content="old2", timestamp=2.0),
    ]
    orch = Orchestrator(session=_with_result(minimal_result, history), settings=settings, clock=_ticks())
    llm_calls.replies.append("ลองลด...")

    assert _chat(orch, "ลดต้นทุนยังไง") is True

    transcript = [(m.role, m.content) for m in orch.session.chat_history]
    assert transcript == [
        ("user", "old1"),
        ("assistant", "old2"),
        ("user", "ลดต้นทุนยังไง"),
        ("assistant", "ลองลด..."),
    ]
    assert orch.session.awaiting_chat_reply is False
    prompt, _ = llm_calls.calls[0]
    assert "User: old1\nAssistant: old2" in prompt
    # the new question is sent once, as the current question, not as history
    assert prompt.count("ลดต้นทุนยังไง") == 1


def test_user_message_is_visible_while_reply_is_pending(llm_calls, settings, minimal_result):
    orch = Orchestrator(session=_with_result(minimal_result), settings=settings)
    seen = {}

    def _inspect(prompt, kwargs):
        seen["pending"] = orch.session.awaiting_chat_reply
        seen["last"] = orch.session.chat_history[-1].content

    llm_calls.on_call = _inspect
    llm_calls.replies.append("answer")
    _chat(orch, "question?")

    assert seen == {"pending": True, "last": "question?"}


def test_empty_reply_becomes_fallback_with_non_decreasing_timestamp(llm_calls, settings, minimal_result):
    # clock steps backwards between the two appends
    clock = iter([500.0, 400.0]).__next__
    orch = Orchestrator(session=_with_result(minimal_result), settings=settings, clock=clock)
    llm_calls.replies.append("")

    _chat(orch, "hello")

    user_msg, bot_msg = orch.session.chat_history
    assert bot_msg.role == "assistant"
    assert bot_msg.content == CHAT_FALLBACK_MESSAGE
    assert bot_msg.timestamp >= user_msg.timestamp


def test_chat_failure_becomes_fallback_message(llm_calls, settings, minimal_result):
    orch = Orchestrator(session=_with_result(minimal_result), settings=settings)
    llm_calls.replies.append(ServiceError("timeout"))

    assert _chat(orch, "hello") is True

    assert orch.session.chat_history[-1].content == CHAT_FALLBACK_MESSAGE
    assert orch.session.error is None
    assert orch.session.status == "has_result"


@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
def test_blank_chat_is_a_no_op(llm_calls, settings, minimal_result, text):
    session = _with_result(minimal_result)
    orch = Orchestrator(session=session, settings=settings)

    assert _chat(orch, text) is False
    assert llm_calls.calls == []
    assert orch.session is session


def test_chat_while_reply_pending_is_a_no_op(llm_calls, settings, minimal_result):
    session = _with_result(minimal_result).model_copy(update={"is_chat_pending": True})
    orch = Orchestrator(session=session, settings=settings)

    assert _chat(orch, "another one") is False
    assert llm_calls.calls == []


def test_chat_without_result_is_a_no_op(llm_calls, settings):
    orch = Orchestrator(settings=settings)
    assert _chat(orch, "hello") is False
    assert llm_calls.calls == []


def test_reply_for_superseded_analysis_is_dropped(llm_calls, settings, minimal_result):
    orch = Orchestrator(session=_with_result(minimal_result), settings=settings)

    def _restart(prompt, kwargs):
        # simulate a new analysis starting while the follow-up is in flight
        orch._publish(begin_analysis(orch.session, orch.session.analysis_context), "analysis_started")

    llm_calls.on_call = _restart
    llm_calls.replies.append("stale answer")
    _chat(orch, "question")

    assert orch.session.chat_history == ()


def test_file_load_replaces_dataset(settings):
    orch = Orchestrator(settings=settings)
    assert orch.load_file("sales.csv", "Month,Sales\nJan,100".encode("utf-8")) is True
    assert orch.session.dataset_text == "Month,Sales\nJan,100"


def test_file_load_failure_keeps_dataset(settings):
    orch = Orchestrator(settings=settings)
    orch.update_inputs(dataset_text="keep me")

    assert orch.load_file("photo.png", b"\x89PNG") is False

    assert orch.session.dataset_text == "keep me"
    assert orch.session.error == FILE_READ_FAILED_MESSAGE
    assert orch.session.error_code == "file_read"


def test_invalid_level_is_rejected_without_change(settings):
    orch = Orchestrator(settings=settings)
    before = orch.session
    with pytest.raises(ValidationError):
        orch.update_inputs(ambition_level=5)
    assert orch.session is before


def test_store_lookup(settings):
    store = SessionStore(settings=settings)
    orch = store.create()
    assert store.get(orch.session.session_id) is orch
    store.drop(orch.session.session_id)
    with pytest.raises(SessionNotFoundError):
        store.get(orch.session.session_id)


class _Ticker:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_store_expires_idle_sessions(settings):
    clock = _Ticker()
    store = SessionStore(settings=replace(settings, session_ttl_minutes=10), clock=clock)
    idle = store.create()
    active = store.create()

    clock.now += 9 * 60
    store.get(active.session.session_id)
    clock.now += 2 * 60

    with pytest.raises(SessionNotFoundError):
        store.get(idle.session.session_id)
    assert store.get(active.session.session_id) is active
    assert len(store) == 1


def test_store_evicts_least_recently_used_over_cap(settings):
    clock = _Ticker()
    store = SessionStore(settings=replace(settings, max_sessions=3), clock=clock)
    first, second, third = store.create(), store.create(), store.create()
    store.get(first.session.session_id)

    for _ in range(50):
        clock.now += 1
        store.create()

    assert len(store) == 3
    for orch in (first, second, third):
        with pytest.raises(SessionNotFoundError):
            store.get(orch.session.session_id)


def test_store_keeps_recently_used_session_at_cap(settings):
    store = SessionStore(settings=replace(settings, max_sessions=2), clock=_Ticker())
    first, second = store.create(), store.create()
    store.get(first.session.session_id)

    store.create()

    assert len(store) == 2
    assert store.get(first.session.session_id) is first
    with pytest.raises(SessionNotFoundError):
        store.get(second.session.session_id)
