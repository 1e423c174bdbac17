import json

import pytest

from scope_insight import analyzer as analyzer_mod
from scope_insight.config import Settings


MINIMAL_RESULT = {
    "title": "ยอดขายครึ่งปีแรก",
    "executiveSummary": "ยอดขายเติบโตต่อเนื่อง",
    "operationalInsights": ["เดือนพฤษภาคมขายดีที่สุด"],
    "toolSuggestions": ["Dashboard ยอดขายรายเดือน"],
    "chartType": "bar",
    "chartTitle": "Sales by month",
    "chartData": [{"name": "Jan", "value": 100}],
}


@pytest.fixture
def settings():
    return Settings(api_key="test-key")


@pytest.fixture
def minimal_result():
    return json.loads(json.dumps(MINIMAL_RESULT))


@pytest.fixture
def result_json():
    return json.dumps(MINIMAL_RESULT, ensure_ascii=False)


@pytest.fixture
def llm_calls(monkeypatch):
    """
    Replace analyzer.call_llm with a scripted fake.

    Usage: llm_calls.replies.append("...") or an Exception instance; every
    call is recorded as (prompt, kwargs).
    """

    class FakeLLM:
        def __init__(self):
            self.replies = []
            self.calls = []
            self.on_call = None

        def __call__(self, prompt, *args, **kwargs):
            self.calls.append((prompt, kwargs))
            if self.on_call:
                self.on_call(prompt, kwargs)
            reply = self.replies.pop(0) if self.replies else None
            if isinstance(reply, Exception):
                raise reply
            return reply

    fake = FakeLLM()
    monkeypatch.setattr(analyzer_mod, "call_llm", fake)
    return fake
