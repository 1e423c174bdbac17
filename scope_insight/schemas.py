"""
Pydantic request/response models.

Rationale:
- One explicit contract for what the model must return (AnalysisResult) and
  what the browser sends/receives.
- Wire names are camelCase so the frontend reads the same shape the model returns.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


AMBITION_MIN = 20
AMBITION_MAX = 100
AMBITION_STEP = 10
AMBITION_DEFAULT = 50


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AmbitionBand(str, Enum):
    BASIC = "basic"
    STANDARD = "standard"
    ADVANCED = "advanced"
    VISIONARY = "visionary"


class ChartDataPoint(CamelModel):
    name: str
    value: float
    category: Optional[str] = None


class AnalysisResult(CamelModel):
    title: str
    executive_summary: str
    operational_insights: List[str]
    tool_suggestions: List[str]
    chart_type: Literal["bar", "line", "pie"]
    chart_title: str
    chart_data: List[ChartDataPoint]
    # Service-supplied, nominally 0-100; not enforced.
    impact_score: Optional[float] = None


class AnalysisRequest(CamelModel):
    dataset_text: str
    scope_text: str
    ambition_level: int = Field(ge=AMBITION_MIN, le=AMBITION_MAX)


class ChatMessage(CamelModel):
    role: Literal["user", "assistant"]
    content: str
    timestamp: float


# Declared to Gemini alongside the prompt (response_schema). Mirrors AnalysisResult.
ANALYSIS_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "title": {"type": "STRING", "description": "A catchy title for the analysis"},
        "executiveSummary": {
            "type": "STRING",
            "description": "Short, high-level summary for executives to make decisions.",
        },
        "operationalInsights": {
            "type": "ARRAY",
            "items": {"type": "STRING"},
            "description": "List of easy-to-understand points for operational staff.",
        },
        "toolSuggestions": {
            "type": "ARRAY",
            "items": {"type": "STRING"},
            "description": "List of software/AI tools or scripts to build/use for these problems, within the job scope.",
        },
        "chartType": {"type": "STRING", "enum": ["bar", "line", "pie"]},
        "chartTitle": {"type": "STRING"},
        "chartData": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "name": {"type": "STRING"},
                    "value": {"type": "NUMBER"},
                    "category": {"type": "STRING"},
                },
                "required": ["name", "value"],
            },
        },
        "impactScore": {"type": "NUMBER", "description": "A score 0-100 of how impactful this analysis is."},
    },
    "required": [
        "title",
        "executiveSummary",
        "operationalInsights",
        "toolSuggestions",
        "chartData",
        "chartType",
        "chartTitle",
    ],
}


# ---- HTTP payloads ----


class InputsUpdate(CamelModel):
    dataset_text: Optional[str] = None
    scope_text: Optional[str] = None
    ambition_level: Optional[int] = None


class ChatRequest(CamelModel):
    message: str


class DatasetPreview(CamelModel):
    rows: int
    columns: int
    column_names: List[str]


class BandInfo(CamelModel):
    band: AmbitionBand
    max_level: int
    label: str
    description: str
    color: str


class AmbitionInfo(CamelModel):
    min: int = AMBITION_MIN
    max: int = AMBITION_MAX
    step: int = AMBITION_STEP
    default: int = AMBITION_DEFAULT
    bands: List[BandInfo]


class CapabilitiesResponse(CamelModel):
    has_api_key: bool
    model: str
    ambition: AmbitionInfo


class SessionResponse(CamelModel):
    session_id: str
    status: Literal["idle", "analyzing", "has_result"]
    awaiting_chat_reply: bool
    dataset_text: str
    scope_text: str
    ambition_level: int
    ambition_band: AmbitionBand
    result: Optional[AnalysisResult] = None
    chart: Optional[Dict[str, Any]] = None
    chat_history: List[ChatMessage]
    error: Optional[str] = None
    error_code: Optional[str] = None
    dataset_preview: Optional[DatasetPreview] = None
    accepted: Optional[bool] = None
