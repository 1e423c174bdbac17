"""
Prompt construction for the two generation calls.

Templates live in prompt_templates/*.txt; this module fills them in and owns the
ambition-band table and the chat-history window.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Sequence

from .errors import ValidationError
from .schemas import AMBITION_MAX, AMBITION_MIN, AmbitionBand, ChatMessage


PROMPTS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "prompt_templates")
ANALYSIS_PROMPT_PATH = os.path.join(PROMPTS_DIR, "analysis.txt")
FOLLOW_UP_PROMPT_PATH = os.path.join(PROMPTS_DIR, "follow_up.txt")

HISTORY_WINDOW = 10


@dataclass(frozen=True)
class BandSpec:
    band: AmbitionBand
    max_level: int
    label: str
    directive: str
    description: str
    color: str


# Ordered by max_level; the last entry must cover AMBITION_MAX.
BANDS: List[BandSpec] = [
    BandSpec(
        band=AmbitionBand.BASIC,
        max_level=20,
        label="Basic",
        directive="Provide a basic summary and simple facts. Keep it straightforward.",
        description="สรุปข้อมูลพื้นฐาน เข้าใจง่าย",
        color="gray",
    ),
    BandSpec(
        band=AmbitionBand.STANDARD,
        max_level=50,
        label="Standard",
        directive="Analyze trends and provide standard professional recommendations.",
        description="วิเคราะห์แนวโน้มและนำเสนอภาพรวม",
        color="blue",
    ),
    BandSpec(
        band=AmbitionBand.ADVANCED,
        max_level=70,
        label="Advanced",
        directive="Deep dive into correlations, predict future outcomes, and suggest process improvements.",
        description="พยากรณ์อนาคตและแนะนำเชิงลึก",
        color="purple",
    ),
    BandSpec(
        band=AmbitionBand.VISIONARY,
        max_level=AMBITION_MAX,
        label="Visionary",
        directive=(
            "Think like a C-Level consultant. Provide disruptive strategies, high-impact foresight, "
            "and innovative tool suggestions that transform the business."
        ),
        description="กลยุทธ์ระดับผู้บริหาร พลิกโฉมธุรกิจ",
        color="gradient",
    ),
]


def validate_ambition_level(level: int) -> int:
    if isinstance(level, bool) or not isinstance(level, int):
        raise ValidationError(f"Ambition level must be an integer, got {level!r}")
    if level < AMBITION_MIN or level > AMBITION_MAX:
        raise ValidationError(f"Ambition level must be between {AMBITION_MIN} and {AMBITION_MAX}, got {level}")
    return level


def band_for_level(level: int) -> BandSpec:
    """Map an ambition level to its band. Rejects out-of-range levels."""
    validate_ambition_level(level)
    for spec in BANDS:
        if level <= spec.max_level:
            return spec
    # unreachable while BANDS[-1].max_level == AMBITION_MAX
    raise ValidationError(f"No ambition band covers level {level}")


@lru_cache(maxsize=None)
def _read_prompt(path: str) -> str:
    """Read a prompt text file."""
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def window_history(history: Sequence[ChatMessage], limit: int = HISTORY_WINDOW) -> List[ChatMessage]:
    """Last `limit` messages, oldest first. Older ones are dropped silently."""
    if limit <= 0:
        return []
    return list(history[-limit:])


def format_history(history: Sequence[ChatMessage]) -> str:
    return "\n".join(
        f"{'User' if msg.role == 'user' else 'Assistant'}: {msg.content}" for msg in history
    )


def build_analysis_prompt(dataset_text: str, scope_text: str, ambition_level: int, output_language: str) -> str:
    band = band_for_level(ambition_level)
    return _read_prompt(ANALYSIS_PROMPT_PATH).format(
        dataset_text=dataset_text,
        scope_text=scope_text,
        ambition_level=ambition_level,
        band_directive=band.directive,
        output_language=output_language,
    )


def build_follow_up_prompt(
    question: str,
    dataset_text: str,
    scope_text: str,
    history: Sequence[ChatMessage],
    output_language: str,
) -> str:
    return _read_prompt(FOLLOW_UP_PROMPT_PATH).format(
        dataset_text=dataset_text,
        scope_text=scope_text,
        conversation_history=format_history(window_history(history)),
        question=question,
        output_language=output_language,
    )
