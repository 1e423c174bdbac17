"""
Dataset ingestion: uploaded bytes -> dataset text, plus a display-only preview.

The text handed to the model is exactly what the user uploaded (decoded);
nothing here validates or rewrites it.
"""

import io
import logging
import os
from typing import Optional

import pandas as pd

from .config import Settings, get_settings
from .errors import FileReadError
from .schemas import DatasetPreview

logger = logging.getLogger(__name__)

PREVIEW_MAX_COLUMNS = 40

DEMO_DATA = """Month,Sales,Cost,CustomerSatisfaction
Jan,120000,80000,4.2
Feb,150000,85000,4.5
Mar,110000,82000,4.0
Apr,180000,90000,4.8
May,200000,95000,4.7
Jun,170000,88000,4.3"""

DEMO_SCOPE = """รับผิดชอบการพัฒนา Web Application ดูแลระบบ Database (PostgreSQL)
และสร้าง Internal Tools สำหรับฝ่ายขายและฝ่ายการตลาด
มีความรู้เรื่อง Python และ Data Visualization"""


def _decode(raw: bytes) -> str:
    # Some editors save as UTF-16; accept both.
    if raw[:2] in (b"\xff\xfe", b"\xfe\xff"):
        return raw.decode("utf-16")
    return raw.decode("utf-8-sig")


def read_dataset_file(filename: Optional[str], raw: bytes, settings: Optional[Settings] = None) -> str:
    """
    Decode an uploaded dataset file into text.

    Raises FileReadError for a disallowed extension, an oversized file, or
    bytes that are not text. The caller keeps its existing dataset on failure.
    """
    settings = settings or get_settings()
    name = filename or "upload"
    ext = os.path.splitext(name)[1].lower()

    if settings.allowed_file_types and ext not in settings.allowed_file_types:
        raise FileReadError(detail=f"Unsupported file type {ext or '(none)'} for {name}")
    if len(raw) > settings.max_file_size_bytes:
        raise FileReadError(detail=f"{name} is {len(raw)} bytes, limit is {settings.max_file_size_mb} MB")

    try:
        text = _decode(raw)
    except UnicodeError as e:
        raise FileReadError(detail=f"{name} is not a text file: {e}", original_error=e) from e

    logger.info("ingest.file_read name=%s bytes=%d chars=%d", name, len(raw), len(text))
    return text


def preview_dataset(text: str) -> Optional[DatasetPreview]:
    """Best-effort CSV shape for display. Returns None for anything pandas can't read as a table."""
    if not text or not text.strip():
        return None
    try:
        df = pd.read_csv(io.StringIO(text))
    except Exception:
        logger.debug("ingest.preview_unavailable", exc_info=True)
        return None
    if df.empty or len(df.columns) < 2:
        return None

    num_rows, num_cols = df.shape
    columns = [str(c).strip() for c in df.columns.tolist()[:PREVIEW_MAX_COLUMNS]]
    return DatasetPreview(rows=num_rows, columns=num_cols, column_names=columns)
