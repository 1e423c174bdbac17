"""
Error taxonomy.

Every failure carries a user-facing `message` (safe to show in the UI), a
stable machine `code`, and the `original_error` kept for diagnostics.
"""

from typing import Optional


ANALYSIS_FAILED_MESSAGE = "Failed to analyze data. Please check your input or API key."
CHAT_FALLBACK_MESSAGE = "ขออภัย ไม่สามารถประมวลผลคำตอบได้ในขณะนี้"
FILE_READ_FAILED_MESSAGE = "ไม่สามารถอ่านไฟล์ได้ กรุณาลองใหม่อีกครั้ง"
MISSING_DATASET_MESSAGE = "กรุณาระบุข้อมูล CSV หรือข้อความอธิบายข้อมูล"
MISSING_SCOPE_MESSAGE = "กรุณาระบุ JD ของคุณเพื่อกำหนดขอบเขตงาน"
MISSING_API_KEY_MESSAGE = "ไม่พบ API Key กรุณาตั้งค่าใน Environment"


class ScopeInsightError(Exception):
    code = "error"

    def __init__(self, message: str, *, detail: Optional[str] = None, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail
        self.original_error = original_error

    def __str__(self) -> str:
        return self.message


class ValidationError(ScopeInsightError):
    """Required input missing or out of range. Raised before any external call."""

    code = "validation"


class ConfigurationError(ScopeInsightError):
    """No credential for the generation service."""

    code = "configuration"

    def __init__(self, message: str = MISSING_API_KEY_MESSAGE, **kwargs):
        super().__init__(message, **kwargs)


class ServiceError(ScopeInsightError):
    """Transport or remote failure talking to the generation service."""

    code = "service"


class EmptyResponseError(ScopeInsightError):
    code = "empty_response"


class MalformedResponseError(ScopeInsightError):
    """Analysis response was not JSON or did not match the AnalysisResult shape."""

    code = "malformed_response"


class FileReadError(ScopeInsightError):
    code = "file_read"

    def __init__(self, message: str = FILE_READ_FAILED_MESSAGE, **kwargs):
        super().__init__(message, **kwargs)


class SessionNotFoundError(ScopeInsightError):
    code = "session_not_found"
