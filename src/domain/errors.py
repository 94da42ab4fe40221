"""
Error definitions for the API.

규칙:
- 조용한 실패 금지 → AppError로 명시적 실패
- 서비스 레이어는 AppError만 발생, HTTP 변환은 app 레벨 핸들러가 담당
- 클라이언트에는 code + message만 노출 (raw 예외는 로그로만)
"""

from typing import Any


class AppError(Exception):
    """
    서비스 처리 실패 시 발생하는 에러.

    Usage:
        raise AppError(ErrorCodes.DOCUMENT_NOT_FOUND, document_id=doc_id)
    """

    def __init__(self, code: str, **context: Any) -> None:
        self.code = code
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"[{self.code}] {ctx_str}" if ctx_str else f"[{self.code}]"

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_CODE.get(self.code, 500)

    @property
    def message(self) -> str:
        """클라이언트용 메시지 (context의 message 우선)."""
        explicit = self.context.get("message")
        if explicit:
            return str(explicit)
        return DEFAULT_MESSAGES.get(self.code, "Internal server error")

    def to_dict(self) -> dict[str, Any]:
        """로그/JSON 직렬화용."""
        return {
            "code": self.code,
            **self.context,
        }


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCodes:
    """에러 코드 상수. 새 코드 추가 시 HTTP_STATUS_BY_CODE에도 추가."""

    # === Not found ===
    CONVERSATION_NOT_FOUND = "CONVERSATION_NOT_FOUND"
    DOCUMENT_NOT_FOUND = "DOCUMENT_NOT_FOUND"
    FORM_NOT_FOUND = "FORM_NOT_FOUND"

    # === Downloads ===
    DOWNLOAD_NOT_FOUND = "DOWNLOAD_NOT_FOUND"  # 키 없음 또는 만료
    DOWNLOAD_FILE_MISSING = "DOWNLOAD_FILE_MISSING"  # 포인터는 있으나 파일 없음
    DOWNLOAD_UNAVAILABLE = "DOWNLOAD_UNAVAILABLE"  # Redis 연결 실패

    # === Upload ===
    NO_FILES = "NO_FILES"
    TOO_MANY_FILES = "TOO_MANY_FILES"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    DOCUMENT_FILE_MISSING = "DOCUMENT_FILE_MISSING"

    # === AI ===
    CHAT_FAILED = "CHAT_FAILED"
    CHAT_TIMEOUT = "CHAT_TIMEOUT"
    ANALYSIS_FAILED = "ANALYSIS_FAILED"
    ANALYSIS_TIMEOUT = "ANALYSIS_TIMEOUT"
    UNSUPPORTED_MEDIA_TYPE = "UNSUPPORTED_MEDIA_TYPE"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"

    # === Export ===
    EXPORT_FAILED = "EXPORT_FAILED"


HTTP_STATUS_BY_CODE: dict[str, int] = {
    ErrorCodes.CONVERSATION_NOT_FOUND: 404,
    ErrorCodes.DOCUMENT_NOT_FOUND: 404,
    ErrorCodes.FORM_NOT_FOUND: 404,
    ErrorCodes.DOWNLOAD_NOT_FOUND: 404,
    ErrorCodes.DOWNLOAD_FILE_MISSING: 404,
    ErrorCodes.DOWNLOAD_UNAVAILABLE: 503,
    ErrorCodes.NO_FILES: 400,
    ErrorCodes.TOO_MANY_FILES: 400,
    ErrorCodes.FILE_TOO_LARGE: 413,
    ErrorCodes.DOCUMENT_FILE_MISSING: 404,
    ErrorCodes.CHAT_FAILED: 502,
    ErrorCodes.CHAT_TIMEOUT: 504,
    ErrorCodes.ANALYSIS_FAILED: 502,
    ErrorCodes.ANALYSIS_TIMEOUT: 504,
    ErrorCodes.UNSUPPORTED_MEDIA_TYPE: 415,
    ErrorCodes.PROVIDER_UNAVAILABLE: 503,
    ErrorCodes.EXPORT_FAILED: 500,
}

DEFAULT_MESSAGES: dict[str, str] = {
    ErrorCodes.CONVERSATION_NOT_FOUND: "Conversation not found",
    ErrorCodes.DOCUMENT_NOT_FOUND: "Document not found",
    ErrorCodes.FORM_NOT_FOUND: "Form not found",
    ErrorCodes.DOWNLOAD_NOT_FOUND: "File not found or expired",
    ErrorCodes.DOWNLOAD_FILE_MISSING: "File not found on the server",
    ErrorCodes.DOWNLOAD_UNAVAILABLE: "Download service is temporarily unavailable",
    ErrorCodes.NO_FILES: "No files were sent",
    ErrorCodes.TOO_MANY_FILES: "Too many files in one request",
    ErrorCodes.FILE_TOO_LARGE: "File exceeds the maximum allowed size",
    ErrorCodes.DOCUMENT_FILE_MISSING: "Stored document file is missing",
    ErrorCodes.CHAT_FAILED: "Failed to generate a response",
    ErrorCodes.CHAT_TIMEOUT: "The AI provider took too long to respond",
    ErrorCodes.ANALYSIS_FAILED: "Failed to analyze the document",
    ErrorCodes.ANALYSIS_TIMEOUT: "Document analysis timed out",
    ErrorCodes.UNSUPPORTED_MEDIA_TYPE: "Unsupported file type",
    ErrorCodes.PROVIDER_UNAVAILABLE: "AI provider is not configured",
    ErrorCodes.EXPORT_FAILED: "Failed to export the file",
}
