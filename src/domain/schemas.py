"""
Data schemas for the API.

- 내부 데이터 (다운로드 포인터, AI 로그): dataclass + to_dict()
- HTTP 요청/응답: pydantic 모델 (JSON 키는 camelCase)
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import UUID4, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# =============================================================================
# Download Artifact Schemas
# =============================================================================

@dataclass
class ArtifactInfo:
    """
    다운로드 포인터 값.

    Redis `download:{key}`에 JSON으로 저장된다.
    키(camelCase)는 기존 클라이언트/스크립트와 동일하게 유지.
    """
    file_path: str
    filename: str
    type: str  # csv, pdf
    generated_at: str  # ISO 8601
    record_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "filePath": self.file_path,
            "filename": self.filename,
            "type": self.type,
            "generatedAt": self.generated_at,
            "recordCount": self.record_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ArtifactInfo":
        return cls(
            file_path=data["filePath"],
            filename=data["filename"],
            type=data.get("type", ""),
            generated_at=data.get("generatedAt", ""),
            record_count=int(data.get("recordCount", 0)),
        )


@dataclass
class DownloadLink:
    """1회용 다운로드 링크."""
    key: str
    url: str  # /api/download/{key}
    filename: str
    expires_in: int  # seconds
    record_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "downloadKey": self.key,
            "downloadUrl": self.url,
            "filename": self.filename,
            "expiresIn": self.expires_in,
            "recordCount": self.record_count,
        }


@dataclass
class ExportResult:
    """생성된 export 파일 (디스크에 존재)."""
    path: str
    filename: str
    type: str
    record_count: int
    generated_at: str


# =============================================================================
# AI Log Schema (ai_logs 테이블에 저장)
# =============================================================================

@dataclass
class AiLogRecord:
    """
    LLM 호출 1회의 기록.

    create_ai_log() → complete_ai_log() → save_ai_log() 순서로 사용.
    """
    request_type: str
    started_at: float  # time.monotonic()
    input_data: dict[str, Any] | None = None
    output_data: dict[str, Any] | None = None
    model: str | None = None
    session_id: str | None = None
    tokens: int | None = None
    duration_ms: int | None = None
    status: str = "pending"  # pending, success, error, partial
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_type": self.request_type,
            "session_id": self.session_id,
            "input_data": self.input_data,
            "output_data": self.output_data,
            "model": self.model,
            "tokens": self.tokens,
            "duration": self.duration_ms,
            "status": self.status,
            "error_message": self.error_message,
        }


# =============================================================================
# HTTP DTOs
# =============================================================================

class CamelModel(BaseModel):
    """camelCase JSON ↔ snake_case 속성."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StrictCamelModel(CamelModel):
    """요청 본문용: 알 수 없는 필드는 422."""
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )


# === Chat ===

class ChatMessage(StrictCamelModel):
    role: str = Field(pattern="^(user|assistant|system)$")
    content: str


class ChatRequest(StrictCamelModel):
    messages: list[ChatMessage] = Field(min_length=1)
    conversation_id: str | None = None
    model: str | None = None


class ChatResponse(CamelModel):
    message: str
    timestamp: datetime
    conversation_id: str


class MessageRecord(CamelModel):
    id: str
    role: str
    content: str
    created_at: datetime


# === Documents ===

class DocumentAnalysisResponse(CamelModel):
    extracted_data: dict[str, Any] = Field(default_factory=dict)
    confidence: float
    processed_files: list[str] = Field(default_factory=list)
    failed_files: list[str] = Field(default_factory=list)


class DocumentUploadResponse(CamelModel):
    file_id: str
    filename: str
    uploaded_at: datetime


class DocumentRecord(CamelModel):
    id: str
    filename: str
    original_name: str
    mime_type: str | None = None
    size: int | None = None
    extracted_data: dict[str, Any] | None = None
    processed_at: datetime | None = None
    created_at: datetime


# === Forms ===

class FormFillRequest(StrictCamelModel):
    document_ids: list[UUID4] = Field(max_length=50)
    form_data: dict[str, Any] | None = None


class FormFillResponse(CamelModel):
    filled_data: dict[str, Any]
    confidence: float
    used_documents: list[str] = Field(default_factory=list)
    form_id: str


class FormRecord(CamelModel):
    id: str
    user_id: str | None = None
    form_type: str
    form_data: dict[str, Any]
    document_ids: list[str] | None = None
    confidence: int | None = None
    is_validated: bool
    created_at: datetime
    updated_at: datetime


# === Downloads ===

class DownloadInfoResponse(CamelModel):
    filename: str
    type: str
    generated_at: str
    record_count: int
    download_url: str


class DownloadLinkResponse(CamelModel):
    download_key: str
    download_url: str
    filename: str
    expires_in: int
    record_count: int = 0


# === Health ===

class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    service: str
    version: str

