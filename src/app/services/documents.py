"""
Documents Service: 업로드 / 개인정보 추출.

- analyze_batch(): 여러 파일을 분석 → 결과 병합 (뒤 파일 우선)
  실패한 파일은 failed_files로 보고, 배치는 계속 진행
- upload(): uploads/{epoch_ms}-{safe name}으로 저장 + documents 행 생성
- analyze_stored(): 업로드된 문서를 디스크에서 읽어 분석
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy.orm import Session

from src.app.providers.base import AnalysisError, DocumentAnalysisResult, LLMProvider
from src.core.ids import generate_stored_filename
from src.core.logging import complete_ai_log, create_ai_log, save_ai_log
from src.domain.constants import (
    DEFAULT_MAX_FILE_SIZE_MB,
    DEFAULT_MAX_FILES,
    REQUEST_TYPE_DOCUMENT_ANALYSIS,
    get_mime_type,
)
from src.domain.errors import AppError, ErrorCodes
from src.domain.models import Document
from src.domain.schemas import DocumentAnalysisResponse, DocumentUploadResponse

logger = logging.getLogger(__name__)

DEFAULT_ANALYSIS_TIMEOUT = 60.0

_GENERIC_MIME_TYPES = ("", "application/octet-stream")


@dataclass
class IncomingFile:
    """요청으로 받은 파일 (multipart에서 읽은 바이트)."""
    filename: str
    content_type: str | None
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def mime_type(self) -> str:
        """content_type이 비었거나 generic이면 확장자로 추정."""
        if self.content_type and self.content_type not in _GENERIC_MIME_TYPES:
            return self.content_type.split(";", 1)[0].strip()
        return get_mime_type(self.filename)


class DocumentService:
    """
    문서 서비스.

    Usage:
        service = DocumentService(db, provider, uploads_dir, analysis_prompt)
        response = await service.analyze_batch(files)
    """

    def __init__(
        self,
        db: Session,
        provider: LLMProvider | None,
        uploads_dir: Path,
        analysis_prompt: str = "",
        max_files: int = DEFAULT_MAX_FILES,
        max_size_mb: int = DEFAULT_MAX_FILE_SIZE_MB,
        timeout: float = DEFAULT_ANALYSIS_TIMEOUT,
    ):
        """
        Args:
            db: DB 세션
            provider: LLM Provider (업로드/조회만 할 때는 None)
            uploads_dir: 업로드 저장 디렉터리
            analysis_prompt: 분석 프롬프트
            max_files: 배치당 최대 파일 수
            max_size_mb: 파일당 최대 크기
            timeout: 파일당 분석 타임아웃(초)
        """
        self.db = db
        self.provider = provider
        self.uploads_dir = uploads_dir
        self.analysis_prompt = analysis_prompt
        self.max_files = max_files
        self.max_size_bytes = max_size_mb * 1024 * 1024
        self.timeout = timeout

    # =========================================================================
    # Validation
    # =========================================================================

    def validate_files(self, files: list[IncomingFile]) -> None:
        """
        Raises:
            AppError: NO_FILES, TOO_MANY_FILES, FILE_TOO_LARGE
        """
        if not files:
            raise AppError(ErrorCodes.NO_FILES)
        if len(files) > self.max_files:
            raise AppError(ErrorCodes.TOO_MANY_FILES, count=len(files), max_files=self.max_files)
        for file in files:
            if file.size > self.max_size_bytes:
                raise AppError(
                    ErrorCodes.FILE_TOO_LARGE,
                    filename=file.filename,
                    size=file.size,
                    max_bytes=self.max_size_bytes,
                )

    # =========================================================================
    # Analysis
    # =========================================================================

    async def _analyze(
        self,
        data: bytes,
        mime_type: str,
        filename: str,
        session_id: str | None = None,
    ) -> DocumentAnalysisResult:
        """
        파일 1개 분석 + ai_logs 기록.

        Raises:
            AppError: PROVIDER_UNAVAILABLE, ANALYSIS_TIMEOUT, ANALYSIS_FAILED, UNSUPPORTED_MEDIA_TYPE
        """
        if self.provider is None:
            raise AppError(ErrorCodes.PROVIDER_UNAVAILABLE)

        log = create_ai_log(
            REQUEST_TYPE_DOCUMENT_ANALYSIS,
            input_data={"filename": filename, "mimeType": mime_type, "size": len(data)},
            model=self.provider.model,
            session_id=session_id,
        )

        try:
            result = await asyncio.wait_for(
                self.provider.analyze_document(data, mime_type, self.analysis_prompt),
                timeout=self.timeout,
            )
        except TimeoutError as e:
            complete_ai_log(log, success=False, error_message=f"timeout after {self.timeout}s")
            save_ai_log(self.db, log)
            raise AppError(ErrorCodes.ANALYSIS_TIMEOUT, filename=filename) from e
        except AnalysisError as e:
            complete_ai_log(log, success=False, error_message=str(e))
            save_ai_log(self.db, log)
            code = (
                ErrorCodes.UNSUPPORTED_MEDIA_TYPE
                if e.code == ErrorCodes.UNSUPPORTED_MEDIA_TYPE
                else ErrorCodes.ANALYSIS_FAILED
            )
            raise AppError(code, filename=filename, message=e.message) from e

        complete_ai_log(
            log,
            success=True,
            output_data={
                "fields": sorted(result.extracted_data),
                "confidence": result.confidence,
            },
            tokens=result.tokens,
        )
        save_ai_log(self.db, log)
        return result

    async def analyze_batch(self, files: list[IncomingFile]) -> DocumentAnalysisResponse:
        """
        여러 파일 분석.

        - 추출 데이터는 순서대로 병합 (같은 필드는 뒤 파일 값 우선)
        - 성공한 파일마다 documents 행 저장 (extracted_data, processed_at)
        - confidence: 성공한 파일들의 평균 (없으면 0.0)
        """
        self.validate_files(files)

        combined: dict = {}
        confidences: list[float] = []
        processed: list[str] = []
        failed: list[str] = []

        for file in files:
            try:
                result = await self._analyze(file.data, file.mime_type, file.filename)
            except AppError as e:
                if e.code == ErrorCodes.PROVIDER_UNAVAILABLE:
                    raise
                logger.warning(f"Analysis failed for {file.filename}: {e}")
                failed.append(file.filename)
                continue

            combined.update(result.extracted_data)
            confidences.append(result.confidence)
            processed.append(file.filename)

            self.db.add(
                Document(
                    filename=generate_stored_filename(file.filename),
                    original_name=file.filename,
                    mime_type=file.mime_type,
                    size=file.size,
                    extracted_data=result.extracted_data,
                    processed_at=datetime.now(UTC),
                )
            )
            self.db.commit()

        confidence = sum(confidences) / len(confidences) if confidences else 0.0
        logger.info(
            f"Analyzed {len(processed)}/{len(files)} documents "
            f"(fields={len(combined)}, failed={len(failed)})"
        )

        return DocumentAnalysisResponse(
            extracted_data=combined,
            confidence=round(confidence, 4),
            processed_files=processed,
            failed_files=failed,
        )

    async def analyze_stored(self, document_id: str) -> DocumentAnalysisResponse:
        """
        업로드된 문서 분석 후 extracted_data 갱신.

        Raises:
            AppError: DOCUMENT_NOT_FOUND, DOCUMENT_FILE_MISSING, 분석 에러
        """
        document = self.get(document_id)
        if not document.path or not Path(document.path).is_file():
            raise AppError(ErrorCodes.DOCUMENT_FILE_MISSING, document_id=document_id)

        data = Path(document.path).read_bytes()
        mime_type = document.mime_type or get_mime_type(document.original_name)
        result = await self._analyze(
            data, mime_type, document.original_name, session_id=document.id
        )

        document.extracted_data = result.extracted_data
        document.processed_at = datetime.now(UTC)
        self.db.commit()

        return DocumentAnalysisResponse(
            extracted_data=result.extracted_data,
            confidence=result.confidence,
            processed_files=[document.original_name],
            failed_files=[],
        )

    # =========================================================================
    # Upload / Lookup
    # =========================================================================

    def upload(self, file: IncomingFile) -> DocumentUploadResponse:
        """
        파일 저장 + documents 행 생성.

        Raises:
            AppError: NO_FILES, FILE_TOO_LARGE
        """
        self.validate_files([file])

        stored_name = generate_stored_filename(file.filename)
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        path = self.uploads_dir / stored_name
        path.write_bytes(file.data)

        document = Document(
            filename=stored_name,
            original_name=file.filename,
            mime_type=file.mime_type,
            size=file.size,
            path=str(path),
        )
        self.db.add(document)
        self.db.commit()
        logger.info(f"Document uploaded: {document.id} ({stored_name}, {file.size} bytes)")

        return DocumentUploadResponse(
            file_id=document.id,
            filename=document.filename,
            uploaded_at=document.created_at,
        )

    def get(self, document_id: str) -> Document:
        """
        Raises:
            AppError: DOCUMENT_NOT_FOUND
        """
        document = self.db.get(Document, document_id)
        if document is None:
            raise AppError(ErrorCodes.DOCUMENT_NOT_FOUND, document_id=document_id)
        return document
