"""
Logging: 프로세스 로깅 설정 + AI 요청 로그 (ai_logs 테이블)

규칙:
- 모듈마다 logger = logging.getLogger(__name__)
- AI 로그 저장 실패는 사용자 요청을 실패시키지 않음 (로그만 남김)
"""

import logging
import time
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.domain.constants import AI_LOG_ERROR, AI_LOG_PARTIAL, AI_LOG_SUCCESS
from src.domain.models import AiLog
from src.domain.schemas import AiLogRecord

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# 외부 라이브러리 중 기본 INFO가 너무 시끄러운 것들
_NOISY_LOGGERS = ("httpx", "httpcore", "anthropic", "multipart")


# =============================================================================
# Process Logging
# =============================================================================


def setup_logging(level: str = "INFO") -> None:
    """
    루트 로거 설정 (앱 시작 시 1회).

    이미 핸들러가 있으면 (uvicorn, pytest 등) 레벨만 맞춘다.
    """
    root = logging.getLogger()
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    if not root.handlers:
        logging.basicConfig(level=numeric_level, format=LOG_FORMAT)
    root.setLevel(numeric_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


# =============================================================================
# AI Request Log
# =============================================================================


def create_ai_log(
    request_type: str,
    input_data: dict[str, Any] | None = None,
    model: str | None = None,
    session_id: str | None = None,
) -> AiLogRecord:
    """
    새 AI 로그 생성 (호출 직전).

    Args:
        request_type: chat, chat_stream, document_analysis, form_fill
        input_data: 요청 요약 (메시지 수, 파일명 등)
        model: 모델 ID
        session_id: 대화 ID 등 묶음 키

    Returns:
        시작 시각이 기록된 AiLogRecord
    """
    return AiLogRecord(
        request_type=request_type,
        started_at=time.monotonic(),
        input_data=input_data,
        model=model,
        session_id=session_id,
    )


def complete_ai_log(
    log: AiLogRecord,
    success: bool,
    output_data: dict[str, Any] | None = None,
    tokens: int | None = None,
    error_message: str | None = None,
    partial: bool = False,
) -> None:
    """
    AI 로그 완료 처리.

    Args:
        log: create_ai_log()의 반환값
        success: 성공 여부
        output_data: 응답 요약
        tokens: 입력+출력 토큰 수
        error_message: 실패 사유
        partial: 일부만 성공 (배치 분석 등)
    """
    log.duration_ms = int((time.monotonic() - log.started_at) * 1000)
    log.output_data = output_data
    log.tokens = tokens

    if success:
        log.status = AI_LOG_PARTIAL if partial else AI_LOG_SUCCESS
    else:
        log.status = AI_LOG_ERROR
        log.error_message = error_message


def save_ai_log(session: Session, log: AiLogRecord) -> AiLog | None:
    """
    AI 로그를 ai_logs 테이블에 저장.

    실패해도 예외를 전파하지 않는다.

    Returns:
        저장된 AiLog (실패 시 None)
    """
    row = AiLog(
        session_id=log.session_id,
        request_type=log.request_type,
        input_data=log.input_data,
        output_data=log.output_data,
        model=log.model,
        tokens=log.tokens,
        duration=log.duration_ms,
        status=log.status,
        error_message=log.error_message,
    )
    try:
        session.add(row)
        session.commit()
        return row
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Failed to save AI log ({log.request_type}): {e}")
        return None
