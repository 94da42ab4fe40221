"""
Chat Routes: AI 어시스턴트 대화.

- POST /api/chat → 전체 응답
- POST /api/chat/stream → SSE 스트림
- GET /api/chat/conversation/{id}/history → 대화 메시지
"""

import json
import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from src.app.dependencies import build_chat_service, get_chat_service, get_provider
from src.app.providers.base import LLMProvider
from src.app.services.chat import ChatService, conversation_history
from src.core.database import get_db
from src.domain.schemas import ChatRequest, ChatResponse, MessageRecord

logger = logging.getLogger(__name__)

api_router = APIRouter()


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


@api_router.post("", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    service: ChatService = Depends(get_chat_service),
) -> ChatResponse:
    """메시지 목록 → assistant 응답."""
    return await service.generate(body)


@api_router.post("/stream")
async def chat_stream(
    request: Request,
    body: ChatRequest,
    db: Session = Depends(get_db),
    provider: LLMProvider = Depends(get_provider),
) -> StreamingResponse:
    """
    SSE 스트림.

    대화 확인/생성은 응답 시작 전에 끝낸다 (없는 대화 ID는 404).
    스트림 본문은 요청 세션이 닫힌 뒤에도 돌기 때문에 별도 세션을 쓴다.
    """
    conversation = build_chat_service(request, db, provider).resolve_conversation(body)
    conversation_id = conversation.id
    session_factory = request.app.state.session_factory
    logger.info(f"Chat stream started (conversation={conversation_id})")

    async def event_generator() -> AsyncGenerator[str, None]:
        with session_factory() as session:
            service = build_chat_service(request, session, provider)
            async for event in service.stream(body, conversation_id):
                yield _sse(event)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


@api_router.get("/conversation/{conversation_id}/history", response_model=list[MessageRecord])
async def get_conversation_history(
    conversation_id: str,
    db: Session = Depends(get_db),
) -> list[MessageRecord]:
    messages = conversation_history(db, conversation_id)
    return [MessageRecord.model_validate(m, from_attributes=True) for m in messages]
