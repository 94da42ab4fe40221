"""
Chat Service: 대화 생성/조회 + LLM 응답.

- 대화 ID가 없으면 새 대화 생성 (제목: 첫 메시지 앞 5단어)
- 요청마다 마지막 user 메시지와 assistant 응답만 저장 (히스토리 중복 저장 금지)
- 모든 호출은 ai_logs에 기록
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.app.providers.base import LLMProvider, ProviderError, Toolbox
from src.core.logging import complete_ai_log, create_ai_log, save_ai_log
from src.domain.constants import (
    CONVERSATION_TITLE_WORDS,
    DEFAULT_CONVERSATION_TITLE,
    REQUEST_TYPE_CHAT,
    REQUEST_TYPE_CHAT_STREAM,
    ROLE_ASSISTANT,
    ROLE_USER,
)
from src.domain.errors import AppError, ErrorCodes
from src.domain.models import Conversation, Message
from src.domain.schemas import ChatMessage, ChatRequest, ChatResponse

logger = logging.getLogger(__name__)

DEFAULT_CHAT_TIMEOUT = 60.0

# ai_logs input_data에 남길 최대 길이
_LOG_PREVIEW_CHARS = 500


def generate_conversation_title(first_message: str | None) -> str:
    """
    대화 제목 생성.

    첫 메시지의 앞 5단어, 더 있으면 "..." 추가.
    비어 있으면 "Nova Conversa".
    """
    words = (first_message or "").split()
    if not words:
        return DEFAULT_CONVERSATION_TITLE

    title = " ".join(words[:CONVERSATION_TITLE_WORDS])
    if len(words) > CONVERSATION_TITLE_WORDS:
        title += "..."
    return title


def conversation_history(db: Session, conversation_id: str) -> list[Message]:
    """
    대화 메시지 (생성 시각순). LLM 없이 조회 가능.

    Raises:
        AppError: CONVERSATION_NOT_FOUND
    """
    if db.get(Conversation, conversation_id) is None:
        raise AppError(ErrorCodes.CONVERSATION_NOT_FOUND, conversation_id=conversation_id)

    return list(
        db.scalars(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at, Message.id)
        ).all()
    )


def latest_user_message(messages: list[ChatMessage]) -> str | None:
    for message in reversed(messages):
        if message.role == ROLE_USER:
            return message.content
    return None


class ChatService:
    """
    채팅 서비스.

    Usage:
        service = ChatService(db, provider, toolbox, system_prompt)
        response = await service.generate(request)
    """

    def __init__(
        self,
        db: Session,
        provider: LLMProvider,
        toolbox: Toolbox | None = None,
        system_prompt: str | None = None,
        timeout: float = DEFAULT_CHAT_TIMEOUT,
    ):
        self.db = db
        self.provider = provider
        self.toolbox = toolbox
        self.system_prompt = system_prompt
        self.timeout = timeout

    # =========================================================================
    # Conversations
    # =========================================================================

    def resolve_conversation(self, request: ChatRequest) -> Conversation:
        """
        요청의 대화 반환.

        conversation_id 있음 → 조회 (없으면 404)
        conversation_id 없음 → 새 대화 생성

        Raises:
            AppError: CONVERSATION_NOT_FOUND
        """
        if request.conversation_id:
            conversation = self.db.get(Conversation, request.conversation_id)
            if conversation is None:
                raise AppError(
                    ErrorCodes.CONVERSATION_NOT_FOUND,
                    conversation_id=request.conversation_id,
                )
            return conversation

        # 제목은 역할과 무관하게 첫 메시지 기준
        first = request.messages[0].content if request.messages else None
        conversation = Conversation(
            title=generate_conversation_title(first),
            metadata_={"model": request.model or self.provider.model},
        )
        self.db.add(conversation)
        self.db.commit()
        logger.info(f"Conversation created: {conversation.id}")
        return conversation

    def history(self, conversation_id: str) -> list[Message]:
        return conversation_history(self.db, conversation_id)

    def _save_message(self, conversation_id: str, role: str, content: str) -> Message:
        message = Message(conversation_id=conversation_id, role=role, content=content)
        self.db.add(message)
        self.db.commit()
        return message

    def _input_summary(self, request: ChatRequest) -> dict[str, Any]:
        last = latest_user_message(request.messages) or ""
        return {
            "messageCount": len(request.messages),
            "lastMessage": last[:_LOG_PREVIEW_CHARS],
        }

    # =========================================================================
    # Chat
    # =========================================================================

    async def generate(self, request: ChatRequest) -> ChatResponse:
        """
        전체 응답 생성.

        Raises:
            AppError: CONVERSATION_NOT_FOUND, CHAT_TIMEOUT, CHAT_FAILED
        """
        conversation = self.resolve_conversation(request)

        user_content = latest_user_message(request.messages)
        if user_content:
            self._save_message(conversation.id, ROLE_USER, user_content)

        log = create_ai_log(
            REQUEST_TYPE_CHAT,
            input_data=self._input_summary(request),
            model=self.provider.model,
            session_id=conversation.id,
        )
        payload = [m.model_dump() for m in request.messages]

        try:
            result = await asyncio.wait_for(
                self.provider.generate_response(payload, self.system_prompt, self.toolbox),
                timeout=self.timeout,
            )
        except TimeoutError as e:
            logger.warning(f"Chat timed out after {self.timeout}s (conversation={conversation.id})")
            complete_ai_log(log, success=False, error_message=f"timeout after {self.timeout}s")
            save_ai_log(self.db, log)
            raise AppError(ErrorCodes.CHAT_TIMEOUT, timeout=self.timeout) from e
        except ProviderError as e:
            logger.error(f"Chat failed (conversation={conversation.id}): {e}")
            complete_ai_log(log, success=False, error_message=str(e))
            save_ai_log(self.db, log)
            raise AppError(ErrorCodes.CHAT_FAILED, message=e.message, provider_code=e.code) from e

        self._save_message(conversation.id, ROLE_ASSISTANT, result.text)

        complete_ai_log(
            log,
            success=True,
            output_data={
                "length": len(result.text),
                "toolCalls": result.tool_calls,
                "stopReason": result.stop_reason,
            },
            tokens=result.total_tokens or None,
        )
        save_ai_log(self.db, log)

        return ChatResponse(
            message=result.text,
            timestamp=datetime.now(UTC),
            conversation_id=conversation.id,
        )

    async def stream(
        self,
        request: ChatRequest,
        conversation_id: str,
    ) -> AsyncIterator[dict[str, Any]]:
        """
        SSE 이벤트 스트림.

        이벤트:
        - {"content": delta}
        - {"type": "done", "conversationId": ...}
        - {"error": message}  (실패 시, 이후 종료)

        성공적으로 끝나면 user 메시지와 전체 응답을 저장한다.
        """
        log = create_ai_log(
            REQUEST_TYPE_CHAT_STREAM,
            input_data=self._input_summary(request),
            model=self.provider.model,
            session_id=conversation_id,
        )
        payload = [m.model_dump() for m in request.messages]
        chunks: list[str] = []

        try:
            async for delta in self.provider.stream_response(
                payload, self.system_prompt, self.toolbox
            ):
                chunks.append(delta)
                yield {"content": delta}
        except ProviderError as e:
            logger.error(f"Chat stream failed (conversation={conversation_id}): {e}")
            complete_ai_log(
                log,
                success=False,
                output_data={"length": len("".join(chunks))},
                error_message=str(e),
            )
            save_ai_log(self.db, log)
            yield {"error": e.message}
            return
        except Exception as e:
            logger.error(f"Chat stream crashed (conversation={conversation_id}): {e}", exc_info=True)
            complete_ai_log(log, success=False, error_message=str(e))
            save_ai_log(self.db, log)
            yield {"error": "Failed to generate a response"}
            return

        full_text = "".join(chunks)
        user_content = latest_user_message(request.messages)
        if user_content:
            self._save_message(conversation_id, ROLE_USER, user_content)
        self._save_message(conversation_id, ROLE_ASSISTANT, full_text)

        complete_ai_log(log, success=True, output_data={"length": len(full_text)})
        save_ai_log(self.db, log)

        yield {"type": "done", "conversationId": conversation_id}
