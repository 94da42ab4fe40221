"""
Anthropic (Claude) Provider.

- 채팅: Messages API + tool 루프 (stop_reason == "tool_use"이면 도구 실행 후 재호출)
- 스트리밍: messages.stream()의 text 델타를 그대로 전달
- 문서 분석: 이미지/PDF는 base64 블록, text/plain은 본문 삽입
"""

import base64
import json
import logging
import os
from collections.abc import AsyncIterator
from typing import Any

import anthropic

from src.domain.constants import (
    DEFAULT_ANALYSIS_CONFIDENCE,
    DEFAULT_LLM_MODEL,
    IMAGE_MIME_TYPES,
    PDF_MIME_TYPE,
    PERSONAL_DATA_FIELDS,
    ROLE_ASSISTANT,
    ROLE_SYSTEM,
    ROLE_USER,
    TEXT_MIME_TYPE,
)
from src.utils.retry import retry_with_exponential_backoff

from .base import (
    AnalysisError,
    ChatCompletionResult,
    CompletionError,
    DocumentAnalysisResult,
    LLMProvider,
    ProviderError,
    Toolbox,
)

logger = logging.getLogger(__name__)

# 재시도 가능한 예외 (일시적 실패)
RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    anthropic.RateLimitError,
    anthropic.APIConnectionError,
    anthropic.APITimeoutError,
    anthropic.InternalServerError,
)


# =============================================================================
# Message Normalization
# =============================================================================


def normalize_messages(
    messages: list[dict[str, str]],
    system_prompt: str | None = None,
) -> tuple[str | None, list[dict[str, Any]]]:
    """
    클라이언트 메시지를 Messages API 형식으로 정리.

    - system 역할 메시지 → system 프롬프트 뒤에 이어붙임
    - 첫 user 이전의 assistant 메시지 → 버림 (API는 user로 시작해야 함)
    - 같은 역할이 연속되면 하나로 합침
    - 빈 content는 버림

    Returns:
        (system, messages)
    """
    system_parts = [system_prompt] if system_prompt else []
    normalized: list[dict[str, Any]] = []

    for message in messages:
        role = message.get("role")
        content = (message.get("content") or "").strip()
        if not content:
            continue

        if role == ROLE_SYSTEM:
            system_parts.append(content)
            continue
        if role not in (ROLE_USER, ROLE_ASSISTANT):
            continue
        if not normalized and role == ROLE_ASSISTANT:
            continue

        if normalized and normalized[-1]["role"] == role:
            normalized[-1]["content"] += "\n\n" + content
        else:
            normalized.append({"role": role, "content": content})

    system = "\n\n".join(system_parts) if system_parts else None
    return system, normalized


def _block_to_param(block: Any) -> dict[str, Any] | None:
    """응답 content 블록 → 다음 요청용 assistant content."""
    if block.type == "text":
        return {"type": "text", "text": block.text}
    if block.type == "tool_use":
        return {
            "type": "tool_use",
            "id": block.id,
            "name": block.name,
            "input": block.input,
        }
    return None


def _extract_text(content: list[Any]) -> str:
    return "".join(block.text for block in content if block.type == "text")


def parse_json_object(text: str) -> dict[str, Any]:
    """
    응답에서 JSON 객체 추출.

    ```json ... ``` 블록 우선, 없으면 첫 '{' ~ 마지막 '}'.

    Raises:
        ValueError: JSON 없음 / 파싱 실패 / 객체가 아님
    """
    if "```json" in text:
        start = text.find("```json") + 7
        end = text.find("```", start)
        json_str = text[start:end if end != -1 else None].strip()
    elif "{" in text:
        start = text.find("{")
        end = text.rfind("}") + 1
        json_str = text[start:end]
    else:
        raise ValueError("No JSON found in response")

    data = json.loads(json_str)
    if not isinstance(data, dict):
        raise ValueError("Response JSON is not an object")
    return data


# =============================================================================
# Provider
# =============================================================================


class ClaudeProvider(LLMProvider):
    """
    Claude API Provider.

    Usage:
        provider = ClaudeProvider(model="claude-opus-4-5-20251101")
        result = await provider.generate_response(messages, system_prompt, toolbox)
    """

    def __init__(
        self,
        model: str = DEFAULT_LLM_MODEL,
        api_key: str | None = None,
        max_tokens: int = 4096,
        temperature: float | None = None,
        max_tool_rounds: int = 5,
        max_retries: int = 3,
    ):
        """
        Args:
            model: 모델 ID (config에서 주입)
            api_key: API 키 (환경변수 MY_ANTHROPIC_KEY 또는 ANTHROPIC_API_KEY 사용 가능)
            max_tokens: 최대 토큰 수
            temperature: 샘플링 온도 (None이면 API 기본값)
            max_tool_rounds: 한 요청에서 도구 실행을 허용하는 최대 라운드
            max_retries: 일시적 실패 재시도 횟수

        Raises:
            ProviderError: API 키가 없을 때 (fail-fast)
        """
        self.model = model
        # API 키 결정: 인자 > MY_ANTHROPIC_KEY > ANTHROPIC_API_KEY
        self.api_key = (
            api_key
            or os.environ.get("MY_ANTHROPIC_KEY")
            or os.environ.get("ANTHROPIC_API_KEY")
        )

        if not self.api_key:
            raise ProviderError(
                "ANTHROPIC_KEY_MISSING",
                "Anthropic API key is missing. "
                "Set MY_ANTHROPIC_KEY or ANTHROPIC_API_KEY.",
            )

        self.max_tokens = max_tokens
        self.temperature = temperature
        self.max_tool_rounds = max_tool_rounds
        self.max_retries = max_retries
        self._client: Any = None

    def _get_client(self) -> Any:
        """Anthropic 클라이언트 (lazy init)."""
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return self._client

    def _request_kwargs(
        self,
        system: str | None,
        messages: list[dict[str, Any]],
        toolbox: Toolbox | None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        if toolbox is not None:
            kwargs["tools"] = toolbox.definitions()
        return kwargs

    async def _create_with_retry(self, **kwargs: Any) -> Any:
        """재시도 로직이 적용된 messages.create."""
        client = self._get_client()

        async def _api_call() -> Any:
            return await client.messages.create(**kwargs)

        return await retry_with_exponential_backoff(
            _api_call,
            max_retries=self.max_retries,
            initial_delay=1.0,
            max_delay=30.0,
            exceptions=RETRYABLE_EXCEPTIONS,
            label="anthropic.messages.create",
        )

    async def _run_tools(self, content: list[Any], toolbox: Toolbox) -> list[dict[str, Any]]:
        """tool_use 블록 실행 → tool_result 블록 목록."""
        results = []
        for block in content:
            if block.type != "tool_use":
                continue
            logger.info(f"Running tool: {block.name}")
            output = await toolbox.execute(block.name, dict(block.input or {}))
            results.append({
                "type": "tool_result",
                "tool_use_id": block.id,
                "content": json.dumps(output, ensure_ascii=False, default=str),
                "is_error": not output.get("success", True),
            })
        return results

    @staticmethod
    def _continue_with_tools(
        messages: list[dict[str, Any]],
        content: list[Any],
        tool_results: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        assistant_content = [p for p in (_block_to_param(b) for b in content) if p]
        return [
            *messages,
            {"role": ROLE_ASSISTANT, "content": assistant_content},
            {"role": ROLE_USER, "content": tool_results},
        ]

    # =========================================================================
    # Chat
    # =========================================================================

    async def generate_response(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None = None,
        toolbox: Toolbox | None = None,
    ) -> ChatCompletionResult:
        """
        전체 응답 생성.

        tool 루프:
        1. 호출 → stop_reason == "tool_use"이면 도구 실행
        2. assistant(tool_use) + user(tool_result)를 덧붙여 재호출
        3. max_tool_rounds 초과 시 마지막 응답의 텍스트 사용
        """
        system, api_messages = normalize_messages(messages, system_prompt)
        if not api_messages:
            raise CompletionError("EMPTY_CONVERSATION", "No user message to answer")

        result = ChatCompletionResult(text="", model=self.model, rounds=0)

        try:
            for round_no in range(self.max_tool_rounds + 1):
                response = await self._create_with_retry(
                    **self._request_kwargs(system, api_messages, toolbox)
                )
                result.rounds = round_no + 1
                result.model = getattr(response, "model", None) or self.model
                result.stop_reason = response.stop_reason
                usage = getattr(response, "usage", None)
                if usage is not None:
                    result.input_tokens += usage.input_tokens or 0
                    result.output_tokens += usage.output_tokens or 0

                if response.stop_reason != "tool_use" or toolbox is None:
                    result.text = _extract_text(response.content)
                    return result

                if round_no == self.max_tool_rounds:
                    logger.warning(
                        f"Tool round limit reached ({self.max_tool_rounds}); "
                        "returning partial answer"
                    )
                    result.text = _extract_text(response.content)
                    if not result.text:
                        raise CompletionError(
                            "TOOL_ROUNDS_EXCEEDED",
                            "The assistant needed too many tool calls to answer",
                            max_tool_rounds=self.max_tool_rounds,
                        )
                    return result

                tool_results = await self._run_tools(response.content, toolbox)
                result.tool_calls.extend(
                    b.name for b in response.content if b.type == "tool_use"
                )
                api_messages = self._continue_with_tools(
                    api_messages, response.content, tool_results
                )

        except ProviderError:
            raise
        except anthropic.APIError as e:
            logger.error(f"Chat completion failed: {e}", exc_info=True)
            raise CompletionError(
                "COMPLETION_FAILED",
                self._get_user_friendly_error_message(e),
                model=self.model,
            ) from e

        # Should never reach here
        raise CompletionError("COMPLETION_FAILED", "Unexpected tool loop exit")

    async def stream_response(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None = None,
        toolbox: Toolbox | None = None,
    ) -> AsyncIterator[str]:
        """
        텍스트 델타 스트림.

        라운드 종료 시 stop_reason == "tool_use"이면 도구를 실행하고
        다음 라운드를 이어서 스트리밍한다. (스트림은 재시도하지 않음)
        """
        system, api_messages = normalize_messages(messages, system_prompt)
        if not api_messages:
            raise CompletionError("EMPTY_CONVERSATION", "No user message to answer")

        client = self._get_client()

        try:
            for round_no in range(self.max_tool_rounds + 1):
                kwargs = self._request_kwargs(system, api_messages, toolbox)
                async with client.messages.stream(**kwargs) as stream:
                    async for text in stream.text_stream:
                        yield text
                    final = await stream.get_final_message()

                if final.stop_reason != "tool_use" or toolbox is None:
                    return
                if round_no == self.max_tool_rounds:
                    logger.warning(
                        f"Tool round limit reached while streaming ({self.max_tool_rounds})"
                    )
                    return

                tool_results = await self._run_tools(final.content, toolbox)
                api_messages = self._continue_with_tools(
                    api_messages, final.content, tool_results
                )

        except anthropic.APIError as e:
            logger.error(f"Streaming failed: {e}", exc_info=True)
            raise CompletionError(
                "COMPLETION_FAILED",
                self._get_user_friendly_error_message(e),
                model=self.model,
            ) from e

    # =========================================================================
    # Document Analysis
    # =========================================================================

    def _document_block(self, file_bytes: bytes, mime_type: str) -> dict[str, Any]:
        """MIME 타입별 content 블록."""
        if mime_type in IMAGE_MIME_TYPES:
            return {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": mime_type,
                    "data": base64.b64encode(file_bytes).decode("ascii"),
                },
            }
        if mime_type == PDF_MIME_TYPE:
            return {
                "type": "document",
                "source": {
                    "type": "base64",
                    "media_type": PDF_MIME_TYPE,
                    "data": base64.b64encode(file_bytes).decode("ascii"),
                },
            }
        if mime_type == TEXT_MIME_TYPE:
            text = file_bytes.decode("utf-8", errors="replace")
            return {"type": "text", "text": f"Conteúdo do documento:\n\n{text}"}

        raise AnalysisError(
            "UNSUPPORTED_MEDIA_TYPE",
            f"Unsupported document type: {mime_type}",
            mime_type=mime_type,
        )

    async def analyze_document(
        self,
        file_bytes: bytes,
        mime_type: str,
        prompt: str,
    ) -> DocumentAnalysisResult:
        """
        문서에서 개인정보 필드 추출.

        - 알려진 필드(PERSONAL_DATA_FIELDS) 중 값이 있는 것만 남김
        - confidence: 모델 값 (0~1로 보정), 없으면 기본값
        """
        block = self._document_block(file_bytes, mime_type)

        try:
            response = await self._create_with_retry(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{
                    "role": ROLE_USER,
                    "content": [block, {"type": "text", "text": prompt}],
                }],
            )
        except anthropic.APIError as e:
            logger.error(f"Document analysis failed: {e}", exc_info=True)
            raise AnalysisError(
                "ANALYSIS_FAILED",
                self._get_user_friendly_error_message(e),
                model=self.model,
            ) from e

        response_text = _extract_text(response.content)
        try:
            data = parse_json_object(response_text)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Unparseable analysis response: {e}")
            raise AnalysisError(
                "PARSE_FAILED",
                f"Failed to parse analysis response: {e}",
                model=self.model,
            ) from e

        usage = getattr(response, "usage", None)
        tokens = (usage.input_tokens + usage.output_tokens) if usage is not None else None

        return DocumentAnalysisResult(
            extracted_data=self._filter_fields(data),
            confidence=self._coerce_confidence(data.get("confidence")),
            success=True,
            model=getattr(response, "model", None) or self.model,
            tokens=tokens,
        )

    @staticmethod
    def _filter_fields(data: dict[str, Any]) -> dict[str, Any]:
        """알려진 필드 중 비어 있지 않은 값만. extractedData로 감싼 응답도 허용."""
        nested = data.get("extractedData")
        source = nested if isinstance(nested, dict) else data

        extracted: dict[str, Any] = {}
        for name in PERSONAL_DATA_FIELDS:
            value = source.get(name)
            if value is None:
                continue
            if isinstance(value, str):
                value = value.strip()
                if not value:
                    continue
            extracted[name] = value
        return extracted

    @staticmethod
    def _coerce_confidence(value: Any) -> float:
        if value is None or isinstance(value, bool):
            return DEFAULT_ANALYSIS_CONFIDENCE
        try:
            confidence = float(value)
        except (TypeError, ValueError):
            return DEFAULT_ANALYSIS_CONFIDENCE
        # 0~100 스케일로 준 경우
        if confidence > 1:
            confidence /= 100
        return min(max(confidence, 0.0), 1.0)

    # =========================================================================
    # Errors
    # =========================================================================

    def _get_user_friendly_error_message(self, error: Exception) -> str:
        """사용자 친화적인 에러 메시지 생성."""
        if isinstance(error, anthropic.APITimeoutError):
            return "The AI service took too long to respond. Please try again."
        if isinstance(error, anthropic.APIConnectionError):
            return "Could not reach the AI service. Check the network connection."
        if isinstance(error, anthropic.RateLimitError):
            return "The AI service rate limit was reached. Please try again shortly."
        if isinstance(error, anthropic.AuthenticationError):
            return "AI service authentication failed. Check the API key."
        if isinstance(error, anthropic.PermissionDeniedError):
            return "The API key is not allowed to perform this request."
        if isinstance(error, anthropic.BadRequestError):
            return "The AI service rejected the request."
        if isinstance(error, anthropic.InternalServerError):
            return "The AI service is temporarily unavailable."
        return "Failed to get a response from the AI service."
