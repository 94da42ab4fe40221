"""
AI Provider 추상 인터페이스.

- Provider 추상화로 모델 교체 가능 (모델명은 config가 SSOT)
- 채팅 (일반/스트리밍), 문서 분석 3가지 기능
- 도구(tool) 실행은 Toolbox가 담당, Provider는 호출 루프만 돌린다
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

# =============================================================================
# Result Data Classes
# =============================================================================

@dataclass
class ChatCompletionResult:
    """
    채팅 응답.

    tool 루프를 포함한 전체 호출의 누적 결과.
    """
    text: str
    model: str | None = None
    stop_reason: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    tool_calls: list[str] = field(default_factory=list)  # 실행된 tool 이름 (순서대로)
    rounds: int = 1

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "model": self.model,
            "stop_reason": self.stop_reason,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "tool_calls": self.tool_calls,
            "rounds": self.rounds,
        }


@dataclass
class DocumentAnalysisResult:
    """
    문서 분석 결과.

    extracted_data: 알려진 개인정보 필드 중 값이 있는 것만
    confidence: 0.0 ~ 1.0
    """
    extracted_data: dict[str, Any] = field(default_factory=dict)
    confidence: float = 0.0
    success: bool = True
    model: str | None = None
    tokens: int | None = None
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result = {
            "extracted_data": self.extracted_data,
            "confidence": self.confidence,
            "success": self.success,
            "model": self.model,
            "tokens": self.tokens,
            "error_message": self.error_message,
        }
        # None 값 제거
        return {k: v for k, v in result.items() if v is not None}


# =============================================================================
# Provider Exceptions
# =============================================================================

class ProviderError(Exception):
    """Provider 관련 에러."""

    def __init__(self, code: str, message: str, **context: Any) -> None:
        self.code = code
        self.message = message
        self.context = context
        super().__init__(f"[{code}] {message}")


class CompletionError(ProviderError):
    """채팅 응답 생성 에러."""
    pass


class AnalysisError(ProviderError):
    """문서 분석 에러."""
    pass


# =============================================================================
# Toolbox
# =============================================================================

class Toolbox(ABC):
    """
    모델에 노출되는 도구 모음.

    definitions(): Messages API `tools` 파라미터 형식
    execute(): 실행 결과는 항상 dict (실패도 {"success": False, ...}로 반환)
    """

    @abstractmethod
    def definitions(self) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    async def execute(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        ...


# =============================================================================
# Abstract Provider
# =============================================================================

class LLMProvider(ABC):
    """
    LLM Provider 추상 인터페이스.

    messages는 [{"role": "user"|"assistant"|"system", "content": str}] 형식.
    """

    model: str

    @abstractmethod
    async def generate_response(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None = None,
        toolbox: Toolbox | None = None,
    ) -> ChatCompletionResult:
        """
        전체 응답 생성 (tool 루프 포함).

        Raises:
            CompletionError: API 호출 실패
        """
        ...

    @abstractmethod
    def stream_response(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None = None,
        toolbox: Toolbox | None = None,
    ) -> AsyncIterator[str]:
        """
        텍스트 델타 스트림.

        async generator로 구현. 실패 시 CompletionError를 raise한다.
        """
        ...

    @abstractmethod
    async def analyze_document(
        self,
        file_bytes: bytes,
        mime_type: str,
        prompt: str,
    ) -> DocumentAnalysisResult:
        """
        문서에서 개인정보 필드 추출.

        Args:
            file_bytes: 파일 바이트
            mime_type: MIME 타입
            prompt: 분석 지시 프롬프트

        Raises:
            AnalysisError: 지원하지 않는 형식 / API 실패
        """
        ...
