"""
test_base.py - Provider 기본 클래스 테스트
"""

import pytest

from src.app.providers.base import (
    AnalysisError,
    ChatCompletionResult,
    CompletionError,
    DocumentAnalysisResult,
    LLMProvider,
    ProviderError,
    Toolbox,
)

# =============================================================================
# ChatCompletionResult 테스트
# =============================================================================


class TestChatCompletionResult:
    """ChatCompletionResult 데이터클래스 테스트."""

    def test_defaults(self):
        result = ChatCompletionResult(text="Olá")

        assert result.tool_calls == []
        assert result.rounds == 1
        assert result.total_tokens == 0

    def test_total_tokens(self):
        result = ChatCompletionResult(text="x", input_tokens=120, output_tokens=30)

        assert result.total_tokens == 150

    def test_to_dict(self):
        result = ChatCompletionResult(
            text="x", model="m", stop_reason="end_turn", tool_calls=["get_system_stats"], rounds=2
        )

        data = result.to_dict()

        assert data["tool_calls"] == ["get_system_stats"]
        assert data["rounds"] == 2
        assert data["stop_reason"] == "end_turn"


# =============================================================================
# DocumentAnalysisResult 테스트
# =============================================================================


class TestDocumentAnalysisResult:
    """DocumentAnalysisResult 데이터클래스 테스트."""

    def test_to_dict_drops_none(self):
        result = DocumentAnalysisResult(extracted_data={"cpf": "123"}, confidence=0.9)

        data = result.to_dict()

        assert data == {"extracted_data": {"cpf": "123"}, "confidence": 0.9, "success": True}


# =============================================================================
# Exception 테스트
# =============================================================================


class TestProviderErrors:
    """Provider 예외 테스트."""

    def test_provider_error_fields(self):
        error = ProviderError("ANTHROPIC_KEY_MISSING", "missing key", env="MY_ANTHROPIC_KEY")

        assert error.code == "ANTHROPIC_KEY_MISSING"
        assert error.message == "missing key"
        assert error.context == {"env": "MY_ANTHROPIC_KEY"}
        assert str(error) == "[ANTHROPIC_KEY_MISSING] missing key"

    def test_subclasses(self):
        assert issubclass(CompletionError, ProviderError)
        assert issubclass(AnalysisError, ProviderError)


# =============================================================================
# ABC 테스트
# =============================================================================


class TestAbstractInterfaces:
    """추상 클래스 인스턴스화 불가."""

    def test_llm_provider_is_abstract(self):
        with pytest.raises(TypeError):
            LLMProvider()  # type: ignore[abstract]

    def test_toolbox_is_abstract(self):
        with pytest.raises(TypeError):
            Toolbox()  # type: ignore[abstract]
