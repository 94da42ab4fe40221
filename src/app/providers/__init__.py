"""
AI Provider Abstraction.

모델 교체 가능하게 설계.
모델명은 config만 SSOT.
"""

from .anthropic import ClaudeProvider
from .base import (
    AnalysisError,
    ChatCompletionResult,
    CompletionError,
    DocumentAnalysisResult,
    LLMProvider,
    ProviderError,
    Toolbox,
)

__all__ = [
    "LLMProvider",
    "Toolbox",
    "ChatCompletionResult",
    "DocumentAnalysisResult",
    "ProviderError",
    "CompletionError",
    "AnalysisError",
    "ClaudeProvider",
]
