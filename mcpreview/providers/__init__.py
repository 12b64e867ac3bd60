"""
mcpreview providers module.

Two adapters behind one call contract: Anthropic (native tool-use blocks)
and OpenAI-compatible chat completions (function calling).
"""

from mcpreview.providers.base import LLMRequest, LLMResponse, ProgressSink, Provider, Usage
from mcpreview.providers.anthropic import AnthropicProvider
from mcpreview.providers.openai_compat import OpenAICompatibleProvider
from mcpreview.providers.factory import ProviderFactory, ProviderPreset, ProviderSettings

__all__ = [
    "AnthropicProvider",
    "LLMRequest",
    "LLMResponse",
    "OpenAICompatibleProvider",
    "ProgressSink",
    "Provider",
    "ProviderFactory",
    "ProviderPreset",
    "ProviderSettings",
    "Usage",
]
