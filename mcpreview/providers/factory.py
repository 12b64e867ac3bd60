"""Provider factory - picks an adapter from config and named shortcuts."""

import os
from dataclasses import dataclass
from typing import Dict, List, Optional, Type

from mcpreview.errors import ConfigError
from mcpreview.providers.anthropic import AnthropicProvider
from mcpreview.providers.base import ProgressSink, Provider
from mcpreview.providers.openai_compat import OpenAICompatibleProvider
from mcpreview.validation.config import ReviewConfig


@dataclass(frozen=True)
class ProviderPreset:
    """Defaults a single short name stands in for."""

    model: str
    kind: str
    base_url: Optional[str]
    api_key_env: str


@dataclass(frozen=True)
class ProviderSettings:
    """Fully resolved provider selection."""

    kind: str
    model: str
    base_url: Optional[str]
    api_key_env: str


DEFAULT_API_KEY_ENV = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}


class ProviderFactory:
    """Factory for creating provider instances."""

    _providers: Dict[str, Type[Provider]] = {
        "anthropic": AnthropicProvider,
        "openai": OpenAICompatibleProvider,
    }

    SHORTCUTS: Dict[str, ProviderPreset] = {
        "claude": ProviderPreset("claude-sonnet-4-20250514", "anthropic", None, "ANTHROPIC_API_KEY"),
        "sonnet": ProviderPreset("claude-sonnet-4-20250514", "anthropic", None, "ANTHROPIC_API_KEY"),
        "opus": ProviderPreset("claude-opus-4-20250514", "anthropic", None, "ANTHROPIC_API_KEY"),
        "haiku": ProviderPreset("claude-haiku-3-5-20241022", "anthropic", None, "ANTHROPIC_API_KEY"),
        "deepseek": ProviderPreset("deepseek-chat", "openai", "https://api.deepseek.com/v1", "DEEPSEEK_API_KEY"),
        "kimi": ProviderPreset("moonshot-v1-32k", "openai", "https://api.moonshot.cn/v1", "MOONSHOT_API_KEY"),
        "openrouter": ProviderPreset(
            "anthropic/claude-sonnet-4", "openai", "https://openrouter.ai/api/v1", "OPENROUTER_API_KEY"
        ),
        "groq": ProviderPreset(
            "llama-3.3-70b-versatile", "openai", "https://api.groq.com/openai/v1", "GROQ_API_KEY"
        ),
    }

    @classmethod
    def register(cls, name: str, provider_class: Type[Provider]) -> None:
        """Register a new provider kind."""
        cls._providers[name] = provider_class

    @classmethod
    def available_providers(cls) -> List[str]:
        return list(cls._providers.keys())

    @classmethod
    def resolve(cls, config: ReviewConfig) -> ProviderSettings:
        """
        Merge a shortcut (if ``config.model`` names one) with explicit fields.

        Explicitly set fields (provider, base_url, api_key_env) always win
        over the shortcut's defaults.
        """
        preset = cls.SHORTCUTS.get(config.model.lower())
        kind = config.provider or (preset.kind if preset else "anthropic")
        model = preset.model if preset else config.model
        base_url = config.base_url or (preset.base_url if preset else None)
        api_key_env = config.api_key_env or (
            preset.api_key_env if preset and preset.kind == kind else DEFAULT_API_KEY_ENV.get(kind, "")
        )
        return ProviderSettings(kind=kind, model=model, base_url=base_url, api_key_env=api_key_env)

    @classmethod
    def create(cls, config: ReviewConfig, progress: Optional[ProgressSink] = None) -> Provider:
        """
        Create a provider for ``config``.

        Raises:
            ConfigError: unknown provider kind, missing endpoint for the
                OpenAI-compatible dialect, or no credential in the environment.
        """
        settings = cls.resolve(config)
        provider_class = cls._providers.get(settings.kind)
        if provider_class is None:
            raise ConfigError(f"Unknown provider: {settings.kind}")

        if issubclass(provider_class, OpenAICompatibleProvider) and not settings.base_url:
            raise ConfigError(
                f'provider "{settings.kind}" requires a base_url '
                "(e.g. --base-url https://openrouter.ai/api/v1)"
            )

        api_key = os.environ.get(settings.api_key_env, "") if settings.api_key_env else ""
        if not api_key.strip():
            raise ConfigError(f"API key not found. Set the {settings.api_key_env or 'API key'} environment variable.")

        if issubclass(provider_class, OpenAICompatibleProvider):
            return provider_class(
                model=settings.model,
                base_url=settings.base_url,
                api_key=api_key,
                progress=progress,
            )
        return provider_class(model=settings.model, api_key=api_key, progress=progress)
