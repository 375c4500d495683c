"""Provider configurations and resolution into a concrete AnalysisProvider.

Two configuration universes are checked in order:

  builtin providers:  fixed endpoints whose key comes from a named
                      environment variable; model ids are enumerated and
                      validated locally.
  generic providers:  vendor APIs that need an explicit api key; model ids
                      are passed through and validated by the vendor.

The resolved provider is built once at startup and handed to the batch loop.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, TextIO

from anthropic_client import AnthropicProvider
from cohere_client import CohereProvider
from errors import ConfigurationError
from gemini_client import GeminiProvider
from openai_client import OpenAIChatProvider
from provider_base import AnalysisProvider

LOGGER = logging.getLogger(__name__)

DEFAULT_PROVIDER = "anthropic"
CUSTOM_PROVIDER = "custom"

# Checked in order; the first non-empty value wins.
API_KEY_ENV_CHAIN: tuple[str, ...] = ("AI_API_KEY", "ANTHROPIC_API_KEY", "OPENAI_API_KEY")


@dataclass(frozen=True, slots=True)
class ModelInfo:
    id: str
    name: str
    input_cost: float   # USD per 1M input tokens
    output_cost: float  # USD per 1M output tokens


@dataclass(frozen=True, slots=True)
class BuiltinProviderConfig:
    name: str
    base_url: str
    api_key_env: str
    api: str  # wire-protocol flavor, a key of _FLAVOR_VARIANTS
    models: tuple[ModelInfo, ...]
    default_model: str

    def find_model(self, model_id: str) -> ModelInfo | None:
        return next((m for m in self.models if m.id == model_id), None)


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    name: str
    models: tuple[str, ...]
    default_model: str
    base_url: str | None = None


@dataclass(frozen=True, slots=True)
class ProviderSettings:
    """Configuration-driven provider request, usually read from the environment."""

    provider: str = DEFAULT_PROVIDER
    model: str | None = None
    api_key: str | None = None
    base_url: str | None = None


@dataclass(frozen=True, slots=True)
class ProviderSelection:
    provider_key: str
    model_id: str
    provider: AnalysisProvider


_FLAVOR_VARIANTS: dict[str, type[AnalysisProvider]] = {
    "anthropic-messages": AnthropicProvider,
    "openai-chat": OpenAIChatProvider,
    "google-generative-ai": GeminiProvider,
}

BUILTIN_PROVIDERS: dict[str, BuiltinProviderConfig] = {
    "openrouter": BuiltinProviderConfig(
        name="OpenRouter",
        base_url="https://openrouter.ai/api/v1",
        api_key_env="OPENROUTER_API_KEY",
        api="openai-chat",
        models=(
            ModelInfo("openai/gpt-4o-mini", "GPT-4o mini", 0.15, 0.6),
            ModelInfo("anthropic/claude-sonnet-4", "Claude Sonnet 4", 3.0, 15.0),
            ModelInfo("google/gemini-2.0-flash-001", "Gemini 2.0 Flash", 0.1, 0.4),
            ModelInfo("deepseek/deepseek-chat", "DeepSeek V3", 0.27, 1.1),
        ),
        default_model="openai/gpt-4o-mini",
    ),
    "moonshot-anthropic": BuiltinProviderConfig(
        name="Moonshot (Anthropic API)",
        base_url="https://api.moonshot.ai/anthropic",
        api_key_env="MOONSHOT_API_KEY",
        api="anthropic-messages",
        models=(
            ModelInfo("kimi-k2-0711-preview", "Kimi K2", 0.6, 2.5),
            ModelInfo("kimi-k2-turbo-preview", "Kimi K2 Turbo", 2.4, 10.0),
        ),
        default_model="kimi-k2-0711-preview",
    ),
    "gemini": BuiltinProviderConfig(
        name="Google AI Studio",
        base_url="https://generativelanguage.googleapis.com/v1beta",
        api_key_env="GEMINI_API_KEY",
        api="google-generative-ai",
        models=(
            ModelInfo("gemini-2.0-flash", "Gemini 2.0 Flash", 0.1, 0.4),
            ModelInfo("gemini-1.5-pro", "Gemini 1.5 Pro", 1.25, 5.0),
        ),
        default_model="gemini-2.0-flash",
    ),
}

PROVIDERS: dict[str, ProviderConfig] = {
    "anthropic": ProviderConfig(
        name="Anthropic",
        models=("claude-sonnet-4-20250514", "claude-opus-4-20250514", "claude-3-5-sonnet-20241022"),
        default_model="claude-sonnet-4-20250514",
    ),
    "openai": ProviderConfig(
        name="OpenAI",
        models=("gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-3.5-turbo"),
        default_model="gpt-4o-mini",
    ),
    "google": ProviderConfig(
        name="Google",
        models=("gemini-2.0-flash-exp", "gemini-1.5-pro", "gemini-1.5-flash"),
        default_model="gemini-2.0-flash-exp",
    ),
    "cohere": ProviderConfig(
        name="Cohere",
        models=("command-r-plus", "command-r", "command"),
        default_model="command-r",
    ),
    "deepseek": ProviderConfig(
        name="DeepSeek",
        models=("deepseek-chat", "deepseek-reasoner"),
        default_model="deepseek-chat",
        base_url="https://api.deepseek.com",
    ),
    CUSTOM_PROVIDER: ProviderConfig(
        name="Custom",
        models=(),
        default_model="",
    ),
}

_GENERIC_VARIANTS: dict[str, type[AnalysisProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIChatProvider,
    "google": GeminiProvider,
    "cohere": CohereProvider,
    "deepseek": OpenAIChatProvider,
    CUSTOM_PROVIDER: OpenAIChatProvider,
}


def settings_from_env(environ: Mapping[str, str] | None = None) -> ProviderSettings:
    """Read AI_PROVIDER / AI_MODEL / AI_BASE_URL and the api-key fallback chain."""
    env = os.environ if environ is None else environ
    api_key = next((env[name] for name in API_KEY_ENV_CHAIN if env.get(name)), None)
    return ProviderSettings(
        provider=env.get("AI_PROVIDER") or DEFAULT_PROVIDER,
        model=env.get("AI_MODEL") or None,
        api_key=api_key,
        base_url=env.get("AI_BASE_URL") or None,
    )


def create_builtin_provider(
    provider_key: str,
    model_id: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> AnalysisProvider:
    """Instantiate a builtin provider, reading its key from the environment."""
    config = BUILTIN_PROVIDERS.get(provider_key)
    if config is None:
        raise ConfigurationError(f"Unknown builtin provider: {provider_key}")

    env = os.environ if environ is None else environ
    api_key = env.get(config.api_key_env)
    if not api_key:
        raise ConfigurationError(f"Missing environment variable: {config.api_key_env}")

    selected = model_id or config.default_model
    if config.find_model(selected) is None:
        allowed = ", ".join(m.id for m in config.models)
        raise ConfigurationError(
            f"Provider {provider_key} does not support model {selected!r}; choose one of: {allowed}"
        )

    variant = _FLAVOR_VARIANTS.get(config.api)
    if variant is None:
        raise ConfigurationError(f"Unsupported API flavor for {provider_key}: {config.api}")

    LOGGER.info("Using builtin provider %s (%s) model=%s", config.name, provider_key, selected)
    return variant(api_key, selected, config.base_url)


def create_provider(settings: ProviderSettings, environ: Mapping[str, str] | None = None) -> AnalysisProvider:
    """Resolve settings into exactly one provider, builtin configs first."""
    provider_key = settings.provider or DEFAULT_PROVIDER

    if provider_key in BUILTIN_PROVIDERS:
        return create_builtin_provider(provider_key, settings.model, environ=environ)

    config = PROVIDERS.get(provider_key)
    if config is None:
        raise ConfigurationError(f"Unsupported provider: {provider_key}")

    if not settings.api_key:
        raise ConfigurationError(
            f"Provider {provider_key} requires an API key (set one of: {', '.join(API_KEY_ENV_CHAIN)})"
        )

    selected = settings.model or config.default_model
    base_url = settings.base_url or config.base_url

    if provider_key == CUSTOM_PROVIDER:
        if not settings.base_url:
            raise ConfigurationError("Custom provider requires a base URL (set AI_BASE_URL)")
        if not selected:
            raise ConfigurationError("Custom provider requires a model id (set AI_MODEL)")

    variant = _GENERIC_VARIANTS[provider_key]
    LOGGER.info("Using provider %s model=%s", config.name, selected)
    return variant(settings.api_key, selected, base_url)


def select_provider_interactive(
    read: Callable[[str], str] = input,
    out: TextIO | None = None,
    environ: Mapping[str, str] | None = None,
) -> ProviderSelection:
    """Prompt for a builtin provider, then one of its models, by 1-based number."""
    out = out or sys.stdout
    providers = list(BUILTIN_PROVIDERS.items())
    if not providers:
        raise ConfigurationError("No builtin providers are configured")

    print("\nAvailable builtin providers:\n", file=out)
    for index, (key, config) in enumerate(providers, start=1):
        print(f"  {index}. {config.name} ({key})", file=out)

    provider_index = _read_choice(read, "\nSelect a provider (number): ", len(providers))
    provider_key, config = providers[provider_index]

    print(f"\nModels available from {config.name}:\n", file=out)
    for index, model in enumerate(config.models, start=1):
        print(
            f"  {index}. {model.name} ({model.id}) - "
            f"${model.input_cost}/${model.output_cost} per 1M tokens",
            file=out,
        )

    model_index = _read_choice(read, "\nSelect a model (number): ", len(config.models))
    model = config.models[model_index]

    print(f"\nSelected: {config.name} - {model.name}\n", file=out)
    return ProviderSelection(
        provider_key=provider_key,
        model_id=model.id,
        provider=create_builtin_provider(provider_key, model.id, environ=environ),
    )


def _read_choice(read: Callable[[str], str], prompt: str, count: int) -> int:
    try:
        raw = read(prompt).strip()
    except EOFError:
        raise ConfigurationError("No selection made: input closed before a number was entered") from None
    try:
        index = int(raw) - 1
    except ValueError:
        raise ConfigurationError(f"Invalid selection {raw!r}: expected a number from 1 to {count}") from None
    if index < 0 or index >= count:
        raise ConfigurationError(f"Selection {raw} is out of range: expected a number from 1 to {count}")
    return index


def list_providers() -> list[dict[str, Any]]:
    return [
        {
            "key": key,
            "name": config.name,
            "models": list(config.models),
            "default_model": config.default_model,
        }
        for key, config in PROVIDERS.items()
    ]


def list_builtin_providers() -> list[dict[str, Any]]:
    return [
        {
            "key": key,
            "name": config.name,
            "api": config.api,
            "api_key_env": config.api_key_env,
            "models": list(config.models),
            "default_model": config.default_model,
        }
        for key, config in BUILTIN_PROVIDERS.items()
    ]


def format_provider_overview(verbose: bool = False) -> str:
    """Human-readable list of every provider and its models.

    Printed as the startup diagnostic after a ConfigurationError; the
    verbose form (with costs and usage) backs the `providers` command.
    """
    lines = ["Builtin providers (key read from the named environment variable):"]
    for p in list_builtin_providers():
        lines.append(f"  - {p['key']}: {p['name']} [{p['api']}, {p['api_key_env']}]")
        if verbose:
            lines.append(f"    default model: {p['default_model']}")
            for m in p["models"]:
                lines.append(f"      {m.name} ({m.id}) - ${m.input_cost} input / ${m.output_cost} output per 1M tokens")
        else:
            lines.append(f"    models: {', '.join(m.id for m in p['models'])}")

    lines.append("")
    lines.append("Providers that need an API key:")
    for p in list_providers():
        lines.append(f"  - {p['key']}: {p['name']}")
        lines.append(f"    default model: {p['default_model'] or '(set AI_MODEL)'}")
        if verbose and p["models"]:
            lines.append(f"    models: {', '.join(p['models'])}")

    lines.append("")
    if verbose:
        lines.extend([
            "Usage:",
            "  1. Builtin provider: AI_PROVIDER=openrouter (plus OPENROUTER_API_KEY), optional AI_MODEL",
            "  2. Interactive selection: python main.py analyze --select",
            "  3. Own key: AI_PROVIDER=openai AI_API_KEY=sk-... optional AI_MODEL",
            "     Custom endpoint: AI_PROVIDER=custom AI_BASE_URL=... AI_MODEL=...",
        ])
    else:
        lines.append("Hint: run with --select to choose a builtin provider interactively.")
    return "\n".join(lines)
