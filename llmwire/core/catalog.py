"""
llmwire - Model Catalog

Registry of known models with pricing, context window and capability data.
Prices are USD per 1 million tokens.

Usage:
    from llmwire.core.catalog import get_model, calculate_cost

    model = get_model("anthropic", "claude-sonnet-4-5")
    calculate_cost(model, message.usage)
"""

import threading
from typing import Dict, Iterable, List, Optional

from .models import Cost, KnownApi, Model, ModelCost, Usage


ANTHROPIC_BASE_URL = "https://api.anthropic.com"
OPENAI_BASE_URL = "https://api.openai.com/v1"
KIMI_BASE_URL = "https://api.kimi.moonshot.cn/v1"

# Models that accept the xhigh reasoning level unclamped
XHIGH_MODELS = frozenset({"gpt-5.1-codex-max", "gpt-5.2", "gpt-5.2-codex"})


def _anthropic(id: str, name: str, cost: ModelCost, max_tokens: int, reasoning: bool = True) -> Model:
    return Model(
        id=id, name=name, api=KnownApi.ANTHROPIC_MESSAGES.value, provider="anthropic",
        base_url=ANTHROPIC_BASE_URL, reasoning=reasoning, input=["text", "image"],
        cost=cost, context_window=200000, max_tokens=max_tokens,
    )


def _openai(id: str, name: str, cost: ModelCost, context_window: int, max_tokens: int,
            reasoning: bool = True) -> Model:
    return Model(
        id=id, name=name, api=KnownApi.OPENAI_RESPONSES.value, provider="openai",
        base_url=OPENAI_BASE_URL, reasoning=reasoning, input=["text", "image"],
        cost=cost, context_window=context_window, max_tokens=max_tokens,
    )


def _bedrock(id: str, name: str, cost: ModelCost, context_window: int, max_tokens: int,
             reasoning: bool, images: bool = True) -> Model:
    return Model(
        id=id, name=name, api=KnownApi.BEDROCK_CONVERSE_STREAM.value, provider="amazon-bedrock",
        reasoning=reasoning, input=["text", "image"] if images else ["text"],
        cost=cost, context_window=context_window, max_tokens=max_tokens,
    )


def _kimi(id: str, name: str, cost: ModelCost, context_window: int, max_tokens: int,
          reasoning: bool = False) -> Model:
    return Model(
        id=id, name=name, api=KnownApi.OPENAI_COMPLETIONS.value, provider="kimi",
        base_url=KIMI_BASE_URL, reasoning=reasoning, input=["text"],
        cost=cost, context_window=context_window, max_tokens=max_tokens,
    )


def builtin_models() -> List[Model]:
    """Default catalog entries."""
    return [
        # ============================================================
        # Anthropic
        # ============================================================
        _anthropic("claude-opus-4-1", "Claude Opus 4.1", ModelCost(15.0, 75.0, 1.5, 18.75), 32000),
        _anthropic("claude-sonnet-4-5", "Claude Sonnet 4.5", ModelCost(3.0, 15.0, 0.3, 3.75), 64000),
        _anthropic("claude-haiku-4-5", "Claude Haiku 4.5", ModelCost(1.0, 5.0, 0.1, 1.25), 64000),
        _anthropic("claude-3-5-haiku-20241022", "Claude Haiku 3.5", ModelCost(0.8, 4.0, 0.08, 1.0), 8192,
                   reasoning=False),

        # ============================================================
        # OpenAI (Responses API)
        # ============================================================
        _openai("gpt-5", "gpt-5", ModelCost(1.25, 10.0, 0.125, 0.0), 400000, 128000),
        _openai("gpt-5-mini", "gpt-5-mini", ModelCost(0.25, 2.0, 0.025, 0.0), 400000, 128000),
        _openai("gpt-5.1-codex-max", "gpt-5.1-codex-max", ModelCost(1.25, 10.0, 0.125, 0.0), 400000, 128000),
        _openai("gpt-5.2", "gpt-5.2", ModelCost(1.75, 14.0, 0.175, 0.0), 400000, 128000),
        _openai("gpt-4.1", "gpt-4.1", ModelCost(2.0, 8.0, 0.5, 0.0), 1047576, 32768, reasoning=False),

        # ============================================================
        # Amazon Bedrock (Converse stream)
        # ============================================================
        _bedrock("us.anthropic.claude-sonnet-4-5-20250929-v1:0", "Claude Sonnet 4.5 (Bedrock)",
                 ModelCost(3.0, 15.0, 0.3, 3.75), 200000, 64000, reasoning=True),
        _bedrock("anthropic.claude-3-5-haiku-20241022-v1:0", "Claude Haiku 3.5 (Bedrock)",
                 ModelCost(0.8, 4.0, 0.08, 1.0), 200000, 8192, reasoning=False),
        _bedrock("amazon.nova-pro-v1:0", "Nova Pro", ModelCost(0.8, 3.2, 0.2, 0.0), 300000, 10000,
                 reasoning=False),

        # ============================================================
        # Kimi / Moonshot (OpenAI-compatible chat completions)
        # ============================================================
        _kimi("kimi-k2-0905-preview", "Kimi K2", ModelCost(0.6, 2.5, 0.15, 0.0), 262144, 16384),
        _kimi("moonshot-v1-128k", "Moonshot v1 128k", ModelCost(2.0, 5.0, 0.0, 0.0), 131072, 8192),
    ]


class ModelRegistry:
    """
    Catalog of models grouped by provider.

    Mutations are serialized with a lock; lookups return the stored objects.
    """

    def __init__(self, seed_models: Optional[Iterable[Model]] = None):
        self._lock = threading.RLock()
        self._models: Dict[str, Dict[str, Model]] = {}
        for model in builtin_models() if seed_models is None else seed_models:
            self.register_custom_model(model)

    def register_custom_model(self, model: Model) -> None:
        """Add or replace a model."""
        with self._lock:
            self._models.setdefault(model.provider, {})[model.id] = model

    def load_custom_models(self, models: Iterable[Model]) -> None:
        for model in models:
            self.register_custom_model(model)

    def get_model(self, provider: str, model_id: str) -> Optional[Model]:
        return self._models.get(provider, {}).get(model_id)

    def get_providers(self) -> List[str]:
        return list(self._models.keys())

    def get_models(self, provider: str) -> List[Model]:
        return list(self._models.get(provider, {}).values())

    def find_models(
        self,
        provider: Optional[str] = None,
        api: Optional[str] = None,
        reasoning: Optional[bool] = None,
        supports_image_input: bool = False,
        name_includes: Optional[str] = None,
    ) -> List[Model]:
        """
        Search the catalog.

        Args:
            provider: Only models of this provider
            api: Only models served through this protocol id
            reasoning: Filter on reasoning support when not None
            supports_image_input: Only models accepting images
            name_includes: Case-insensitive substring of the display name

        Returns:
            Matching models in registration order
        """
        results = []
        for provider_name, models in self._models.items():
            if provider and provider_name != provider:
                continue
            for model in models.values():
                if api and model.api != api:
                    continue
                if reasoning is not None and model.reasoning != reasoning:
                    continue
                if supports_image_input and not model.supports_images():
                    continue
                if name_includes and name_includes.lower() not in model.name.lower():
                    continue
                results.append(model)
        return results

    def estimate_cost(
        self,
        model: Model,
        input_tokens: int,
        output_tokens: int,
        cache_read_tokens: int = 0,
        cache_write_tokens: int = 0,
    ) -> Cost:
        """Cost of a hypothetical call."""
        price = model.cost
        cost = Cost(
            input=price.input / 1_000_000 * input_tokens,
            output=price.output / 1_000_000 * output_tokens,
            cache_read=price.cache_read / 1_000_000 * cache_read_tokens,
            cache_write=price.cache_write / 1_000_000 * cache_write_tokens,
        )
        cost.total = cost.input + cost.output + cost.cache_read + cost.cache_write
        return cost

    def calculate_cost(self, model: Model, usage: Usage) -> Cost:
        """Recompute ``usage.cost`` from the token counts and return it."""
        usage.cost = self.estimate_cost(
            model, usage.input, usage.output, usage.cache_read, usage.cache_write
        )
        return usage.cost


model_registry = ModelRegistry()


def get_model(provider: str, model_id: str) -> Optional[Model]:
    return model_registry.get_model(provider, model_id)


def get_providers() -> List[str]:
    return model_registry.get_providers()


def get_models(provider: str) -> List[Model]:
    return model_registry.get_models(provider)


def find_models(**filters) -> List[Model]:
    return model_registry.find_models(**filters)


def register_custom_model(model: Model) -> None:
    model_registry.register_custom_model(model)


def load_custom_models(models: Iterable[Model]) -> None:
    model_registry.load_custom_models(models)


def estimate_cost(model: Model, input_tokens: int, output_tokens: int,
                  cache_read_tokens: int = 0, cache_write_tokens: int = 0) -> Cost:
    return model_registry.estimate_cost(model, input_tokens, output_tokens, cache_read_tokens, cache_write_tokens)


def calculate_cost(model: Model, usage: Usage) -> Cost:
    return model_registry.calculate_cost(model, usage)


def supports_xhigh(model: Model) -> bool:
    """Whether the model accepts the xhigh reasoning level."""
    return model.id in XHIGH_MODELS


def models_are_equal(a: Optional[Model], b: Optional[Model]) -> bool:
    """Same id and provider; False if either is missing."""
    if a is None or b is None:
        return False
    return a.id == b.id and a.provider == b.provider
