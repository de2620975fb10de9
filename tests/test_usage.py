"""
llmwire - Usage, Pricing and Catalog Tests
"""

import pytest

from llmwire.core.catalog import (
    ModelRegistry,
    calculate_cost,
    estimate_cost,
    find_models,
    get_model,
    models_are_equal,
    supports_xhigh,
)
from llmwire.core.models import AssistantMessage, KnownApi, Model, ModelCost, StopReason, Usage
from llmwire.usage import (
    apply_service_tier_pricing,
    get_overflow_patterns,
    get_overflow_suggestion,
    is_context_overflow,
    service_tier_multiplier,
)


class TestCatalog:

    def test_lookup(self, anthropic_model):
        assert anthropic_model.api == KnownApi.ANTHROPIC_MESSAGES.value
        assert anthropic_model.max_tokens == 64000
        assert get_model("anthropic", "no-such-model") is None

    def test_find_models(self):
        bedrock = find_models(api=KnownApi.BEDROCK_CONVERSE_STREAM.value)
        assert bedrock
        assert all(model.provider == "amazon-bedrock" for model in bedrock)

        reasoning_openai = find_models(provider="openai", reasoning=True)
        assert "gpt-5" in [model.id for model in reasoning_openai]
        assert "gpt-4.1" not in [model.id for model in reasoning_openai]

    def test_custom_models_are_isolated_per_registry(self):
        registry = ModelRegistry(seed_models=[])
        custom = Model(id="local-llama", api=KnownApi.OPENAI_COMPLETIONS.value, provider="local")

        registry.register_custom_model(custom)

        assert registry.get_model("local", "local-llama") is custom
        assert registry.get_providers() == ["local"]
        assert get_model("local", "local-llama") is None

    def test_supports_xhigh(self, openai_model):
        assert not supports_xhigh(openai_model)
        assert supports_xhigh(get_model("openai", "gpt-5.2"))

    def test_models_are_equal(self, anthropic_model, openai_model):
        assert models_are_equal(anthropic_model, get_model("anthropic", "claude-sonnet-4-5"))
        assert not models_are_equal(anthropic_model, openai_model)
        assert not models_are_equal(anthropic_model, None)


class TestCost:

    def test_calculate_cost_updates_usage(self, anthropic_model):
        usage = Usage(input=1000, output=500, cache_read=2000, cache_write=100)

        cost = calculate_cost(anthropic_model, usage)

        assert usage.cost is cost
        assert cost.input == pytest.approx(0.003)
        assert cost.output == pytest.approx(0.0075)
        assert cost.cache_read == pytest.approx(0.0006)
        assert cost.cache_write == pytest.approx(0.000375)
        assert cost.total == pytest.approx(0.003 + 0.0075 + 0.0006 + 0.000375)

    def test_estimate_cost(self, openai_model):
        cost = estimate_cost(openai_model, 1_000_000, 0)
        assert cost.total == pytest.approx(1.25)

    def test_zero_priced_model(self):
        model = Model(id="free", cost=ModelCost())
        assert calculate_cost(model, Usage(input=10, output=10)).total == 0


class TestServiceTier:

    @pytest.mark.parametrize("tier,expected", [
        ("flex", 0.5),
        ("priority", 2.0),
        ("default", 1.0),
        (None, 1.0),
    ])
    def test_multiplier(self, tier, expected):
        assert service_tier_multiplier(tier) == expected

    def test_apply_scales_every_component(self, openai_model):
        usage = Usage(input=1_000_000, output=1_000_000, cache_read=1_000_000)
        calculate_cost(openai_model, usage)

        apply_service_tier_pricing(usage, "flex")

        assert usage.cost.input == pytest.approx(0.625)
        assert usage.cost.output == pytest.approx(5.0)
        assert usage.cost.cache_read == pytest.approx(0.0625)
        assert usage.cost.total == pytest.approx(0.625 + 5.0 + 0.0625)


class TestContextOverflow:

    @pytest.mark.parametrize("error_message", [
        "prompt is too long: 213462 tokens > 200000 maximum",
        "This model's maximum context length is 128000 tokens",
        "Input is too long for requested model.",
        "400 status code (no body)",
        "context_length_exceeded",
    ])
    def test_error_patterns(self, error_message):
        message = AssistantMessage(stop_reason=StopReason.ERROR, error_message=error_message)

        assert is_context_overflow(message)
        assert get_overflow_suggestion(error_message)

    def test_unrelated_error(self):
        message = AssistantMessage(stop_reason=StopReason.ERROR, error_message="401 invalid x-api-key")

        assert not is_context_overflow(message)
        assert get_overflow_suggestion("401 invalid x-api-key") is None

    def test_silent_overflow(self):
        message = AssistantMessage(stop_reason=StopReason.STOP, usage=Usage(input=150000, cache_read=60000))

        assert is_context_overflow(message, context_window=200000)
        assert not is_context_overflow(message)
        assert not is_context_overflow(message, context_window=300000)

    def test_patterns_are_a_copy(self):
        patterns = get_overflow_patterns()
        patterns.clear()
        assert get_overflow_patterns()
