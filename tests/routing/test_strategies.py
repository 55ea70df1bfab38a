"""Tests for selection strategies and router-response parsing."""

from __future__ import annotations

import json

import pytest

from conftest import CODING_MODEL_ID, ROUTER_MODEL_ID, ScriptedLLMClient, make_response
from smart_router.config import SelectionStrategyName, Settings
from smart_router.errors import SelectionError, UnparseableSelectionError
from smart_router.llm import LLMUnavailableError
from smart_router.preferences import RoutingPreferences
from smart_router.registry import Category, ModelRegistry, Speed
from smart_router.routing.prompts import ROUTER_SYSTEM_PROMPT, build_selection_prompt
from smart_router.routing.strategies import (
    LLMSelectionStrategy,
    RuleBasedSelectionStrategy,
    build_strategy,
    infer_category,
    parse_selection,
)


# ------------------------------------------------------------------ #
# parse_selection
# ------------------------------------------------------------------ #


class TestParseSelection:
    def test_plain_json(self):
        selection = parse_selection('{"modelId": "a/b", "reasoning": "x", "confidence": 0.9}')
        assert selection.model_id == "a/b"
        assert selection.reasoning == "x"
        assert selection.confidence == 0.9

    def test_json_wrapped_in_prose(self):
        raw = 'Sure!\n```json\n{"modelId": "a/b", "reasoning": "x"}\n```'
        selection = parse_selection(raw)
        assert selection.model_id == "a/b"
        assert selection.confidence is None

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(1.5, 1.0), (-2, 0.0), ("0.9", None), (True, None), (None, None), (1, 1.0)],
    )
    def test_confidence_coercion(self, value, expected):
        raw = json.dumps({"modelId": "a", "reasoning": "x", "confidence": value})
        assert parse_selection(raw).confidence == expected

    @pytest.mark.parametrize(
        "raw",
        ["no json here", "[1, 2]", '{"reasoning": "x"}', '{"modelId": ""}', "{broken"],
    )
    def test_unusable_answers(self, raw):
        with pytest.raises(UnparseableSelectionError):
            parse_selection(raw)

    def test_unparseable_is_a_selection_error(self):
        assert issubclass(UnparseableSelectionError, SelectionError)


# ------------------------------------------------------------------ #
# LLMSelectionStrategy
# ------------------------------------------------------------------ #


async def test_llm_strategy_calls_router_model_in_json_mode(
    fake_settings: Settings, registry: ModelRegistry
):
    answer = json.dumps({"modelId": CODING_MODEL_ID, "reasoning": "code", "confidence": 0.7})
    llm = ScriptedLLMClient(fake_settings, selections=[answer])
    strategy = LLMSelectionStrategy(llm, registry.router_model, fake_settings)

    selection = await strategy.select_model(
        registry.list_all(), "fix my bug", RoutingPreferences()
    )

    assert selection.model_id == CODING_MODEL_ID
    [call] = llm.calls
    assert call["json_mode"] is True
    assert call["model"] == ROUTER_MODEL_ID
    assert call["temperature"] == fake_settings.router_temperature
    assert call["max_tokens"] == fake_settings.router_max_tokens
    assert call["messages"][0] == {"role": "system", "content": ROUTER_SYSTEM_PROMPT}
    assert "fix my bug" in call["messages"][1]["content"]


async def test_llm_strategy_wraps_transport_errors(fake_settings: Settings, registry: ModelRegistry):
    llm = ScriptedLLMClient(fake_settings, selections=[LLMUnavailableError("down")])
    strategy = LLMSelectionStrategy(llm, registry.router_model, fake_settings)

    with pytest.raises(SelectionError) as exc_info:
        await strategy.select_model(registry.list_all(), "hi", RoutingPreferences())
    assert not isinstance(exc_info.value, UnparseableSelectionError)


async def test_llm_strategy_empty_answer(fake_settings: Settings, registry: ModelRegistry):
    llm = ScriptedLLMClient(fake_settings, selections=[make_response(None)])
    strategy = LLMSelectionStrategy(llm, registry.router_model, fake_settings)

    with pytest.raises(SelectionError, match="No response"):
        await strategy.select_model(registry.list_all(), "hi", RoutingPreferences())


def test_selection_prompt_lists_candidates_and_preferences(registry: ModelRegistry):
    prefs = RoutingPreferences(
        priority="latency",
        allowed_categories=["coding"],
        excluded_models=["qwen/qwen3-coder:free"],
    )
    candidates = registry.by_category(Category.CODING)

    prompt = build_selection_prompt("write a parser", candidates, prefs)

    assert 'USER MESSAGE: "write a parser"' in prompt
    for model in candidates:
        assert f'"id": "{model.id}"' in prompt
    assert "Priority: latency (latency weight 0.8, quality weight 0.2)" in prompt
    assert "Preferred categories: coding" in prompt
    assert "Excluded models: qwen/qwen3-coder:free" in prompt
    assert '"modelId"' in prompt


# ------------------------------------------------------------------ #
# RuleBasedSelectionStrategy
# ------------------------------------------------------------------ #


@pytest.mark.parametrize(
    ("message", "category"),
    [
        ("Please debug this python function", Category.CODING),
        ("Solve this equation and prove it", Category.REASONING),
        ("Write a haiku about rain", Category.CREATIVE),
        ("Summarize this report", Category.ANALYSIS),
        ("What's the weather like?", Category.GENERAL),
    ],
)
def test_infer_category(message: str, category: Category):
    assert infer_category(message) == category


async def test_rules_latency_priority_picks_fast_model(registry: ModelRegistry):
    strategy = RuleBasedSelectionStrategy()

    selection = await strategy.select_model(
        registry.list_all(), "debug this python code", RoutingPreferences(priority="latency")
    )

    chosen = registry.get(selection.model_id)
    assert chosen is not None
    assert chosen.speed == Speed.FAST
    assert chosen.category == Category.CODING
    assert selection.reasoning.startswith("Rule-based selection: coding task")
    assert 0.0 <= selection.confidence <= 1.0


async def test_rules_quality_priority_prefers_large_context(registry: ModelRegistry):
    strategy = RuleBasedSelectionStrategy()

    selection = await strategy.select_model(
        registry.list_all(), "summarize and analyze this document", RoutingPreferences(priority="quality")
    )

    assert selection.model_id == "google/gemini-2.5-pro-exp-03-25"


async def test_rules_is_deterministic(registry: ModelRegistry):
    strategy = RuleBasedSelectionStrategy()
    prefs = RoutingPreferences(priority="balanced")

    first = await strategy.select_model(registry.list_all(), "hello there", prefs)
    second = await strategy.select_model(registry.list_all(), "hello there", prefs)

    assert first == second


async def test_rules_rejects_empty_candidates():
    with pytest.raises(SelectionError):
        await RuleBasedSelectionStrategy().select_model([], "hi", RoutingPreferences())


def test_build_strategy_from_settings(fake_settings: Settings, registry: ModelRegistry, llm):
    assert isinstance(build_strategy(fake_settings, llm, registry), LLMSelectionStrategy)

    rules = fake_settings.model_copy(update={"selection_strategy": SelectionStrategyName.RULES})
    assert isinstance(build_strategy(rules, llm, registry), RuleBasedSelectionStrategy)
