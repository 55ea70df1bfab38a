"""Prompt construction for the delegated selection call."""

from __future__ import annotations

import json

from smart_router.preferences import RoutingPreferences
from smart_router.registry import ModelDescriptor

ROUTER_SYSTEM_PROMPT = (
    "You are an expert AI model router. Analyze the user's message and select "
    "the most appropriate model from the available options. Consider the task "
    "type, complexity, context requirements, and model strengths. Return your "
    "decision as JSON with the selected model ID, reasoning, and confidence score."
)


def _candidate_info(model: ModelDescriptor) -> dict[str, object]:
    return {
        "id": model.id,
        "name": model.name,
        "category": model.category.value,
        "contextWindow": model.context_window,
        "strengths": list(model.strengths),
        "useCases": list(model.use_cases),
        "speed": model.speed.value,
    }


def _preference_lines(preferences: RoutingPreferences) -> list[str]:
    weights = preferences.weights
    lines = [
        f"- Priority: {preferences.priority} "
        f"(latency weight {weights.latency}, quality weight {weights.quality})",
    ]
    if preferences.allowed_categories:
        lines.append(f"- Preferred categories: {', '.join(preferences.allowed_categories)}")
    if preferences.excluded_models:
        lines.append(f"- Excluded models: {', '.join(preferences.excluded_models)}")
    return lines


def build_selection_prompt(
    message: str,
    candidates: list[ModelDescriptor],
    preferences: RoutingPreferences,
) -> str:
    models_json = json.dumps([_candidate_info(m) for m in candidates], indent=2)
    preferences_block = "\n".join(_preference_lines(preferences))
    return f"""
Analyze this user message and select the most appropriate AI model from the available options:

USER MESSAGE: "{message}"

AVAILABLE MODELS:
{models_json}

USER PREFERENCES:
{preferences_block}

SELECTION CRITERIA:
1. Task Type: Determine if this is coding, reasoning, creative writing, analysis, or general conversation
2. Context Requirements: Estimate how much context window is needed based on message complexity
3. Speed vs Quality: Balance response speed with task requirements and the user's priority
4. Model Strengths: Match the model's strengths to the task requirements

Return your decision as JSON with this exact format:
{{
  "modelId": "exact-model-id-from-available-models",
  "reasoning": "detailed explanation of why this model was chosen",
  "confidence": 0.0-1.0
}}

Choose the model that best fits the user's needs while considering efficiency and available resources."""


def build_selection_messages(
    message: str,
    candidates: list[ModelDescriptor],
    preferences: RoutingPreferences,
) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": ROUTER_SYSTEM_PROMPT},
        {"role": "user", "content": build_selection_prompt(message, candidates, preferences)},
    ]
