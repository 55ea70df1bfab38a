"""Model registry - static catalog of backend model descriptors.

Each backend is described by a ModelDescriptor that declares its context
window, strengths, use cases, speed class and category. The router filters
this catalog to build the candidate set for every request; one entry is
designated the router model and only ever makes selection decisions.

Declaration order is significant: "first fastest model" and the
largest-context fallback both depend on it.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any

import structlog

log = structlog.get_logger(__name__)


class Speed(StrEnum):
    FAST = "fast"
    MEDIUM = "medium"
    SLOW = "slow"


class Category(StrEnum):
    CODING = "coding"
    REASONING = "reasoning"
    CREATIVE = "creative"
    GENERAL = "general"
    ANALYSIS = "analysis"


@dataclass(frozen=True)
class ModelDescriptor:
    """Capability metadata for one backend model.

    Attributes:
        id: Backend model identifier (OpenRouter format)
        name: Display name returned to callers
        provider: Model vendor
        context_window: Context window size in tokens
        strengths: Ordered strength tags
        use_cases: Ordered use-case tags
        speed: Speed classification
        category: Primary task category
    """

    id: str
    name: str
    provider: str
    context_window: int
    strengths: tuple[str, ...]
    use_cases: tuple[str, ...]
    speed: Speed
    category: Category

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("model id cannot be empty")
        if self.context_window < 1:
            raise ValueError("context_window must be positive")

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["strengths"] = list(self.strengths)
        data["use_cases"] = list(self.use_cases)
        data["speed"] = self.speed.value
        data["category"] = self.category.value
        return data


class ModelRegistry:
    """Read-only catalog of backend models with query helpers.

    All queries are pure filters over the declaration-ordered list.
    """

    def __init__(self, models: Iterable[ModelDescriptor], router_model_id: str) -> None:
        """Initialize the registry.

        Args:
            models: Model descriptors in declaration order
            router_model_id: Id of the entry that makes selection decisions

        Raises:
            ValueError: If ids are duplicated or the router model is missing
        """
        self._models: tuple[ModelDescriptor, ...] = tuple(models)
        self._by_id: dict[str, ModelDescriptor] = {}
        for model in self._models:
            if model.id in self._by_id:
                raise ValueError(f"Duplicate model id in registry: {model.id}")
            self._by_id[model.id] = model

        router_model = self._by_id.get(router_model_id)
        if router_model is None:
            raise ValueError(f"Router model '{router_model_id}' is not in the registry")
        self._router_model = router_model

        log.info(
            "registry.initialized",
            model_count=len(self._models),
            router_model=router_model.id,
        )

    @property
    def router_model(self) -> ModelDescriptor:
        return self._router_model

    def __len__(self) -> int:
        return len(self._models)

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._by_id

    def get(self, model_id: str) -> ModelDescriptor | None:
        return self._by_id.get(model_id)

    def list_all(self) -> list[ModelDescriptor]:
        return list(self._models)

    def by_category(self, category: Category | str) -> list[ModelDescriptor]:
        return [m for m in self._models if m.category == category]

    def by_min_context(self, min_context: int) -> list[ModelDescriptor]:
        return [m for m in self._models if m.context_window >= min_context]

    def fastest_models(self) -> list[ModelDescriptor]:
        return [m for m in self._models if m.speed == Speed.FAST]

    def largest_context(self, limit: int) -> list[ModelDescriptor]:
        """Top ``limit`` models by descending context window.

        sorted() is stable, so ties keep declaration order.
        """
        ranked = sorted(self._models, key=lambda m: m.context_window, reverse=True)
        return ranked[:limit]


# ------------------------------------------------------------------ #
# Default catalog (all free OpenRouter models)
# ------------------------------------------------------------------ #

DEFAULT_MODELS: tuple[ModelDescriptor, ...] = (
    # Router model: fast and lightweight, used for decision making
    ModelDescriptor(
        id="mistralai/mistral-small-24b-instruct-2501:free",
        name="Mistral Small 3",
        provider="Mistral",
        context_window=32768,
        strengths=("fast_response", "decision_making", "analysis"),
        use_cases=("routing_decisions", "quick_analysis"),
        speed=Speed.FAST,
        category=Category.GENERAL,
    ),
    # Large context
    ModelDescriptor(
        id="google/gemini-2.5-pro-exp-03-25",
        name="Gemini 2.5 Pro Experimental",
        provider="Google",
        context_window=1048576,
        strengths=("large_context", "reasoning", "multimodal"),
        use_cases=("long_documents", "complex_analysis", "research"),
        speed=Speed.MEDIUM,
        category=Category.ANALYSIS,
    ),
    ModelDescriptor(
        id="qwen/qwen3-235b-a22b:free",
        name="Qwen3 235B A22B",
        provider="Qwen",
        context_window=131072,
        strengths=("large_context", "reasoning", "multilingual"),
        use_cases=("long_conversations", "complex_reasoning"),
        speed=Speed.SLOW,
        category=Category.REASONING,
    ),
    ModelDescriptor(
        id="deepseek/deepseek-r1:free",
        name="DeepSeek R1",
        provider="DeepSeek",
        context_window=163840,
        strengths=("reasoning", "mathematics", "analysis"),
        use_cases=("problem_solving", "mathematical_tasks", "analysis"),
        speed=Speed.MEDIUM,
        category=Category.REASONING,
    ),
    # Coding specialists
    ModelDescriptor(
        id="qwen/qwen3-coder:free",
        name="Qwen3 Coder 480B A35B",
        provider="Qwen",
        context_window=262144,
        strengths=("coding", "debugging", "code_generation"),
        use_cases=("programming", "code_review", "technical_writing"),
        speed=Speed.MEDIUM,
        category=Category.CODING,
    ),
    ModelDescriptor(
        id="agentica-org/deepcoder-14b-preview:free",
        name="DeepCoder 14B Preview",
        provider="Agentica",
        context_window=96000,
        strengths=("coding", "code_understanding", "refactoring"),
        use_cases=("code_analysis", "programming_help"),
        speed=Speed.FAST,
        category=Category.CODING,
    ),
    ModelDescriptor(
        id="qwen/qwen-2.5-coder-32b-instruct:free",
        name="Qwen2.5 Coder 32B",
        provider="Qwen",
        context_window=32768,
        strengths=("coding", "debugging", "code_explanation"),
        use_cases=("programming", "code_help"),
        speed=Speed.FAST,
        category=Category.CODING,
    ),
    # Creative / general purpose
    ModelDescriptor(
        id="mistralai/mistral-small-3.2-24b-instruct:free",
        name="Mistral Small 3.2 24B",
        provider="Mistral",
        context_window=131072,
        strengths=("balanced", "conversational", "general_knowledge"),
        use_cases=("general_chat", "writing", "explanation"),
        speed=Speed.FAST,
        category=Category.GENERAL,
    ),
    ModelDescriptor(
        id="meta-llama/llama-3.3-70b-instruct:free",
        name="Llama 3.3 70B",
        provider="Meta",
        context_window=65536,
        strengths=("conversational", "creative_writing", "analysis"),
        use_cases=("writing", "creative_tasks", "general_assistance"),
        speed=Speed.MEDIUM,
        category=Category.CREATIVE,
    ),
    ModelDescriptor(
        id="deepseek/deepseek-chat-v3-0324:free",
        name="DeepSeek V3 0324",
        provider="DeepSeek",
        context_window=163840,
        strengths=("conversational", "analysis", "multilingual"),
        use_cases=("general_chat", "analysis", "translation"),
        speed=Speed.FAST,
        category=Category.GENERAL,
    ),
    # Fast / lightweight
    ModelDescriptor(
        id="google/gemma-3n-e2b-it:free",
        name="Gemma 3n 2B",
        provider="Google",
        context_window=8192,
        strengths=("fast_response", "lightweight"),
        use_cases=("quick_responses", "simple_queries"),
        speed=Speed.FAST,
        category=Category.GENERAL,
    ),
    ModelDescriptor(
        id="mistralai/mistral-7b-instruct:free",
        name="Mistral 7B",
        provider="Mistral",
        context_window=32768,
        strengths=("fast", "efficient", "general_purpose"),
        use_cases=("quick_tasks", "general_questions"),
        speed=Speed.FAST,
        category=Category.GENERAL,
    ),
)


def build_default_registry(router_model_id: str) -> ModelRegistry:
    """Registry over the built-in catalog."""
    return ModelRegistry(DEFAULT_MODELS, router_model_id=router_model_id)
