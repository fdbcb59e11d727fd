"""
Adapter around the external content classifier.

The adapter maps the classifier's category scores onto the internal
vocabulary (lower snake_case, scores clamped to [0, 1]) and never lets a
failure escape: a timeout, an exception or a malformed payload all produce the
zero-risk :meth:`ClassifierSignal.unavailable` signal. A flaky dependency can
therefore only under-escalate, never leave the pipeline in a critical state.

The default classifier is OpenAI's moderation endpoint through ``AsyncOpenAI``;
any ``async (text) -> mapping`` callable can stand in for it.
"""

from __future__ import annotations

import asyncio
import math
from typing import Any, Awaitable, Callable, Dict, Mapping

from openai import AsyncOpenAI

from carecord.configuration.safety_settings import ClassifierSettings
from carecord.datatypes.safety_datatypes import ClassifierSignal
from carecord.safety.errors import ClassificationUnavailable
from carecord.util.logger import get_logger

logger = get_logger("classification_adapter")

Classifier = Callable[[str], Awaitable[Mapping[str, Any]]]


def normalize_category_name(name: str) -> str:
    """``"self-harm/intent"`` -> ``"self_harm_intent"``."""
    return str(name).strip().lower().replace("/", "_").replace("-", "_").replace(" ", "_")


def normalize_categories(raw: Mapping[str, Any]) -> Dict[str, float]:
    """Map raw classifier scores into the internal vocabulary.

    Accepts either a flat ``{category: score}`` mapping or a payload with a
    ``categories`` mapping. Non-numeric and NaN scores are dropped; the rest
    are clamped to [0, 1]. When two raw names collapse onto one internal name
    the higher score wins.
    """
    categories = raw.get("categories") if isinstance(raw.get("categories"), Mapping) else raw
    normalized: Dict[str, float] = {}
    for name, value in categories.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        score = float(value)
        if math.isnan(score):
            continue
        key = normalize_category_name(name)
        normalized[key] = max(normalized.get(key, 0.0), min(1.0, max(0.0, score)))
    return normalized


class OpenAIModerationClassifier:
    """Calls the OpenAI moderation endpoint and returns raw category scores."""

    def __init__(self, settings: ClassifierSettings, client: AsyncOpenAI | None = None) -> None:
        self._model_name = settings.model_name
        self._client = client or AsyncOpenAI(api_key=settings.api_key, base_url=settings.base_url)
        logger.info("[CLASSIFIER] Initialized with base_url=%s, model=%s", settings.base_url, self._model_name)

    async def __call__(self, text: str) -> Dict[str, Any]:
        try:
            response = await self._client.moderations.create(model=self._model_name, input=text)
        except Exception as exc:
            raise ClassificationUnavailable(f"moderation request failed: {exc}") from exc

        if not response.results:
            raise ClassificationUnavailable("moderation response contained no results")

        scores = response.results[0].category_scores
        return {"categories": scores.model_dump(by_alias=True)}


class ClassificationAdapter:
    """Fail-safe wrapper that turns classifier output into a ClassifierSignal."""

    def __init__(self, classifier: Classifier, timeout_seconds: float = 5.0) -> None:
        self._classifier = classifier
        self._timeout = timeout_seconds
        self.calls = 0

    async def classify(self, text: str) -> ClassifierSignal:
        """Classify `text`; any failure yields the zero-risk signal."""
        self.calls += 1
        try:
            raw = await asyncio.wait_for(self._classifier(text), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("[CLASSIFICATION ADAPTER] Classifier timed out after %.1fs", self._timeout)
            return ClassifierSignal.unavailable()
        except Exception as exc:
            logger.warning("[CLASSIFICATION ADAPTER] Classifier unavailable: %s", exc, exc_info=True)
            return ClassifierSignal.unavailable()

        if not isinstance(raw, Mapping):
            logger.warning("[CLASSIFICATION ADAPTER] Unexpected classifier payload type %s", type(raw).__name__)
            return ClassifierSignal.unavailable()

        categories = normalize_categories(raw)
        logger.debug("[CLASSIFICATION ADAPTER] Scores: %s", categories)
        return ClassifierSignal(categories=categories)
