"""Context lookups run alongside retrieval: related people, history, social chatter."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from .bounded import bounded_call
from .models import RelatedEntity, SocialSignal
from .providers import FixtureProvider, JudgmentService
from .schema import RELATED_ENTITIES_SCHEMA

logger = logging.getLogger(__name__)

MAX_RELATED_ENTITIES = 3
NO_HISTORY_MARKER = "NONE"

RELATED_PROMPT = (
    "You help compliance analysts widen a screening.\n"
    "Name up to 3 key individuals (executives, founders, controlling owners) associated "
    "with the entity whose own media coverage should also be screened.\n"
    'Return exactly one JSON object: {"entities": [{"name": "<full name>", '
    '"relationship": "<role>"}]}. Return {"entities": []} if unsure. No other text.'
)

HISTORY_PROMPT = (
    "You are a compliance researcher. In 1-2 sentences, state well-documented past "
    "controversies, enforcement actions or litigation involving the entity. "
    f"If there are none you are confident about, reply with exactly {NO_HISTORY_MARKER}."
)


def _coerce(model, items: List[Dict[str, Any]], label: str) -> list:
    coerced = []
    for item in items:
        try:
            coerced.append(model.model_validate(item))
        except ValidationError as exc:
            logger.warning("Skipping malformed %s entry: %s", label, exc.errors()[0]["msg"])
    return coerced


class ContextLookups:
    """
    The three side lookups of a scan. Each is bounded and never raises; the
    fixture provider (demo/test configurations) backs each one when the judgment
    service is missing or fails.
    """

    def __init__(
        self,
        judgment: JudgmentService | None,
        *,
        fixtures: FixtureProvider | None = None,
        timeout: float = 5.0,
    ) -> None:
        self.judgment = judgment
        self.fixtures = fixtures
        self.timeout = timeout

    def _fixture_entities(self, query: str) -> List[RelatedEntity]:
        if self.fixtures is None:
            return []
        items = self.fixtures.related_entities(query)
        return _coerce(RelatedEntity, items, "related entity")[:MAX_RELATED_ENTITIES]

    def _fixture_history(self, query: str) -> str:
        return self.fixtures.history(query) if self.fixtures is not None else ""

    async def _service_entities(self, query: str) -> List[RelatedEntity]:
        payload = await self.judgment.judge(
            RELATED_PROMPT, f"Entity: {query}", step="Related entities", schema=RELATED_ENTITIES_SCHEMA
        )
        entities = _coerce(RelatedEntity, payload["entities"], "related entity")
        lowered = query.strip().lower()
        return [e for e in entities if e.name.strip().lower() != lowered][:MAX_RELATED_ENTITIES]

    async def related_entities(self, query: str) -> List[RelatedEntity]:
        if self.judgment is None:
            return self._fixture_entities(query)
        return await bounded_call(
            lambda: self._service_entities(query),
            timeout=self.timeout,
            fallback=lambda exc: self._fixture_entities(query),
            label="related entities lookup",
        )

    async def _service_history(self, query: str) -> str:
        text = await self.judgment.complete(
            HISTORY_PROMPT, f"Entity: {query}", step="History", max_output_tokens=200
        )
        text = text.strip()
        return "" if text.upper().startswith(NO_HISTORY_MARKER) else text

    async def history(self, query: str) -> str:
        if self.judgment is None:
            return self._fixture_history(query)
        return await bounded_call(
            lambda: self._service_history(query),
            timeout=self.timeout,
            fallback=lambda exc: self._fixture_history(query),
            label="history lookup",
        )

    async def social_signals(self, query: str) -> List[SocialSignal]:
        # No live social provider is wired; only curated signals are served.
        if self.fixtures is None:
            return []
        return _coerce(SocialSignal, self.fixtures.social_signals(query), "social signal")
