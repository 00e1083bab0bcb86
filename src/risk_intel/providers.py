"""Adapters for the external collaborators: retrieval, judgment and curated fixtures.

Every adapter speaks the same raw document shape::

    {"url", "title", "body", "source_name", "published_at", "language"}

and leaves domain/source-type derivation to the fetcher.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx
from openai import AsyncOpenAI, OpenAIError

from .config import Settings
from .errors import ParseError, ProviderUnavailable
from .schema import validate_payload

logger = logging.getLogger(__name__)

RawDocument = Dict[str, Any]

STATUS_OK = "ok"
_JSON_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


@dataclass
class RetrievalResponse:
    status: str
    documents: List[RawDocument] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


class RetrievalProvider(Protocol):
    async def search(
        self, query: str, domains: Sequence[str], page_size: int
    ) -> RetrievalResponse: ...


# --- Live retrieval ----------------------------------------------------------


class NewsApiProvider:
    """NewsAPI ``/v2/everything`` client scoped to a domain allow-list."""

    name = "newsapi"

    def __init__(
        self,
        api_key: str,
        *,
        url: str = "https://newsapi.org/v2/everything",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def search(
        self, query: str, domains: Sequence[str], page_size: int
    ) -> RetrievalResponse:
        params = {
            "q": f'"{query}"',
            "domains": ",".join(domains),
            "pageSize": page_size,
            "sortBy": "publishedAt",
            "language": "en",
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(
                    self.url, params=params, headers={"X-Api-Key": self.api_key}
                )
        except httpx.HTTPError as exc:
            raise ProviderUnavailable(str(exc) or type(exc).__name__, provider=self.name) from exc

        if response.status_code != 200:
            logger.warning("NewsAPI returned HTTP %s for %r", response.status_code, query)
            return RetrievalResponse(status=f"http_{response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise ParseError(f"NewsAPI returned non-JSON body: {exc}") from exc

        status = str(payload.get("status", "error"))
        if status != STATUS_OK:
            logger.warning("NewsAPI status %s: %s", status, payload.get("message"))
            return RetrievalResponse(status=status)
        documents = [_from_newsapi(item) for item in payload.get("articles") or []]
        return RetrievalResponse(status=STATUS_OK, documents=documents)


def _from_newsapi(item: Dict[str, Any]) -> RawDocument:
    source = item.get("source") or {}
    body_parts = [item.get("description") or "", item.get("content") or ""]
    return {
        "url": item.get("url") or "",
        "title": (item.get("title") or "").strip(),
        "body": "\n\n".join(part.strip() for part in body_parts if part.strip()),
        "source_name": source.get("name") or "",
        "published_at": item.get("publishedAt"),
        "language": "en",
    }


# --- Curated fixtures --------------------------------------------------------


class FixtureProvider:
    """
    Curated documents and context keyed by query substrings.

    Only wired in demo/test configurations. The file holds::

        {"entries": [{"match": ["waymo"], "documents": [...],
                      "relatedEntities": [...], "history": "...",
                      "socialSignals": [...]}]}
    """

    name = "fixtures"

    def __init__(self, entries: List[Dict[str, Any]]) -> None:
        self.entries = entries

    @classmethod
    def from_path(cls, path: Path | str) -> "FixtureProvider":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        entries = data.get("entries", []) if isinstance(data, dict) else data
        return cls(list(entries))

    def _matching(self, query: str) -> List[Dict[str, Any]]:
        lowered = query.lower()
        matched = []
        for entry in self.entries:
            keys = entry.get("match") or []
            if isinstance(keys, str):
                keys = [keys]
            if any(str(key).lower() in lowered for key in keys):
                matched.append(entry)
        return matched

    async def search(
        self, query: str, domains: Sequence[str], page_size: int
    ) -> RetrievalResponse:
        documents: List[RawDocument] = []
        for entry in self._matching(query):
            documents.extend(dict(doc) for doc in entry.get("documents") or [])
        return RetrievalResponse(status=STATUS_OK, documents=documents[:page_size])

    def related_entities(self, query: str) -> List[Dict[str, Any]]:
        found: List[Dict[str, Any]] = []
        for entry in self._matching(query):
            found.extend(entry.get("relatedEntities") or [])
        return found

    def history(self, query: str) -> str:
        texts = [entry.get("history") or "" for entry in self._matching(query)]
        return " ".join(text.strip() for text in texts if text.strip())

    def social_signals(self, query: str) -> List[Dict[str, Any]]:
        found: List[Dict[str, Any]] = []
        for entry in self._matching(query):
            found.extend(entry.get("socialSignals") or [])
        return found


def build_fixture_provider(settings: Settings) -> Optional[FixtureProvider]:
    path = settings.resolved_fixtures_path()
    if path is None:
        return None
    return FixtureProvider.from_path(path)


def build_retrieval_provider(settings: Settings) -> Optional[NewsApiProvider]:
    if not settings.news_api_key:
        return None
    return NewsApiProvider(
        settings.news_api_key,
        url=settings.news_api_url,
        timeout=settings.retrieval_timeout_seconds,
    )


# --- Judgment service --------------------------------------------------------


def response_text_or_raise(response: object, *, step: str) -> str:
    """Extract response text or raise ParseError when output is missing."""
    text = getattr(response, "output_text", None)
    if isinstance(text, str) and text.strip():
        return text

    status = getattr(response, "status", None)
    if status == "incomplete":
        details = getattr(response, "incomplete_details", None)
        reason = getattr(details, "reason", None) if details else None
        raise ParseError(f"{step} response incomplete (reason={reason}).")

    err = getattr(response, "error", None)
    if err:
        raise ProviderUnavailable(f"{step} response error: {err}", provider="judgment")

    raise ParseError(f"{step} response missing output text.")


def extract_json(text: str) -> Any:
    """Decode a JSON object from model output, tolerating ```json fences."""
    candidate = text.strip()
    fenced = _JSON_FENCE.search(candidate)
    if fenced:
        candidate = fenced.group(1).strip()
    elif not candidate.startswith("{"):
        start, end = candidate.find("{"), candidate.rfind("}")
        if start != -1 and end > start:
            candidate = candidate[start : end + 1]
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Model output is not valid JSON: {exc.msg}") from exc


class JudgmentService:
    """Thin async wrapper over the OpenAI Responses API."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        *,
        max_output_tokens: int = 400,
        temperature: float = 0.0,
    ) -> None:
        self._client = client
        self.model = model
        self.max_output_tokens = max_output_tokens
        self.temperature = temperature

    async def complete(
        self,
        system: str,
        user: str,
        *,
        step: str,
        max_output_tokens: int | None = None,
    ) -> str:
        request_kwargs: Dict[str, Any] = {
            "model": self.model,
            "input": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "max_output_tokens": max_output_tokens or self.max_output_tokens,
        }
        # Reasoning models reject the temperature parameter.
        if not self.model.startswith(("gpt-5", "o1", "o3", "o4")):
            request_kwargs["temperature"] = self.temperature
        try:
            response = await self._client.responses.create(**request_kwargs)
        except OpenAIError as exc:
            raise ProviderUnavailable(str(exc), provider="judgment") from exc
        return response_text_or_raise(response, step=step)

    async def judge(self, system: str, user: str, *, step: str, schema: str) -> Dict[str, Any]:
        text = await self.complete(system, user, step=step)
        return validate_payload(extract_json(text), schema)


def build_judgment_service(settings: Settings) -> Optional[JudgmentService]:
    if not settings.openai_api_key:
        return None
    return JudgmentService(
        AsyncOpenAI(api_key=settings.openai_api_key),
        settings.judgment_model,
        max_output_tokens=settings.judgment_max_tokens,
    )
