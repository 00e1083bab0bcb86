"""Shared fakes for the scan pipeline tests."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from risk_intel.errors import ParseError, ProviderUnavailable
from risk_intel.fetcher import domain_of, source_type_for_domain
from risk_intel.models import ClassifiedDocument, Document, Verdict
from risk_intel.providers import RetrievalResponse
from risk_intel.schema import validate_payload


def make_doc(
    url: str,
    title: str,
    body: str = "",
    source_name: str = "Reuters",
    published_at: Optional[datetime] = None,
) -> Document:
    domain = domain_of(url)
    return Document(
        url=url,
        title=title,
        body=body,
        source_name=source_name,
        source_domain=domain,
        source_type=source_type_for_domain(domain),
        published_at=published_at,
    )


def make_classified(
    url: str,
    title: str,
    *,
    adverse: bool = False,
    tag: str = "",
    score: int = 0,
    source_name: str = "Reuters",
) -> ClassifiedDocument:
    return ClassifiedDocument(
        document=make_doc(url, title, source_name=source_name),
        verdict=Verdict(
            is_relevant=True,
            is_adverse=adverse,
            risk_score=score,
            summary=title,
            cluster_tag=tag,
        ),
    )


def raw(url: str, title: str, body: str = "", source_name: str = "Reuters", published_at: str | None = None) -> Dict[str, Any]:
    return {
        "url": url,
        "title": title,
        "body": body,
        "source_name": source_name,
        "published_at": published_at,
    }


class FakeRetrieval:
    def __init__(
        self,
        documents: Iterable[Dict[str, Any]] = (),
        *,
        status: str = "ok",
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.documents = list(documents)
        self.status = status
        self.delay = delay
        self.error = error
        self.calls: List[tuple] = []

    async def search(self, query, domains, page_size):
        self.calls.append((query, tuple(domains), page_size))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        docs = self.documents if self.status == "ok" else []
        return RetrievalResponse(status=self.status, documents=[dict(d) for d in docs])


def verdict_payload(
    *,
    relevant: bool = True,
    adverse: bool = False,
    score: int = 0,
    severity: str = "None",
    slug: str = "",
    risk_types: Optional[List[str]] = None,
    summary: str = "Summary.",
) -> Dict[str, Any]:
    return {
        "isRelevant": relevant,
        "isAdverse": adverse,
        "riskTypes": risk_types or [],
        "severity": severity,
        "riskScore": score,
        "summary": summary,
        "risk_event_slug": slug,
    }


def _title_from_prompt(user: str) -> str:
    for line in user.splitlines():
        if line.startswith("Title: "):
            return line[len("Title: ") :]
    return ""


class FakeJudgment:
    """Duck-typed JudgmentService recording every call by step name."""

    def __init__(
        self,
        verdicts: Optional[Dict[str, Dict[str, Any]]] = None,
        *,
        delays: Optional[Dict[str, float]] = None,
        malformed: Iterable[str] = (),
        brief: str = "Generated brief.",
        brief_error: Exception | None = None,
        related: Optional[List[Dict[str, str]]] = None,
        history: str = "NONE",
        lookup_error: Exception | None = None,
    ) -> None:
        self.verdicts = verdicts or {}
        self.delays = delays or {}
        self.malformed = set(malformed)
        self.brief = brief
        self.brief_error = brief_error
        self.related = related or []
        self.history = history
        self.lookup_error = lookup_error
        self.calls: List[str] = []
        self.prompts: List[str] = []

    def count(self, step: str) -> int:
        return self.calls.count(step)

    async def judge(self, system, user, *, step, schema):
        self.calls.append(step)
        self.prompts.append(user)
        if step == "Classifier":
            title = _title_from_prompt(user)
            if title in self.delays:
                await asyncio.sleep(self.delays[title])
            if title in self.malformed:
                raise ParseError("Model output is not valid JSON")
            payload = self.verdicts.get(title, verdict_payload())
            return validate_payload(payload, schema)
        if self.lookup_error is not None:
            raise self.lookup_error
        return validate_payload({"entities": self.related}, schema)

    async def complete(self, system, user, *, step, max_output_tokens=None):
        self.calls.append(step)
        self.prompts.append(user)
        if step == "Brief":
            if self.brief_error is not None:
                raise self.brief_error
            return self.brief
        if self.lookup_error is not None:
            raise self.lookup_error
        return self.history


UNAVAILABLE = ProviderUnavailable("service down", provider="judgment")
