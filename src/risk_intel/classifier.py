"""Relevance and risk classification of fetched documents.

Each document gets exactly one Verdict, produced by one of four paths:

- pre-filter: obvious pricing/market noise is settled without a service call;
- judgment service: strict JSON verdict, validated against the bundled schema;
- degraded: timeout or malformed output keeps the document, flagged for review;
- heuristic: keyword rules when no judgment service is configured at all.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import timezone
from typing import Dict, List, Sequence, Tuple

from .bounded import bounded_call
from .models import ClassifiedDocument, Document, Severity, SourceType, Verdict
from .providers import JudgmentService
from .schema import VERDICT_SCHEMA

logger = logging.getLogger(__name__)

ADVERSE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "Litigation": (
        "lawsuit",
        "lawsuits",
        "sued",
        "sues",
        "class action",
        "litigation",
        "settlement",
        "settles",
        "indicted",
        "indictment",
        "charged",
    ),
    "Regulatory": (
        "probe",
        "investigation",
        "investigates",
        "investigating",
        "fine",
        "fined",
        "penalty",
        "sanction",
        "sanctions",
        "violation",
        "violations",
        "subpoena",
        "consent decree",
    ),
    "Financial Crime": (
        "fraud",
        "embezzlement",
        "bribery",
        "money laundering",
        "insider trading",
        "corruption",
        "ponzi",
    ),
    "Safety": (
        "recall",
        "recalls",
        "crash",
        "crashes",
        "collision",
        "injured",
        "killed",
        "fatal",
        "unsafe",
    ),
    "Labor": ("discrimination", "harassment", "wrongful termination", "wage theft"),
}

NOISE_TERMS: Tuple[str, ...] = (
    "price",
    "prices",
    "pricing",
    "discount",
    "deal",
    "deals",
    "coupon",
    "promo",
    "sale",
    "sponsored",
    "advertisement",
    "shares",
    "stock",
    "stocks",
    "dip",
    "rally",
    "rallies",
    "surge",
    "slump",
    "market cap",
    "price target",
)


def _word_pattern(terms: Sequence[str]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(term) for term in sorted(terms, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


ADVERSE_PATTERN = _word_pattern([kw for kws in ADVERSE_KEYWORDS.values() for kw in kws])
NOISE_PATTERN = _word_pattern(NOISE_TERMS)
FAMILY_PATTERNS = {family: _word_pattern(kws) for family, kws in ADVERSE_KEYWORDS.items()}

SOURCE_TIER = {
    SourceType.REGULATORY: 0,
    SourceType.LEGAL: 1,
    SourceType.NEWS: 2,
    SourceType.BLOG: 3,
}

MANUAL_REVIEW = "Manual Review"
ANALYSIS_UNAVAILABLE = "Analysis unavailable - manual review required."
HEURISTIC_ADVERSE_SCORE = 80
BODY_PROMPT_CHARS = 3000

SYSTEM_PROMPT = (
    "You are an adverse media analyst screening news for compliance risk.\n"
    "Return exactly one JSON object with these keys and nothing else:\n\n"
    '{"isRelevant": <bool>, "isAdverse": <bool>, "riskTypes": [<string>], '
    '"severity": "None|Low|Medium|High|Critical", "riskScore": <integer 0-100>, '
    '"summary": "<one or two sentences>", "risk_event_slug": "<short-event-slug>"}\n\n'
    "isRelevant: the article is materially about the screened entity.\n"
    "isAdverse: it reports litigation, regulatory action, fraud, sanctions, safety, "
    "labor or other reputational risk for the entity.\n"
    "riskTypes: short labels such as Litigation, Regulatory, Financial Crime, Safety.\n"
    "risk_event_slug: the same slug for every article about the same underlying event, "
    "e.g. 'Entity-Lawsuit' or 'Entity-NHTSA-Probe'.\n"
    "No markdown, no extra text."
)


def is_noise_title(title: str) -> bool:
    """Pricing, advertising or market-move headline with no adverse language."""
    return bool(NOISE_PATTERN.search(title)) and not ADVERSE_PATTERN.search(title)


def _published_sort_value(doc: Document) -> float:
    if doc.published_at is None:
        return 0.0
    published = doc.published_at
    if published.tzinfo is None:
        published = published.replace(tzinfo=timezone.utc)
    return published.timestamp()


def _priority_key(doc: Document) -> tuple:
    return (
        SOURCE_TIER.get(doc.source_type, len(SOURCE_TIER)),
        doc.published_at is None,
        -_published_sort_value(doc),
    )


def prioritize(documents: Sequence[Document]) -> List[Document]:
    """Order by source-type tier, then newest first; undated documents last within a tier."""
    return sorted(documents, key=_priority_key)


def select_batch(documents: Sequence[Document], cap: int) -> List[Document]:
    """
    Pick the ``cap`` highest-priority documents, returned in their input order.

    Priority decides which documents survive the cap; it does not reorder them.
    """
    ranked = sorted(range(len(documents)), key=lambda idx: _priority_key(documents[idx]))
    return [documents[idx] for idx in sorted(ranked[:cap])]


def noise_verdict(doc: Document) -> Verdict:
    return Verdict(
        is_relevant=True,
        is_adverse=False,
        severity=Severity.NONE,
        risk_score=0,
        summary=doc.body[:280] or doc.title,
        cluster_tag=doc.title,
    )


def degraded_verdict(doc: Document) -> Verdict:
    return Verdict(
        is_relevant=True,
        is_adverse=False,
        risk_types=[MANUAL_REVIEW],
        severity=Severity.LOW,
        risk_score=0,
        summary=ANALYSIS_UNAVAILABLE,
        cluster_tag=doc.title,
        requires_review=True,
    )


def _mentions_query(text: str, query: str) -> bool:
    lowered = text.lower()
    needle = query.strip().lower()
    if needle and needle in lowered:
        return True
    tokens = [tok for tok in re.split(r"\W+", needle) if len(tok) >= 3]
    return any(re.search(rf"\b{re.escape(tok)}\b", lowered) for tok in tokens)


def heuristic_verdict(doc: Document, query: str) -> Verdict:
    """Keyword verdict used when no judgment service is configured."""
    text = f"{doc.title}\n{doc.body}"
    relevant = _mentions_query(text, query)
    families = [family for family, pattern in FAMILY_PATTERNS.items() if pattern.search(text)]
    adverse = relevant and bool(families)
    return Verdict(
        is_relevant=relevant,
        is_adverse=adverse,
        risk_types=families if adverse else [],
        severity=Severity.HIGH if adverse else Severity.NONE,
        risk_score=HEURISTIC_ADVERSE_SCORE if adverse else 0,
        summary=doc.body[:280] or doc.title,
        cluster_tag=doc.title,
    )


def verdict_from_payload(payload: Dict, doc: Document) -> Verdict:
    """Map a schema-valid service payload onto a Verdict."""
    adverse = bool(payload["isAdverse"])
    severity_raw = payload.get("severity") or ("Medium" if adverse else "None")
    return Verdict(
        is_relevant=bool(payload["isRelevant"]),
        is_adverse=adverse,
        risk_types=list(payload.get("riskTypes") or []),
        severity=Severity(severity_raw),
        risk_score=int(payload["riskScore"]),
        summary=str(payload.get("summary") or "").strip() or doc.title,
        cluster_tag=str(payload.get("risk_event_slug") or "").strip() or doc.title,
    )


def build_user_prompt(doc: Document, query: str) -> str:
    published = doc.published_at.isoformat() if doc.published_at else "unknown"
    return (
        f"Screened entity: {query}\n"
        f"Title: {doc.title}\n"
        f"Source: {doc.source_name} ({doc.source_domain}, {doc.source_type.value})\n"
        f"Published: {published}\n"
        f"Content: {doc.body[:BODY_PROMPT_CHARS]}"
    )


class Classifier:
    """Classify a capped, prioritized batch of documents concurrently."""

    def __init__(
        self,
        judgment: JudgmentService | None,
        *,
        max_documents: int = 10,
        timeout: float = 4.0,
    ) -> None:
        self.judgment = judgment
        self.max_documents = max_documents
        self.timeout = timeout

    async def _service_verdict(self, doc: Document, query: str) -> Verdict:
        payload = await self.judgment.judge(
            SYSTEM_PROMPT,
            build_user_prompt(doc, query),
            step="Classifier",
            schema=VERDICT_SCHEMA,
        )
        return verdict_from_payload(payload, doc)

    async def _verdict_for(self, doc: Document, query: str) -> Verdict:
        if self.judgment is None:
            return heuristic_verdict(doc, query)
        if is_noise_title(doc.title):
            logger.debug("Pre-filter settled %r without a service call", doc.title)
            return noise_verdict(doc)
        return await bounded_call(
            lambda: self._service_verdict(doc, query),
            timeout=self.timeout,
            fallback=lambda exc: degraded_verdict(doc),
            label=f"judgment for {doc.url}",
        )

    async def classify(self, docs: Sequence[Document], query: str) -> List[ClassifiedDocument]:
        batch = select_batch(docs, self.max_documents)
        if len(docs) > len(batch):
            logger.info("Classifier cap dropped %d document(s)", len(docs) - len(batch))

        verdicts = await asyncio.gather(*(self._verdict_for(doc, query) for doc in batch))

        classified = [
            ClassifiedDocument(document=doc, verdict=verdict)
            for doc, verdict in zip(batch, verdicts)
            if verdict.is_relevant
        ]
        logger.info(
            "Classified %d document(s): %d relevant, %d adverse, %d need review",
            len(batch),
            len(classified),
            sum(1 for item in classified if item.verdict.is_adverse),
            sum(1 for item in classified if item.verdict.requires_review),
        )
        return classified
