"""Scan orchestration: fetch and context lookups in parallel, then classify, cluster, brief.

The pipeline is built from injected collaborators; ``build_pipeline`` wires the
live providers from settings, and tests pass fakes directly.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

from .brief import NO_DATA_BRIEF, BriefGenerator
from .classifier import Classifier
from .clustering import cluster_documents
from .config import Settings, get_settings
from .errors import ClientError
from .fetcher import SourceFetcher, dedupe_by_url
from .lookups import ContextLookups
from .models import Document, RelatedEntity, ScanResult, SocialSignal
from .providers import (
    build_fixture_provider,
    build_judgment_service,
    build_retrieval_provider,
)

logger = logging.getLogger(__name__)

DEGRADED_BRIEF = "Screening could not be completed; results are unavailable for this run."
DEGRADED_ADVISORY = (
    "The scan hit an internal error and returned no findings. "
    "Retry the scan or review sources manually."
)
MAX_QUERY_LENGTH = 200


def validate_query(query: Any) -> str:
    """Return the trimmed query or raise ClientError."""
    if not isinstance(query, str) or not query.strip():
        raise ClientError("query is required and must be a non-empty string.")
    cleaned = " ".join(query.split())
    if len(cleaned) > MAX_QUERY_LENGTH:
        raise ClientError(f"query must be at most {MAX_QUERY_LENGTH} characters.")
    return cleaned


def degraded_result(query: str) -> ScanResult:
    """Well-formed result served when a scan cannot run to completion."""
    return ScanResult(query=query, brief=DEGRADED_BRIEF, advisory=DEGRADED_ADVISORY)


def _settled(value: Any, default: Any, label: str) -> Any:
    if isinstance(value, BaseException):
        logger.error("%s failed: %r", label, value)
        return default
    return value


class ScanPipeline:
    def __init__(
        self,
        fetcher: SourceFetcher,
        classifier: Classifier,
        brief_generator: BriefGenerator,
        lookups: ContextLookups,
    ) -> None:
        self.fetcher = fetcher
        self.classifier = classifier
        self.brief_generator = brief_generator
        self.lookups = lookups

    async def scan(self, query: Any) -> ScanResult:
        """
        Run one scan. Raises ClientError for an invalid query; every other
        failure yields a well-formed result carrying an advisory.
        """
        cleaned = validate_query(query)
        try:
            return await self._run(cleaned)
        except Exception:
            logger.exception("Scan for %r failed; returning degraded result", cleaned)
            return degraded_result(cleaned)

    async def _run(self, query: str) -> ScanResult:
        fetched, related, history, social = await asyncio.gather(
            self.fetcher.fetch(query),
            self.lookups.related_entities(query),
            self.lookups.history(query),
            self.lookups.social_signals(query),
            return_exceptions=True,
        )
        documents: List[Document] = dedupe_by_url(_settled(fetched, [], "retrieval"))
        related_entities: List[RelatedEntity] = _settled(related, [], "related entities lookup")
        history_text: str = _settled(history, "", "history lookup")
        social_signals: List[SocialSignal] = _settled(social, [], "social signal lookup")

        if not documents:
            logger.info("No documents for %r; skipping classification", query)
            return ScanResult(
                query=query,
                related_entities=related_entities,
                brief=NO_DATA_BRIEF,
                social_signals=social_signals,
            )

        classified = await self.classifier.classify(documents, query)
        clusters = cluster_documents(classified)
        brief = await self.brief_generator.generate(clusters, query, history_text)
        logger.info(
            "Scan for %r: %d document(s) -> %d cluster(s), %d adverse",
            query,
            len(documents),
            len(clusters),
            sum(1 for cluster in clusters if cluster.is_adverse),
        )
        return ScanResult(
            query=query,
            clusters=clusters,
            related_entities=related_entities,
            brief=brief,
            social_signals=social_signals,
        )


def build_pipeline(settings: Optional[Settings] = None) -> ScanPipeline:
    """Wire a pipeline from settings; missing keys select degraded modes."""
    settings = settings or get_settings()
    judgment = build_judgment_service(settings)
    fixtures = build_fixture_provider(settings)
    retrieval = build_retrieval_provider(settings)
    if judgment is None:
        logger.warning("OPENAI_API_KEY not set; using heuristic classification")
    if retrieval is None and fixtures is None:
        logger.warning("NEWS_API_KEY not set and no fixtures configured; scans will find no documents")

    return ScanPipeline(
        fetcher=SourceFetcher(
            retrieval,
            domains=settings.trusted_domains,
            page_size=settings.page_size,
            timeout=settings.retrieval_timeout_seconds,
            fixtures=fixtures,
        ),
        classifier=Classifier(
            judgment,
            max_documents=settings.max_classified_documents,
            timeout=settings.judgment_timeout_seconds,
        ),
        brief_generator=BriefGenerator(
            judgment,
            top_n=settings.brief_top_n,
            timeout=settings.brief_timeout_seconds,
        ),
        lookups=ContextLookups(
            judgment,
            fixtures=fixtures,
            timeout=settings.lookup_timeout_seconds,
        ),
    )
