"""Source fetching: retrieval, normalization and url de-duplication."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Iterable, List, Optional, Sequence
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from .bounded import bounded_call
from .models import Document, SourceType
from .providers import RawDocument, RetrievalProvider, RetrievalResponse

logger = logging.getLogger(__name__)

# Checked in order; the first family with a marker in the domain wins.
SOURCE_TYPE_MARKERS: tuple[tuple[SourceType, tuple[str, ...]], ...] = (
    (
        SourceType.REGULATORY,
        (".gov", "gov.", "sec.gov", "nhtsa", "ftc", "fca.org.uk", "europa.eu", "regulator"),
    ),
    (SourceType.LEGAL, ("law", "court", "legal", "justia", "jurist")),
    (SourceType.BLOG, ("blog", "medium.com", "substack", "forum", "reddit")),
)

TRACKING_PARAMS = re.compile(r"^(utm_.*|fbclid|gclid|mc_cid|mc_eid)$", re.IGNORECASE)
REMOVED_TITLE = "[Removed]"


def domain_of(url: str) -> str:
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def source_type_for_domain(domain: str) -> SourceType:
    lowered = domain.lower()
    for source_type, markers in SOURCE_TYPE_MARKERS:
        if any(marker in lowered for marker in markers):
            return source_type
    return SourceType.NEWS


def canonical_url(url: str) -> str:
    """Normalize a url into the identifier documents are keyed by."""
    parsed = urlparse(url.strip())
    query = urlencode(
        [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if not TRACKING_PARAMS.match(k)]
    )
    path = parsed.path.rstrip("/")
    return urlunparse(
        (parsed.scheme.lower(), parsed.netloc.lower(), path, parsed.params, query, "")
    )


def _parse_published_at(raw: object) -> Optional[datetime]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw
    txt = str(raw).strip()
    # fromisoformat on older interpreters rejects a trailing "Z".
    if txt.endswith(("Z", "z")):
        txt = f"{txt[:-1]}+00:00"
    try:
        return datetime.fromisoformat(txt)
    except ValueError:
        logger.debug("Ignoring unparseable publishedAt %r", raw)
        return None


def normalize_document(raw: RawDocument) -> Optional[Document]:
    """Build a Document from a provider result; None when it cannot be keyed."""
    url = str(raw.get("url") or "").strip()
    title = str(raw.get("title") or "").strip()
    if not url or not title or title == REMOVED_TITLE:
        return None
    url = canonical_url(url)
    domain = domain_of(url)
    if not domain:
        return None
    return Document(
        url=url,
        title=title,
        body=str(raw.get("body") or ""),
        source_name=str(raw.get("source_name") or domain),
        source_domain=domain,
        source_type=source_type_for_domain(domain),
        published_at=_parse_published_at(raw.get("published_at")),
        origin_language=raw.get("language") or None,
    )


def dedupe_by_url(documents: Iterable[Document]) -> List[Document]:
    """Collapse documents sharing a canonical url; the first occurrence wins."""
    seen: set[str] = set()
    unique: List[Document] = []
    for doc in documents:
        if doc.url in seen:
            continue
        seen.add(doc.url)
        unique.append(doc)
    return unique


class SourceFetcher:
    """
    Queries the live retrieval provider and any curated fixtures for a term.

    Never raises: an unconfigured, failing or slow provider contributes no
    documents and the fixtures (if any) still come through.
    """

    def __init__(
        self,
        provider: RetrievalProvider | None,
        *,
        domains: Sequence[str],
        page_size: int = 20,
        timeout: float = 5.0,
        fixtures: RetrievalProvider | None = None,
    ) -> None:
        self.provider = provider
        self.fixtures = fixtures
        self.domains = list(domains)
        self.page_size = page_size
        self.timeout = timeout

    async def _search(self, provider: RetrievalProvider, query: str, label: str) -> List[RawDocument]:
        response = await bounded_call(
            lambda: provider.search(query, self.domains, self.page_size),
            timeout=self.timeout,
            fallback=lambda exc: RetrievalResponse(status=f"failed:{type(exc).__name__}"),
            label=label,
        )
        if not response.ok:
            logger.info("%s returned status %s for %r", label, response.status, query)
            return []
        return response.documents

    async def fetch(self, query: str) -> List[Document]:
        raw: List[RawDocument] = []
        if self.fixtures is not None:
            raw.extend(await self._search(self.fixtures, query, "fixture retrieval"))
        if self.provider is not None:
            raw.extend(await self._search(self.provider, query, "live retrieval"))
        else:
            logger.info("No retrieval provider configured; live search skipped")

        documents = [doc for doc in (normalize_document(item) for item in raw) if doc]
        unique = dedupe_by_url(documents)
        logger.info("Fetched %d document(s) (%d unique) for %r", len(documents), len(unique), query)
        return unique
