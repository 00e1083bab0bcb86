import asyncio
from datetime import datetime, timezone

from fakes import FakeRetrieval, raw
from risk_intel.errors import ProviderUnavailable
from risk_intel.fetcher import (
    SourceFetcher,
    canonical_url,
    dedupe_by_url,
    normalize_document,
    source_type_for_domain,
)
from risk_intel.models import SourceType

DOMAINS = ["reuters.com", "nhtsa.gov"]


def _fetcher(provider=None, fixtures=None, timeout=1.0):
    return SourceFetcher(provider, domains=DOMAINS, page_size=10, timeout=timeout, fixtures=fixtures)


def test_source_type_for_domain_markers():
    assert source_type_for_domain("nhtsa.gov") is SourceType.REGULATORY
    assert source_type_for_domain("sec.gov") is SourceType.REGULATORY
    assert source_type_for_domain("law360.com") is SourceType.LEGAL
    assert source_type_for_domain("courtlistener.com") is SourceType.LEGAL
    assert source_type_for_domain("engineering.blog.example.com") is SourceType.BLOG
    assert source_type_for_domain("reuters.com") is SourceType.NEWS


def test_canonical_url_strips_tracking_fragment_and_trailing_slash():
    url = "HTTPS://WWW.Reuters.com/markets/story/?utm_source=x&id=7#comments"
    assert canonical_url(url) == "https://www.reuters.com/markets/story?id=7"


def test_normalize_document_derives_domain_type_and_date():
    doc = normalize_document(
        raw(
            "https://www.nhtsa.gov/recalls/pe24016/",
            "NHTSA opens investigation into Waymo",
            source_name="NHTSA",
            published_at="2024-05-14T00:00:00Z",
        )
    )
    assert doc is not None
    assert doc.url == "https://www.nhtsa.gov/recalls/pe24016"
    assert doc.source_domain == "nhtsa.gov"
    assert doc.source_type is SourceType.REGULATORY
    assert doc.published_at == datetime(2024, 5, 14, tzinfo=timezone.utc)


def test_normalize_document_skips_unusable_results():
    assert normalize_document(raw("", "No url")) is None
    assert normalize_document(raw("https://reuters.com/a", "")) is None
    assert normalize_document(raw("https://reuters.com/a", "[Removed]")) is None


def test_dedupe_by_url_keeps_first_occurrence():
    first = normalize_document(raw("https://reuters.com/a", "First"))
    second = normalize_document(raw("https://reuters.com/a/", "Second"))
    other = normalize_document(raw("https://reuters.com/b", "Other"))
    assert [d.title for d in dedupe_by_url([first, second, other])] == ["First", "Other"]


def test_fetch_merges_fixtures_before_live_and_collapses_duplicates():
    fixtures = FakeRetrieval([raw("https://reuters.com/a", "Curated A")])
    live = FakeRetrieval(
        [raw("https://reuters.com/a?utm_medium=rss", "Live A"), raw("https://reuters.com/b", "Live B")]
    )

    docs = asyncio.run(_fetcher(live, fixtures).fetch("Waymo"))

    assert [d.title for d in docs] == ["Curated A", "Live B"]
    assert live.calls == [("Waymo", tuple(DOMAINS), 10)]


def test_fetch_absorbs_provider_error_and_keeps_fixtures():
    fixtures = FakeRetrieval([raw("https://reuters.com/a", "Curated A")])
    live = FakeRetrieval(error=ProviderUnavailable("connection refused", provider="newsapi"))

    docs = asyncio.run(_fetcher(live, fixtures).fetch("Waymo"))

    assert [d.title for d in docs] == ["Curated A"]


def test_fetch_times_out_slow_provider():
    live = FakeRetrieval([raw("https://reuters.com/a", "Late")], delay=1.0)
    docs = asyncio.run(_fetcher(live, timeout=0.05).fetch("Waymo"))
    assert docs == []


def test_fetch_treats_non_success_status_as_no_documents():
    live = FakeRetrieval([raw("https://reuters.com/a", "Hidden")], status="rateLimited")
    assert asyncio.run(_fetcher(live).fetch("Waymo")) == []


def test_fetch_without_any_provider_returns_empty_list():
    assert asyncio.run(_fetcher().fetch("Waymo")) == []
