import asyncio

import pytest

from fakes import FakeJudgment, FakeRetrieval, raw, verdict_payload
from risk_intel.brief import BriefGenerator, NO_DATA_BRIEF
from risk_intel.classifier import Classifier
from risk_intel.config import Settings
from risk_intel.errors import ClientError
from risk_intel.fetcher import SourceFetcher
from risk_intel.lookups import ContextLookups
from risk_intel.models import SourceType
from risk_intel.scan import DEGRADED_ADVISORY, ScanPipeline, build_pipeline, validate_query

WAYMO_DOCS = [
    raw(
        "https://www.nhtsa.gov/recalls/pe24016",
        "NHTSA opens investigation into Waymo",
        body="Regulators opened a preliminary evaluation of Waymo's driverless system.",
        source_name="NHTSA",
    ),
    raw(
        "https://www.cnbc.com/alphabet-shares-dip",
        "Alphabet shares dip",
        body="Alphabet stock slipped 1% in afternoon trading.",
        source_name="CNBC",
    ),
]


def _pipeline(retrieval, judgment=None, lookups=None):
    return ScanPipeline(
        fetcher=SourceFetcher(retrieval, domains=["nhtsa.gov", "cnbc.com"], timeout=1.0),
        classifier=Classifier(judgment, timeout=1.0),
        brief_generator=BriefGenerator(judgment, timeout=1.0),
        lookups=lookups or ContextLookups(judgment, timeout=1.0),
    )


def test_validate_query_rejects_missing_and_blank():
    for bad in (None, "", "   ", 42):
        with pytest.raises(ClientError):
            validate_query(bad)
    assert validate_query("  Waymo   LLC ") == "Waymo LLC"


def test_empty_query_issues_no_downstream_calls():
    retrieval = FakeRetrieval(WAYMO_DOCS)
    judgment = FakeJudgment()
    with pytest.raises(ClientError):
        asyncio.run(_pipeline(retrieval, judgment).scan(""))
    assert retrieval.calls == []
    assert judgment.calls == []


def test_zero_documents_skip_every_judgment_call():
    retrieval = FakeRetrieval([])
    judgment = FakeJudgment()

    result = asyncio.run(_pipeline(retrieval, judgment).scan("Nobody Inc"))

    assert result.clusters == []
    assert result.brief == NO_DATA_BRIEF
    for step in ("Classifier", "Brief"):
        assert judgment.count(step) == 0


def test_waymo_end_to_end_in_heuristic_mode():
    result = asyncio.run(_pipeline(FakeRetrieval(WAYMO_DOCS)).scan("Waymo"))

    assert len(result.clusters) == 1
    cluster = result.clusters[0]
    assert cluster.representative.verdict.is_adverse
    assert cluster.representative.document.source_domain == "nhtsa.gov"
    assert cluster.representative.document.source_type is SourceType.REGULATORY
    assert cluster.secondary_sources == []
    assert result.brief
    assert "Waymo" in result.brief


def test_waymo_end_to_end_with_judgment_service():
    judgment = FakeJudgment(
        {
            "NHTSA opens investigation into Waymo": verdict_payload(
                adverse=True, score=84, severity="High", slug="Waymo-NHTSA-Probe"
            )
        },
        brief="Waymo is under a federal safety investigation.",
    )

    result = asyncio.run(_pipeline(FakeRetrieval(WAYMO_DOCS), judgment).scan("Waymo"))

    # The market-move headline is settled by the pre-filter.
    assert judgment.count("Classifier") == 1
    assert [c.is_adverse for c in result.clusters] == [True, False]
    assert len(result.adverse_clusters) == 1
    assert result.adverse_clusters[0].representative.document.source_domain == "nhtsa.gov"
    assert result.brief == "Waymo is under a federal safety investigation."


def test_duplicate_slug_coverage_collapses_into_one_cluster():
    docs = [
        raw("https://nytimes.com/a", "Times sues OpenAI", source_name="NYT"),
        raw("https://apnews.com/b", "NYT files suit against OpenAI", source_name="AP"),
    ]
    slug = verdict_payload(adverse=True, score=75, severity="High", slug="OpenAI-Lawsuit")
    judgment = FakeJudgment({"Times sues OpenAI": slug, "NYT files suit against OpenAI": slug})

    result = asyncio.run(_pipeline(FakeRetrieval(docs), judgment).scan("OpenAI"))

    assert len(result.clusters) == 1
    assert len(result.clusters[0].secondary_sources) == 1


class _ExplodingLookups(ContextLookups):
    def __init__(self):
        super().__init__(None)
        self.history_called = False

    async def related_entities(self, query):
        raise RuntimeError("lookup crashed")

    async def history(self, query):
        await asyncio.sleep(0.01)
        self.history_called = True
        return "Settled in 2018."


def test_failing_lookup_does_not_cancel_siblings():
    lookups = _ExplodingLookups()
    result = asyncio.run(_pipeline(FakeRetrieval(WAYMO_DOCS), lookups=lookups).scan("Waymo"))

    assert lookups.history_called
    assert result.related_entities == []
    assert len(result.clusters) == 1
    assert result.advisory is None


class _BrokenClassifier(Classifier):
    async def classify(self, docs, query):
        raise RuntimeError("classifier crashed")


def test_internal_failure_returns_well_formed_degraded_result():
    pipeline = _pipeline(FakeRetrieval(WAYMO_DOCS))
    pipeline.classifier = _BrokenClassifier(None)

    result = asyncio.run(pipeline.scan("Waymo"))

    assert result.query == "Waymo"
    assert result.clusters == []
    assert result.advisory == DEGRADED_ADVISORY
    assert result.brief


def test_build_pipeline_without_keys_uses_demo_fixtures():
    settings = Settings(openai_api_key=None, news_api_key=None, fixtures_path=None, demo_mode=True)
    pipeline = build_pipeline(settings)

    result = asyncio.run(pipeline.scan("Waymo"))

    assert pipeline.classifier.judgment is None
    assert pipeline.fetcher.provider is None
    adverse = result.adverse_clusters
    assert adverse
    assert adverse[0].representative.document.source_type is SourceType.REGULATORY
    assert [e.name for e in result.related_entities] == ["Tekedra Mawakana", "Dmitri Dolgov"]
    assert result.social_signals
