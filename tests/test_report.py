from datetime import date

from docx import Document

from fakes import make_classified
from risk_intel.clustering import cluster_documents
from risk_intel.models import RelatedEntity, ScanResult, SocialSignal
from risk_intel.report import build_docx, format_markdown


def _result(advisory=None) -> ScanResult:
    clusters = cluster_documents(
        [
            make_classified(
                "https://nhtsa.gov/a", "NHTSA opens investigation into Waymo", adverse=True, tag="probe", score=85
            ),
            make_classified(
                "https://reuters.com/b", "US agency probes Waymo", adverse=True, tag="probe", score=70
            ),
            make_classified("https://techcrunch.com/c", "Waymo opens to everyone", source_name="TechCrunch"),
        ]
    )
    return ScanResult(
        query="Waymo",
        clusters=clusters,
        related_entities=[RelatedEntity(name="Tekedra Mawakana", relationship="Co-CEO")],
        brief="Waymo faces a federal safety probe.",
        social_signals=[SocialSignal(name="SF Watch", handle="@sf", content="Blocked lane.", sentiment="negative")],
        advisory=advisory,
    )


def test_markdown_sections():
    text = format_markdown(_result())

    assert text.startswith("# Adverse media screening: Waymo\n")
    assert "## Executive brief\n\nWaymo faces a federal safety probe." in text
    assert "## Adverse findings (1)" in text
    assert "[NHTSA opens investigation into Waymo (Reuters, Recent) - None / 85](https://nhtsa.gov/a)" in text
    assert "Also reported by: Reuters" in text
    assert "## Other coverage (1)" in text
    assert "- Tekedra Mawakana (Co-CEO)" in text
    assert "@sf [negative]: Blocked lane." in text
    assert "> " not in text


def test_markdown_leads_with_advisory_and_empty_findings():
    text = format_markdown(ScanResult(query="Acme", brief="", advisory="Retry later."))
    assert "> Retry later." in text
    assert "## Adverse findings (0)\n\nNone." in text
    assert "Associated individuals" not in text


def test_docx_memo_structure(tmp_path):
    out = tmp_path / "memo.docx"
    build_docx(_result(), out, generated_on=date(2024, 6, 1))

    doc = Document(out)
    texts = [p.text for p in doc.paragraphs]
    assert texts[0] == "Adverse Media Screening: Waymo"
    assert "Generated 2024-06-01" in texts
    assert "1. Executive Brief" in texts
    assert "2. Adverse Findings (1)" in texts
    assert "3. Other Coverage (1)" in texts
    assert "Associated Individuals" in texts
    assert "Also reported by: Reuters" in texts
    assert "https://nhtsa.gov/a" in texts
