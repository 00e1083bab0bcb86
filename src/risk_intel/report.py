"""Markdown and DOCX renderings of a scan result."""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import List, Optional

from docx import Document as DocxDocument
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml.ns import qn
from docx.shared import Pt

from .brief import rank_adverse
from .models import Cluster, ScanResult


def _format_date(cluster: Cluster) -> str:
    published = cluster.representative.document.published_at
    return f"{published.month}/{published.day}/{published.year}" if published else "Recent"


def _finding_heading(cluster: Cluster) -> str:
    rep = cluster.representative
    verdict = rep.verdict
    parts = [f"{rep.document.title} ({rep.document.source_name}, {_format_date(cluster)})"]
    if verdict.is_adverse:
        parts.append(f"{verdict.severity.value} / {verdict.risk_score}")
    if verdict.requires_review:
        parts.append("manual review required")
    return " - ".join(parts)


def _also_reported(cluster: Cluster) -> Optional[str]:
    if not cluster.secondary_sources:
        return None
    names = ", ".join(src.source_name for src in cluster.secondary_sources)
    return f"Also reported by: {names}"


def _other_coverage(result: ScanResult) -> List[Cluster]:
    return [cluster for cluster in result.clusters if not cluster.is_adverse]


def format_markdown(result: ScanResult) -> str:
    lines: List[str] = [f"# Adverse media screening: {result.query}", ""]
    if result.advisory:
        lines.extend([f"> {result.advisory}", ""])
    lines.extend(["## Executive brief", "", result.brief or "-", ""])

    adverse = rank_adverse(result.clusters)
    lines.extend([f"## Adverse findings ({len(adverse)})", ""])
    if not adverse:
        lines.append("None.")
    for cluster in adverse:
        rep = cluster.representative
        lines.append(f"- [{_finding_heading(cluster)}]({rep.url})")
        if rep.verdict.risk_types:
            lines.append(f"  - Risk types: {', '.join(rep.verdict.risk_types)}")
        lines.append(f"  - {rep.verdict.summary}")
        also = _also_reported(cluster)
        if also:
            lines.append(f"  - {also}")
    lines.append("")

    other = _other_coverage(result)
    if other:
        lines.extend([f"## Other coverage ({len(other)})", ""])
        for cluster in other:
            lines.append(f"- [{_finding_heading(cluster)}]({cluster.representative.url})")
        lines.append("")

    if result.related_entities:
        lines.extend(["## Associated individuals", ""])
        for entity in result.related_entities:
            role = f" ({entity.relationship})" if entity.relationship else ""
            lines.append(f"- {entity.name}{role}")
        lines.append("")

    if result.social_signals:
        lines.extend(["## Social signal", ""])
        for signal in result.social_signals:
            lines.append(f"- {signal.name} {signal.handle} [{signal.sentiment}]: {signal.content}")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def _set_title_styles(doc) -> None:
    """Calibri title; keeps the default theme otherwise."""
    title_style = doc.styles["Title"]
    title_style.font.name = "Calibri"
    title_style.font.size = Pt(20)
    rpr = title_style.element.rPr
    if rpr is not None and rpr.rFonts is not None:
        rpr.rFonts.set(qn("w:eastAsia"), "Calibri")


def build_docx(result: ScanResult, output_path: Path, generated_on: Optional[date] = None) -> None:
    """Render a screening memo for one scan."""
    doc = DocxDocument()
    _set_title_styles(doc)

    title = doc.add_heading(f"Adverse Media Screening: {result.query}", 0)
    title.alignment = WD_ALIGN_PARAGRAPH.CENTER
    sub = doc.add_paragraph(f"Generated {(generated_on or date.today()).isoformat()}")
    sub.alignment = WD_ALIGN_PARAGRAPH.CENTER

    if result.advisory:
        doc.add_paragraph(result.advisory).runs[0].italic = True

    doc.add_heading("1. Executive Brief", level=1)
    doc.add_paragraph(result.brief or "-")

    adverse = rank_adverse(result.clusters)
    doc.add_heading(f"2. Adverse Findings ({len(adverse)})", level=1)
    if not adverse:
        doc.add_paragraph("None.")
    for cluster in adverse:
        rep = cluster.representative
        bullet = doc.add_paragraph(style="List Bullet")
        bullet.add_run(_finding_heading(cluster)).bold = True
        if rep.verdict.risk_types:
            bullet.add_run(f" - {', '.join(rep.verdict.risk_types)}")
        doc.add_paragraph(rep.verdict.summary)
        doc.add_paragraph(rep.url)
        also = _also_reported(cluster)
        if also:
            doc.add_paragraph(also).runs[0].italic = True

    other = _other_coverage(result)
    if other:
        doc.add_heading(f"3. Other Coverage ({len(other)})", level=1)
        for cluster in other:
            doc.add_paragraph(_finding_heading(cluster), style="List Bullet")

    if result.related_entities:
        doc.add_heading("Associated Individuals", level=2)
        for entity in result.related_entities:
            role = f" ({entity.relationship})" if entity.relationship else ""
            doc.add_paragraph(f"{entity.name}{role}", style="List Bullet")

    if result.social_signals:
        doc.add_heading("Social Signal", level=2)
        for signal in result.social_signals:
            doc.add_paragraph(
                f"{signal.name} {signal.handle} [{signal.sentiment}]: {signal.content}",
                style="List Bullet",
            )

    output_path.parent.mkdir(parents=True, exist_ok=True)
    doc.save(output_path)
