"""Executive brief for a scan's adverse findings."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .bounded import bounded_call
from .models import Cluster
from .providers import JudgmentService

logger = logging.getLogger(__name__)

NO_ADVERSE_BRIEF = "No significant adverse media was identified in trusted sources."
NO_DATA_BRIEF = "No data found: trusted sources returned no coverage for this entity."

SYSTEM_PROMPT = (
    "You are a compliance analyst writing an executive risk brief.\n"
    "Write 3-4 plain sentences. Lead with the most severe finding, then cover the rest "
    "and any relevant history. No bullet points, no markdown, no speculation beyond "
    "the findings provided."
)


def rank_adverse(clusters: Sequence[Cluster]) -> List[Cluster]:
    """Adverse clusters, highest risk score first (stable for ties)."""
    adverse = [cluster for cluster in clusters if cluster.is_adverse]
    return sorted(adverse, key=lambda c: c.representative.verdict.risk_score, reverse=True)


def fallback_brief(query: str, adverse: Sequence[Cluster], history: Optional[str] = None) -> str:
    """Deterministic brief used whenever the judgment service cannot write one."""
    if not adverse:
        if history and history.strip():
            return f"No current adverse media was identified for {query}. Historical context: {history.strip()}"
        return NO_ADVERSE_BRIEF
    lead = adverse[0].representative
    noun = "finding" if len(adverse) == 1 else "findings"
    return (
        f"{len(adverse)} adverse media {noun} identified for {query}. "
        f"Most severe: \"{lead.document.title}\" ({lead.document.source_name}, "
        f"{lead.verdict.severity.value} severity). Manual review recommended."
    )


def build_prompt(query: str, adverse: Sequence[Cluster], history: Optional[str]) -> str:
    lines = [f"Entity: {query}", "", "Adverse findings (most severe first):"]
    if not adverse:
        lines.append("- none in current coverage")
    for cluster in adverse:
        rep = cluster.representative
        extra = len(cluster.secondary_sources)
        corroboration = f", corroborated by {extra} more source(s)" if extra else ""
        lines.append(
            f"- {rep.document.title} [{rep.verdict.severity.value}, score "
            f"{rep.verdict.risk_score}, {rep.document.source_name}{corroboration}]"
        )
    if history and history.strip():
        lines.extend(["", f"Historical context: {history.strip()}"])
    return "\n".join(lines)


class BriefGenerator:
    def __init__(
        self,
        judgment: JudgmentService | None,
        *,
        top_n: int = 5,
        timeout: float = 6.0,
    ) -> None:
        self.judgment = judgment
        self.top_n = top_n
        self.timeout = timeout

    async def generate(
        self, clusters: Sequence[Cluster], query: str, history: Optional[str] = None
    ) -> str:
        ranked = rank_adverse(clusters)
        if not ranked and not (history and history.strip()):
            return NO_ADVERSE_BRIEF
        # The count covers every finding; only the prompt is capped at top_n.
        fallback = fallback_brief(query, ranked, history)
        adverse = ranked[: self.top_n]
        if self.judgment is None:
            return fallback

        text = await bounded_call(
            lambda: self.judgment.complete(
                SYSTEM_PROMPT,
                build_prompt(query, adverse, history),
                step="Brief",
                max_output_tokens=300,
            ),
            timeout=self.timeout,
            fallback=lambda exc: fallback,
            label="executive brief",
        )
        return text.strip() or fallback
