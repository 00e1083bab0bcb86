"""Merge coverage of the same risk event into clusters."""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Union

from .models import ClassifiedDocument, Cluster, SecondarySource

_NON_ALNUM = re.compile(r"[^0-9a-z]+")

ClusterInput = Union[ClassifiedDocument, Cluster]


def canonical_key(text: str) -> str:
    """Lower-case and strip everything that is not a letter or digit."""
    return _NON_ALNUM.sub("", (text or "").lower())


def cluster_key(item: ClassifiedDocument) -> str:
    """Cluster tag when present, else the title; url when both canonicalize to nothing."""
    key = canonical_key(item.verdict.cluster_tag) or canonical_key(item.document.title)
    return key or f"url:{item.url}"


def _append_secondary(cluster: Cluster, source: SecondarySource) -> None:
    if source.url == cluster.representative.url:
        return
    if any(existing.url == source.url for existing in cluster.secondary_sources):
        return
    cluster.secondary_sources.append(source)


def _inherited(displaced: Cluster, new_url: str) -> List[SecondarySource]:
    """
    Secondary sources handed to the document that takes over a cluster.

    A listed entry for the new lead's own url is replaced by the displaced
    lead, so the list keeps its length without naming its representative.
    """
    lead = SecondarySource.from_document(displaced.representative.document)
    inherited: List[SecondarySource] = []
    for src in displaced.secondary_sources:
        if src.url == new_url:
            src = lead
        if src.url == new_url or any(existing.url == src.url for existing in inherited):
            continue
        inherited.append(src)
    return inherited


def cluster_documents(items: Iterable[ClusterInput]) -> List[Cluster]:
    """
    Group classified documents by canonical cluster key.

    The first document for a key leads the cluster; later ones become
    secondary sources and their own verdicts are dropped. An adverse arrival
    displaces a non-adverse representative and inherits its secondary
    sources; the displaced document is not re-added unless it has to fill the
    slot the new representative held as a secondary source. Clusters are
    returned in first-seen key order.

    Clusters may be passed back in: each contributes its representative and
    carries its secondary sources, so clustering its own output is a no-op.
    """
    clusters: Dict[str, Cluster] = {}
    for item in items:
        if isinstance(item, Cluster):
            incoming = item.representative
            carried = list(item.secondary_sources)
        else:
            incoming = item
            carried = []

        key = cluster_key(incoming)
        current = clusters.get(key)
        if current is None:
            current = Cluster(representative=incoming)
            clusters[key] = current
        elif incoming.is_adverse and not current.representative.is_adverse:
            current = Cluster(
                representative=incoming,
                secondary_sources=_inherited(current, incoming.url),
            )
            clusters[key] = current
        else:
            _append_secondary(current, SecondarySource.from_document(incoming.document))

        for source in carried:
            _append_secondary(current, source)

    return list(clusters.values())
