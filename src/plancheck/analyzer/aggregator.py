"""
Finding aggregation.

Raw findings are grouped by id. Within a group the first finding is the
base; every later finding contributes the evidence whose location is not
already present, and the group takes the highest impact seen. Groups are
then ordered by impact (high, medium, low); equal impacts keep the order in
which each id was first produced.

aggregate() is deterministic and idempotent: its output holds one finding
per id, which a second pass leaves untouched.
"""

from __future__ import annotations

from typing import Iterable

from plancheck.analyzer.models import Evidence, Finding, Impact


def aggregate(raw: Iterable[Finding]) -> list[Finding]:
    """
    Merge raw findings by id and sort them by impact.

    Args:
        raw: Findings in traversal order

    Returns:
        One finding per id, highest impact first
    """
    groups: dict[str, tuple[Finding, list[Evidence], Impact]] = {}

    for finding in raw:
        group = groups.get(finding.id)
        if group is None:
            groups[finding.id] = (finding, list(finding.evidence), finding.impact)
            continue

        base, evidence, impact = group
        seen = {e.location for e in evidence}
        evidence.extend(e for e in finding.evidence if e.location not in seen)
        groups[finding.id] = (base, evidence, max(impact, finding.impact))

    merged = [
        base.model_copy(update={"evidence": tuple(evidence), "impact": impact})
        for base, evidence, impact in groups.values()
    ]
    # sorted() is stable: ties keep first-seen order
    return sorted(merged, key=lambda f: f.impact.rank, reverse=True)
