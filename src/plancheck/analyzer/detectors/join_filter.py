"""
Detector: Excessive Join Filter Removal

A Join Filter is evaluated after rows have been joined. When it throws away
most of what the join produced, the condition would usually do more good as
part of the join condition itself.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from plancheck.analyzer.detectors.base import (
    DOCS_BASE,
    Detector,
    format_count,
    node_location,
)
from plancheck.analyzer.models import Confidence, Finding, Impact
from plancheck.analyzer.registry import register_detector

if TYPE_CHECKING:
    from plancheck.parser.models import PlanNode

MIN_TOTAL_ROWS = 1000
MIN_REMOVED_ROWS = 10_000
MIN_FILTER_RATIO = 0.5
HIGH_FILTER_RATIO = 0.9


@register_detector
class JoinFilterHighRemoval(Detector):
    """Flag joins whose Join Filter discards most joined rows."""

    detector_id = "join_filter_high_removal"
    version = "1.0.0"
    title = "Excessive Join Filter Removal"
    confidence = Confidence.INFERRED
    description = "Detects joins where the Join Filter removes most rows"
    docs_link = DOCS_BASE + "planner-optimizer.html"

    def detect(self, node: PlanNode) -> Finding | None:
        if "Join" not in node.node_type and "Nested Loop" not in node.node_type:
            return None

        removed = node.rows_removed_by_join_filter
        if removed is None or removed <= 0:
            return None

        output = node.actual_rows or 0
        total = output + removed
        if total < MIN_TOTAL_ROWS:
            return None

        ratio = removed / total
        if ratio <= MIN_FILTER_RATIO or removed <= MIN_REMOVED_ROWS:
            return None

        percentage = f"{ratio * 100:.1f}"
        location = node_location(node)
        evidence = [
            self.evidence(
                "Rows Removed by Join Filter",
                removed,
                f"Rows Removed by Join Filter: {format_count(removed)}",
                location,
            ),
            self.evidence(
                "Actual Rows", output, f"Actual Rows Output: {format_count(output)}", location
            ),
            self.evidence(
                "Filter Ratio", ratio, f"{percentage}% of joined rows were discarded", "Computed"
            ),
        ]
        for field, condition in (
            ("Join Filter", node.join_filter),
            ("Hash Cond", node.hash_cond),
            ("Merge Cond", node.merge_cond),
        ):
            if condition:
                evidence.append(
                    self.evidence(field, condition, f"{field}: {condition}", "Node properties")
                )

        return self.finding(
            Impact.HIGH if ratio > HIGH_FILTER_RATIO else Impact.MEDIUM,
            evidence=evidence,
            behavior=(
                f"The {node.node_type} produced {format_count(total)} rows but {percentage}% "
                "were discarded by a Join Filter."
            ),
            explanation=[
                "Join Filters are applied after the join operation, meaning PostgreSQL first "
                "joins all matching rows then filters them.",
                "High removal rates suggest the filter condition could potentially be moved "
                "to the join condition itself.",
                "If the filter can be converted to a join condition, PostgreSQL can skip "
                "non-matching rows earlier.",
                "This pattern often occurs with complex join conditions or when WHERE clauses "
                "reference both tables.",
            ],
            limitations=[
                "Cannot determine if the filter can be converted to a join condition",
                "Some filters must remain as post-join filters due to NULL handling or "
                "expression complexity",
                "Cannot see if indexes exist that would help with a different join strategy",
            ],
        )
