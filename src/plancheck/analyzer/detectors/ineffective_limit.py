"""
Detector: Ineffective LIMIT

A LIMIT directly above a Sort should let PostgreSQL use a bounded top-N
heapsort. When the child sort is external, or a full quicksort over more than
10,000 rows, the whole input was sorted only to keep a few rows.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from plancheck.analyzer.detectors.base import DOCS_BASE, Detector
from plancheck.analyzer.models import Confidence, Finding, Impact
from plancheck.analyzer.registry import register_detector

if TYPE_CHECKING:
    from plancheck.parser.models import PlanNode

QUICKSORT_MIN_ROWS = 10_000


@register_detector
class IneffectiveLimit(Detector):
    """Flag LIMIT nodes sitting on top of a full sort."""

    detector_id = "ineffective_limit"
    version = "1.0.0"
    title = "Ineffective LIMIT"
    confidence = Confidence.INFERRED
    description = "Detects LIMIT applied after a full or external sort"
    docs_link = DOCS_BASE + "queries-limit.html"

    def detect(self, node: PlanNode) -> Finding | None:
        if node.node_type != "Limit" or not node.children:
            return None

        child = node.children[0]
        if child.node_type != "Sort" or not child.sort_method:
            return None

        method = child.sort_method.lower()
        if child.actual_rows is not None:
            rows = child.actual_rows
        elif child.plan_rows is not None:
            rows = child.plan_rows
        else:
            rows = 0

        external = "external" in method
        if not (external or ("quicksort" in method and rows > QUICKSORT_MIN_ROWS)):
            return None

        return self.finding(
            Impact.MEDIUM,
            evidence=[
                self.evidence(
                    "Sort Method",
                    child.sort_method,
                    f"Child Sort Method: {child.sort_method}",
                    f"Child of Limit Node (Type: {child.node_type})",
                ),
            ],
            behavior="The LIMIT clause is being applied after a full sort operation.",
            explanation=[
                "PostgreSQL is sorting the entire result set before discarding most of it.",
                "An efficient 'top-N' sort (e.g., using a heap) was not used, likely due to "
                "sort memory constraints or complex expressions.",
            ],
            limitations=[
                "Cannot see effective work_mem during sort",
                "Do not know if the sort key is indexed",
                "Cannot determine if Top-N heapsort was actually available for this query plan",
            ],
        )
