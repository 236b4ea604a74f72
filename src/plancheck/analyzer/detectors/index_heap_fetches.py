"""
Detector: Index Scan with High Heap Fetches

When most rows returned by an index scan still need a visit to the heap, a
covering index (or a freshly vacuumed visibility map) could turn it into an
Index-Only Scan.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from plancheck.analyzer.detectors.base import (
    DOCS_BASE,
    Detector,
    format_count,
    relation_location,
)
from plancheck.analyzer.models import Confidence, Finding, Impact
from plancheck.analyzer.registry import register_detector

if TYPE_CHECKING:
    from plancheck.parser.models import PlanNode

SCAN_TYPES = frozenset({"Index Scan", "Bitmap Heap Scan"})
MIN_ROWS = 100
MIN_FETCH_RATIO = 0.5
MIN_FETCHES = 1000


@register_detector
class IndexScanHeapFetches(Detector):
    """Flag index scans where most rows required a heap fetch."""

    detector_id = "index_scan_heap_fetches"
    version = "1.0.0"
    title = "Index Scan with High Heap Fetches"
    confidence = Confidence.INFERRED
    description = "Detects index scans dominated by heap fetches"
    docs_link = DOCS_BASE + "indexes-index-only-scans.html"

    def detect(self, node: PlanNode) -> Finding | None:
        if node.node_type not in SCAN_TYPES:
            return None

        fetches = node.heap_fetches
        rows = node.actual_rows
        if fetches is None or rows is None or rows <= MIN_ROWS:
            return None

        ratio = fetches / rows
        if ratio <= MIN_FETCH_RATIO or fetches <= MIN_FETCHES:
            return None

        relation = node.relation_name
        return self.finding(
            Impact.MEDIUM,
            evidence=[
                self.evidence(
                    "Heap Fetches",
                    fetches,
                    f"Heap Fetches: {format_count(fetches)}",
                    relation_location(node, prefix="Table"),
                ),
                self.evidence(
                    "Actual Rows",
                    rows,
                    f"Actual Rows: {format_count(rows)}",
                    f"Index: {node.index_name}" if node.index_name else "Index Scan",
                ),
                self.evidence(
                    "Fetch Ratio",
                    ratio,
                    f"Fetch Ratio: {ratio * 100:.1f}% of rows required heap access",
                    "Computed",
                ),
            ],
            behavior=(
                f"The index scan on {relation or 'the table'} required "
                f"{format_count(fetches)} heap fetches to retrieve {format_count(rows)} rows."
            ),
            explanation=[
                "Heap fetches occur when the index doesn't contain all required columns "
                "(not a covering index).",
                "Each heap fetch is a random I/O operation to retrieve the full row from the table.",
                "An Index-Only Scan could avoid these fetches if the index included all "
                "needed columns.",
                "Consider creating a covering index with INCLUDE clause to store additional columns.",
            ],
            limitations=[
                "Cannot see which columns are being selected",
                "Cannot determine if a covering index already exists",
                "Index-Only Scans also require the visibility map to be up-to-date (run VACUUM)",
            ],
        )
