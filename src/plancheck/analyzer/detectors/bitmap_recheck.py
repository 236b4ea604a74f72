"""
Detector: Bitmap Heap Scan Lossy Pages

A bitmap that outgrows work_mem degrades to page granularity ("lossy"), and
every row on those pages must be rechecked against the original condition.
Rows Removed by Index Recheck measures that wasted work.
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

MIN_TOTAL_ROWS = 1000
MIN_RECHECK_RATIO = 0.1
HIGH_RECHECK_RATIO = 0.5


@register_detector
class BitmapHeapLossyRecheck(Detector):
    """Flag bitmap heap scans that discarded many rows on recheck."""

    detector_id = "bitmap_heap_lossy_recheck"
    version = "1.0.0"
    title = "Bitmap Heap Scan Lossy Pages"
    confidence = Confidence.VERIFIED
    description = "Detects bitmap heap scans with a high index recheck removal ratio"
    docs_link = DOCS_BASE + "indexes-bitmap-scans.html"

    def detect(self, node: PlanNode) -> Finding | None:
        if node.node_type != "Bitmap Heap Scan":
            return None

        removed = node.rows_removed_by_index_recheck
        if removed is None or removed <= 0:
            return None

        total = (node.actual_rows or 0) + removed
        if total < MIN_TOTAL_ROWS:
            return None

        ratio = removed / total
        if ratio <= MIN_RECHECK_RATIO:
            return None

        percentage = f"{ratio * 100:.1f}"
        relation = node.relation_name
        evidence = [
            self.evidence(
                "Rows Removed by Index Recheck",
                removed,
                f"Rows Removed by Index Recheck: {format_count(removed)}",
                relation_location(node, prefix="Table"),
            ),
            self.evidence(
                "Recheck Ratio",
                ratio,
                f"{percentage}% of scanned rows were filtered by recheck",
                "Computed",
            ),
        ]
        if node.recheck_cond:
            evidence.append(
                self.evidence(
                    "Recheck Cond",
                    node.recheck_cond,
                    f"Recheck Cond: {node.recheck_cond}",
                    "Node properties",
                )
            )

        return self.finding(
            Impact.HIGH if ratio > HIGH_RECHECK_RATIO else Impact.MEDIUM,
            evidence=evidence,
            behavior=(
                f"The Bitmap Heap Scan on {relation or 'the table'} had to recheck "
                f"{format_count(removed)} rows and discard them."
            ),
            explanation=[
                "When a bitmap index scan exceeds work_mem, it becomes 'lossy', storing only "
                "page numbers instead of exact row locations.",
                "Lossy pages require PostgreSQL to re-read the entire page and recheck every "
                "row against the original condition.",
                f"This {percentage}% recheck overhead indicates significant extra I/O and CPU work.",
                "Increasing work_mem can help keep the bitmap exact rather than lossy.",
            ],
            limitations=[
                "Cannot see the current work_mem setting",
                "Cannot determine the exact bitmap size",
                "Cannot measure how much of the bitmap was lossy vs exact",
            ],
        )
