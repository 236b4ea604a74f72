"""
Detector: Unfiltered Seq Scan

A Seq Scan with no Filter over more than 1000 rows reads the whole relation.
That is often correct (the query wants most of the table) but worth surfacing
when the relation is large.

Row count is Actual Rows when present, else Plan Rows.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from plancheck.analyzer.detectors.base import DOCS_BASE, Detector, format_count
from plancheck.analyzer.models import Confidence, Finding, Impact
from plancheck.analyzer.registry import register_detector

if TYPE_CHECKING:
    from plancheck.parser.models import PlanNode

MIN_ROWS = 1000
LARGE_ROWS = 100_000
SLOW_SCAN_MS = 1000.0


@register_detector
class UnfilteredSeqScan(Detector):
    """Flag sequential scans without any filter predicate."""

    detector_id = "unfiltered_seq_scan"
    version = "1.0.0"
    title = "Unfiltered Seq Scan"
    confidence = Confidence.VERIFIED
    description = "Detects Seq Scans with no filter over more than 1000 rows"
    docs_link = DOCS_BASE + "indexes-examine.html"

    def detect(self, node: PlanNode) -> Finding | None:
        if node.node_type != "Seq Scan" or node.filter:
            return None

        if node.actual_rows is not None:
            rows = node.actual_rows
        elif node.plan_rows is not None:
            rows = node.plan_rows
        else:
            rows = 0
        if rows <= MIN_ROWS:
            return None

        elapsed = node.actual_total_time or 0.0
        large = rows >= LARGE_ROWS or elapsed > SLOW_SCAN_MS
        relation = node.relation_name

        evidence = [
            self.evidence(
                "Node Type",
                "Seq Scan",
                "Seq Scan",
                f"Relation: {relation}" if relation else "Node Type: Seq Scan",
            ),
            self.evidence("Filter", "None", "Filter: [Empty]", "Node properties"),
            self.evidence("Rows", rows, f"Rows: {format_count(rows)}", "Estimated or actual rows"),
        ]
        if node.actual_total_time is not None:
            evidence.append(
                self.evidence(
                    "Actual Total Time",
                    node.actual_total_time,
                    f"Scan time: {node.actual_total_time:.2f} ms",
                    "Actual Total Time",
                )
            )

        return self.finding(
            Impact.HIGH if large else Impact.MEDIUM,
            evidence=evidence,
            behavior="PostgreSQL is scanning the entire table without any filter predicates.",
            explanation=[
                "This operation reads every block of the relation from disk or buffer cache.",
                "If the table is large, this will be significantly slower than an Index Scan.",
                "Even if an index exists, the optimizer may choose a Seq Scan if it expects "
                "to return a large percentage of the table.",
            ],
            limitations=[
                "Cannot see if indexes exist on this table",
                "Do not know if the table resides entirely in RAM (Buffer Cache)",
                "Cannot determine if a Seq Scan is actually cheaper for this specific "
                "data distribution",
            ],
        )
