"""
Detector: Missing Index Opportunity

A Seq Scan that reads a non-trivial table and throws away more than 90% of
what it reads is the classic sign that an index on the filtered columns
would let PostgreSQL skip most of the table.

Conditions (all required):
- Node Type is "Seq Scan" with a Filter
- Rows Removed by Filter is a number greater than zero
- Actual Rows is a number (selectivity needs both sides)
- actual + removed > 1000
- removed / (actual + removed) > 0.9

Exception: "col IS NULL" filters returning at most 10 rows are anchor lookups
(e.g. the root of a recursive CTE) and are left alone.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from plancheck.analyzer.detectors.base import DOCS_BASE, Detector, format_count
from plancheck.analyzer.models import Confidence, Finding, Impact
from plancheck.analyzer.registry import register_detector

if TYPE_CHECKING:
    from plancheck.parser.models import PlanNode

MIN_TOTAL_ROWS = 1000
MIN_FILTER_RATIO = 0.9
NULL_ANCHOR_MAX_ROWS = 10

_IS_NULL_RE = re.compile(r"IS\s+NULL", re.IGNORECASE)


@register_detector
class MissingIndex(Detector):
    """Flag highly selective filters evaluated by a sequential scan."""

    detector_id = "missing_index"
    version = "1.0.0"
    title = "Missing Index Opportunity"
    confidence = Confidence.INFERRED
    description = "Detects Seq Scans that discard more than 90% of the rows they read"
    docs_link = DOCS_BASE + "indexes-examine.html"

    def detect(self, node: PlanNode) -> Finding | None:
        if node.node_type != "Seq Scan" or not node.filter:
            return None

        removed = node.rows_removed_by_filter
        actual = node.actual_rows
        if removed is None or removed == 0 or actual is None:
            return None

        if _IS_NULL_RE.search(node.filter) and actual <= NULL_ANCHOR_MAX_ROWS:
            return None

        total = actual + removed
        if total <= MIN_TOTAL_ROWS:
            return None

        ratio = removed / total
        if ratio <= MIN_FILTER_RATIO:
            return None

        percentage = f"{ratio * 100:.1f}"
        relation = node.relation_name

        return self.finding(
            Impact.HIGH,
            evidence=[
                self.evidence(
                    "Filter Ratio",
                    ratio,
                    f"{percentage}% of rows filtered out "
                    f"({format_count(removed)} of {format_count(total)})",
                    f"Relation: {relation}" if relation else "Seq Scan",
                ),
                self.evidence("Filter", node.filter, f"Filter: {node.filter}", "Node properties"),
            ],
            behavior=(
                f"PostgreSQL is performing a Sequential Scan on {relation or 'the table'} "
                f"but filtering out almost all rows ({percentage}%)."
            ),
            explanation=[
                "A Sequential Scan reads the entire table from disk or memory.",
                f"Since {percentage}% of the data is being discarded by a filter, an index on "
                "the columns used in the filter could allow PostgreSQL to skip most of the table.",
                f"The filter being used is: {node.filter}",
            ],
            limitations=[
                "We cannot see which indexes already exist on this table.",
                "An index might already exist but be ignored due to low selectivity or "
                "other optimizer choices.",
                "Adding an index has a write-performance cost that must be balanced.",
            ],
        )
