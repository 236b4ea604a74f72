"""
Detector: CTE Materialization Overhead

A materialized CTE is computed once into a tuplestore that the CTE Scan then
reads. That is an optimization fence; for large CTEs referenced once, an
inlined subquery (or NOT MATERIALIZED) is often cheaper.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from plancheck.analyzer.detectors.base import DOCS_BASE, Detector, format_count
from plancheck.analyzer.models import Confidence, Finding, Impact
from plancheck.analyzer.registry import register_detector

if TYPE_CHECKING:
    from plancheck.parser.models import PlanNode

MIN_ROWS = 1000
MEDIUM_ROWS = 1_000_000
HIGH_ROWS = 100_000_000
MEDIUM_TIME_MS = 1000.0
HIGH_TIME_MS = 5000.0


def _impact(rows: int | float, time_ms: float) -> Impact:
    if rows >= HIGH_ROWS or time_ms >= HIGH_TIME_MS:
        return Impact.HIGH
    if rows >= MEDIUM_ROWS or time_ms >= MEDIUM_TIME_MS:
        return Impact.MEDIUM
    return Impact.LOW


@register_detector
class CteMaterialization(Detector):
    """Flag CTE Scans over large materialized CTEs."""

    detector_id = "cte_materialization"
    version = "1.0.0"
    title = "CTE Materialization Overhead"
    confidence = Confidence.VERIFIED
    description = "Detects CTE Scans reading 1000 or more materialized rows"
    docs_link = DOCS_BASE + "queries-with.html"

    def detect(self, node: PlanNode) -> Finding | None:
        if node.node_type != "CTE Scan":
            return None

        rows = node.actual_rows
        if rows is None or rows < MIN_ROWS:
            return None

        name = node.cte_name or "unnamed"
        time_ms = node.actual_total_time or 0.0

        evidence = [
            self.evidence("CTE Name", name, f"CTE: {name}", f"CTE Scan on {name}"),
            self.evidence("Rows", rows, f"{format_count(rows)} rows materialized", "CTE Scan"),
        ]
        if time_ms > 0:
            evidence.append(
                self.evidence(
                    "Actual Total Time", time_ms, f"{time_ms:.2f} ms", "Actual Total Time"
                )
            )

        return self.finding(
            _impact(rows, time_ms),
            evidence=evidence,
            behavior=(
                f"The CTE '{name}' is materialized to temporary storage "
                f"({format_count(rows)} rows)."
            ),
            explanation=[
                "PostgreSQL materializes CTEs by default, creating an optimization fence.",
                "This adds I/O overhead but can be beneficial if the CTE is referenced "
                "multiple times.",
                "If the CTE is used only once, consider using a subquery or the NOT "
                "MATERIALIZED hint (PostgreSQL 12+).",
            ],
            limitations=[
                "Cannot determine how many times the CTE is referenced",
                "Cannot see the original SQL to verify if materialization is intentional",
                "Materialization may be optimal for complex CTEs referenced multiple times",
            ],
        )
