"""
Detector: Significant Row Mismatch

Compares the planner's estimate with reality. The planner picks join
strategies and scan methods from Plan Rows; when Actual Rows is far off,
those choices were made on bad information.

Formula: baseline is Plan Rows (or Actual Rows when the estimate is 0);
fires when |actual - plan| is more than 10% of the baseline AND more than
1000 rows. Impact is high when the larger side is at least 10x the smaller.
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

MIN_PERCENT = 10.0
MIN_ABSOLUTE_DIFF = 1000
HIGH_IMPACT_RATIO = 10.0


@register_detector
class RowCountMismatch(Detector):
    """Flag nodes whose row estimate was badly off."""

    detector_id = "row_count_mismatch"
    version = "1.0.0"
    title = "Significant Row Mismatch"
    confidence = Confidence.VERIFIED
    description = "Detects large gaps between estimated and actual row counts"
    docs_link = DOCS_BASE + "planner-stats.html"

    def detect(self, node: PlanNode) -> Finding | None:
        planned = node.plan_rows
        actual = node.actual_rows
        if planned is None or actual is None or actual <= 0:
            return None

        baseline = planned if planned > 0 else actual
        diff = abs(actual - planned)
        percent = diff / baseline * 100
        if percent <= MIN_PERCENT or diff <= MIN_ABSOLUTE_DIFF:
            return None

        smaller = min(planned, actual)
        # An estimate of 0 against real rows is an unbounded miss
        ratio = max(planned, actual) / smaller if smaller > 0 else float("inf")
        direction = "underestimated" if actual > planned else "overestimated"
        location = node_location(node)

        return self.finding(
            Impact.HIGH if ratio >= HIGH_IMPACT_RATIO else Impact.MEDIUM,
            evidence=[
                self.evidence("Plan Rows", planned, f"Plan Rows: {planned}", location),
                self.evidence("Actual Rows", actual, f"Actual Rows: {actual}", location),
            ],
            behavior="The optimizer's estimated row count significantly differed from reality.",
            explanation=[
                "PostgreSQL chooses join types and scan methods based on row estimates.",
                f"The estimate was off by {percent:.1f}% ({format_count(diff)} rows); "
                f"the planner {direction} the row count.",
                "Stale statistics or complex join conditions often cause this drift.",
            ],
            limitations=[
                "Cannot see if ANALYZE has been run recently",
                "Do not know the internal cost model parameters",
                "Cannot determine if this mismatch led to a suboptimal join choice in "
                "this specific case",
            ],
        )
