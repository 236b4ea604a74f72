"""
Detector: Parallel Query Worker Shortage

Gather and Gather Merge report how many workers the planner wanted and how
many the executor could actually start. Fewer launched than planned means
the query ran with less parallelism than its cost was based on.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from plancheck.analyzer.detectors.base import DOCS_BASE, Detector, node_location
from plancheck.analyzer.models import Confidence, Finding, Impact
from plancheck.analyzer.registry import register_detector

if TYPE_CHECKING:
    from plancheck.parser.models import PlanNode


@register_detector
class ParallelQueryWorkerShortage(Detector):
    """Flag Gather nodes that launched fewer workers than planned."""

    detector_id = "parallel_query_worker_shortage"
    version = "1.0.0"
    title = "Parallel Query Worker Shortage"
    confidence = Confidence.VERIFIED
    description = "Detects Gather nodes with fewer launched than planned workers"
    docs_link = DOCS_BASE + "parallel-query.html"

    def detect(self, node: PlanNode) -> Finding | None:
        if "Gather" not in node.node_type:
            return None

        planned = node.workers_planned
        launched = node.workers_launched
        # Workers Launched is absent without ANALYZE
        if planned is None or launched is None or launched >= planned:
            return None

        missing = planned - launched
        location = node_location(node)

        return self.finding(
            Impact.HIGH if launched == 0 else Impact.MEDIUM,
            evidence=[
                self.evidence("Workers Planned", planned, f"Workers Planned: {planned}", location),
                self.evidence(
                    "Workers Launched",
                    launched,
                    f"Workers Launched: {launched} ({missing} missing)",
                    location,
                ),
            ],
            behavior=(
                f"PostgreSQL planned to use {planned} parallel workers but only "
                f"launched {launched}."
            ),
            explanation=[
                "The query optimizer expected parallel execution but couldn't get all "
                "requested workers.",
                "This typically happens when max_parallel_workers or "
                "max_parallel_workers_per_gather is too low.",
                "Other concurrent queries may have already consumed the available worker pool.",
                (
                    "No workers were launched at all; the query ran entirely in serial mode."
                    if launched == 0
                    else f"Only {launched} of {planned} workers were available."
                ),
            ],
            limitations=[
                "Cannot see current max_parallel_workers setting",
                "Cannot determine how many workers were in use by other queries",
                "Cannot measure the actual performance impact of reduced parallelism",
            ],
        )
