"""
Detector: Recursive Iteration Explosion

In a recursive CTE the WorkTable Scan runs once per recursion step. Tens of
thousands of steps usually mean a cycle in the data or a recursion with no
effective termination condition.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from plancheck.analyzer.detectors.base import DOCS_BASE, Detector, format_count
from plancheck.analyzer.models import Confidence, Evidence, Finding, Impact
from plancheck.analyzer.registry import register_detector

if TYPE_CHECKING:
    from plancheck.parser.models import PlanNode

MIN_LOOPS = 10_000
HIGH_LOOPS = 50_000
HIGH_TIME_MS = 1000.0


@register_detector
class RecursiveIterationExplosion(Detector):
    """Flag WorkTable Scans executed 10,000 or more times."""

    detector_id = "recursive_iteration_explosion"
    version = "1.0.0"
    title = "Recursive Iteration Explosion"
    confidence = Confidence.VERIFIED
    description = "Detects recursive CTEs with an extreme number of iterations"
    docs_link = DOCS_BASE + "queries-with.html#QUERIES-WITH-CYCLE"

    def detect(self, node: PlanNode) -> Finding | None:
        if node.node_type != "WorkTable Scan":
            return None

        loops = node.actual_loops if node.actual_loops is not None else 1
        if loops < MIN_LOOPS:
            return None

        rows_per_loop = node.actual_rows or 0
        removed_per_loop = node.rows_removed_by_filter or 0
        time_ms = node.actual_total_time or 0.0

        processed = rows_per_loop * loops
        removed = removed_per_loop * loops
        examined = processed + removed
        rejection = removed / examined if examined > 0 else 0.0

        evidence: list[Evidence] = [
            self.evidence(
                "Recursive Iterations",
                loops,
                f"{format_count(loops)} iterations",
                "WorkTable Scan",
            ),
            self.evidence(
                "Rows Per Iteration",
                rows_per_loop,
                f"{format_count(rows_per_loop)} rows per loop",
                "Actual Rows",
            ),
            self.evidence(
                "Total Rows Processed",
                processed,
                f"{format_count(processed)} total rows "
                f"({format_count(rows_per_loop)} × {format_count(loops)})",
                "Computed",
            ),
        ]
        if node.filter and removed > 0:
            evidence.append(
                self.evidence(
                    "Filter Rejection",
                    rejection,
                    f"{rejection * 100:.3f}% rejected ({format_count(removed)} rows)",
                    "Filter",
                )
            )
        if time_ms > 0:
            evidence.append(
                self.evidence("Execution Time", time_ms, f"{time_ms:.2f} ms", "Actual Total Time")
            )

        if rejection > 0.99:
            detail = (
                f"{rejection * 100:.3f}% of rows are being rejected by the filter, indicating "
                "the join condition matches very few rows per iteration."
            )
        else:
            detail = (
                f"Each iteration processes {format_count(rows_per_loop)} rows, which compounds "
                f"to {format_count(processed)} total."
            )

        return self.finding(
            Impact.HIGH if loops >= HIGH_LOOPS or time_ms > HIGH_TIME_MS else Impact.MEDIUM,
            evidence=evidence,
            behavior=(
                f"A WorkTable Scan is executing {format_count(loops)} iterations, processing "
                f"{format_count(processed)} total rows."
            ),
            explanation=[
                "In recursive CTEs, the WorkTable Scan reads from the previous iteration's results.",
                f"{format_count(loops)} iterations indicates extremely deep recursion; "
                "hierarchies are typically much shallower.",
                detail,
                "This pattern often indicates circular references in data, missing CYCLE "
                "detection, or an unbounded recursive query.",
            ],
            limitations=[
                "Cannot determine if CYCLE detection is configured.",
                "Cannot see the actual recursive CTE query structure.",
                "Data quality issues (circular references) require data inspection.",
            ],
        )
