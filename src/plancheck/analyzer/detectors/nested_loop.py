"""
Detector: High-Iteration Nested Loop

A Nested Loop runs its inner side (the second child) once per outer row.
When the inner side executes hundreds or thousands of times, even a cheap
index lookup adds up, and buffer touches are multiplied by the loop count.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from plancheck.analyzer.detectors.base import DOCS_BASE, Detector, format_count
from plancheck.analyzer.models import Confidence, Finding, Impact
from plancheck.analyzer.registry import register_detector

if TYPE_CHECKING:
    from plancheck.parser.models import PlanNode

MIN_INNER_LOOPS = 100
HIGH_INNER_LOOPS = 1000


@register_detector
class HighFrequencyNestedLoop(Detector):
    """Flag nested loops whose inner side is executed more than 100 times."""

    detector_id = "high_freq_nested_loop"
    version = "1.0.0"
    title = "High-Iteration Nested Loop"
    confidence = Confidence.VERIFIED
    description = "Detects Nested Loop joins whose inner side runs many times"
    docs_link = DOCS_BASE + "planner-optimizer.html"

    def detect(self, node: PlanNode) -> Finding | None:
        if node.node_type != "Nested Loop" or len(node.children) < 2:
            return None

        inner = node.children[1]
        loops = inner.actual_loops
        if loops is None or loops <= MIN_INNER_LOOPS:
            return None

        inner_type = inner.node_type or "scan"
        inner_relation = inner.relation_name or inner.node_type or "inner table"
        inner_time = inner.actual_total_time or 0.0
        hit = inner.shared_hit_blocks or 0
        read = inner.shared_read_blocks or 0
        buffers = hit + read

        evidence = [
            self.evidence(
                "Inner Iterations",
                loops,
                f"Inner side executed {format_count(loops)} times",
                f"Nested Loop → {inner_type} on {inner_relation}",
            ),
        ]
        if inner_time > 0:
            evidence.append(
                self.evidence(
                    "Inner Time",
                    inner_time,
                    f"Cumulative inner time: {inner_time:.2f}ms",
                    inner_relation,
                )
            )
        if buffers > 0:
            amplification = round(buffers / loops, 1)
            evidence.append(
                self.evidence(
                    "Buffer Accesses",
                    buffers,
                    f"Buffer accesses: {format_count(buffers)} "
                    f"({format_count(hit)} hit, {format_count(read)} read)",
                    f"Buffers: {inner_relation}",
                )
            )
            evidence.append(
                self.evidence(
                    "Amplification",
                    amplification,
                    f"Amplification: {amplification:.1f} buffer touches per iteration",
                    "Buffer efficiency",
                )
            )

        return self.finding(
            Impact.HIGH if loops >= HIGH_INNER_LOOPS else Impact.MEDIUM,
            evidence=evidence,
            behavior=(
                f"Nested Loop join with {format_count(loops)} inner iterations "
                f"on '{inner_relation}'."
            ),
            explanation=[
                f"Inner {inner_type} executed {format_count(loops)} times.",
                f"Total inner execution: {inner_time:.2f}ms" if inner_time > 0 else "",
                f"Total buffer accesses: {format_count(buffers)}" if buffers > 0 else "",
                "Nested Loop strategy executes inner side once per outer row.",
            ],
            limitations=[
                "Cannot determine if this join strategy was intentional (LATERAL, "
                "correlated subquery)",
                "Cannot assess if alternative join methods would fit in memory",
                "Inner side may be efficiently indexed despite high iteration count",
            ],
        )
