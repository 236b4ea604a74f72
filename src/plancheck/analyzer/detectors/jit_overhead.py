"""
Detector: JIT Compilation Overhead

JIT pays off for long analytical queries. For short ones, compiling
expressions to machine code can cost more than it saves. The JIT block is
attached to the root node by the normalizer; its total time is compared with
that node's Actual Total Time.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from plancheck.analyzer.detectors.base import DOCS_BASE, Detector
from plancheck.analyzer.models import Confidence, Evidence, Finding, Impact
from plancheck.analyzer.registry import register_detector

if TYPE_CHECKING:
    from plancheck.parser.models import PlanNode

MIN_PERCENT = 20.0
MEDIUM_PERCENT = 30.0
HIGH_PERCENT = 50.0
MEDIUM_JIT_MS = 500.0
HIGH_JIT_MS = 1000.0


def _impact(percent: float, jit_ms: float) -> Impact:
    if percent >= HIGH_PERCENT or jit_ms >= HIGH_JIT_MS:
        return Impact.HIGH
    if percent >= MEDIUM_PERCENT or jit_ms >= MEDIUM_JIT_MS:
        return Impact.MEDIUM
    return Impact.LOW


@register_detector
class JitCompilationOverhead(Detector):
    """Flag nodes where JIT compilation is 20% or more of the node's time."""

    detector_id = "jit_compilation_overhead"
    version = "1.0.0"
    title = "JIT Compilation Overhead"
    confidence = Confidence.VERIFIED
    description = "Detects JIT compilation time that dominates execution"
    docs_link = DOCS_BASE + "jit.html"

    def detect(self, node: PlanNode) -> Finding | None:
        if node.jit is None or node.jit.timing.total is None:
            return None

        timing = node.jit.timing
        jit_ms = timing.total
        node_ms = node.actual_total_time or 0.0
        percent = jit_ms / node_ms * 100 if node_ms > 0 else 0.0
        if percent < MIN_PERCENT:
            return None

        evidence: list[Evidence] = [
            self.evidence(
                "JIT Total Time",
                f"{jit_ms:.2f} ms",
                f"JIT compilation: {jit_ms:.2f} ms",
                "JIT",
            ),
            self.evidence(
                "JIT Percentage",
                f"{percent:.1f}%",
                f"{percent:.1f}% of execution time",
                "JIT share",
            ),
        ]
        functions = node.jit.functions or 0
        if functions > 0:
            evidence.append(
                self.evidence(
                    "Functions Compiled", functions, f"{functions} functions compiled", "JIT functions"
                )
            )
        if timing.optimization:
            breakdown = (
                f"Optimization {timing.optimization:.1f}ms, "
                f"Inlining {timing.inlining or 0:.1f}ms, "
                f"Emission {timing.emission or 0:.1f}ms, "
                f"Generation {timing.generation or 0:.1f}ms"
            )
            evidence.append(
                self.evidence("JIT Breakdown", breakdown, "JIT time breakdown", "JIT timing")
            )

        return self.finding(
            _impact(percent, jit_ms),
            evidence=evidence,
            behavior=(
                f"JIT compilation consumed {jit_ms:.0f} ms ({percent:.0f}% of execution time)."
            ),
            explanation=[
                "JIT (Just-In-Time) compilation converts query expressions to native machine code.",
                "For long-running analytical queries (minutes/hours), JIT can provide "
                "significant speedups.",
                "For short queries (seconds), JIT compilation overhead often exceeds its "
                "performance benefit.",
                f"This query spent {percent:.0f}% of its time on JIT compilation.",
            ],
            limitations=[
                "Cannot determine if JIT actually improved execution speed for this query",
                "Cannot measure what execution time would be without JIT",
            ],
        )
