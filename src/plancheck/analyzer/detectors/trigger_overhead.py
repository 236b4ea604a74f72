"""
Detector: Trigger Execution Overhead

EXPLAIN ANALYZE on a modifying statement lists every trigger with its total
time and call count. Row-level triggers run once per modified row, so bulk
operations can spend most of their time inside them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from plancheck.analyzer.detectors.base import DOCS_BASE, Detector, format_count
from plancheck.analyzer.models import Confidence, Evidence, Finding, Impact
from plancheck.analyzer.registry import register_detector

if TYPE_CHECKING:
    from plancheck.parser.models import PlanNode

MIN_TRIGGER_MS = 1000.0
HIGH_PERCENT = 50


@register_detector
class TriggerOverhead(Detector):
    """Flag nodes whose triggers took a second or more in total."""

    detector_id = "trigger_overhead"
    version = "1.0.0"
    title = "Trigger Execution Overhead"
    confidence = Confidence.VERIFIED
    description = "Detects trigger time that dominates a modifying statement"
    docs_link = DOCS_BASE + "trigger-definition.html"

    def detect(self, node: PlanNode) -> Finding | None:
        triggers = node.triggers or ()
        if not triggers:
            return None

        total_ms = node.total_trigger_time_ms
        if total_ms < MIN_TRIGGER_MS:
            return None

        # All triggers on a statement usually share one call count
        calls = max((t.calls or 0 for t in triggers), default=0)
        node_ms = node.actual_total_time or 0.0
        percent = round(total_ms / node_ms * 100) if node_ms > 0 else 0

        evidence: list[Evidence] = [
            self.evidence(
                "Total Trigger Time",
                total_ms,
                f"Total trigger time: {total_ms / 1000:.2f}s",
                f"{len(triggers)} trigger(s)",
            ),
            self.evidence(
                "Trigger Calls", calls, f"Trigger invocations: {format_count(calls)}", "Per trigger"
            ),
        ]
        if node_ms > 0:
            evidence.append(
                self.evidence(
                    "Time Percentage",
                    percent,
                    f"Trigger time: {percent}% of total execution",
                    "Execution breakdown",
                )
            )
        for index, trigger in enumerate(triggers, start=1):
            time_ms = trigger.total_time_ms or 0.0
            if time_ms <= 0:
                continue
            name = trigger.name or "Unknown"
            on = f" on {trigger.relation}" if trigger.relation else ""
            evidence.append(
                self.evidence(
                    f"Trigger {index}",
                    time_ms,
                    f"{name}{on}: {time_ms / 1000:.2f}s ({format_count(trigger.calls or 0)} calls)",
                    f"Trigger: {name}",
                )
            )

        return self.finding(
            Impact.HIGH if percent >= HIGH_PERCENT else Impact.MEDIUM,
            evidence=evidence,
            behavior=(
                f"Triggers consumed {total_ms / 1000:.2f}s ({percent}% of execution) across "
                f"{format_count(calls)} invocations."
            ),
            explanation=[
                f"{len(triggers)} trigger(s) executed {format_count(calls)} times each.",
                f"Total trigger overhead: {total_ms / 1000:.2f} seconds.",
                (
                    f"Triggers account for {percent}% of execution time."
                    if percent >= HIGH_PERCENT
                    else ""
                ),
                "Each row modification invokes all applicable triggers.",
            ],
            limitations=[
                "Cannot determine trigger complexity or optimization potential",
                "Cannot assess if triggers are necessary for business logic",
                "Bulk operations amplify trigger overhead proportionally",
            ],
        )
