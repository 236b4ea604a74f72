"""
Detector: Sort Using Disk Storage

Complements disk_spill: a Sort node whose Sort Space Type is "Disk" but whose
method is something other than an external merge (typically "external
sort"). External merges are left to disk_spill so one sort is never reported
twice.
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

# 100 MB
LARGE_SPILL_KB = 102_400


@register_detector
class SortDiskUsage(Detector):
    """Flag Sort nodes that used disk without an external merge."""

    detector_id = "sort_disk_usage"
    version = "1.0.0"
    title = "Sort Using Disk Storage"
    confidence = Confidence.VERIFIED
    description = "Detects Sort nodes whose sort space type is Disk"
    docs_link = DOCS_BASE + "runtime-config-resource.html#GUC-WORK-MEM"

    def detect(self, node: PlanNode) -> Finding | None:
        if node.node_type != "Sort" or node.sort_space_type != "Disk":
            return None

        method = node.sort_method or ""
        if "external merge" in method:
            return None

        space_kb = node.sort_space_used or 0
        space_mb = f"{space_kb / 1024:.2f}"
        large = space_kb > LARGE_SPILL_KB
        location = node_location(node)

        evidence = [
            self.evidence("Sort Space Type", "Disk", "Sort Space Type: Disk", location),
        ]
        if node.sort_space_used is not None:
            evidence.append(
                self.evidence(
                    "Sort Space Used",
                    node.sort_space_used,
                    f"Sort Space Used: {format_count(space_kb)}kB ({space_mb}MB)",
                    "Sort space",
                )
            )
        if method:
            evidence.append(
                self.evidence("Sort Method", method, f"Sort Method: {method}", "Sort method")
            )
        if node.sort_key:
            keys = ", ".join(node.sort_key)
            evidence.append(
                self.evidence("Sort Key", keys, f"Sort Key: {keys}", "Sort properties")
            )

        return self.finding(
            Impact.HIGH if large else Impact.MEDIUM,
            evidence=evidence,
            behavior=(
                f"The Sort operation spilled {space_mb}MB to disk because it exceeded "
                "available memory."
            ),
            explanation=[
                "PostgreSQL's work_mem setting limits how much memory each sort operation can use.",
                "When sort data exceeds work_mem, PostgreSQL writes temporary files to disk.",
                "Disk-based sorts are significantly slower than in-memory sorts due to I/O overhead.",
                (
                    "This sort used over 100MB of disk space; consider significantly "
                    "increasing work_mem for this query."
                    if large
                    else "Consider increasing work_mem for this session to keep the sort in memory."
                ),
            ],
            limitations=[
                "Cannot see the current work_mem setting",
                "Cannot determine if this query can be rewritten to avoid sorting",
                "Cannot see if an index could provide pre-sorted data",
            ],
        )
