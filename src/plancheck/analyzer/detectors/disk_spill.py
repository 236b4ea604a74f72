"""
Detector: Disk Spill

Detects sorts that fell back to an external merge because the data did not
fit in work_mem. An external merge writes runs to temporary files and merges
them back, which is far slower than an in-memory quicksort.

Applies to any node whose Sort Method mentions "external merge" (Sort,
Incremental Sort, and aggregates that report a sort method).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from plancheck.analyzer.detectors.base import DOCS_BASE, Detector, node_location
from plancheck.analyzer.models import Confidence, Finding, Impact
from plancheck.analyzer.registry import register_detector

if TYPE_CHECKING:
    from plancheck.parser.models import PlanNode


@register_detector
class DiskSpill(Detector):
    """Flag external merge sorts."""

    detector_id = "disk_spill"
    version = "1.0.0"
    title = "Disk Spill Detected"
    confidence = Confidence.VERIFIED
    description = "Detects sorts that spilled to temporary files (external merge)"
    docs_link = DOCS_BASE + "runtime-config-resource.html#GUC-WORK-MEM"

    def detect(self, node: PlanNode) -> Finding | None:
        method = node.sort_method
        if not method or "external merge" not in method:
            return None

        space_kb = node.sort_space_used or 0
        # PostgreSQL reports whole kB
        space_mb = int(space_kb // 1024)

        evidence = [
            self.evidence(
                "Sort Method", method, f"Sort Method: {method}", node_location(node)
            ),
        ]
        if space_kb:
            suffix = f", {node.sort_space_type}" if node.sort_space_type else ""
            evidence.append(
                self.evidence(
                    "Sort Space Used",
                    node.sort_space_used,
                    f"Sort Space Used: {space_kb} kB ({space_mb} MB{suffix})",
                    "Node properties",
                )
            )
        if node.sort_space_type:
            evidence.append(
                self.evidence(
                    "Sort Space Type",
                    node.sort_space_type,
                    f"Sort Space Type: {node.sort_space_type}",
                    "Sort properties",
                )
            )

        if space_kb > 0:
            behavior = (
                f"External merge sort detected. Temporary disk space used: {space_mb} MB."
            )
        else:
            behavior = "External merge sort detected. Data was written to temporary files."

        return self.finding(
            Impact.HIGH,
            evidence=evidence,
            behavior=behavior,
            explanation=[
                f"Sort method: {method}",
                f"Disk space utilized: {space_kb} kB ({space_mb} MB)" if space_kb > 0 else "",
                "External merge indicates the sort exceeded available work_mem.",
                "Temporary files were created to complete the sort operation.",
            ],
            limitations=[
                "Cannot see current work_mem setting",
                "Cannot determine if disk-based sort was expected for this workload",
                "Cannot measure actual I/O latency without system-level metrics",
            ],
        )
