"""
Detector: Hash Join Memory Pressure

A hash table that does not fit in work_mem is split into batches; every
batch beyond the first is written to and re-read from temporary files.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from plancheck.analyzer.detectors.base import DOCS_BASE, Detector, node_location
from plancheck.analyzer.models import Confidence, Finding, Impact
from plancheck.analyzer.registry import register_detector

if TYPE_CHECKING:
    from plancheck.parser.models import PlanNode


@register_detector
class HashJoinMemoryPressure(Detector):
    """Flag hash nodes that needed more than one batch."""

    detector_id = "hash_join_memory_pressure"
    version = "1.0.0"
    title = "Hash Join Memory Pressure"
    confidence = Confidence.VERIFIED
    description = "Detects hash tables split into multiple batches"
    docs_link = DOCS_BASE + "runtime-config-resource.html#GUC-WORK-MEM"

    def detect(self, node: PlanNode) -> Finding | None:
        if "hash" not in node.node_type.lower():
            return None

        batches = node.hash_batches
        if batches is None or batches <= 1:
            return None

        location = node_location(node)
        evidence = [
            self.evidence(
                "Hash Batches",
                batches,
                f"Hash Batches: {batches} (spilled to disk)",
                location,
            ),
        ]
        if node.hash_buckets is not None:
            evidence.append(
                self.evidence(
                    "Hash Buckets", node.hash_buckets, f"Hash Buckets: {node.hash_buckets}", location
                )
            )
        if node.peak_memory_usage is not None:
            evidence.append(
                self.evidence(
                    "Memory Usage",
                    node.peak_memory_usage,
                    f"Memory Usage: {node.peak_memory_usage}kB",
                    location,
                )
            )

        return self.finding(
            Impact.HIGH,
            evidence=evidence,
            behavior=(
                f"The Hash Join used {batches} batches, meaning data had to be written "
                "to temporary files on disk."
            ),
            explanation=[
                "When a Hash Join's hash table exceeds work_mem, PostgreSQL splits the "
                "operation into multiple batches.",
                "Each batch beyond the first requires writing intermediate data to disk "
                "and re-reading it.",
                "This significantly increases I/O overhead and slows down the join operation.",
                "Consider increasing work_mem for this session or optimizing the join to "
                "reduce the hash table size.",
            ],
            limitations=[
                "Cannot see the current work_mem setting",
                "Cannot determine if increasing work_mem would fit in available RAM",
                "The actual I/O penalty depends on storage speed",
            ],
        )
