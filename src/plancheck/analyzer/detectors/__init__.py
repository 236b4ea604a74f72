"""
Built-in detector catalogue.

Importing this package registers every built-in detector with the global
registry. The import order below IS the registration order: detectors run on
each node in this order, and findings of equal impact are reported in the
order their id was first produced.
"""

from plancheck.analyzer.detectors.base import DOCS_BASE, Detector
from plancheck.analyzer.detectors.disk_spill import DiskSpill
from plancheck.analyzer.detectors.sort_disk_usage import SortDiskUsage
from plancheck.analyzer.detectors.hash_join_memory import HashJoinMemoryPressure
from plancheck.analyzer.detectors.missing_index import MissingIndex
from plancheck.analyzer.detectors.seq_scan import UnfilteredSeqScan
from plancheck.analyzer.detectors.row_mismatch import RowCountMismatch
from plancheck.analyzer.detectors.nested_loop import HighFrequencyNestedLoop
from plancheck.analyzer.detectors.ineffective_limit import IneffectiveLimit
from plancheck.analyzer.detectors.index_heap_fetches import IndexScanHeapFetches
from plancheck.analyzer.detectors.parallel_workers import ParallelQueryWorkerShortage
from plancheck.analyzer.detectors.bitmap_recheck import BitmapHeapLossyRecheck
from plancheck.analyzer.detectors.join_filter import JoinFilterHighRemoval
from plancheck.analyzer.detectors.cte_materialization import CteMaterialization
from plancheck.analyzer.detectors.recursive_explosion import RecursiveIterationExplosion
from plancheck.analyzer.detectors.jit_overhead import JitCompilationOverhead
from plancheck.analyzer.detectors.trigger_overhead import TriggerOverhead

BUILTIN_DETECTORS: tuple[type[Detector], ...] = (
    DiskSpill,
    SortDiskUsage,
    HashJoinMemoryPressure,
    MissingIndex,
    UnfilteredSeqScan,
    RowCountMismatch,
    HighFrequencyNestedLoop,
    IneffectiveLimit,
    IndexScanHeapFetches,
    ParallelQueryWorkerShortage,
    BitmapHeapLossyRecheck,
    JoinFilterHighRemoval,
    CteMaterialization,
    RecursiveIterationExplosion,
    JitCompilationOverhead,
    TriggerOverhead,
)

__all__ = [
    "BUILTIN_DETECTORS",
    "DOCS_BASE",
    "Detector",
    "DiskSpill",
    "SortDiskUsage",
    "HashJoinMemoryPressure",
    "MissingIndex",
    "UnfilteredSeqScan",
    "RowCountMismatch",
    "HighFrequencyNestedLoop",
    "IneffectiveLimit",
    "IndexScanHeapFetches",
    "ParallelQueryWorkerShortage",
    "BitmapHeapLossyRecheck",
    "JoinFilterHighRemoval",
    "CteMaterialization",
    "RecursiveIterationExplosion",
    "JitCompilationOverhead",
    "TriggerOverhead",
]
