"""
Tests for the built-in detector catalogue.

Each detector is exercised on nodes built directly, with one case at and
one just past every threshold that matters, plus the end-to-end scenarios
from raw EXPLAIN text.
"""

import json
from typing import Any

import pytest

from plancheck.analyzer.detectors import (
    BitmapHeapLossyRecheck,
    CteMaterialization,
    DiskSpill,
    HashJoinMemoryPressure,
    HighFrequencyNestedLoop,
    IndexScanHeapFetches,
    IneffectiveLimit,
    JitCompilationOverhead,
    JoinFilterHighRemoval,
    MissingIndex,
    ParallelQueryWorkerShortage,
    RecursiveIterationExplosion,
    RowCountMismatch,
    SortDiskUsage,
    TriggerOverhead,
    UnfilteredSeqScan,
)
from plancheck.analyzer.engine import DetectionEngine
from plancheck.analyzer.models import Confidence, Impact
from plancheck.config import Config
from plancheck.observability import NoopSink
from plancheck.parser import Normalizer, PlanNode


def node(node_type: str, *children: PlanNode, **fields: Any) -> PlanNode:
    """Build a plan node from field names."""
    return PlanNode(node_type=node_type, children=children, **fields)


def analyze(raw: str) -> list:
    analysis_input = Normalizer(sink=NoopSink()).normalize(raw)
    return DetectionEngine(config=Config(), sink=NoopSink()).detect(analysis_input)


# =============================================================================
# End-to-end scenarios
# =============================================================================


class TestScenarios:
    """Findings produced from raw EXPLAIN output."""

    def test_disk_spill_from_text(self) -> None:
        raw = """\
Sort  (cost=1000.00..1100.00 rows=40000 width=64) (actual time=500.000..650.000 rows=40000 loops=1)
  Sort Key: created_at
  Sort Method: external merge  Disk: 204800kB
  ->  Seq Scan on events  (cost=0.00..500.00 rows=40000 width=64) (actual time=0.010..100.000 rows=40000 loops=1)
Planning Time: 0.100 ms
Execution Time: 700.000 ms
"""
        findings = {f.id: f for f in analyze(raw)}

        spill = findings["disk_spill"]
        assert spill.impact == Impact.HIGH
        assert any("204800" in e.raw_text and "Disk" in e.raw_text for e in spill.evidence)
        assert "sort_disk_usage" not in findings

    def test_hash_batches_from_json(self) -> None:
        raw = json.dumps(
            [
                {
                    "Plan": {
                        "Node Type": "Hash Join",
                        "Join Type": "Inner",
                        "Plans": [
                            {"Node Type": "Seq Scan", "Relation Name": "orders"},
                            {
                                "Node Type": "Hash",
                                "Hash Buckets": 65536,
                                "Hash Batches": 4,
                                "Peak Memory Usage": 4096,
                                "Plans": [{"Node Type": "Seq Scan", "Relation Name": "users"}],
                            },
                        ],
                    }
                }
            ]
        )
        findings = analyze(raw)

        assert [f.id for f in findings] == ["hash_join_memory_pressure"]
        assert findings[0].impact == Impact.HIGH
        assert findings[0].evidence[0].raw_text == "Hash Batches: 4 (spilled to disk)"

    def test_nested_loop_from_json(self) -> None:
        raw = json.dumps(
            [
                {
                    "Plan": {
                        "Node Type": "Nested Loop",
                        "Actual Rows": 5000,
                        "Actual Loops": 1,
                        "Plans": [
                            {
                                "Node Type": "Index Only Scan",
                                "Relation Name": "customers",
                                "Actual Rows": 5000,
                                "Actual Loops": 1,
                            },
                            {
                                "Node Type": "Index Scan",
                                "Relation Name": "orders",
                                "Actual Rows": 1,
                                "Actual Loops": 5000,
                            },
                        ],
                    }
                }
            ]
        )
        findings = {f.id: f for f in analyze(raw)}

        assert findings["high_freq_nested_loop"].impact == Impact.HIGH


# =============================================================================
# Sort and hash memory
# =============================================================================


class TestDiskSpill:
    detector = DiskSpill()

    def test_external_merge_with_space(self) -> None:
        finding = self.detector.detect(
            node("Sort", sort_method="external merge", sort_space_used=204800, sort_space_type="Disk")
        )

        assert finding.id == "disk_spill"
        assert finding.impact == Impact.HIGH
        assert finding.confidence == Confidence.VERIFIED
        assert finding.evidence[0].raw_text == "Sort Method: external merge"
        assert finding.evidence[1].raw_text == "Sort Space Used: 204800 kB (200 MB, Disk)"
        assert finding.evidence[2].location == "Sort properties"
        assert finding.education.docs_link.endswith("runtime-config-resource.html#GUC-WORK-MEM")

    def test_external_merge_without_space(self) -> None:
        finding = self.detector.detect(node("Sort", sort_method="external merge"))

        assert finding is not None
        assert len(finding.evidence) == 1

    @pytest.mark.parametrize("method", ["quicksort", "top-N heapsort", "external sort", None])
    def test_other_methods(self, method: str | None) -> None:
        assert self.detector.detect(node("Sort", sort_method=method)) is None


class TestSortDiskUsage:
    detector = SortDiskUsage()

    def test_large_disk_sort(self) -> None:
        finding = self.detector.detect(
            node(
                "Sort",
                sort_method="external sort",
                sort_space_type="Disk",
                sort_space_used=204800,
                sort_key=["created_at"],
            )
        )

        assert finding.id == "sort_disk_usage"
        assert finding.impact == Impact.HIGH
        assert [e.field for e in finding.evidence] == [
            "Sort Space Type",
            "Sort Space Used",
            "Sort Method",
            "Sort Key",
        ]

    def test_small_disk_sort(self) -> None:
        finding = self.detector.detect(
            node("Sort", sort_method="external sort", sort_space_type="Disk", sort_space_used=1024)
        )

        assert finding.impact == Impact.MEDIUM

    def test_boundary_is_exclusive(self) -> None:
        finding = self.detector.detect(
            node("Sort", sort_method="external sort", sort_space_type="Disk", sort_space_used=102400)
        )

        assert finding.impact == Impact.MEDIUM

    def test_external_merge_left_to_disk_spill(self) -> None:
        result = self.detector.detect(
            node("Sort", sort_method="external merge", sort_space_type="Disk", sort_space_used=204800)
        )

        assert result is None

    def test_memory_sort(self) -> None:
        result = self.detector.detect(
            node("Sort", sort_method="quicksort", sort_space_type="Memory", sort_space_used=25)
        )

        assert result is None


class TestHashJoinMemoryPressure:
    detector = HashJoinMemoryPressure()

    def test_multiple_batches(self) -> None:
        finding = self.detector.detect(
            node("Hash", hash_batches=4, hash_buckets=65536, peak_memory_usage=4096)
        )

        assert finding.id == "hash_join_memory_pressure"
        assert finding.impact == Impact.HIGH
        assert [e.field for e in finding.evidence] == ["Hash Batches", "Hash Buckets", "Memory Usage"]
        assert finding.evidence[0].location == "Node Type: Hash"

    @pytest.mark.parametrize("batches", [None, 0, 1])
    def test_single_batch(self, batches: int | None) -> None:
        assert self.detector.detect(node("Hash", hash_batches=batches)) is None

    def test_non_hash_node(self) -> None:
        assert self.detector.detect(node("Sort", hash_batches=4)) is None


# =============================================================================
# Scans and estimates
# =============================================================================


class TestMissingIndex:
    detector = MissingIndex()

    def scan(self, actual: int, removed: int, filter: str = "(status = 'active')") -> PlanNode:
        return node(
            "Seq Scan",
            relation_name="users",
            filter=filter,
            actual_rows=actual,
            rows_removed_by_filter=removed,
        )

    def test_selective_filter(self) -> None:
        finding = self.detector.detect(self.scan(actual=10, removed=99_990))

        assert finding.id == "missing_index"
        assert finding.impact == Impact.HIGH
        assert finding.confidence == Confidence.INFERRED
        assert finding.evidence[0].location == "Relation: users"
        assert "(99,990 of 100,000)" in finding.evidence[0].raw_text
        assert finding.evidence[1].raw_text == "Filter: (status = 'active')"

    def test_ratio_at_threshold(self) -> None:
        """Exactly 90% removed does not fire."""
        assert self.detector.detect(self.scan(actual=200, removed=1800)) is None

    def test_ratio_just_past_threshold(self) -> None:
        assert self.detector.detect(self.scan(actual=990, removed=9010)) is not None

    def test_total_at_threshold(self) -> None:
        """1000 examined rows is not enough."""
        assert self.detector.detect(self.scan(actual=50, removed=950)) is None

    def test_total_just_past_threshold(self) -> None:
        assert self.detector.detect(self.scan(actual=50, removed=951)) is not None

    def test_null_anchor_skipped(self) -> None:
        filter = "(manager_id IS NULL)"

        assert self.detector.detect(self.scan(actual=5, removed=9995, filter=filter)) is None
        assert self.detector.detect(self.scan(actual=11, removed=9995, filter=filter)) is not None

    def test_nothing_removed(self) -> None:
        assert self.detector.detect(self.scan(actual=1, removed=0)) is None

    def test_no_filter(self) -> None:
        assert self.detector.detect(node("Seq Scan", actual_rows=1, rows_removed_by_filter=5000)) is None

    def test_without_relation(self) -> None:
        finding = self.detector.detect(
            node("Seq Scan", filter="(x > 1)", actual_rows=1, rows_removed_by_filter=5000)
        )

        assert finding.evidence[0].location == "Seq Scan"


class TestUnfilteredSeqScan:
    detector = UnfilteredSeqScan()

    def test_medium_table(self) -> None:
        finding = self.detector.detect(node("Seq Scan", relation_name="events", actual_rows=5000))

        assert finding.id == "unfiltered_seq_scan"
        assert finding.impact == Impact.MEDIUM
        assert finding.evidence[0].location == "Relation: events"
        assert finding.evidence[2].raw_text == "Rows: 5,000"

    def test_large_table(self) -> None:
        finding = self.detector.detect(node("Seq Scan", actual_rows=200_000))

        assert finding.impact == Impact.HIGH

    def test_slow_scan(self) -> None:
        finding = self.detector.detect(
            node("Seq Scan", actual_rows=5000, actual_total_time=1500.0)
        )

        assert finding.impact == Impact.HIGH
        assert finding.evidence[-1].raw_text == "Scan time: 1500.00 ms"

    def test_plan_rows_used_without_actuals(self) -> None:
        finding = self.detector.detect(node("Seq Scan", plan_rows=5000))

        assert finding.impact == Impact.MEDIUM

    def test_actual_rows_win_over_estimate(self) -> None:
        assert self.detector.detect(node("Seq Scan", plan_rows=50_000, actual_rows=10)) is None

    def test_small_table(self) -> None:
        assert self.detector.detect(node("Seq Scan", actual_rows=1000)) is None

    def test_filtered_scan(self) -> None:
        assert self.detector.detect(node("Seq Scan", actual_rows=5000, filter="(a = 1)")) is None


class TestRowCountMismatch:
    detector = RowCountMismatch()

    def test_underestimate(self) -> None:
        finding = self.detector.detect(node("Seq Scan", plan_rows=100, actual_rows=5000))

        assert finding.id == "row_count_mismatch"
        assert finding.impact == Impact.HIGH
        assert [e.raw_text for e in finding.evidence] == ["Plan Rows: 100", "Actual Rows: 5000"]

    def test_moderate_miss(self) -> None:
        finding = self.detector.detect(node("Seq Scan", plan_rows=10_000, actual_rows=12_000))

        assert finding.impact == Impact.MEDIUM

    def test_small_absolute_difference(self) -> None:
        assert self.detector.detect(node("Seq Scan", plan_rows=10_000, actual_rows=10_500)) is None

    def test_small_relative_difference(self) -> None:
        assert self.detector.detect(node("Seq Scan", plan_rows=100_000, actual_rows=105_000)) is None

    def test_zero_estimate(self) -> None:
        finding = self.detector.detect(node("Seq Scan", plan_rows=0, actual_rows=5000))

        assert finding.impact == Impact.HIGH

    def test_no_actual_rows(self) -> None:
        assert self.detector.detect(node("Seq Scan", plan_rows=100)) is None
        assert self.detector.detect(node("Seq Scan", plan_rows=5000, actual_rows=0)) is None


class TestIndexScanHeapFetches:
    detector = IndexScanHeapFetches()

    def test_heap_fetches_dominate(self) -> None:
        finding = self.detector.detect(
            node("Index Scan", relation_name="orders", heap_fetches=5000, actual_rows=6000)
        )

        assert finding.id == "index_scan_heap_fetches"
        assert finding.impact == Impact.MEDIUM

    def test_index_only_scan_ignored(self) -> None:
        result = self.detector.detect(node("Index Only Scan", heap_fetches=5000, actual_rows=6000))

        assert result is None

    def test_few_fetches(self) -> None:
        assert self.detector.detect(node("Index Scan", heap_fetches=900, actual_rows=1000)) is None

    def test_low_ratio(self) -> None:
        assert self.detector.detect(node("Index Scan", heap_fetches=2000, actual_rows=10_000)) is None


class TestBitmapHeapLossyRecheck:
    detector = BitmapHeapLossyRecheck()

    def test_high_recheck_ratio(self) -> None:
        finding = self.detector.detect(
            node(
                "Bitmap Heap Scan",
                relation_name="events",
                actual_rows=400,
                rows_removed_by_index_recheck=600,
                recheck_cond="(kind = 'click')",
            )
        )

        assert finding.id == "bitmap_heap_lossy_recheck"
        assert finding.impact == Impact.HIGH
        assert finding.evidence[0].location == "Table: events"
        assert finding.evidence[1].raw_text == "60.0% of scanned rows were filtered by recheck"
        assert finding.evidence[2].raw_text == "Recheck Cond: (kind = 'click')"

    def test_moderate_recheck_ratio(self) -> None:
        finding = self.detector.detect(
            node("Bitmap Heap Scan", actual_rows=800, rows_removed_by_index_recheck=200)
        )

        assert finding.impact == Impact.MEDIUM

    def test_too_few_rows(self) -> None:
        result = self.detector.detect(
            node("Bitmap Heap Scan", actual_rows=399, rows_removed_by_index_recheck=600)
        )

        assert result is None

    def test_ratio_at_threshold(self) -> None:
        result = self.detector.detect(
            node("Bitmap Heap Scan", actual_rows=900, rows_removed_by_index_recheck=100)
        )

        assert result is None


# =============================================================================
# Joins and limits
# =============================================================================


class TestHighFrequencyNestedLoop:
    detector = HighFrequencyNestedLoop()

    def loop(self, loops: int, **inner: Any) -> PlanNode:
        return node(
            "Nested Loop",
            node("Seq Scan", relation_name="customers"),
            node("Index Scan", relation_name="orders", actual_loops=loops, **inner),
        )

    def test_many_iterations(self) -> None:
        finding = self.detector.detect(
            self.loop(5000, actual_total_time=250.0, shared_hit_blocks=15_000, shared_read_blocks=5000)
        )

        assert finding.id == "high_freq_nested_loop"
        assert finding.impact == Impact.HIGH
        assert finding.evidence[0].raw_text == "Inner side executed 5,000 times"
        assert finding.evidence[0].location == "Nested Loop → Index Scan on orders"
        amplification = next(e for e in finding.evidence if e.field == "Amplification")
        assert amplification.value == 4.0

    def test_moderate_iterations(self) -> None:
        finding = self.detector.detect(self.loop(500))

        assert finding.impact == Impact.MEDIUM
        assert len(finding.evidence) == 1

    def test_threshold_is_exclusive(self) -> None:
        assert self.detector.detect(self.loop(100)) is None

    def test_single_child(self) -> None:
        only = node("Nested Loop", node("Index Scan", actual_loops=5000))

        assert self.detector.detect(only) is None


class TestJoinFilterHighRemoval:
    detector = JoinFilterHighRemoval()

    def test_high_removal(self) -> None:
        finding = self.detector.detect(
            node(
                "Nested Loop",
                actual_rows=1000,
                rows_removed_by_join_filter=50_000,
                join_filter="(a.x < b.y)",
            )
        )

        assert finding.id == "join_filter_high_removal"
        assert finding.impact == Impact.HIGH
        assert finding.evidence[-1].raw_text == "Join Filter: (a.x < b.y)"

    def test_moderate_removal(self) -> None:
        finding = self.detector.detect(
            node("Hash Join", actual_rows=10_000, rows_removed_by_join_filter=20_000)
        )

        assert finding.impact == Impact.MEDIUM

    def test_few_removed_rows(self) -> None:
        result = self.detector.detect(
            node("Nested Loop", actual_rows=100, rows_removed_by_join_filter=9000)
        )

        assert result is None

    def test_non_join_node(self) -> None:
        result = self.detector.detect(node("Seq Scan", actual_rows=1, rows_removed_by_join_filter=50_000))

        assert result is None


class TestIneffectiveLimit:
    detector = IneffectiveLimit()

    def test_limit_over_large_quicksort(self) -> None:
        finding = self.detector.detect(
            node("Limit", node("Sort", sort_method="quicksort", actual_rows=50_000))
        )

        assert finding.id == "ineffective_limit"
        assert finding.impact == Impact.MEDIUM
        assert finding.evidence[0].location == "Child of Limit Node (Type: Sort)"

    def test_limit_over_external_sort(self) -> None:
        finding = self.detector.detect(
            node("Limit", node("Sort", sort_method="external merge", actual_rows=100))
        )

        assert finding is not None

    def test_small_quicksort(self) -> None:
        result = self.detector.detect(
            node("Limit", node("Sort", sort_method="quicksort", actual_rows=5000))
        )

        assert result is None

    def test_top_n_heapsort(self) -> None:
        result = self.detector.detect(
            node("Limit", node("Sort", sort_method="top-N heapsort", actual_rows=50_000))
        )

        assert result is None

    def test_limit_without_sort(self) -> None:
        assert self.detector.detect(node("Limit", node("Seq Scan", actual_rows=50_000))) is None


class TestParallelQueryWorkerShortage:
    detector = ParallelQueryWorkerShortage()

    def test_no_workers_launched(self) -> None:
        finding = self.detector.detect(node("Gather", workers_planned=4, workers_launched=0))

        assert finding.id == "parallel_query_worker_shortage"
        assert finding.impact == Impact.HIGH

    def test_some_workers_launched(self) -> None:
        finding = self.detector.detect(node("Gather Merge", workers_planned=4, workers_launched=2))

        assert finding.impact == Impact.MEDIUM

    def test_all_workers_launched(self) -> None:
        assert self.detector.detect(node("Gather", workers_planned=2, workers_launched=2)) is None

    def test_without_analyze(self) -> None:
        assert self.detector.detect(node("Gather", workers_planned=2)) is None


# =============================================================================
# CTEs, JIT and triggers
# =============================================================================


class TestCteMaterialization:
    detector = CteMaterialization()

    def test_small_cte(self) -> None:
        finding = self.detector.detect(node("CTE Scan", cte_name="recent", actual_rows=5000))

        assert finding.id == "cte_materialization"
        assert finding.impact == Impact.LOW
        assert finding.evidence[0].location == "CTE Scan on recent"

    def test_large_cte(self) -> None:
        finding = self.detector.detect(node("CTE Scan", cte_name="all_rows", actual_rows=2_000_000))

        assert finding.impact == Impact.MEDIUM

    def test_slow_cte(self) -> None:
        finding = self.detector.detect(
            node("CTE Scan", cte_name="recent", actual_rows=5000, actual_total_time=6000.0)
        )

        assert finding.impact == Impact.HIGH

    def test_unnamed_cte(self) -> None:
        finding = self.detector.detect(node("CTE Scan", actual_rows=1000))

        assert finding.evidence[0].value == "unnamed"

    def test_below_threshold(self) -> None:
        assert self.detector.detect(node("CTE Scan", cte_name="x", actual_rows=999)) is None


class TestRecursiveIterationExplosion:
    detector = RecursiveIterationExplosion()

    def test_many_iterations(self) -> None:
        finding = self.detector.detect(
            node("WorkTable Scan", cte_name="tree", actual_loops=20_000, actual_rows=3)
        )

        assert finding.id == "recursive_iteration_explosion"
        assert finding.impact == Impact.MEDIUM
        assert finding.evidence[2].value == 60_000

    def test_extreme_iterations(self) -> None:
        finding = self.detector.detect(node("WorkTable Scan", actual_loops=60_000, actual_rows=1))

        assert finding.impact == Impact.HIGH

    def test_slow_recursion(self) -> None:
        finding = self.detector.detect(
            node("WorkTable Scan", actual_loops=20_000, actual_rows=1, actual_total_time=1500.0)
        )

        assert finding.impact == Impact.HIGH

    def test_filter_rejection_evidence(self) -> None:
        finding = self.detector.detect(
            node(
                "WorkTable Scan",
                actual_loops=20_000,
                actual_rows=1,
                filter="(depth < 10)",
                rows_removed_by_filter=999,
            )
        )

        rejection = next(e for e in finding.evidence if e.field == "Filter Rejection")
        assert rejection.location == "Filter"

    def test_below_threshold(self) -> None:
        assert self.detector.detect(node("WorkTable Scan", actual_loops=9999)) is None


def jit_node(node_ms: float | None, jit_ms: float, **timing: float) -> PlanNode:
    data: dict[str, Any] = {
        "Node Type": "Result",
        "JIT": {"Functions": 5, "Timing": {"Total": jit_ms, **timing}},
    }
    if node_ms is not None:
        data["Actual Total Time"] = node_ms
    return PlanNode.model_validate(data)


class TestJitCompilationOverhead:
    detector = JitCompilationOverhead()

    def test_dominant_jit(self) -> None:
        finding = self.detector.detect(jit_node(100.0, 60.0, Optimization=30.0))

        assert finding.id == "jit_compilation_overhead"
        assert finding.impact == Impact.HIGH
        assert [e.location for e in finding.evidence] == [
            "JIT",
            "JIT share",
            "JIT functions",
            "JIT timing",
        ]

    @pytest.mark.parametrize(
        "jit_ms,impact",
        [(35.0, Impact.MEDIUM), (25.0, Impact.LOW), (20.0, Impact.LOW)],
    )
    def test_impact_by_share(self, jit_ms: float, impact: Impact) -> None:
        assert self.detector.detect(jit_node(100.0, jit_ms)).impact == impact

    def test_slow_jit_is_high_regardless_of_share(self) -> None:
        finding = self.detector.detect(jit_node(5000.0, 1200.0))

        assert finding.impact == Impact.HIGH

    def test_small_share(self) -> None:
        assert self.detector.detect(jit_node(100.0, 10.0)) is None

    def test_without_node_time(self) -> None:
        assert self.detector.detect(jit_node(None, 60.0)) is None

    def test_without_jit(self) -> None:
        assert self.detector.detect(node("Result", actual_total_time=100.0)) is None


def trigger_node(node_ms: float, *times: float) -> PlanNode:
    triggers = [
        {"Trigger Name": f"trg_{i}", "Relation": "orders", "Time": t, "Calls": 10_000}
        for i, t in enumerate(times)
    ]
    return PlanNode.model_validate(
        {"Node Type": "ModifyTable", "Actual Total Time": node_ms, "Triggers": triggers}
    )


class TestTriggerOverhead:
    detector = TriggerOverhead()

    def test_dominant_triggers(self) -> None:
        finding = self.detector.detect(trigger_node(2000.0, 1000.0, 500.0))

        assert finding.id == "trigger_overhead"
        assert finding.impact == Impact.HIGH
        assert finding.evidence[0].raw_text == "Total trigger time: 1.50s"
        assert finding.evidence[0].location == "2 trigger(s)"
        assert finding.evidence[2].raw_text == "Trigger time: 75% of total execution"
        assert [e.location for e in finding.evidence[3:]] == ["Trigger: trg_0", "Trigger: trg_1"]

    def test_moderate_share(self) -> None:
        finding = self.detector.detect(trigger_node(5000.0, 1500.0))

        assert finding.impact == Impact.MEDIUM

    def test_fast_triggers(self) -> None:
        assert self.detector.detect(trigger_node(2000.0, 900.0)) is None

    def test_no_triggers(self) -> None:
        assert self.detector.detect(node("ModifyTable", actual_total_time=2000.0)) is None
