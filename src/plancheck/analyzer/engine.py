"""
Detection engine: walks the canonical plan tree and runs every detector on
every valid node.

Traversal is pre-order depth-first over AnalysisInput.tree and then over each
additional top-level tree. An invalid node (empty node type) is skipped
together with its whole subtree: past a structurally broken node the shape
itself can no longer be trusted.

Fault isolation: a detector raising on one node is reported to the event
sink and otherwise ignored. It does not stop the traversal and does not
prevent other detectors from running on the same node. Only fail_fast
changes that, for tests and debugging.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Iterator, Sequence

from plancheck.analyzer.aggregator import aggregate
from plancheck.analyzer.detectors import Detector
from plancheck.analyzer.models import Finding
from plancheck.analyzer.path import NodePath
from plancheck.analyzer.registry import DetectorRegistry, get_registry
from plancheck.exceptions import ConfigurationError, DetectorError
from plancheck.observability import EventLevel, EventSink, default_sink

if TYPE_CHECKING:
    from plancheck.config import Config
    from plancheck.parser.models import AnalysisInput, PlanNode

MODULE = "Analysis"


@dataclass(frozen=True)
class DetectorFailure:
    """One caught detector exception."""

    detector_id: str
    node_type: str
    path: str
    error_type: str
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "detector_id": self.detector_id,
            "node_type": self.node_type,
            "path": self.path,
            "error_type": self.error_type,
            "error": self.error,
        }


@dataclass
class DetectionStats:
    """Counters for one detection run."""

    nodes_visited: int = 0
    nodes_skipped: int = 0
    raw_findings: int = 0
    failures: list[DetectorFailure] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def detector_failures(self) -> int:
        return len(self.failures)


class DetectionEngine:
    """
    Stateless detector runner.

    Example:
        engine = DetectionEngine()
        findings = engine.detect(normalize(raw_text))

        # Only a subset of the catalogue
        engine = DetectionEngine(include={"disk_spill", "missing_index"})

        # Raw findings plus counters
        raw, stats = engine.detect_raw(analysis_input)
        stats.nodes_visited, stats.detector_failures
    """

    def __init__(
        self,
        detectors: Sequence[Detector] | None = None,
        include: set[str] | None = None,
        exclude: set[str] | None = None,
        config: "Config | None" = None,
        sink: EventSink | None = None,
        fail_fast: bool = False,
        registry: DetectorRegistry | None = None,
    ) -> None:
        """
        Args:
            detectors: Detector instances to run (if None, uses the registry)
            include: Only run these detector ids
            exclude: Skip these detector ids
            config: Configuration instance (if None, uses get_config())
            sink: Event sink (default: LoggingSink)
            fail_fast: Re-raise the first detector exception as DetectorError
            registry: Registry to instantiate detectors from (default: global)
        """
        if config is None:
            from plancheck.config import get_config

            config = get_config()
        self.config = config
        self.sink = sink if sink is not None else default_sink()
        self.fail_fast = fail_fast

        if detectors is not None:
            selected = [
                d
                for d in detectors
                if (include is None or d.detector_id in include)
                and (exclude is None or d.detector_id not in exclude)
            ]
        else:
            registry = registry if registry is not None else get_registry()
            unknown = sorted((include or set()) - {cls.detector_id for cls in registry.all()})
            if unknown:
                raise ConfigurationError(
                    f"Unknown detector id(s): {', '.join(unknown)}",
                    config_key="include",
                )
            selected = [cls() for cls in registry.filter(include=include, exclude=exclude)]

        self.detectors: list[Detector] = [
            d for d in selected if self.config.is_detector_enabled(d.detector_id)
        ]

    @property
    def detector_ids(self) -> list[str]:
        return [d.detector_id for d in self.detectors]

    def detect(self, analysis_input: AnalysisInput) -> list[Finding]:
        """
        Run all detectors and aggregate the result.

        Args:
            analysis_input: Output of the normalizer

        Returns:
            Aggregated findings, sorted by impact (high first)

        Raises:
            DetectorError: Only when fail_fast is set
        """
        raw, _ = self.detect_raw(analysis_input)
        findings = aggregate(raw)
        self._emit(
            EventLevel.INFO,
            "Aggregation complete",
            {"unique_findings": len(findings)},
        )
        return findings

    def detect_raw(
        self, analysis_input: AnalysisInput
    ) -> tuple[list[Finding], DetectionStats]:
        """
        Run all detectors without aggregating.

        Returns:
            (raw findings in traversal order, run statistics)
        """
        started = time.perf_counter()
        stats = DetectionStats()
        findings: list[Finding] = []

        self._emit(
            EventLevel.INFO,
            "Analysis started",
            {"source": analysis_input.source.value, "detectors": len(self.detectors)},
        )

        for node, path in self._walk(analysis_input.all_trees, stats):
            stats.nodes_visited += 1
            for detector in self.detectors:
                finding = self._run_detector(detector, node, path, stats)
                if finding is not None:
                    findings.append(finding)

        stats.raw_findings = len(findings)
        stats.duration_ms = (time.perf_counter() - started) * 1000
        self._emit(
            EventLevel.INFO,
            "Tree traversal complete",
            {
                "nodes_processed": stats.nodes_visited,
                "nodes_skipped": stats.nodes_skipped,
                "raw_findings": stats.raw_findings,
                "detector_failures": stats.detector_failures,
            },
        )
        return findings, stats

    # =========================================================================
    # Internals
    # =========================================================================

    def _walk(
        self, trees: Iterable[PlanNode], stats: DetectionStats
    ) -> Iterator[tuple[PlanNode, NodePath]]:
        """Pre-order DFS over every tree, pruning invalid subtrees."""
        trees = list(trees)
        for index, tree in enumerate(trees):
            stack: list[tuple[PlanNode, NodePath]] = [(tree, NodePath.for_tree(index, len(trees)))]
            while stack:
                node, path = stack.pop()
                if not node.is_valid:
                    stats.nodes_skipped += 1
                    self._emit(EventLevel.DEBUG, "Skipping invalid node", {"path": str(path)})
                    continue

                yield node, path
                for child_index in range(len(node.children) - 1, -1, -1):
                    stack.append((node.children[child_index], path.child(child_index)))

    def _run_detector(
        self,
        detector: Detector,
        node: PlanNode,
        path: NodePath,
        stats: DetectionStats,
    ) -> Finding | None:
        try:
            finding = detector.detect(node)
        except Exception as e:
            if self.fail_fast:
                raise DetectorError(detector.detector_id, detector.version, e, path) from e

            failure = DetectorFailure(
                detector_id=detector.detector_id,
                node_type=node.node_type,
                path=str(path),
                error_type=e.__class__.__name__,
                error=str(e),
            )
            stats.failures.append(failure)
            self._emit(EventLevel.ERROR, "Detector execution failed", failure.to_dict())
            return None

        if finding is not None:
            self._emit(
                EventLevel.DEBUG,
                f"Detector triggered: {finding.id}",
                {"node_type": node.node_type, "path": str(path)},
            )
        return finding

    def _emit(self, level: EventLevel, message: str, data: dict[str, Any] | None = None) -> None:
        self.sink.on_event(level, MODULE, message, data)


def detect(
    analysis_input: AnalysisInput,
    sink: EventSink | None = None,
    config: "Config | None" = None,
) -> list[Finding]:
    """Run the built-in catalogue over a normalized plan and aggregate the result."""
    return DetectionEngine(config=config, sink=sink).detect(analysis_input)
