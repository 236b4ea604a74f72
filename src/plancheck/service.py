"""
AnalysisService - orchestration layer for plancheck.

This is the single entry point for running an analysis end to end:
normalize the raw EXPLAIN text, run the detector catalogue, aggregate the
findings and package everything as an AnalysisReport.

Design principle: Ports & Adapters
- This is the "application layer" that coordinates domain operations
- It depends only on core abstractions (Normalizer, DetectionEngine)
- Delivery mechanisms (CLI, storage, UI) are thin adapters around this

Usage:
    from plancheck.service import AnalysisService

    service = AnalysisService()
    report = service.analyze(raw_text)

    for finding in report.findings:
        print(f"{finding.impact.value}: {finding.title}")

    # Hand off to a storage collaborator keyed by {id, timestamp}
    store.save(report.id, report.timestamp, report.to_json())
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from plancheck.analyzer.engine import DetectionEngine
from plancheck.analyzer.models import Finding, Impact
from plancheck.observability import (
    EventLevel,
    EventSink,
    FanoutSink,
    MemorySink,
    default_sink,
)
from plancheck.parser.normalizer import Normalizer

if TYPE_CHECKING:
    from plancheck.config import Config
    from plancheck.parser.models import AnalysisInput
    from plancheck.parser.primary import RichParser


@dataclass(frozen=True)
class AnalysisReport:
    """
    Result of one analysis.

    The storage boundary: id and timestamp are the key, everything else is
    the payload.

    Attributes:
        id: Random uuid4 hex identifying this analysis
        timestamp: Creation time in epoch milliseconds
        raw_input: The exact text that was analyzed
        input: Normalized plan (tree, source tag, timings)
        findings: Aggregated findings, highest impact first
        analysis_time_ms: Wall time of normalize + detect
    """

    id: str
    timestamp: int
    raw_input: str
    input: AnalysisInput
    findings: tuple[Finding, ...]
    analysis_time_ms: float

    @property
    def has_findings(self) -> bool:
        return bool(self.findings)

    @property
    def has_high_impact(self) -> bool:
        return any(f.impact == Impact.HIGH for f in self.findings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "rawInput": self.raw_input,
            "input": self.input.to_dict(),
            "findings": [f.to_dict() for f in self.findings],
            "analysisTimeMs": round(self.analysis_time_ms, 3),
        }

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


class AnalysisService:
    """
    Orchestration service for plancheck.

    Coordinates normalization, detection and aggregation into a single
    workflow. All entry points (CLI, storage adapters, UI) should use this
    service.
    """

    def __init__(
        self,
        config: "Config | None" = None,
        primary_parser: "RichParser | None" = None,
        sink: EventSink | None = None,
        engine: DetectionEngine | None = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            config: Configuration instance (if None, uses get_config())
            primary_parser: Primary structured parser (default: StructuredJsonParser)
            sink: Event sink shared by every stage (default: LoggingSink)
            engine: Pre-built detection engine (default: built from config)
        """
        if config is None:
            from plancheck.config import get_config

            config = get_config()
        self._config = config
        # Recent events stay inspectable whatever the outer sink does with them
        self._events = MemorySink(max_entries=config.log_buffer_size)
        self._sink = FanoutSink(sink if sink is not None else default_sink(), self._events)
        self._normalizer = Normalizer(
            primary_parser=primary_parser,
            config=config.normalizer_config(),
            sink=self._sink,
        )
        self._engine = engine or DetectionEngine(config=config, sink=self._sink)

    @property
    def normalizer(self) -> Normalizer:
        return self._normalizer

    @property
    def engine(self) -> DetectionEngine:
        return self._engine

    @property
    def events(self) -> MemorySink:
        """The most recent pipeline events, capped at config.log_buffer_size."""
        return self._events

    def normalize(self, raw_text: str) -> AnalysisInput:
        """
        Normalize raw EXPLAIN text without running detectors.

        Raises:
            EmptyInputError: If raw_text is empty or whitespace only
        """
        return self._normalizer.normalize(raw_text)

    def analyze(self, raw_text: str) -> AnalysisReport:
        """
        Analyze raw EXPLAIN output.

        Args:
            raw_text: EXPLAIN output in any supported format

        Returns:
            AnalysisReport; an unparseable plan yields the Parse Error node
            and no findings

        Raises:
            EmptyInputError: If raw_text is empty or whitespace only
        """
        started = time.perf_counter()
        analysis_input = self._normalizer.normalize(raw_text)
        findings = self._engine.detect(analysis_input)
        elapsed_ms = (time.perf_counter() - started) * 1000

        report = AnalysisReport(
            id=uuid.uuid4().hex,
            timestamp=int(time.time() * 1000),
            raw_input=raw_text,
            input=analysis_input,
            findings=tuple(findings),
            analysis_time_ms=elapsed_ms,
        )
        self._sink.on_event(
            EventLevel.INFO,
            "Analysis",
            "Analysis complete",
            {
                "id": report.id,
                "findings": len(report.findings),
                "duration_ms": round(elapsed_ms, 3),
            },
        )
        return report
