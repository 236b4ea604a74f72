"""
Plan normalizer: raw EXPLAIN text in, canonical AnalysisInput out.

Stages, each attempted only if the previous one declined or failed:

1. Timing pre-extraction (always runs; its values are never overwritten)
2. Primary structured parser, under a deadline
3. Fallback JSON extraction (tolerates psql chrome and doubled quotes)
4. Fallback TEXT grammar
5. The explicit "Parse Error" node

Error handling philosophy: only an empty input is the caller's problem
(EmptyInputError). Every other failure is recoverable and simply advances
the chain; exhaustion produces a well-formed AnalysisInput whose tree is
the Parse Error node.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from pydantic import ValidationError

from plancheck.exceptions import EmptyInputError, ParseError
from plancheck.observability import EventLevel, EventSink, default_sink
from plancheck.parser.cleanup import (
    decode_first_json,
    extract_text_timing,
    extract_timing,
    timing_from_document,
)
from plancheck.parser.config import DEFAULT_CONFIG, NormalizerConfig
from plancheck.parser.models import AnalysisInput, ParseSource, PlanNode, parse_error_node
from plancheck.parser.primary import (
    RichParser,
    StructuredJsonParser,
    check_node_count,
    check_tree_depth,
    run_with_deadline,
)
from plancheck.parser.shapes import has_node_type, resolve_plan_trees
from plancheck.parser.text import extract_jit, extract_triggers, has_node_start, parse_text_plan

MODULE = "Parser"

# Failures a single stage may raise; anything in this set advances the chain.
_STAGE_ERRORS = (ParseError, ValidationError, ValueError, RecursionError)


@dataclass
class _StageOutcome:
    source: ParseSource
    trees: list[PlanNode]
    planning_time_ms: float | None = None
    execution_time_ms: float | None = None
    details: dict[str, Any] = field(default_factory=dict)


class Normalizer:
    """
    Multi-format EXPLAIN parser with a fallback chain.

    Example:
        normalizer = Normalizer()
        result = normalizer.normalize(raw_text)
        result.tree.node_type        # "Seq Scan"
        result.execution_time_ms     # 0.032

        # Custom primary parser with a short deadline
        normalizer = Normalizer(
            primary_parser=MyParser(),
            config=NormalizerConfig(primary_timeout_ms=2_000),
        )
    """

    def __init__(
        self,
        primary_parser: RichParser | None = None,
        config: NormalizerConfig | None = None,
        sink: EventSink | None = None,
    ) -> None:
        """
        Args:
            primary_parser: Parser for stage 2. Defaults to StructuredJsonParser.
                Disable the stage entirely with NormalizerConfig(primary_enabled=False).
            config: Deadline and resource limits (default: DEFAULT_CONFIG).
            sink: Event sink (default: LoggingSink).
        """
        self.config = config or DEFAULT_CONFIG
        self.primary_parser = primary_parser or StructuredJsonParser(self.config)
        self.sink = sink if sink is not None else default_sink()

    def normalize(self, raw_text: str) -> AnalysisInput:
        """
        Normalize raw EXPLAIN output.

        Args:
            raw_text: EXPLAIN output in JSON, TEXT or a pgAdmin-mangled variant

        Returns:
            AnalysisInput; its tree is the Parse Error node if nothing parsed

        Raises:
            EmptyInputError: If raw_text is empty or whitespace only
        """
        if not raw_text or not raw_text.strip():
            self._emit(EventLevel.WARN, "Rejected empty input")
            raise EmptyInputError()

        started = time.perf_counter()
        size = len(raw_text.encode("utf-8"))
        if size > self.config.max_input_bytes:
            self._emit(
                EventLevel.ERROR,
                "Input exceeds size limit",
                {"size_bytes": size, "max_bytes": self.config.max_input_bytes},
            )
            return self._parse_error_input()

        planning, execution = extract_timing(raw_text)
        self._emit(
            EventLevel.DEBUG,
            "Timing pre-extraction",
            {"planning_time_ms": planning, "execution_time_ms": execution},
        )

        stages: tuple[tuple[str, Callable[[str], _StageOutcome | None]], ...] = (
            ("primary", self._primary_stage),
            ("json", self._json_stage),
            ("text", self._text_stage),
        )
        for name, stage in stages:
            outcome = self._run_stage(name, stage, raw_text)
            if outcome is None:
                continue

            result = AnalysisInput(
                source=outcome.source,
                planning_time_ms=planning if planning is not None else outcome.planning_time_ms,
                execution_time_ms=execution if execution is not None else outcome.execution_time_ms,
                tree=outcome.trees[0],
                additional_trees=tuple(outcome.trees[1:]),
            )
            self._emit(
                EventLevel.INFO,
                "Plan parsed",
                {
                    "stage": name,
                    "source": outcome.source.value,
                    "trees": len(outcome.trees),
                    "nodes": sum(t.node_count for t in outcome.trees),
                    "duration_ms": round((time.perf_counter() - started) * 1000, 3),
                    **outcome.details,
                },
            )
            return result

        self._emit(EventLevel.ERROR, "All parsing stages failed", {"input_bytes": size})
        return self._parse_error_input()

    # =========================================================================
    # Stages
    # =========================================================================

    def _run_stage(
        self,
        name: str,
        stage: Callable[[str], _StageOutcome | None],
        raw_text: str,
    ) -> _StageOutcome | None:
        try:
            outcome = stage(raw_text)
        except _STAGE_ERRORS as e:
            self._emit(
                EventLevel.WARN,
                f"{name} stage failed",
                {"error_type": e.__class__.__name__, "error": str(e)},
            )
            return None

        if outcome is None:
            self._emit(EventLevel.DEBUG, f"{name} stage declined")
        return outcome

    def _primary_stage(self, raw_text: str) -> _StageOutcome | None:
        if not self.config.primary_enabled:
            return None

        result = run_with_deadline(
            self.primary_parser, raw_text, self.config.primary_timeout_ms
        )
        if not result.ok:
            self._emit(
                EventLevel.WARN if result.timed_out else EventLevel.DEBUG,
                "Primary parser did not produce a plan",
                {"error": result.error, "timed_out": result.timed_out},
            )
            return None

        value = result.tree.to_dict() if isinstance(result.tree, PlanNode) else result.tree
        pairs = resolve_plan_trees(value)
        document, root = pairs[0]
        if not has_node_type(root):
            raise ParseError("Primary parser result holds no plan tree", source="structure")

        root, attached = self._attach_text_extras(root, raw_text)
        pairs[0] = (document, root)

        planning, execution = timing_from_document(document)
        return _StageOutcome(
            source=ParseSource.PRIMARY,
            trees=[self._build_tree(tree) for _, tree in pairs],
            planning_time_ms=planning,
            execution_time_ms=execution,
            details={"attached": attached} if attached else {},
        )

    def _json_stage(self, raw_text: str) -> _StageOutcome | None:
        try:
            document = decode_first_json(raw_text)
        except ValueError as e:
            # Expected for TEXT input
            self._emit(EventLevel.DEBUG, "No JSON document found", {"error": str(e)})
            return None

        pairs = resolve_plan_trees(document)
        first_document, root = pairs[0]
        if not has_node_type(root):
            return None

        planning, execution = timing_from_document(first_document)
        return _StageOutcome(
            source=ParseSource.FALLBACK,
            trees=[self._build_tree(tree) for _, tree in pairs],
            planning_time_ms=planning,
            execution_time_ms=execution,
        )

    def _text_stage(self, raw_text: str) -> _StageOutcome | None:
        if not has_node_start(raw_text):
            return None

        tree = parse_text_plan(
            raw_text,
            max_depth=self.config.max_depth,
            max_nodes=self.config.max_nodes,
        )
        if tree is None:
            return None

        planning, execution = extract_text_timing(raw_text)
        return _StageOutcome(
            source=ParseSource.FALLBACK,
            trees=[self._build_tree(tree)],
            planning_time_ms=planning,
            execution_time_ms=execution,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _attach_text_extras(
        root: Mapping[str, Any], raw_text: str
    ) -> tuple[Mapping[str, Any], list[str]]:
        """Fill missing Triggers / JIT on a primary-parsed root from the raw text."""
        attached: list[str] = []
        updated = dict(root)

        if not (updated.get("Triggers") or updated.get("triggers")):
            triggers = extract_triggers(raw_text)
            if triggers:
                updated["Triggers"] = triggers
                attached.append("Triggers")

        if not (updated.get("JIT") or updated.get("jit")):
            jit = extract_jit(raw_text)
            if jit:
                updated["JIT"] = jit
                attached.append("JIT")

        return (updated if attached else root), attached

    def _build_tree(self, tree: Any) -> PlanNode:
        if not isinstance(tree, Mapping):
            raise ParseError(
                f"Expected plan object, got {type(tree).__name__}",
                source="structure",
            )

        data = dict(tree)
        check_tree_depth(data, self.config.max_depth)
        node = PlanNode.model_validate(data)
        if not node.is_valid:
            raise ParseError("Plan root has no 'Node Type'", source="validation")
        check_node_count(node, self.config.max_nodes)
        return node

    @staticmethod
    def _parse_error_input() -> AnalysisInput:
        return AnalysisInput(
            source=ParseSource.FALLBACK,
            planning_time_ms=None,
            execution_time_ms=None,
            tree=parse_error_node(),
        )

    def _emit(self, level: EventLevel, message: str, data: dict[str, Any] | None = None) -> None:
        self.sink.on_event(level, MODULE, message, data)


def normalize(
    raw_text: str,
    primary_parser: RichParser | None = None,
    config: NormalizerConfig | None = None,
    sink: EventSink | None = None,
) -> AnalysisInput:
    """
    Normalize raw EXPLAIN output with a one-off Normalizer.

    See Normalizer.normalize() for the contract.
    """
    return Normalizer(primary_parser=primary_parser, config=config, sink=sink).normalize(raw_text)
