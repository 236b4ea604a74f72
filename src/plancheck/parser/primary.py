"""
Primary structured parser contract and deadline runner.

The normalizer's first stage delegates to a "primary" parser: any object
with ``rich_parse(text) -> RichParseResult``. It runs on a worker thread
under a deadline; if it does not answer in time its result is abandoned and
the fallback chain takes over. The core only depends on that contract.

The default implementation, StructuredJsonParser, is a strict EXPLAIN
(FORMAT JSON) parser: no header stripping, no quote repair, full structural
validation. Anything it rejects is left to the lenient fallback stages.
"""

from __future__ import annotations

import json
import queue
from dataclasses import dataclass
from threading import Thread
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from plancheck.exceptions import ParseError
from plancheck.parser.config import DEFAULT_CONFIG, NormalizerConfig
from plancheck.parser.models import PlanNode
from plancheck.parser.shapes import NODE_TYPE_KEYS


@dataclass(frozen=True)
class RichParseResult:
    """
    Outcome of a primary parse.

    Attributes:
        ok: Whether the parser produced a tree.
        tree: A plan-shaped value (any wrapper the shape resolver understands).
        error: Why parsing failed, when ok is False.
        timed_out: Set by run_with_deadline when the deadline passed.
    """

    ok: bool
    tree: Any = None
    error: str | None = None
    timed_out: bool = False

    @classmethod
    def failure(cls, error: str, timed_out: bool = False) -> "RichParseResult":
        return cls(ok=False, error=error, timed_out=timed_out)


@runtime_checkable
class RichParser(Protocol):
    """Contract for the primary structured parser."""

    def rich_parse(self, text: str) -> RichParseResult:
        """Parse raw EXPLAIN text into a plan-shaped value."""
        ...


class StructuredJsonParser:
    """
    Strict parser for PostgreSQL EXPLAIN (FORMAT JSON) output.

    Accepts exactly what PostgreSQL emits: a JSON array of documents (or a
    single document) each holding a "Plan" object. Trees are validated
    against PlanNode and checked against the configured depth and node
    limits.

    Example:
        parser = StructuredJsonParser()
        result = parser.rich_parse('[{"Plan": {"Node Type": "Result"}}]')
        result.ok     # True
    """

    def __init__(self, config: NormalizerConfig | None = None) -> None:
        self.config = config or DEFAULT_CONFIG

    def rich_parse(self, text: str) -> RichParseResult:
        try:
            data = self._load(text)
            documents = data if isinstance(data, list) else [data]
            if not documents:
                raise ParseError(
                    "Empty array - no EXPLAIN output found",
                    source="structure",
                )
            for document in documents:
                self._validate_document(document)
        except ParseError as e:
            return RichParseResult.failure(str(e))

        return RichParseResult(ok=True, tree=data)

    def _load(self, text: str) -> Any:
        stripped = text.strip()
        if not stripped.startswith(("{", "[")):
            raise ParseError("Input is not EXPLAIN JSON", source="json_decode")
        try:
            return json.loads(stripped)
        except json.JSONDecodeError as e:
            raise ParseError(
                "Invalid JSON format",
                detail=f"Line {e.lineno}, column {e.colno}: {e.msg}",
                source="json_decode",
            ) from e
        except RecursionError as e:
            raise ParseError("JSON nested too deeply", source="resource_limit") from e

    def _validate_document(self, document: Any) -> None:
        if not isinstance(document, dict):
            raise ParseError(
                f"Expected object inside array, got {type(document).__name__}",
                source="structure",
            )
        plan = document.get("Plan")
        if not isinstance(plan, dict):
            raise ParseError(
                "Missing 'Plan' field - this doesn't look like EXPLAIN output",
                detail="EXPLAIN (FORMAT JSON) output must contain a 'Plan' object",
                source="validation",
            )
        if not any(key in plan for key in NODE_TYPE_KEYS):
            raise ParseError("Plan has no 'Node Type'", source="validation")

        check_tree_depth(plan, self.config.max_depth)

        try:
            node = PlanNode.model_validate(plan)
        except ValidationError as e:
            errors = [
                f"  {' -> '.join(str(x) for x in error['loc'])}: {error['msg']}"
                for error in e.errors()
            ]
            raise ParseError(
                "EXPLAIN output validation failed",
                detail="\n".join(errors),
                source="validation",
            ) from e

        check_node_count(node, self.config.max_nodes)


def check_tree_depth(data: dict[str, Any], max_depth: int) -> None:
    """
    Check tree depth before full Pydantic validation.

    This prevents stack overflow during recursive model validation.
    """

    def measure_depth(node: dict[str, Any], current_depth: int) -> int:
        if current_depth > max_depth:
            return current_depth

        max_child_depth = current_depth
        for key in ("Plans", "Children", "plans", "children"):
            children = node.get(key)
            if isinstance(children, list):
                for child in children:
                    if isinstance(child, dict):
                        max_child_depth = max(
                            max_child_depth, measure_depth(child, current_depth + 1)
                        )
                break

        return max_child_depth

    depth = measure_depth(data, 1)
    if depth > max_depth:
        raise ParseError(
            f"Plan too deeply nested: depth {depth} (max {max_depth})",
            detail="This may indicate a pathological query or corrupted EXPLAIN output",
            source="resource_limit",
        )


def check_node_count(node: PlanNode, max_nodes: int) -> None:
    """Check total node count after validation."""
    node_count = node.node_count
    if node_count > max_nodes:
        raise ParseError(
            f"Plan too large: {node_count:,} nodes (max {max_nodes:,})",
            detail="Consider analyzing a simpler query or increasing max_nodes in config",
            source="resource_limit",
        )


def run_with_deadline(parser: RichParser, text: str, timeout_ms: int) -> RichParseResult:
    """
    Run parser.rich_parse(text) on a daemon thread, abandoning it after timeout_ms.

    Never raises: a crash or a timeout comes back as a failed result. A
    timed-out call is left to finish on its own and its result is discarded.
    The thread is a daemon, so a parser that never returns does not keep the
    interpreter alive.
    """
    outcome: queue.Queue[tuple[bool, Any]] = queue.Queue(maxsize=1)

    def call() -> None:
        try:
            outcome.put((True, parser.rich_parse(text)))
        except Exception as e:
            outcome.put((False, e))

    Thread(target=call, name="plancheck-primary", daemon=True).start()
    try:
        returned, result = outcome.get(timeout=timeout_ms / 1000)
    except queue.Empty:
        return RichParseResult.failure(
            f"Primary parser timed out after {timeout_ms} ms", timed_out=True
        )
    if not returned:
        return RichParseResult.failure(f"{result.__class__.__name__}: {result}")

    if isinstance(result, dict) and "ok" in result:
        return RichParseResult(
            ok=bool(result["ok"]),
            tree=result.get("tree"),
            error=result.get("error"),
        )
    if not isinstance(result, RichParseResult):
        return RichParseResult.failure(
            f"Primary parser returned {type(result).__name__}, expected RichParseResult"
        )
    return result
