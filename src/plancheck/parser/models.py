"""
Canonical plan tree models.

Every input format (EXPLAIN JSON, TEXT, pgAdmin exports, primary-parser
output) is funnelled into these models. PostgreSQL EXPLAIN JSON uses
"Title Case" keys, which map to snake_case fields via Pydantic aliases, so a
raw JSON node dict validates directly:

    node = PlanNode.model_validate({"Node Type": "Seq Scan", "Actual Rows": 5})
    node.node_type      # "Seq Scan"
    node.actual_rows    # 5

The TEXT grammar builds the same dict shape before validation, so both
formats share one construction path.

Validation is deliberately lenient. A numeric field holding something that
is not a number becomes None, and a node with a missing or non-string
"Node Type" is still constructed (is_valid is False) so the detection engine
can skip it instead of the whole parse failing.

Reference: https://www.postgresql.org/docs/current/using-explain.html
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Annotated, Any, Iterator

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field

PARSE_ERROR_NODE_TYPE = "Parse Error"
PARSE_ERROR_DESCRIPTION = "Unable to parse the input. Please ensure it's valid EXPLAIN output."


# =============================================================================
# Lenient field coercion
# =============================================================================


def _coerce_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _coerce_count(value: Any) -> int | float | None:
    """Row and block counts: ints where integral, floats otherwise (PG18 prints rows=1.50)."""
    number = _coerce_float(value)
    if number is None:
        return None
    if number.is_integer():
        return int(number)
    return number


def _coerce_text(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    return None


def _coerce_node_type(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    return ""


def _coerce_text_list(value: Any) -> tuple[str, ...] | None:
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value if isinstance(item, (str, int, float)))
    return None


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    return None


def _coerce_children(value: Any) -> tuple[Any, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(child for child in value if isinstance(child, (dict, PlanNode)))


def _coerce_triggers(value: Any) -> tuple[Any, ...] | None:
    if not isinstance(value, (list, tuple)):
        return None
    return tuple(t for t in value if isinstance(t, (dict, TriggerInfo)))


def _coerce_jit(value: Any) -> Any:
    if isinstance(value, (dict, JitInfo)):
        return value
    return None


def _coerce_generation(value: Any) -> float | None:
    # PostgreSQL 17 reports Generation as {"Deform": x, "Total": y}
    if isinstance(value, dict):
        return _coerce_float(value.get("Total"))
    return _coerce_float(value)


def _coerce_timing(value: Any) -> Any:
    if isinstance(value, (dict, JitTiming)):
        return value
    return {}


def _coerce_options(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return ", ".join(
            f"{key} {str(flag).lower() if isinstance(flag, bool) else flag}"
            for key, flag in value.items()
        )
    return None


Float = Annotated[float | None, BeforeValidator(_coerce_float)]
Count = Annotated[int | float | None, BeforeValidator(_coerce_count)]
Text = Annotated[str | None, BeforeValidator(_coerce_text)]
TextList = Annotated[tuple[str, ...] | None, BeforeValidator(_coerce_text_list)]
Flag = Annotated[bool | None, BeforeValidator(_coerce_bool)]


# =============================================================================
# Node attachments
# =============================================================================


class TriggerInfo(BaseModel):
    """One entry of an EXPLAIN ANALYZE "Triggers" list."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="allow")

    name: Annotated[str, BeforeValidator(_coerce_node_type)] = Field(
        default="",
        alias="Trigger Name",
    )
    relation: Text = Field(default=None, alias="Relation")
    total_time_ms: Float = Field(
        default=None,
        alias="Time",
        description="Total time spent in the trigger, in ms",
    )
    calls: Count = Field(default=None, alias="Calls")


class JitTiming(BaseModel):
    """JIT phase timings in milliseconds."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="allow")

    generation: Annotated[float | None, BeforeValidator(_coerce_generation)] = Field(
        default=None, alias="Generation"
    )
    inlining: Float = Field(default=None, alias="Inlining")
    optimization: Float = Field(default=None, alias="Optimization")
    emission: Float = Field(default=None, alias="Emission")
    total: Float = Field(default=None, alias="Total")


class JitInfo(BaseModel):
    """The JIT block PostgreSQL prints for queries that were JIT-compiled."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="allow")

    functions: Count = Field(default=None, alias="Functions")
    options_text: Annotated[str | None, BeforeValidator(_coerce_options)] = Field(
        default=None,
        alias="Options",
        description="Options rendered as text, e.g. 'Inlining true, Optimization false'",
    )
    timing: Annotated[JitTiming, BeforeValidator(_coerce_timing)] = Field(
        default_factory=JitTiming, alias="Timing"
    )


# =============================================================================
# Plan nodes
# =============================================================================


class PlanNode(BaseModel):
    """
    A single node in the canonical plan tree.

    This is a recursive structure. Children are exposed through exactly one
    field, ``children``, whatever the source called them ("Plans",
    "Children" or "plans").

    Fields are divided into:
    - Identity: node_type (a node without one is invalid)
    - Estimates: costs, planned rows and width
    - EXPLAIN ANALYZE fields: actual timing, rows and loops
    - Node-specific fields: sort, hash, parallel, buffers, triggers, JIT
    - Anything unrecognized: kept in ``extra``
    """

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        extra="allow",
    )

    # =========================================================================
    # Identity
    # =========================================================================

    node_type: Annotated[str, BeforeValidator(_coerce_node_type)] = Field(
        default="",
        validation_alias=AliasChoices("Node Type", "node_type", "nodeType"),
        serialization_alias="Node Type",
        description="The type of plan node (e.g., 'Seq Scan', 'Hash Join')",
    )

    # =========================================================================
    # Relation / index identity
    # =========================================================================

    relation_name: Text = Field(default=None, alias="Relation Name")
    schema_name: Text = Field(default=None, alias="Schema")
    alias: Text = Field(default=None, alias="Alias")
    index_name: Text = Field(default=None, alias="Index Name")
    cte_name: Text = Field(default=None, alias="CTE Name")
    parent_relationship: Text = Field(default=None, alias="Parent Relationship")
    subplan_name: Text = Field(default=None, alias="Subplan Name")
    description: Text = Field(
        default=None,
        alias="Description",
        description="Human-readable explanation, used by the Parse Error node",
    )

    # =========================================================================
    # Planner estimates
    # =========================================================================

    startup_cost: Float = Field(default=None, alias="Startup Cost")
    total_cost: Float = Field(default=None, alias="Total Cost")
    plan_rows: Count = Field(default=None, alias="Plan Rows")
    plan_width: Count = Field(default=None, alias="Plan Width")

    # =========================================================================
    # EXPLAIN ANALYZE fields
    # =========================================================================

    actual_startup_time: Float = Field(default=None, alias="Actual Startup Time")
    actual_total_time: Float = Field(default=None, alias="Actual Total Time")
    actual_rows: Count = Field(default=None, alias="Actual Rows")
    actual_loops: Count = Field(default=None, alias="Actual Loops")

    # =========================================================================
    # Node-specific attributes
    # =========================================================================

    join_type: Text = Field(default=None, alias="Join Type")
    strategy: Text = Field(default=None, alias="Strategy")
    partial_mode: Text = Field(default=None, alias="Partial Mode")
    operation: Text = Field(default=None, alias="Operation")
    scan_direction: Text = Field(default=None, alias="Scan Direction")
    parallel_aware: Flag = Field(default=None, alias="Parallel Aware")

    # Filters and conditions
    filter: Text = Field(default=None, alias="Filter")
    rows_removed_by_filter: Count = Field(default=None, alias="Rows Removed by Filter")
    index_cond: Text = Field(default=None, alias="Index Cond")
    recheck_cond: Text = Field(default=None, alias="Recheck Cond")
    join_filter: Text = Field(default=None, alias="Join Filter")
    hash_cond: Text = Field(default=None, alias="Hash Cond")
    merge_cond: Text = Field(default=None, alias="Merge Cond")
    rows_removed_by_index_recheck: Count = Field(
        default=None, alias="Rows Removed by Index Recheck"
    )
    rows_removed_by_join_filter: Count = Field(
        default=None, alias="Rows Removed by Join Filter"
    )

    # Sort
    sort_key: TextList = Field(default=None, alias="Sort Key")
    sort_method: Text = Field(default=None, alias="Sort Method")
    sort_space_used: Count = Field(
        default=None,
        alias="Sort Space Used",
        description="Sort memory or disk usage in kB",
    )
    sort_space_type: Text = Field(
        default=None,
        alias="Sort Space Type",
        description="'Memory' or 'Disk'",
    )

    # Hash
    hash_buckets: Count = Field(
        default=None,
        validation_alias=AliasChoices("Hash Buckets", "hash_buckets", "Buckets"),
        serialization_alias="Hash Buckets",
    )
    original_hash_buckets: Count = Field(default=None, alias="Original Hash Buckets")
    hash_batches: Count = Field(
        default=None,
        validation_alias=AliasChoices("Hash Batches", "hash_batches", "Batches"),
        serialization_alias="Hash Batches",
    )
    original_hash_batches: Count = Field(default=None, alias="Original Hash Batches")
    peak_memory_usage: Count = Field(
        default=None,
        validation_alias=AliasChoices("Peak Memory Usage", "peak_memory_usage", "Memory Usage"),
        serialization_alias="Peak Memory Usage",
        description="Hash table memory in kB",
    )

    # Index / parallel
    heap_fetches: Count = Field(default=None, alias="Heap Fetches")
    workers_planned: Count = Field(default=None, alias="Workers Planned")
    workers_launched: Count = Field(default=None, alias="Workers Launched")

    # =========================================================================
    # Buffers (EXPLAIN (ANALYZE, BUFFERS))
    # =========================================================================

    shared_hit_blocks: Count = Field(default=None, alias="Shared Hit Blocks")
    shared_read_blocks: Count = Field(default=None, alias="Shared Read Blocks")
    shared_dirtied_blocks: Count = Field(default=None, alias="Shared Dirtied Blocks")
    shared_written_blocks: Count = Field(default=None, alias="Shared Written Blocks")
    local_hit_blocks: Count = Field(default=None, alias="Local Hit Blocks")
    local_read_blocks: Count = Field(default=None, alias="Local Read Blocks")
    local_dirtied_blocks: Count = Field(default=None, alias="Local Dirtied Blocks")
    local_written_blocks: Count = Field(default=None, alias="Local Written Blocks")
    temp_read_blocks: Count = Field(default=None, alias="Temp Read Blocks")
    temp_written_blocks: Count = Field(default=None, alias="Temp Written Blocks")

    # =========================================================================
    # Attachments
    # =========================================================================

    triggers: Annotated[
        tuple[TriggerInfo, ...] | None, BeforeValidator(_coerce_triggers)
    ] = Field(default=None, alias="Triggers")

    jit: Annotated[JitInfo | None, BeforeValidator(_coerce_jit)] = Field(
        default=None, alias="JIT"
    )

    # =========================================================================
    # Children
    # =========================================================================

    children: Annotated[tuple[PlanNode, ...], BeforeValidator(_coerce_children)] = Field(
        default=(),
        validation_alias=AliasChoices("Plans", "Children", "plans", "children"),
        serialization_alias="Plans",
    )

    # =========================================================================
    # Computed properties
    # =========================================================================

    @property
    def is_valid(self) -> bool:
        """A node is valid iff it has a non-empty node type."""
        return bool(self.node_type)

    @property
    def is_parse_error(self) -> bool:
        return self.node_type == PARSE_ERROR_NODE_TYPE

    @property
    def extra(self) -> dict[str, Any]:
        """Unrecognized EXPLAIN properties, keyed as they appeared in the input."""
        return dict(self.model_extra or {})

    @property
    def has_analyze_data(self) -> bool:
        return self.actual_rows is not None or self.actual_loops is not None

    @property
    def total_trigger_time_ms(self) -> float:
        return sum(t.total_time_ms or 0.0 for t in self.triggers or ())

    def iter_nodes(self) -> Iterator[PlanNode]:
        """Iterate over this node and all descendants (pre-order DFS)."""
        yield self
        for child in self.children:
            yield from child.iter_nodes()

    @property
    def node_count(self) -> int:
        return sum(1 for _ in self.iter_nodes())

    @property
    def depth(self) -> int:
        """Depth of the subtree rooted here (a leaf has depth 1)."""
        if not self.children:
            return 1
        return 1 + max(child.depth for child in self.children)

    def to_dict(self) -> dict[str, Any]:
        """Serialize back to EXPLAIN JSON keys."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


PlanNode.model_rebuild()


def parse_error_node(description: str = PARSE_ERROR_DESCRIPTION) -> PlanNode:
    """The explicit node returned when no stage could parse the input."""
    return PlanNode(node_type=PARSE_ERROR_NODE_TYPE, description=description)


# =============================================================================
# Normalizer output
# =============================================================================


class ParseSource(str, Enum):
    """Which part of the fallback chain produced the tree."""

    PRIMARY = "primary"
    FALLBACK = "fallback"


class AnalysisInput(BaseModel):
    """
    Normalizer output, detection engine input.

    ``tree`` is the first (usually only) plan. When a JSON document held an
    array of several independent plans, the remaining ones are kept in
    ``additional_trees`` in input order.
    """

    model_config = ConfigDict(frozen=True)

    source: ParseSource
    planning_time_ms: float | None = None
    execution_time_ms: float | None = None
    tree: PlanNode
    additional_trees: tuple[PlanNode, ...] = ()

    @property
    def all_trees(self) -> tuple[PlanNode, ...]:
        return (self.tree, *self.additional_trees)

    @property
    def is_parse_error(self) -> bool:
        return self.tree.is_parse_error

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.value,
            "planning_time_ms": self.planning_time_ms,
            "execution_time_ms": self.execution_time_ms,
            "tree": self.tree.to_dict(),
            "additional_trees": [t.to_dict() for t in self.additional_trees],
        }
