"""
Parser for PostgreSQL EXPLAIN TEXT output.

TEXT format encodes the tree through indentation:

    Hash Join  (cost=1.09..2.19 rows=4 width=64) (actual time=...)
      Hash Cond: (o.user_id = u.id)
      ->  Seq Scan on orders o  (cost=0.00..1.04 rows=4 width=32)
      ->  Hash  (cost=1.04..1.04 rows=4 width=32)
            Buckets: 1024  Batches: 1  Memory Usage: 9kB
            ->  Seq Scan on users u  (cost=0.00..1.04 rows=4 width=32)
    Planning Time: 0.120 ms
    Execution Time: 0.061 ms

A node's property lines are indented deeper than the node and never start
with "->". Its children are the "->" lines indented deeper than it (for the
root, at the same column or deeper). Parsing is recursive descent over the
line list; every call returns the index of the first line it did not
consume, so a child's whole sub-block is skipped exactly. VERBOSE
"Worker N:" lines open a sub-block of their own; it is collected into the
node's "Workers" list like the JSON format does.

The parser builds dicts keyed the way EXPLAIN JSON keys them ("Node Type",
"Actual Rows", "Plans", ...) and TEXT-only spellings are normalized to
their JSON equivalents ("Hash Left Join" becomes "Hash Join" with
"Join Type": "Left"). The result validates through the same PlanNode model
as JSON input, which is what makes the two formats agree.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from plancheck.exceptions import ParseError

NODE_START_RE = re.compile(r"^\s*(->\s*)?[A-Z][a-zA-Z ]+(\s+on\s+|\s+using\s+|\s*\()")

_DETAILS_RE = re.compile(r"\s\((?:cost=|actual |never executed)")
_HEAD_RE = re.compile(
    r"^(?P<name>.+?)"
    r"(?:\s+using\s+(?P<index>\S+))?"
    r"(?:\s+on\s+(?P<relation>\S+)(?:\s+(?P<alias>\S+))?)?$"
)

_COST_RE = re.compile(r"cost=(\d+\.?\d*)\.\.(\d+\.?\d*)\s+rows=(\d+)\s+width=(\d+)")
_ACTUAL_RE = re.compile(r"actual time=([\d.]+)\.\.([\d.]+)\s+rows=([\d.]+)\s+loops=(\d+)")
_ACTUAL_ROWS_RE = re.compile(r"actual[^)]*?rows=([\d.]+)\s+loops=(\d+)")
_EXECUTED_RE = re.compile(r"\[EXECUTED\s*-\s*([\d.]+)s\]")

_TRIGGER_RE = re.compile(
    r'^(?:Trigger\s+)?(?:for constraint\s+)?(?P<name>"[^"]+"|[\w$.]+)'
    r"(?:\s+on\s+(?P<relation>\S+))?"
    r":\s*time=(?P<time>[\d.]+)\s+calls=(?P<calls>\d+)"
)
_LABEL_RE = re.compile(r"^(?P<kind>SubPlan|InitPlan|CTE)\s+\S+")
_WORKER_RE = re.compile(r"^Worker (?P<number>\d+):\s*(?P<rest>.*)$")
_SORT_METHOD_RE = re.compile(
    r"^Sort Method:\s*(?P<method>.+?)\s+(?P<type>Memory|Disk):\s*(?P<space>\d+)\s*kB"
)
_BUCKETS_RE = re.compile(r"Buckets:\s*(\d+)(?:\s*\(originally\s+(\d+)\))?")
_BATCHES_RE = re.compile(r"Batches:\s*(\d+)(?:\s*\(originally\s+(\d+)\))?")
_MEMORY_RE = re.compile(r"Memory Usage:\s*(\d+)\s*kB")
_DISK_RE = re.compile(r"Disk Usage:\s*(\d+)\s*kB")
_BLOCKS_RE = re.compile(r"(\w+)=(\d+)")
_JIT_TIMING_RE = re.compile(r"(Generation|Inlining|Optimization|Emission|Total)\s+([\d.]+)\s*ms")
_PROPERTY_KEY_RE = re.compile(r"^[A-Z][\w ./()-]*$")
_SEPARATOR_RE = re.compile(r"^[-=+\s]+$")
_ROWS_FOOTER_RE = re.compile(r"^\(\d+\s+rows?\)$")

_JOIN_RE = re.compile(
    r"^(?P<kind>Hash|Merge)(?: (?P<join_type>Left|Right|Full|Semi|Anti|Right Semi|Right Anti))? Join$"
)
_NESTED_LOOP_RE = re.compile(
    r"^Nested Loop(?: (?P<join_type>Left|Right|Full|Semi|Anti|Right Semi|Right Anti) Join)?$"
)
_AGGREGATE_RE = re.compile(r"^(?:(?P<mode>Partial|Finalize) )?(?P<strategy>Hash|Group|Mixed)?Aggregate$")
_SETOP_RE = re.compile(r"^(?P<hashed>Hash)?SetOp (?P<command>.+)$")

_AGGREGATE_STRATEGIES = {None: "Plain", "Hash": "Hashed", "Group": "Sorted", "Mixed": "Mixed"}
_MODIFY_OPERATIONS = {"Insert", "Update", "Delete", "Merge"}

_TEXT_PROPERTIES = {
    "Filter",
    "Index Cond",
    "Recheck Cond",
    "Join Filter",
    "Hash Cond",
    "Merge Cond",
    "One-Time Filter",
    "TID Cond",
    "Cache Key",
    "Cache Mode",
}
_COUNT_PROPERTIES = {
    "Rows Removed by Filter",
    "Rows Removed by Index Recheck",
    "Rows Removed by Join Filter",
    "Heap Fetches",
    "Workers Planned",
    "Workers Launched",
}
_LIST_PROPERTIES = {"Sort Key", "Presorted Key", "Group Key", "Output"}


@dataclass(frozen=True)
class _Line:
    column: int
    text: str


# =============================================================================
# Line preparation
# =============================================================================


def _unquote(line: str) -> str:
    """Undo pgAdmin export quoting: each row wrapped in "..." with quotes doubled."""
    stripped = line.strip()
    if len(stripped) >= 2 and stripped[0] == '"' and stripped[-1] == '"':
        return stripped[1:-1].replace('""', '"')
    return line


def prepare_lines(text: str) -> list[_Line]:
    """Split raw text into (column, text) lines, dropping psql chrome and blanks."""
    lines: list[_Line] = []
    for raw in text.splitlines():
        line = _unquote(raw.rstrip("\r")).expandtabs(8).rstrip()
        stripped = line.strip()
        if not stripped or stripped.upper() == "QUERY PLAN":
            continue
        if _SEPARATOR_RE.match(stripped) or _ROWS_FOOTER_RE.match(stripped):
            continue
        lines.append(_Line(column=len(line) - len(line.lstrip()), text=stripped))
    return lines


def has_node_start(text: str) -> bool:
    """True if any line looks like the start of a plan node."""
    return any(NODE_START_RE.match(line.text) for line in prepare_lines(text))


# =============================================================================
# Value helpers
# =============================================================================


def _count(raw: str) -> int | float | None:
    try:
        number = float(raw)
    except ValueError:
        return None
    return int(number) if number.is_integer() else number


def _float(raw: str) -> float | None:
    try:
        return float(raw)
    except ValueError:
        return None


def split_top_level(value: str) -> list[str]:
    """Split on commas that are not inside parentheses."""
    parts: list[str] = []
    current: list[str] = []
    depth = 0
    for char in value:
        if char == "(":
            depth += 1
        elif char == ")":
            depth = max(0, depth - 1)
        if char == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return [part for part in parts if part]


def _parse_trigger(text: str) -> dict[str, Any] | None:
    match = _TRIGGER_RE.match(text)
    if not match:
        return None
    trigger: dict[str, Any] = {
        "Trigger Name": match.group("name").strip('"'),
        "Time": _float(match.group("time")),
        "Calls": _count(match.group("calls")),
    }
    if match.group("relation"):
        trigger["Relation"] = match.group("relation")
    return trigger


# =============================================================================
# Node headers
# =============================================================================


def _apply_node_name(name: str, node: dict[str, Any]) -> str:
    """Map a TEXT node name onto its JSON "Node Type" plus attributes."""
    if name.startswith("Parallel "):
        name = name[len("Parallel "):]
        node["Parallel Aware"] = True

    if name.endswith(" Backward"):
        name = name[: -len(" Backward")]
        node["Scan Direction"] = "Backward"

    join = _JOIN_RE.match(name)
    if join:
        node["Join Type"] = join.group("join_type") or "Inner"
        return f"{join.group('kind')} Join"

    nested = _NESTED_LOOP_RE.match(name)
    if nested:
        node["Join Type"] = nested.group("join_type") or "Inner"
        return "Nested Loop"

    aggregate = _AGGREGATE_RE.match(name)
    if aggregate:
        node["Strategy"] = _AGGREGATE_STRATEGIES[aggregate.group("strategy")]
        node["Partial Mode"] = aggregate.group("mode") or "Simple"
        return "Aggregate"

    setop = _SETOP_RE.match(name)
    if setop:
        node["Strategy"] = "Hashed" if setop.group("hashed") else "Sorted"
        node["Command"] = setop.group("command")
        return "SetOp"

    return name


def _apply_relation(node: dict[str, Any], relation: str, alias: str | None) -> None:
    node_type = node["Node Type"]

    if node_type == "Bitmap Index Scan":
        node["Index Name"] = relation
        return
    if node_type in ("CTE Scan", "WorkTable Scan"):
        node["CTE Name"] = relation
    elif node_type == "Function Scan":
        node["Function Name"] = relation
    elif node_type == "Subquery Scan":
        node["Alias"] = relation
        return
    else:
        schema, dot, table = relation.partition(".")
        if dot and not relation.startswith('"'):
            node["Schema"] = schema
            node["Relation Name"] = table
        else:
            node["Relation Name"] = relation

    if alias:
        node["Alias"] = alias


def parse_node_header(text: str) -> dict[str, Any]:
    """
    Parse one node line into a node dict (without properties or children).

    Example:
        >>> parse_node_header("->  Index Scan using users_pkey on users u  (cost=0.29..8.30 rows=1 width=32)")
        {"Node Type": "Index Scan", "Index Name": "users_pkey", "Relation Name": "users", ...}
    """
    body = text[2:].lstrip() if text.startswith("->") else text

    details = _DETAILS_RE.search(body)
    head = body[: details.start()].strip() if details else body.strip()
    rest = body[details.start():] if details else ""

    node: dict[str, Any] = {}
    match = _HEAD_RE.match(head)
    name = match.group("name") if match else head

    relation = match.group("relation") if match else None
    if relation and name in _MODIFY_OPERATIONS:
        node["Node Type"] = "ModifyTable"
        node["Operation"] = name
        _apply_relation(node, relation, match.group("alias"))
    else:
        node["Node Type"] = _apply_node_name(name, node)
        if match and match.group("index"):
            node["Index Name"] = match.group("index")
        if relation:
            _apply_relation(node, relation, match.group("alias"))

    cost = _COST_RE.search(rest)
    if cost:
        node["Startup Cost"] = _float(cost.group(1))
        node["Total Cost"] = _float(cost.group(2))
        node["Plan Rows"] = _count(cost.group(3))
        node["Plan Width"] = _count(cost.group(4))

    if "never executed" in rest:
        node["Actual Rows"] = 0
        node["Actual Loops"] = 0
        return node

    actual = _ACTUAL_RE.search(rest)
    if actual:
        node["Actual Startup Time"] = _float(actual.group(1))
        node["Actual Total Time"] = _float(actual.group(2))
        node["Actual Rows"] = _count(actual.group(3))
        node["Actual Loops"] = _count(actual.group(4))
        return node

    rows_only = _ACTUAL_ROWS_RE.search(rest)
    if rows_only:
        node["Actual Rows"] = _count(rows_only.group(1))
        node["Actual Loops"] = _count(rows_only.group(2))
        executed = _EXECUTED_RE.search(body)
        if executed:
            seconds = _float(executed.group(1))
            if seconds is not None:
                node["Actual Total Time"] = seconds * 1000

    return node


# =============================================================================
# Property lines
# =============================================================================


def _apply_sort_method(node: dict[str, Any], text: str) -> None:
    match = _SORT_METHOD_RE.match(text)
    if match:
        node["Sort Method"] = match.group("method").strip()
        node["Sort Space Type"] = match.group("type")
        node["Sort Space Used"] = _count(match.group("space"))
        return
    node["Sort Method"] = text.partition(":")[2].strip()


def _apply_hash_line(node: dict[str, Any], text: str) -> None:
    # HashAggregate prints the same line shape but JSON keys it differently
    aggregate = node.get("Node Type") == "Aggregate"

    buckets = _BUCKETS_RE.search(text)
    if buckets:
        node["Hash Buckets"] = _count(buckets.group(1))
        if buckets.group(2):
            node["Original Hash Buckets"] = _count(buckets.group(2))

    batches = _BATCHES_RE.search(text)
    if batches:
        if aggregate:
            node["HashAgg Batches"] = _count(batches.group(1))
        else:
            node["Hash Batches"] = _count(batches.group(1))
            if batches.group(2):
                node["Original Hash Batches"] = _count(batches.group(2))

    memory = _MEMORY_RE.search(text)
    if memory:
        node["Peak Memory Usage"] = _count(memory.group(1))

    disk = _DISK_RE.search(text)
    if disk:
        node["Disk Usage"] = _count(disk.group(1))


def _apply_buffers(node: dict[str, Any], value: str) -> None:
    for segment in value.split(","):
        words = segment.split()
        if not words or words[0] not in ("shared", "local", "temp"):
            continue
        kind = words[0].title()
        for name, count in _BLOCKS_RE.findall(segment):
            node[f"{kind} {name.title()} Blocks"] = _count(count)


def _apply_heap_blocks(node: dict[str, Any], value: str) -> None:
    for name, count in _BLOCKS_RE.findall(value):
        node[f"{name.title()} Heap Blocks"] = _count(count)


def apply_property(node: dict[str, Any], text: str) -> None:
    """Interpret one property line of a node."""
    trigger = _parse_trigger(text)
    if trigger is not None:
        node.setdefault("Triggers", []).append(trigger)
        return

    key, sep, value = text.partition(":")
    if not sep:
        return
    key = key.strip()
    value = value.strip()

    if key in _TEXT_PROPERTIES:
        node[key] = value
    elif key in _COUNT_PROPERTIES:
        node[key] = _count(value)
    elif key in _LIST_PROPERTIES:
        node[key] = split_top_level(value)
    elif key == "Sort Method":
        _apply_sort_method(node, text)
    elif key in ("Buckets", "Batches"):
        _apply_hash_line(node, text)
    elif key == "Buffers":
        _apply_buffers(node, value)
    elif key == "Heap Blocks":
        _apply_heap_blocks(node, value)
    elif _PROPERTY_KEY_RE.match(key) and key not in node:
        node[key] = value


def parse_worker_header(text: str) -> dict[str, Any] | None:
    """
    Parse a VERBOSE per-worker line into a JSON-style "Workers" entry.

    Example:
        >>> parse_worker_header("Worker 0:  actual time=0.012..4.900 rows=3200 loops=1")
        {"Worker Number": 0, "Actual Startup Time": 0.012, ...}
    """
    match = _WORKER_RE.match(text)
    if not match:
        return None

    worker: dict[str, Any] = {"Worker Number": int(match.group("number"))}
    rest = match.group("rest").strip()
    actual = _ACTUAL_RE.search(rest)
    if actual:
        worker["Actual Startup Time"] = _float(actual.group(1))
        worker["Actual Total Time"] = _float(actual.group(2))
        worker["Actual Rows"] = _count(actual.group(3))
        worker["Actual Loops"] = _count(actual.group(4))
    elif rest.startswith("never executed"):
        worker["Actual Rows"] = 0
        worker["Actual Loops"] = 0
    elif rest:
        # e.g. "Worker 0:  Sort Method: quicksort  Memory: 25kB"
        apply_property(worker, rest)
    return worker


# =============================================================================
# Trailing sections (Triggers, JIT)
# =============================================================================


def _parse_jit_block(lines: list[_Line], start: int) -> tuple[dict[str, Any], int]:
    """Parse a "JIT:" block starting at lines[start]; returns (jit, next_index)."""
    column = lines[start].column
    jit: dict[str, Any] = {}
    index = start + 1

    while index < len(lines) and lines[index].column > column:
        key, _, value = lines[index].text.partition(":")
        key = key.strip()
        if key == "Functions":
            jit["Functions"] = _count(value.strip())
        elif key == "Options":
            jit["Options"] = value.strip()
        elif key == "Timing":
            jit["Timing"] = {
                name: _float(number) for name, number in _JIT_TIMING_RE.findall(value)
            }
        index += 1

    return jit, index


def extract_jit(text: str) -> dict[str, Any] | None:
    """Find the JIT block anywhere in TEXT output."""
    lines = prepare_lines(text)
    for index, line in enumerate(lines):
        if line.text == "JIT:":
            jit, _ = _parse_jit_block(lines, index)
            return jit or None
    return None


def extract_triggers(text: str) -> list[dict[str, Any]]:
    """Find every trigger timing line in TEXT output, in order."""
    triggers: list[dict[str, Any]] = []
    for line in prepare_lines(text):
        trigger = _parse_trigger(line.text)
        if trigger is not None:
            triggers.append(trigger)
    return triggers


# =============================================================================
# Recursive descent
# =============================================================================


class TextPlanParser:
    """
    Recursive-descent parser over prepared TEXT lines.

    Example:
        parser = TextPlanParser(raw_text)
        tree = parser.parse()        # dict with JSON keys, or None
        tree["Plans"][0]["Node Type"]
    """

    def __init__(self, text: str, max_depth: int = 100, max_nodes: int = 50_000) -> None:
        self.lines = prepare_lines(text)
        self.max_depth = max_depth
        self.max_nodes = max_nodes
        self._node_count = 0

    def parse(self) -> dict[str, Any] | None:
        """
        Parse the first plan in the text.

        Returns:
            The root node dict, or None if no line starts a node.

        Raises:
            ParseError: If the plan exceeds the depth or node limits.
        """
        start = next(
            (i for i, line in enumerate(self.lines) if NODE_START_RE.match(line.text)),
            None,
        )
        if start is None:
            return None

        self._node_count = 0
        root, index = self._parse_node(start, depth=1, is_root=True)
        self._parse_trailer(root, index)
        return root

    def _parse_node(self, index: int, depth: int, is_root: bool) -> tuple[dict[str, Any], int]:
        if depth > self.max_depth:
            raise ParseError(
                f"Plan too deeply nested: depth {depth} (max {self.max_depth})",
                source="resource_limit",
            )
        self._node_count += 1
        if self._node_count > self.max_nodes:
            raise ParseError(
                f"Plan too large: more than {self.max_nodes:,} nodes",
                source="resource_limit",
            )

        line = self.lines[index]
        column = line.column
        node = parse_node_header(line.text)
        children: list[dict[str, Any]] = []
        label: str | None = None
        index += 1

        # Property lines
        while index < len(self.lines):
            current = self.lines[index]
            if current.column <= column or current.text.startswith("->"):
                break
            label, index = self._consume_property(node, index, label)

        # Children, interleaved with SubPlan / InitPlan labels
        while index < len(self.lines):
            current = self.lines[index]
            if current.text.startswith("->") and (
                current.column > column or (is_root and current.column >= column)
            ):
                child, index = self._parse_node(index, depth + 1, is_root=False)
                if label is not None:
                    child.setdefault("Subplan Name", label)
                    child.setdefault(
                        "Parent Relationship",
                        "SubPlan" if label.startswith("SubPlan") else "InitPlan",
                    )
                    label = None
                children.append(child)
            elif current.column > column and not current.text.startswith("->"):
                label, index = self._consume_property(node, index, label)
            else:
                break

        # Trailing "Triggers:" block at this node's own column
        while (
            index < len(self.lines)
            and self.lines[index].column == column
            and self.lines[index].text == "Triggers:"
        ):
            index += 1
            while index < len(self.lines) and self.lines[index].column > column:
                trigger = _parse_trigger(self.lines[index].text)
                if trigger is not None:
                    node.setdefault("Triggers", []).append(trigger)
                index += 1

        if children:
            node["Plans"] = children
        return node, index

    def _consume_property(
        self, node: dict[str, Any], index: int, label: str | None
    ) -> tuple[str | None, int]:
        """Apply the property at lines[index]; returns (label, next_index)."""
        line = self.lines[index]
        worker = parse_worker_header(line.text)
        if worker is None:
            return self._label_or_property(node, line.text, label), index + 1

        # A worker's own lines (Buffers, Sort Method, ...) sit deeper than it
        index += 1
        while (
            index < len(self.lines)
            and self.lines[index].column > line.column
            and not self.lines[index].text.startswith("->")
        ):
            apply_property(worker, self.lines[index].text)
            index += 1
        node.setdefault("Workers", []).append(worker)
        return label, index

    @staticmethod
    def _label_or_property(node: dict[str, Any], text: str, label: str | None) -> str | None:
        match = _LABEL_RE.match(text)
        if match and ":" not in text:
            return text.split(" (")[0]
        apply_property(node, text)
        return label

    def _parse_trailer(self, root: dict[str, Any], index: int) -> None:
        """Statement-level lines after the plan: trigger timings and the JIT block."""
        while index < len(self.lines):
            text = self.lines[index].text
            if text == "JIT:" and "JIT" not in root:
                jit, index = _parse_jit_block(self.lines, index)
                if jit:
                    root["JIT"] = jit
                continue
            trigger = _parse_trigger(text)
            if trigger is not None:
                root.setdefault("Triggers", []).append(trigger)
            index += 1


def parse_text_plan(text: str, max_depth: int = 100, max_nodes: int = 50_000) -> dict[str, Any] | None:
    """
    Parse EXPLAIN TEXT output into a node dict keyed like EXPLAIN JSON.

    Returns None if the text contains no node line.
    """
    return TextPlanParser(text, max_depth=max_depth, max_nodes=max_nodes).parse()
