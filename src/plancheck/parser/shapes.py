"""
Plan shape resolution.

Plan trees arrive in many wrappers:

    {"Node Type": ...}                     bare node
    {"content": {"Plan": {...}}}           API envelopes
    {"Plan": {...}, "Execution Time": ...}  one EXPLAIN JSON document
    {"plan": {...}}                         lowercase tool exports
    [{"Plan": {...}}]                       raw EXPLAIN (FORMAT JSON) output

Each wrapper has a matcher that either returns the resolved tree or None.
Matchers are tried in order and nested wrappers resolve recursively, so the
chain is a simple fold rather than a ladder of conditionals.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

ShapeMatcher = Callable[[Any, int], Optional[Any]]

NODE_TYPE_KEYS = ("Node Type", "nodeType", "node_type")

# Root-level document keys that belong on the root plan node.
DOCUMENT_ATTACHMENTS = ("Triggers", "JIT")

MAX_WRAPPER_DEPTH = 16


def has_node_type(value: Any) -> bool:
    """True if value is a mapping that carries a node type key."""
    return isinstance(value, Mapping) and any(key in value for key in NODE_TYPE_KEYS)


def _match_node(value: Any, depth: int) -> Any | None:
    if has_node_type(value):
        return value
    return None


def _match_content_plan(value: Any, depth: int) -> Any | None:
    if not isinstance(value, Mapping):
        return None
    content = value.get("content")
    if isinstance(content, Mapping) and "Plan" in content:
        return resolve_plan_tree(content["Plan"], depth + 1)
    return None


def _match_plan(value: Any, depth: int) -> Any | None:
    if isinstance(value, Mapping) and "Plan" in value:
        return resolve_plan_tree(value["Plan"], depth + 1)
    return None


def _match_lower_plan(value: Any, depth: int) -> Any | None:
    if isinstance(value, Mapping) and "plan" in value:
        return resolve_plan_tree(value["plan"], depth + 1)
    return None


def _match_first_element(value: Any, depth: int) -> Any | None:
    if isinstance(value, list) and value:
        return resolve_plan_tree(value[0], depth + 1)
    return None


def _match_identity(value: Any, depth: int) -> Any | None:
    return value


SHAPE_MATCHERS: tuple[ShapeMatcher, ...] = (
    _match_node,
    _match_content_plan,
    _match_plan,
    _match_lower_plan,
    _match_first_element,
    _match_identity,
)


def resolve_plan_tree(value: Any, depth: int = 0) -> Any:
    """
    Unwrap value until it is a plan tree.

    The last matcher treats the value itself as the tree, so this always
    returns something. Callers decide whether the result is usable
    (see has_node_type).
    """
    if depth > MAX_WRAPPER_DEPTH:
        return value

    for matcher in SHAPE_MATCHERS:
        resolved = matcher(value, depth)
        if resolved is not None:
            return resolved
    return value


def _document_of(value: Any) -> Mapping[str, Any] | None:
    if not isinstance(value, Mapping):
        return None
    content = value.get("content")
    if isinstance(content, Mapping) and "Plan" in content:
        return content
    return value


def attach_document_extras(document: Any, tree: Any) -> Any:
    """
    Copy root-level Triggers and JIT from a document onto its plan tree.

    EXPLAIN JSON reports both next to "Plan", not inside it. A value the
    tree already carries is never replaced.
    """
    source = _document_of(document)
    if source is None or not isinstance(tree, Mapping) or source is tree:
        return tree

    missing = {
        key: source[key]
        for key in DOCUMENT_ATTACHMENTS
        if key in source and key not in tree
    }
    if not missing:
        return tree
    return {**tree, **missing}


def split_documents(value: Any) -> list[Any]:
    """
    Split a top-level array into independent EXPLAIN documents.

    Multi-statement output ("[{Plan...}, {Plan...}]") yields one document
    per element; anything else is a single document.
    """
    if isinstance(value, list) and len(value) > 1:
        return list(value)
    return [value]


def resolve_plan_trees(value: Any) -> list[tuple[Any, Any]]:
    """
    Resolve every plan tree in value.

    Returns:
        (document, tree) pairs in input order, trees already carrying their
        document's Triggers and JIT. The first pair is always present; later
        ones are kept only if they resolved to a node.
    """
    pairs: list[tuple[Any, Any]] = []
    for index, document in enumerate(split_documents(value)):
        tree = resolve_plan_tree(document)
        if index > 0 and not has_node_type(tree):
            continue
        unwrapped = document[0] if isinstance(document, list) and document else document
        pairs.append((unwrapped, attach_document_extras(unwrapped, tree)))
    return pairs
