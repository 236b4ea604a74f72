"""
NodePath: diagnostic location of a node in the plan tree.

Paths only label nodes in events and errors; detectors never see them.
"""

from __future__ import annotations


class NodePath:
    """
    Immutable path to a node in the plan tree.

    Format: ("Plan", "Plans[0]", "Plans[2]") means root → first child → third
    grandchild. When one input holds several independent plans, the root
    segment is "plan[i]" instead of "Plan".

    Example:
        path = NodePath.root()           # ("Plan",)
        child = path.child(0)            # ("Plan", "Plans[0]")
        str(child)                       # "Plan → Plans[0]"

        NodePath.root("plan[1]").child(0)   # ("plan[1]", "Plans[0]")
    """

    __slots__ = ("_segments",)

    def __init__(self, segments: tuple[str, ...] | None = None) -> None:
        self._segments: tuple[str, ...] = segments or ("Plan",)

    @classmethod
    def root(cls, label: str = "Plan") -> "NodePath":
        """Create a path pointing to a root node."""
        return cls((label,))

    @classmethod
    def for_tree(cls, index: int, tree_count: int) -> "NodePath":
        """Root path for the index-th of tree_count top-level plans."""
        if tree_count <= 1:
            return cls.root()
        return cls.root(f"plan[{index}]")

    @property
    def segments(self) -> tuple[str, ...]:
        return self._segments

    def child(self, index: int) -> "NodePath":
        """Navigate to the child at the given index."""
        return NodePath(self._segments + (f"Plans[{index}]",))

    @property
    def depth(self) -> int:
        """Number of child navigations from the root (0 for root)."""
        return len(self._segments) - 1

    def __str__(self) -> str:
        return " → ".join(self._segments)

    def __repr__(self) -> str:
        return f"NodePath({'.'.join(self._segments)})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, NodePath):
            return self._segments == other._segments
        return False

    def __hash__(self) -> int:
        return hash(self._segments)

    def __len__(self) -> int:
        return len(self._segments)
