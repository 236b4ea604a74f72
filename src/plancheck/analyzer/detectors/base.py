"""
Base class for detectors.

A detector looks at exactly one plan node and either returns a Finding or
None. Detectors are:
- Pure: they never mutate the node and keep no state between calls
- Order-independent: a result depends on the node (and its subtree) only
- Honest: every finding lists what the plan alone cannot tell us

The engine owns traversal, fault isolation and aggregation; a detector only
answers "does this node show the problem?".
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Iterable

from plancheck.analyzer.models import (
    Confidence,
    Education,
    Evidence,
    EvidenceValue,
    Finding,
    Impact,
)

if TYPE_CHECKING:
    from plancheck.parser.models import PlanNode

DOCS_BASE = "https://www.postgresql.org/docs/current/"


class Detector(ABC):
    """
    Abstract base class for detectors.

    Attributes:
        detector_id: Unique snake_case id, also the id of every finding produced
        version: Semver string, bump when detection logic changes
        title: Finding title
        confidence: Confidence of every finding produced
        description: One-line description for documentation
        docs_link: PostgreSQL documentation page for the finding

    Example:
        @register_detector
        class GatherWithoutWorkers(Detector):
            detector_id = "gather_without_workers"
            version = "1.0.0"
            title = "Gather Without Workers"
            confidence = Confidence.VERIFIED
            description = "Detects Gather nodes that launched no workers"
            docs_link = DOCS_BASE + "parallel-query.html"

            def detect(self, node):
                if "Gather" not in node.node_type or node.workers_launched != 0:
                    return None
                return self.finding(
                    Impact.HIGH,
                    evidence=[...],
                    behavior="...",
                    explanation=["..."],
                    limitations=["..."],
                )
    """

    detector_id: str = ""
    version: str = "1.0.0"
    title: str = ""
    confidence: Confidence = Confidence.VERIFIED
    description: str = ""
    docs_link: str = DOCS_BASE

    @abstractmethod
    def detect(self, node: PlanNode) -> Finding | None:
        """
        Inspect a single node.

        Args:
            node: A valid plan node (the engine never passes invalid ones)

        Returns:
            A Finding, or None if the node does not show the problem
        """
        ...

    # =========================================================================
    # Helpers for subclasses
    # =========================================================================

    def finding(
        self,
        impact: Impact,
        evidence: Iterable[Evidence],
        behavior: str,
        explanation: Iterable[str],
        limitations: Iterable[str],
    ) -> Finding:
        """Build a Finding carrying this detector's id, title and docs link.

        Empty explanation lines are dropped.
        """
        return Finding(
            id=self.detector_id,
            title=self.title,
            confidence=self.confidence,
            impact=impact,
            evidence=tuple(evidence),
            education=Education(
                behavior=behavior,
                explanation=tuple(line for line in explanation if line),
                limitations=tuple(limitations),
                docs_link=self.docs_link,
            ),
        )

    @staticmethod
    def evidence(
        field: str,
        value: EvidenceValue,
        raw_text: str,
        location: str,
    ) -> Evidence:
        return Evidence(field=field, value=value, raw_text=raw_text, location=location)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.detector_id!r}, version={self.version!r})"


def node_location(node: PlanNode) -> str:
    """Evidence location naming the node type ("Node Type: Sort")."""
    return f"Node Type: {node.node_type or 'Unknown'}"


def relation_location(node: PlanNode, prefix: str = "Relation") -> str:
    """Evidence location naming the relation, or the node type if there is none."""
    if node.relation_name:
        return f"{prefix}: {node.relation_name}"
    return node_location(node)


def format_count(value: int | float) -> str:
    """Render a row or block count with thousands separators."""
    if isinstance(value, float) and not value.is_integer():
        return f"{value:,.2f}"
    return f"{int(value):,}"
