"""
Data models for detector output.

These models represent the performance concerns detected in plans. They're
designed to be:
- Immutable (frozen=True): aggregation builds new findings instead of
  mutating raw ones
- Serializable: camelCase JSON via to_dict() for storage and presentation
- Honest: every finding carries an explicit, non-empty list of what the plan
  alone cannot tell us
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Confidence(str, Enum):
    """
    How strongly a finding is backed by the plan.

    VERIFIED: directly observed in the evidence
    INFERRED: derived via heuristic
    EDUCATIONAL: general guidance, not node-specific
    """

    VERIFIED = "verified"
    INFERRED = "inferred"
    EDUCATIONAL = "educational"


class Impact(str, Enum):
    """Impact of a finding. Ordered HIGH > MEDIUM > LOW."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _IMPACT_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Impact):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Impact):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Impact):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Impact):
            return NotImplemented
        return self.rank >= other.rank


_IMPACT_RANK = {Impact.LOW: 0, Impact.MEDIUM: 1, Impact.HIGH: 2}


EvidenceValue = str | int | float | bool | None


class Evidence(BaseModel):
    """
    One observed fact supporting a finding.

    Attributes:
        field: The plan property the fact comes from ("Sort Method")
        value: Its value
        raw_text: Human-readable literal rendering ("Sort Method: external merge")
        location: Free-text pointer usable to correlate with a tree node:
            a relation name, a node type, or "Computed"
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    field: str
    value: EvidenceValue = None
    raw_text: str = Field(alias="rawText")
    location: str


class Education(BaseModel):
    """
    What the finding means and, just as important, what it cannot know.

    ``limitations`` is mandatory and may not be empty.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    behavior: str
    explanation: tuple[str, ...] = Field(min_length=1)
    limitations: tuple[str, ...] = Field(min_length=1)
    docs_link: str = Field(alias="docsLink")


class Finding(BaseModel):
    """
    A detected performance concern.

    Created by one detector invocation on one node. The aggregator merges
    findings that share an id.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    title: str
    confidence: Confidence
    impact: Impact
    evidence: tuple[Evidence, ...] = ()
    education: Education

    def to_dict(self) -> dict[str, Any]:
        """Serialize with camelCase keys (rawText, docsLink)."""
        return self.model_dump(mode="json", by_alias=True)
