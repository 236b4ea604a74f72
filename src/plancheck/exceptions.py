"""
Package-level exception hierarchy for PlanCheck.

All exceptions inherit from PlanCheckError, enabling:
- Catching all PlanCheck errors with a single except clause
- Rich context fields for debugging (detector_id, node_path, config_key, etc.)
- Structured serialization via to_dict() for JSON error responses

Hierarchy:
    PlanCheckError
    ├── ParseError             – Input could not be interpreted as a plan
    │   └── EmptyInputError    – Empty or whitespace-only input
    ├── AnalyzerError          – Errors during detection orchestration
    │   ├── DetectorError      – A specific detector failed on a node
    │   └── ConfigurationError – Invalid engine or file configuration
    └── RegistryError          – Detector registration conflicts

Only EmptyInputError ever escapes Normalizer.normalize(). Every other parse
failure is absorbed by the fallback chain.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from plancheck.analyzer.path import NodePath


class PlanCheckError(Exception):
    """
    Base exception for all PlanCheck errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON error responses."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
        }


# ── Parse Errors ─────────────────────────────────────────────────────────


class ParseError(PlanCheckError):
    """
    Failed to interpret EXPLAIN input.

    Raised inside a single normalizer stage (bad JSON, no recognizable
    grammar, resource limits exceeded). The normalizer catches it and moves
    on to the next stage.

    Attributes:
        source: Which step failed ("json_decode", "structure", "resource_limit", ...).
        detail: Technical details for debugging (optional).
    """

    def __init__(
        self,
        message: str,
        source: str | None = None,
        detail: str | None = None,
    ) -> None:
        self.source = source
        self.detail = detail
        super().__init__(message)

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}\n\nDetails: {self.detail}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["source"] = self.source
        result["detail"] = self.detail
        return result


class EmptyInputError(ParseError):
    """Input was empty or contained only whitespace."""

    def __init__(self, message: str = "No EXPLAIN output provided: input is empty") -> None:
        super().__init__(message, source="input")


# ── Analysis Errors ──────────────────────────────────────────────────────


class AnalyzerError(PlanCheckError):
    """Errors during detection orchestration."""
    pass


class DetectorError(AnalyzerError):
    """
    Error during detector execution.

    Captures which detector failed and on which node, so a failure can be
    traced back to a concrete location in the plan.

    Attributes:
        detector_id: The ID of the detector that failed.
        detector_version: Version of the detector.
        node_path: Path to the node being processed (if known).
        original_error: The underlying exception.
    """

    def __init__(
        self,
        detector_id: str,
        detector_version: str,
        original_error: Exception,
        node_path: "NodePath | None" = None,
    ) -> None:
        self.detector_id = detector_id
        self.detector_version = detector_version
        self.node_path = node_path
        self.original_error = original_error

        context = f"Detector '{detector_id}' v{detector_version}"
        if node_path:
            context += f" at {node_path}"

        message = (
            f"{context} failed: "
            f"{original_error.__class__.__name__}: {original_error}"
        )
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output / logging."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "detector_id": self.detector_id,
            "detector_version": self.detector_version,
            "node_path": list(self.node_path.segments) if self.node_path else None,
            "original_error_type": self.original_error.__class__.__name__,
            "original_error_message": str(self.original_error),
        }


class ConfigurationError(AnalyzerError):
    """
    Error in engine or file configuration.

    Attributes:
        config_key: The configuration key that caused the error (if known).
    """

    def __init__(self, message: str, config_key: str | None = None) -> None:
        self.config_key = config_key
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["config_key"] = self.config_key
        return result


# ── Registry Errors ──────────────────────────────────────────────────────


class RegistryError(PlanCheckError):
    """
    A detector could not be registered.

    Attributes:
        detector_id: The conflicting detector ID.
    """

    def __init__(self, message: str, detector_id: str | None = None) -> None:
        self.detector_id = detector_id
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["detector_id"] = self.detector_id
        return result
