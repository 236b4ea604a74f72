"""
Normalizer configuration with resource limits.

These limits keep pathological inputs from exhausting memory or the
recursion limit, and bound how long the primary parser may run. The
defaults are generous for normal usage but will catch genuinely
problematic input.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_PRIMARY_TIMEOUT_MS = 10_000


class NormalizerConfig(BaseModel):
    """
    Configuration for the plan normalizer.

    Attributes:
        primary_enabled: Whether to attempt the primary structured parser at all.
        primary_timeout_ms: Deadline for the primary parser. Once it passes,
            the attempt is abandoned and the fallback chain runs.
        max_input_size_mb: Maximum raw input size. Larger inputs produce the
            Parse Error node without attempting any stage.
        max_nodes: Maximum number of plan nodes per tree.
        max_depth: Maximum tree depth (nesting level).

    Example:
        # Use defaults
        config = NormalizerConfig()

        # Interactive use: give up on the primary parser quickly
        config = NormalizerConfig(primary_timeout_ms=2_000)
    """

    model_config = ConfigDict(frozen=True)

    primary_enabled: bool = Field(
        default=True,
        description="Attempt the primary structured parser before the fallbacks",
    )

    primary_timeout_ms: int = Field(
        default=DEFAULT_PRIMARY_TIMEOUT_MS,
        gt=0,
        description="Primary parser deadline in milliseconds",
    )

    max_input_size_mb: float = Field(
        default=100.0,
        gt=0,
        description="Maximum raw input size in megabytes",
    )

    max_nodes: int = Field(
        default=50_000,
        gt=0,
        description="Maximum number of plan nodes",
    )

    max_depth: int = Field(
        default=100,
        gt=0,
        description="Maximum tree depth (nesting level)",
    )

    @property
    def max_input_bytes(self) -> int:
        return int(self.max_input_size_mb * 1024 * 1024)


DEFAULT_CONFIG = NormalizerConfig()

# Stricter limits for untrusted input (web endpoints, shared services)
STRICT_CONFIG = NormalizerConfig(
    primary_timeout_ms=5_000,
    max_input_size_mb=10.0,
    max_nodes=5_000,
    max_depth=50,
)
