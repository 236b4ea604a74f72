"""EXPLAIN plan normalization: any supported input format to a canonical PlanNode tree."""

from plancheck.parser.config import DEFAULT_CONFIG, STRICT_CONFIG, NormalizerConfig
from plancheck.parser.models import (
    PARSE_ERROR_NODE_TYPE,
    AnalysisInput,
    JitInfo,
    JitTiming,
    ParseSource,
    PlanNode,
    TriggerInfo,
)
from plancheck.parser.normalizer import Normalizer, normalize
from plancheck.parser.primary import RichParser, RichParseResult, StructuredJsonParser

__all__ = [
    "AnalysisInput",
    "DEFAULT_CONFIG",
    "JitInfo",
    "JitTiming",
    "Normalizer",
    "NormalizerConfig",
    "PARSE_ERROR_NODE_TYPE",
    "ParseSource",
    "PlanNode",
    "RichParseResult",
    "RichParser",
    "STRICT_CONFIG",
    "StructuredJsonParser",
    "TriggerInfo",
    "normalize",
]
