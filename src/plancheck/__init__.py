"""plancheck - PostgreSQL EXPLAIN plan normalizer and performance analyzer."""

__version__ = "0.3.0"
__license__ = "MIT"

# Exception hierarchy (import first so other modules can use it)
from plancheck.exceptions import (
    PlanCheckError,
    ParseError,
    EmptyInputError,
    AnalyzerError,
    DetectorError,
    ConfigurationError,
    RegistryError,
)

# Public API exports
from plancheck.observability import (
    EventLevel,
    EventSink,
    FanoutSink,
    LogEvent,
    LoggingSink,
    MemorySink,
    NoopSink,
)
from plancheck.parser import (
    AnalysisInput,
    Normalizer,
    NormalizerConfig,
    ParseSource,
    PlanNode,
    RichParseResult,
    RichParser,
    StructuredJsonParser,
    normalize,
)
from plancheck.analyzer import (
    Confidence,
    DetectionEngine,
    DetectionStats,
    Detector,
    Education,
    Evidence,
    Finding,
    Impact,
    aggregate,
    detect,
    get_registry,
    register_detector,
)
from plancheck.config import Config, get_config, reset_config
from plancheck.service import AnalysisReport, AnalysisService

__all__ = [
    "__version__",
    # Exceptions
    "PlanCheckError",
    "ParseError",
    "EmptyInputError",
    "AnalyzerError",
    "DetectorError",
    "ConfigurationError",
    "RegistryError",
    # Observability
    "EventLevel",
    "EventSink",
    "FanoutSink",
    "LogEvent",
    "LoggingSink",
    "MemorySink",
    "NoopSink",
    # Parsing
    "AnalysisInput",
    "Normalizer",
    "NormalizerConfig",
    "ParseSource",
    "PlanNode",
    "RichParseResult",
    "RichParser",
    "StructuredJsonParser",
    "normalize",
    # Analysis
    "Confidence",
    "DetectionEngine",
    "DetectionStats",
    "Detector",
    "Education",
    "Evidence",
    "Finding",
    "Impact",
    "aggregate",
    "detect",
    "get_registry",
    "register_detector",
    # Configuration
    "Config",
    "get_config",
    "reset_config",
    # Service
    "AnalysisReport",
    "AnalysisService",
]
