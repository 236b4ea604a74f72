"""
Plan analyzer: detector catalogue, traversal engine and aggregation.

Module responsibilities (one concept, one module):
- models.py: Immutable finding models (Finding, Evidence, Education)
- path.py: NodePath diagnostic labels
- registry.py: Detector registration and discovery
- detectors/: One module per detector, plus the Detector base class
- engine.py: DetectionEngine traversal with fault isolation
- aggregator.py: Grouping, evidence merge and impact ordering
"""

from plancheck.analyzer.models import Confidence, Education, Evidence, Finding, Impact
from plancheck.analyzer.path import NodePath
from plancheck.analyzer.registry import (
    DetectorRegistry,
    get_registry,
    register_detector,
)
from plancheck.analyzer.aggregator import aggregate
from plancheck.analyzer.detectors import BUILTIN_DETECTORS, Detector
from plancheck.analyzer.engine import (
    DetectionEngine,
    DetectionStats,
    DetectorFailure,
    detect,
)

__all__ = [
    "BUILTIN_DETECTORS",
    "Confidence",
    "DetectionEngine",
    "DetectionStats",
    "Detector",
    "DetectorFailure",
    "DetectorRegistry",
    "Education",
    "Evidence",
    "Finding",
    "Impact",
    "NodePath",
    "aggregate",
    "detect",
    "get_registry",
    "register_detector",
]
