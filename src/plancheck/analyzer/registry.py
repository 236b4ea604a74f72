"""
Detector registry.

Detectors register themselves with the @register_detector decorator when
their module is imported. Registration order is part of the contract: it is
the order detectors run on each node, and therefore the tie-break order for
findings of equal impact. The built-in order is fixed by the imports in
plancheck.analyzer.detectors.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from plancheck.exceptions import RegistryError

if TYPE_CHECKING:
    from plancheck.analyzer.detectors.base import Detector

T = TypeVar("T", bound="Detector")


class DetectorRegistry:
    """
    Ordered registry of detector classes.

    Example:
        # In a detector module:
        @register_detector
        class MyDetector(Detector):
            detector_id = "my_detector"
            ...

        # In the engine or CLI:
        registry = get_registry()
        detectors = registry.filter(exclude={"row_count_mismatch"})
    """

    def __init__(self) -> None:
        self._detectors: dict[str, type[Detector]] = {}

    def register(self, detector_cls: type[T]) -> type[T]:
        """
        Register a detector class.

        Raises:
            RegistryError: If the class has no id or the id is already taken
        """
        detector_id = getattr(detector_cls, "detector_id", "")
        if not detector_id:
            raise RegistryError(
                f"{detector_cls.__module__}.{detector_cls.__name__} has no detector_id"
            )

        if detector_id in self._detectors:
            existing = self._detectors[detector_id]
            raise RegistryError(
                f"Detector '{detector_id}' already registered by "
                f"{existing.__module__}.{existing.__name__}. "
                f"Cannot register {detector_cls.__module__}.{detector_cls.__name__}",
                detector_id=detector_id,
            )

        self._detectors[detector_id] = detector_cls
        return detector_cls

    def unregister(self, detector_id: str) -> bool:
        """Remove a detector. Returns True if it was registered."""
        return self._detectors.pop(detector_id, None) is not None

    def get(self, detector_id: str) -> type[Detector] | None:
        return self._detectors.get(detector_id)

    def all(self) -> list[type[Detector]]:
        """All detector classes, in registration order."""
        return list(self._detectors.values())

    def all_ids(self) -> list[str]:
        return list(self._detectors.keys())

    def filter(
        self,
        include: set[str] | None = None,
        exclude: set[str] | None = None,
    ) -> list[type[Detector]]:
        """
        Filtered detector classes, still in registration order.

        Example:
            registry.filter(include={"disk_spill", "missing_index"})
        """
        detectors = self.all()

        if include is not None:
            detectors = [d for d in detectors if d.detector_id in include]

        if exclude is not None:
            detectors = [d for d in detectors if d.detector_id not in exclude]

        return detectors

    def clear(self) -> None:
        """Remove all registered detectors. Primarily useful for testing."""
        self._detectors.clear()

    def __len__(self) -> int:
        return len(self._detectors)

    def __contains__(self, detector_id: str) -> bool:
        return detector_id in self._detectors


_global_registry = DetectorRegistry()


def get_registry() -> DetectorRegistry:
    """
    Get the global detector registry.

    Importing plancheck.analyzer.detectors populates it with the built-in
    catalogue.
    """
    return _global_registry


def register_detector(detector_cls: type[T]) -> type[T]:
    """Decorator to register a detector with the global registry."""
    return _global_registry.register(detector_cls)
