"""
Runtime information for a FaceEngine.

Snapshot of which components are loaded, on which device, and how long
loading took. Intended for diagnostics and host-application status screens.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .backends.base import BackendInfo

if TYPE_CHECKING:
    from .backends.base import OnnxComponent


@dataclass
class EngineRuntimeInfo:
    """Runtime state of a FaceEngine.

    Attributes:
        components: BackendInfo per loaded component, keyed by role
            ("detector", "identity_encoder", "universal_encoder").
        load_time: Wall time spent constructing the engine in seconds.
        closed: Whether close() has been called.
        style_classifier: Class name of the style classifier, or None.
    """

    components: dict[str, BackendInfo] = field(default_factory=dict)
    load_time: float | None = None
    closed: bool = False
    style_classifier: str | None = None

    @property
    def device(self) -> str:
        """Device of the detector session, "unknown" if not loaded."""
        detector = self.components.get("detector")
        if detector and detector.device is not None:
            return detector.device
        return "unknown"

    @property
    def detection_model(self) -> str | None:
        detector = self.components.get("detector")
        return detector.model_name if detector else None

    def embedding_dim(self, role: str) -> int:
        """Embedding length for an encoder role, 0 if absent."""
        info = self.components.get(role)
        if info and info.embedding_dim is not None:
            return info.embedding_dim
        return 0

    @classmethod
    def from_components(
        cls,
        components: dict[str, OnnxComponent],
        load_time: float | None,
        closed: bool = False,
        style_classifier: str | None = None,
    ) -> EngineRuntimeInfo:
        """Create from live component instances."""
        return cls(
            components={
                role: component.get_runtime_info() for role, component in components.items()
            },
            load_time=load_time,
            closed=closed,
            style_classifier=style_classifier,
        )

    def as_dict(self) -> dict[str, Any]:
        """Convert to dictionary (safe for JSON serialization)."""
        return {
            "device": self.device,
            "detection_model": self.detection_model,
            "load_time": self.load_time,
            "closed": self.closed,
            "style_classifier": self.style_classifier,
            "components": {role: info.as_dict() for role, info in self.components.items()},
        }


__all__ = [
    "EngineRuntimeInfo",
]
