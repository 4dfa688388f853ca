"""
Exception definitions for the face engine.

Each layer raises its own error types; everything derives from
FaceEngineError so callers can catch the whole family at once.
"""


class FaceEngineError(Exception):
    """Base class for all face engine errors."""

    pass


class BackendError(FaceEngineError):
    """Base class for all inference backend errors."""

    pass


class BackendNotInitializedError(BackendError):
    """Raised when a backend is used before initialization or after close."""

    pass


class InvalidInputError(BackendError):
    """Raised when input data is invalid or malformed."""

    pass


class InferenceError(BackendError):
    """Raised when an inference operation fails."""

    pass


class ModelLoadingError(BackendError):
    """Raised when model weights cannot be opened on any device."""

    pass


class DeviceUnavailableError(BackendError):
    """Raised when the requested accelerator cannot be bound."""

    pass


class EmbeddingDimensionError(FaceEngineError, ValueError):
    """Raised when two embeddings of different length are compared.

    This is a caller or configuration defect, never a transient condition.
    """

    pass


class EngineClosedError(FaceEngineError, RuntimeError):
    """Raised when the engine is used after close()."""

    pass


class ConfigError(FaceEngineError):
    """Raised when configuration is invalid or malformed."""

    pass
