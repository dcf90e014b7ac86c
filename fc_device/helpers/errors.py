"""Exceptions raised by fc_device layers and their compute contexts."""


class LayerError(Exception):
    """Base class for every error raised by this package."""


class AllocationError(LayerError, MemoryError):
    """Device (or host) memory could not be allocated."""


class InvalidDimensionError(LayerError, ValueError):
    """A size, batch size or tensor shape does not match the layer."""


class InvalidBufferError(LayerError, TypeError):
    """A buffer lives on the wrong device or has the wrong dtype or layout."""


class EngineError(LayerError, RuntimeError):
    """The linear-algebra engine, random generator or runtime reported a failure."""


class LayerClosedError(LayerError):
    """The layer or context was used after ``close()``."""
