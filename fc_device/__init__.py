from .helpers.Backend import CUPY_AVAILABLE, DEFAULT_SEED, ComputeContext
from .helpers.errors import (
    AllocationError,
    EngineError,
    InvalidBufferError,
    InvalidDimensionError,
    LayerClosedError,
    LayerError,
)
from .helpers.logger import ParamLogger
from .layers import FullyConnectedLayer, Layer, ParameterStore
from .optimizer import SGDOptimizer

__version__ = "0.1.0"

__all__ = [
    "CUPY_AVAILABLE",
    "DEFAULT_SEED",
    "ComputeContext",
    "FullyConnectedLayer",
    "Layer",
    "ParameterStore",
    "SGDOptimizer",
    "ParamLogger",
    "LayerError",
    "AllocationError",
    "InvalidDimensionError",
    "InvalidBufferError",
    "EngineError",
    "LayerClosedError",
]
