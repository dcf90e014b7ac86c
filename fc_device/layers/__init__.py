from .Layer import Layer
from .FullyConnectedLayer import FullyConnectedLayer, ParameterStore

__all__ = [
    "Layer",
    "FullyConnectedLayer",
    "ParameterStore",
]
