"""
Pytest configuration and fixtures for fc_device tests
"""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from fc_device import CUPY_AVAILABLE, FullyConnectedLayer


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "gpu: marks tests that require CuPy and a CUDA device (deselect with '-m \"not gpu\"')"
    )


@pytest.fixture(
    params=[
        "cpu",
        pytest.param("gpu", marks=pytest.mark.gpu),
    ]
)
def use_gpu(request):
    """Run the test once on NumPy and once on CuPy (skipped without a device)."""
    if request.param == "gpu":
        if not CUPY_AVAILABLE:
            pytest.skip("CuPy with a working CUDA device not available")
        return True
    return False


@pytest.fixture
def make_layer(use_gpu):
    """Factory for layers on the parametrized backend; closes them afterwards."""
    built = []

    def _make(input_size, output_size, **kwargs):
        layer = FullyConnectedLayer(input_size, output_size, use_gpu=use_gpu, **kwargs)
        built.append(layer)
        return layer

    yield _make
    for layer in built:
        layer.close()


@pytest.fixture
def known_layer(make_layer):
    """4 -> 3 layer with fixed, hand-checkable weights and bias."""
    layer = make_layer(4, 3)
    weights = np.array(
        [
            [1, 0, 2],
            [0, 1, 0],
            [1, 1, 1],
            [2, 0, -1],
        ],
        dtype=np.float32,
    )
    bias = np.array([0.5, -1.0, 2.0], dtype=np.float32)
    layer.set_params(weights=weights, bias=bias)
    return layer


@pytest.fixture
def known_input():
    """Two batch columns: [1, 2, 3, 4] and [0, -1, 1, 2]."""
    return np.array(
        [
            [1, 0],
            [2, -1],
            [3, 1],
            [4, 2],
        ],
        dtype=np.float32,
        order="F",
    )
