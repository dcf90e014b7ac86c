import logging
import math
import numbers

import numpy as np

from .Layer import Layer
from ..helpers.Backend import ComputeContext, DEFAULT_SEED
from ..helpers.errors import InvalidDimensionError, LayerClosedError
from ..helpers.initializers import uniform_total_, zeros_
from ..optimizer.SGDOptimizer import SGDOptimizer

logger = logging.getLogger(__name__)


def _check_size(name, value):
    if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value <= 0:
        raise InvalidDimensionError(f"{name} must be a positive integer, got {value!r}")
    return int(value)


class ParameterStore:
    """Weight, bias and their gradient accumulators, all on the context's device."""

    def __init__(self, ctx, input_size, output_size):
        self.weights = None
        self.bias = None
        self.dW = None
        self.db = None
        try:
            # weights: (input_size, output_size), column-major, ld = input_size
            self.weights = ctx.empty((input_size, output_size))
            self.bias = ctx.empty((output_size,))
            self.dW = ctx.zeros((input_size, output_size))
            self.db = ctx.zeros((output_size,))
        except Exception:
            self.release()
            raise

    def release(self):
        self.weights = None
        self.bias = None
        self.dW = None
        self.db = None


class FullyConnectedLayer(Layer):
    """
    Affine layer y = W^T x + b evaluated on a single compute context.

    All batch tensors are caller owned, shaped (features, batch_size) and
    column-major. Calls only queue work on the layer's stream; use
    ``synchronize()`` before reading results from another stream.

    ``backward`` overwrites ``dW`` and the input gradient but *adds* into
    ``db``; call ``zero_grad()`` between steps to start ``db`` from zero.
    """

    def __init__(self, input_size, output_size, use_gpu=True, dtype=np.float32,
                 seed=DEFAULT_SEED, device_id=None):
        self.input_size = _check_size("input_size", input_size)
        self.output_size = _check_size("output_size", output_size)

        self.context = ComputeContext(use_gpu=use_gpu, default_float=dtype, seed=seed, device_id=device_id)
        self.store = None
        # fan-in scale is handed to the initializer, which does not apply it
        self.fan_in_scale = math.sqrt(2.0 / self.input_size)
        try:
            self.store = ParameterStore(self.context, self.input_size, self.output_size)
            uniform_total_(self.context, self.weights, scale=self.fan_in_scale)
            zeros_(self.context, self.bias)
        except Exception:
            if self.store is not None:
                self.store.release()
            self.context.close()
            raise

        self._optimizer = SGDOptimizer(self.parameters(), self.context, lr=0.0)
        self._ones = None
        self._closed = False
        logger.debug("Built %r", self)

    def __repr__(self):
        return f"FullyConnectedLayer({self.input_size}, {self.output_size}, context={self.context!r})"

    # -------- parameter store --------
    @property
    def weights(self):
        return self.store.weights

    @property
    def bias(self):
        return self.store.bias

    @property
    def dW(self):
        return self.store.dW

    @property
    def db(self):
        return self.store.db

    def params(self):
        return [self.weights, self.bias]

    def grads(self):
        return [self.dW, self.db]

    # -------- validation --------
    def _check_open(self):
        if self._closed:
            raise LayerClosedError("FullyConnectedLayer has been closed")

    def _batch_size(self, x, batch_size):
        if getattr(x, "ndim", None) != 2:
            raise InvalidDimensionError(f"inputs must be 2-D (features, batch), got shape {getattr(x, 'shape', None)}")
        if batch_size is None:
            batch_size = x.shape[1]
        return _check_size("batch_size", batch_size)

    def _check_tensor(self, name, t, rows, batch_size):
        self.context.check_buffer(t, name)
        if t.shape != (rows, batch_size):
            raise InvalidDimensionError(f"{name} has shape {t.shape}, expected {(rows, batch_size)}")

    # -------- forward / backward / update --------
    def forward(self, x, out, batch_size=None):
        """out = W^T @ x + b, broadcast over the batch columns."""
        self._check_open()
        batch_size = self._batch_size(x, batch_size)
        self._check_tensor("inputs", x, self.input_size, batch_size)
        self._check_tensor("output", out, self.output_size, batch_size)

        ctx = self.context
        with ctx.dispatch("forward bias broadcast"):
            out[...] = self.bias[:, None]
        ctx.gemm("T", "N", self.weights, x, out=out, alpha=1.0, beta=1.0)

    def backward(self, x, grad_out, grad_in, batch_size=None):
        """
        grad_in = W @ grad_out
        dW      = x @ grad_out^T        (overwritten)
        db     += grad_out @ 1          (accumulated)
        """
        self._check_open()
        batch_size = self._batch_size(x, batch_size)
        self._check_tensor("inputs", x, self.input_size, batch_size)
        self._check_tensor("grad_output", grad_out, self.output_size, batch_size)
        self._check_tensor("grad_input", grad_in, self.input_size, batch_size)

        ctx = self.context
        ctx.gemm("N", "N", self.weights, grad_out, out=grad_in, alpha=1.0, beta=0.0)
        ctx.gemm("N", "T", x, grad_out, out=self.dW, alpha=1.0, beta=0.0)
        ctx.gemv("N", grad_out, self._ones_for(batch_size), out=self.db, alpha=1.0, beta=1.0)

    def _ones_for(self, batch_size):
        if self._ones is None or self._ones.shape[0] != batch_size:
            self._ones = self.context.ones((batch_size,))
        return self._ones

    def update_params(self, learning_rate):
        """W -= lr * dW, b -= lr * db. Gradients are left untouched."""
        self._check_open()
        self._optimizer.step(float(learning_rate))

    def zero_grad(self):
        self._check_open()
        self._optimizer.zero_grad()

    # -------- host access --------
    def get_params(self):
        self._check_open()
        return {
            "weights": self.context.to_host(self.weights),
            "bias": self.context.to_host(self.bias),
        }

    def get_grads(self):
        self._check_open()
        return {
            "weights": self.context.to_host(self.dW),
            "bias": self.context.to_host(self.db),
        }

    def set_params(self, weights=None, bias=None):
        """Copy known values into the existing weight and/or bias buffers."""
        self._check_open()
        ctx = self.context
        if weights is not None:
            if np.shape(weights) != (self.input_size, self.output_size):
                raise InvalidDimensionError(
                    f"weights has shape {np.shape(weights)}, expected {(self.input_size, self.output_size)}"
                )
            src = ctx.to_device(weights)
            with ctx.dispatch("set weights"):
                self.weights[...] = src
        if bias is not None:
            if np.shape(bias) != (self.output_size,):
                raise InvalidDimensionError(f"bias has shape {np.shape(bias)}, expected {(self.output_size,)}")
            src = ctx.to_device(bias)
            with ctx.dispatch("set bias"):
                self.bias[...] = src

    # -------- lifecycle --------
    def synchronize(self):
        self._check_open()
        self.context.synchronize()

    def close(self):
        """Release parameter buffers and the compute context. Idempotent."""
        if getattr(self, "_closed", True):
            return
        self._closed = True
        self._optimizer = None
        self._ones = None
        try:
            self.context.close()
        finally:
            self.store.release()
