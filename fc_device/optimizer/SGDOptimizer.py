import logging
import math

import numpy as np

from ..helpers.Backend import cp, CUPY_AVAILABLE

logger = logging.getLogger(__name__)

_sgd_kernel = None


def _get_sgd_kernel():
    global _sgd_kernel
    if _sgd_kernel is None:
        _sgd_kernel = cp.ElementwiseKernel(
            "T grad, T lr",
            "T param",
            "param -= lr * grad",
            "fc_device_sgd_update",
        )
    return _sgd_kernel


def sgd_update_(ctx, param, grad, lr):
    """param[i] -= lr * grad[i], in place, as one elementwise dispatch."""
    with ctx.dispatch("sgd_update"):
        if ctx.use_gpu and CUPY_AVAILABLE:
            _get_sgd_kernel()(grad, param.dtype.type(lr), param)
        else:
            np.subtract(param, param.dtype.type(lr) * grad, out=param)
    return param


class SGDOptimizer:
    def __init__(self, params, context, lr=1e-2):
        self.params = params  # list of [p, g]
        self.context = context
        self.lr = lr

    def step(self, lr=None):
        lr = self.lr if lr is None else lr
        if not math.isfinite(lr):
            raise ValueError(f"learning rate must be finite, got {lr}")
        if lr == 0.0:
            logger.debug("SGD step with lr=0 skipped")
            return
        for p, g in self.params:
            sgd_update_(self.context, p, g, lr)

    def zero_grad(self):
        for _, g in self.params:
            self.context.fill_zero(g)
