"""
Weight initialization on the compute context's device.
"""
import logging
import math

logger = logging.getLogger(__name__)


def uniform_total_(ctx, weights, scale=None, seed=None):
    """
    Fill ``weights`` in place with values from U(-r, r), r = sqrt(6 / weights.size).

    One generator state is allocated per element and released before
    returning; element ``i`` of the column-major flat buffer receives the
    draw of state ``i``.

    Args:
        ctx: ComputeContext that owns ``weights``
        weights: column-major array to fill
        scale: fan-in scale computed by the caller; accepted but not applied
        seed: overrides the context seed

    Returns:
        weights
    """
    n = int(weights.size)
    if n == 0:
        return weights
    if scale is not None:
        logger.debug("uniform_total_: fan-in scale %.6g ignored, bound uses total count %d", scale, n)

    r = math.sqrt(6.0 / n)
    gen = ctx.random_generator(n, seed=seed)
    try:
        with ctx.dispatch("uniform_total_"):
            u = gen.random(n, dtype=weights.dtype)
            weights[...] = ((u * 2 - 1) * r).reshape(weights.shape, order="F")
    finally:
        del gen
    return weights


def zeros_(ctx, buf):
    ctx.fill_zero(buf)
    return buf
