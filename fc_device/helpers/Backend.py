# fc_device/helpers/Backend.py
import contextlib
import logging

import numpy as np

from .errors import (
    AllocationError,
    EngineError,
    InvalidBufferError,
    LayerClosedError,
    LayerError,
)

logger = logging.getLogger(__name__)

VERBOSE_STARTUP = False  # set True to log device details at import

DEFAULT_SEED = 42

try:
    import cupy as cp
    if VERBOSE_STARTUP:
        logger.info("CuPy: %s", cp.__version__)
        logger.info("GPU count: %d", cp.cuda.runtime.getDeviceCount())
        logger.info("Driver ver: %d", cp.cuda.runtime.driverGetVersion())
        logger.info("Runtime ver: %d", cp.cuda.runtime.runtimeGetVersion())
    # Quick runtime check
    try:
        _ = (cp.array([1, 2, 3]) + 1).sum()
        CUPY_AVAILABLE = True
    except Exception as e:
        logger.warning("CuPy installed but CUDA runtime error: %s", e)
        cp = None
        CUPY_AVAILABLE = False
except ImportError:
    cp = None
    CUPY_AVAILABLE = False


_FLOAT_DTYPES = (np.dtype(np.float32), np.dtype(np.float64))

_TRANS = {"N": False, "T": True, "n": False, "t": True}


def _op(a, trans):
    if trans not in _TRANS:
        raise ValueError(f"Unknown transpose flag: {trans!r}")
    return a.T if _TRANS[trans] else a


class ComputeContext:
    """
    Execution context owned by exactly one layer.

    Holds the array module (CuPy on the device, NumPy on the host), the
    layer's execution queue and the seed for its random generator. Every
    engine call made by the layer goes through ``dispatch`` so that device
    failures surface as ``LayerError`` subclasses instead of being lost.

    Not thread-safe: callers must serialize access to a context.
    """

    def __init__(self, use_gpu=True, default_float=np.float32, seed=DEFAULT_SEED, device_id=None):
        self.use_gpu = bool(use_gpu and CUPY_AVAILABLE)
        if use_gpu and not CUPY_AVAILABLE:
            logger.warning("GPU requested but CuPy is unavailable; using CPU backend (NumPy)")
        self.default_float = np.dtype(default_float)
        if self.default_float not in _FLOAT_DTYPES:
            raise InvalidBufferError(f"dtype must be float32 or float64, got {self.default_float}")
        self.seed = int(seed)
        self.stream = None
        self.device_id = None
        self._closed = False

        if self.use_gpu:
            self.device_id = int(device_id) if device_id is not None else cp.cuda.Device().id
            try:
                with cp.cuda.Device(self.device_id):
                    self.stream = cp.cuda.Stream(non_blocking=True)
            except Exception as e:
                raise EngineError(f"Failed to create stream on device {self.device_id}: {e}") from e
            self.xp = cp
            logger.info("Using GPU backend (CuPy) on device %d", self.device_id)
        else:
            self.xp = np
            logger.info("Using CPU backend (NumPy)")

    def __repr__(self):
        where = f"gpu:{self.device_id}" if self.use_gpu else "cpu"
        return f"ComputeContext({where}, dtype={self.default_float.name}, seed={self.seed})"

    @property
    def closed(self):
        return self._closed

    # -------- dispatch --------
    def _check_open(self):
        if self._closed:
            raise LayerClosedError("ComputeContext has been closed")

    @contextlib.contextmanager
    def dispatch(self, what):
        """Run engine work on this context's device and stream, mapping failures."""
        self._check_open()
        try:
            if self.use_gpu:
                with cp.cuda.Device(self.device_id), self.stream:
                    yield
            else:
                yield
        except LayerError:
            raise
        except MemoryError as e:
            raise AllocationError(f"{what}: out of memory ({e})") from e
        except Exception as e:
            raise EngineError(f"{what} failed: {e}") from e

    # -------- device transfer --------
    def to_device(self, x, dtype=None):
        """Copy host or device data into a column-major array of this backend."""
        dtype = self.default_float if dtype is None else dtype
        with self.dispatch("to_device"):
            if self.use_gpu:
                return cp.array(x, dtype=dtype, order="F", copy=True)
            if cp is not None and isinstance(x, cp.ndarray):
                x = cp.asnumpy(x)
            return np.array(x, dtype=dtype, order="F", copy=True)

    def to_host(self, x):
        """Copy to a NumPy array; blocks on this context's stream."""
        with self.dispatch("to_host"):
            if self.use_gpu:
                host = cp.asnumpy(x, stream=self.stream, order="A")
                self.stream.synchronize()
                return host
            return np.array(x, copy=True)

    def is_local(self, x):
        """True when ``x`` is an array living where this context computes."""
        if not isinstance(x, self.xp.ndarray):
            return False
        if self.use_gpu:
            return x.device.id == self.device_id
        return True

    def check_buffer(self, x, name):
        if not self.is_local(x):
            where = f"device {self.device_id}" if self.use_gpu else "host"
            raise InvalidBufferError(f"{name} must be a {self.xp.__name__} array on {where}, got {type(x).__name__}")
        if x.dtype != self.default_float:
            raise InvalidBufferError(f"{name} dtype {x.dtype} does not match {self.default_float}")
        if not x.flags.f_contiguous:
            raise InvalidBufferError(f"{name} must be column-major (Fortran) contiguous")

    # -------- array creation --------
    def empty(self, shape):
        with self.dispatch("empty"):
            return self.xp.empty(shape, dtype=self.default_float, order="F")

    def zeros(self, shape):
        with self.dispatch("zeros"):
            return self.xp.zeros(shape, dtype=self.default_float, order="F")

    def ones(self, shape):
        with self.dispatch("ones"):
            return self.xp.ones(shape, dtype=self.default_float, order="F")

    def fill_zero(self, x):
        with self.dispatch("fill_zero"):
            x.fill(0)

    # -------- linear algebra engine --------
    def gemm(self, transa, transb, a, b, out, alpha=1.0, beta=0.0):
        """out = alpha * op(a) @ op(b) + beta * out, written in place."""
        with self.dispatch("gemm"):
            if self.use_gpu:
                cp.cublas.gemm(transa, transb, a, b, out=out, alpha=alpha, beta=beta)
                return out
            prod = np.matmul(_op(a, transa), _op(b, transb))
            if beta == 0.0:
                out[...] = alpha * prod
            else:
                out[...] = beta * out + alpha * prod
            return out

    def gemv(self, trans, a, x, out, alpha=1.0, beta=0.0):
        """out = alpha * op(a) @ x + beta * out, written in place."""
        with self.dispatch("gemv"):
            if self.use_gpu:
                cp.cublas.gemv(trans, a, x, out=out, alpha=alpha, beta=beta)
                return out
            prod = np.matmul(_op(a, trans), x)
            if beta == 0.0:
                out[...] = alpha * prod
            else:
                out[...] = beta * out + alpha * prod
            return out

    def axpy(self, alpha, x, y):
        """y += alpha * x for 1-D vectors."""
        with self.dispatch("axpy"):
            if self.use_gpu:
                cp.cublas.axpy(alpha, x, y)
                return y
            y += alpha * x
            return y

    # -------- randomness --------
    def random_generator(self, size, seed=None):
        """
        Fresh generator seeded with ``seed`` (the context seed by default).

        On the device this allocates ``size`` independent cuRAND XORWOW
        states; drop the generator to release them.
        """
        seed = self.seed if seed is None else int(seed)
        with self.dispatch("random_generator"):
            if self.use_gpu:
                return cp.random.Generator(cp.random.XORWOW(seed, size=int(size)))
            return np.random.Generator(np.random.PCG64(seed))

    # -------- sync / memory --------
    def synchronize(self):
        """Block until all work queued on this context completes."""
        if self.use_gpu and self.stream is not None:
            with self.dispatch("synchronize"):
                self.stream.synchronize()

    def memory_info(self):
        if self.use_gpu:
            mempool = cp.get_default_memory_pool()
            return {
                "used_bytes": mempool.used_bytes(),
                "total_bytes": mempool.total_bytes(),
                "free_bytes": mempool.total_bytes() - mempool.used_bytes(),
            }
        return None

    def close(self):
        """Drain the stream and drop it. Safe to call more than once."""
        if self._closed:
            return
        try:
            self.synchronize()
        finally:
            self.stream = None
            self._closed = True
