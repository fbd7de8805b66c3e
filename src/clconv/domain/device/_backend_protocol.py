"""
Compute-backend contract for clconv.

This module defines a duck-typed `IComputeBackend` protocol describing the
device primitives the convolution dispatch engine consumes: read-only and
write-only device buffers, kernel lookup in a prebuilt program, argument
binding, a timed synchronous launch, and a blocking readback.

By relying on structural typing instead of class identity, the dispatch
engine can be driven by the ctypes OpenCL backend in production and by a
recording fake in tests without `isinstance` coupling.

Design notes
------------
- Handles (buffers, kernels) are opaque objects owned by the backend.
- Every method reports failure by raising `DeviceError`; there are no status
  return values at this level.
- `open()` acquires long-lived resources (context, queue, program) and must be
  idempotent; `close()` releases them and must also be idempotent.
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence, runtime_checkable

import numpy as np


@runtime_checkable
class IComputeBackend(Protocol):
    """
    Duck-typed device compute backend.

    Notes
    -----
    Scalar kernel arguments are passed as NumPy scalars (e.g., `np.int32`) so
    the backend can derive the argument size from the value's dtype.
    """

    def open(self) -> Any: ...

    def close(self) -> None: ...

    def create_read_only_buffer(self, host: np.ndarray) -> Any: ...

    def create_write_only_buffer(self, nbytes: int) -> Any: ...

    def lookup_kernel(self, name: str) -> Any: ...

    def set_kernel_arg(self, kernel: Any, index: int, value: Any) -> None: ...

    def enqueue_and_time(
        self,
        kernel: Any,
        global_size: Sequence[int],
        local_size: Sequence[int],
    ) -> int: ...

    def read_buffer(self, buffer: Any, host: np.ndarray) -> None: ...

    def release_buffer(self, buffer: Any) -> None: ...

    def release_kernel(self, kernel: Any) -> None: ...
