"""
infrastructure/ops/conv2d_opencl.py

Ops-layer OpenCL convolution dispatch for clconv (NumPy-facing API).

This module runs the `forwardGPU` device kernel on flat float32 host buffers
through any object satisfying `IComputeBackend`. It is numerically equivalent
(within floating-point tolerance) to `conv2d_forward_cpu`.

Dispatch protocol
-----------------
1. Create four device buffers: input, weight and offset (read-only,
   initialized from the host) and output (write-only).
2. Look up `forwardGPU` and bind its 11 arguments in fixed order:
   in, weight, offset, out, iWidth, iHeight, iDepth, oWidth, oHeight, oDepth,
   kernelSize.
3. Launch a 2D grid with 16x16 work-groups: dimension 0 covers `o_width`,
   dimension 1 covers the flattened `o_depth * o_height`, each rounded up to
   a multiple of 16. The kernel ignores the padding work items.
4. Enqueue synchronously with profiling; the duration is informational.
5. Read the output buffer back into the host output, blocking.

Error policy
------------
Any failing backend call raises `DeviceError`. The failure is logged with a
diagnostic and re-raised; the caller decides whether to retry, fall back to
the CPU path or abort. Buffers and the kernel created for the call are
released in every case; a failing release is logged as a warning and never
replaces the error that interrupted the call. When the forward pass itself
succeeded, the first release failure is raised after every release ran.
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np

from ...domain._errors import DeviceError
from ...domain.device._backend_protocol import IComputeBackend

logger = logging.getLogger(__name__)

KERNEL_NAME = "forwardGPU"
WORK_GROUP_SIZE = 16


def closest_multiple(base: int, value: int) -> int:
    """Smallest multiple of `base` that is >= `value`."""
    return ((int(value) + base - 1) // base) * base


def launch_grid(
    *, o_width: int, o_height: int, o_depth: int, items: int = WORK_GROUP_SIZE
) -> tuple[tuple[int, int], tuple[int, int]]:
    """
    Return the `(global_size, local_size)` pair for the convolution kernel.

    Examples
    --------
    >>> launch_grid(o_width=2, o_height=2, o_depth=1)
    ((16, 16), (16, 16))
    >>> launch_grid(o_width=17, o_height=10, o_depth=4)
    ((32, 48), (16, 16))
    """
    global_size = (
        closest_multiple(items, o_width),
        closest_multiple(items, o_depth * o_height),
    )
    return global_size, (items, items)


def conv2d_forward_opencl(
    backend: IComputeBackend,
    *,
    x: np.ndarray,
    weight: np.ndarray,
    offset: np.ndarray,
    y: np.ndarray,
    i_width: int,
    i_height: int,
    i_depth: int,
    o_width: int,
    o_height: int,
    o_depth: int,
    kernel_size: int,
) -> int:
    """
    Run the convolution forward pass on an OpenCL device.

    Parameters
    ----------
    backend : IComputeBackend
        Opened compute backend whose program contains `forwardGPU`.
    x, weight, offset : np.ndarray
        Flat float32 host buffers (input volume, weights, biases).
    y : np.ndarray
        Flat, C-contiguous float32 host output of
        `o_depth * o_height * o_width` elements; overwritten.
    i_width, i_height, i_depth, o_width, o_height, o_depth, kernel_size : int
        Layer shape.

    Returns
    -------
    int
        Kernel execution time reported by the backend (nanoseconds).

    Raises
    ------
    DeviceError
        If any backend call fails.
    """
    itemsize = np.dtype(np.float32).itemsize
    x = np.ascontiguousarray(x, dtype=np.float32)
    weight = np.ascontiguousarray(weight, dtype=np.float32)
    offset = np.ascontiguousarray(offset, dtype=np.float32)

    buffers: list[Any] = []
    kernel = None
    try:
        x_dev = backend.create_read_only_buffer(x)
        buffers.append(x_dev)
        w_dev = backend.create_read_only_buffer(weight)
        buffers.append(w_dev)
        b_dev = backend.create_read_only_buffer(offset)
        buffers.append(b_dev)
        y_dev = backend.create_write_only_buffer(o_width * o_height * o_depth * itemsize)
        buffers.append(y_dev)

        kernel = backend.lookup_kernel(KERNEL_NAME)
        args = (
            x_dev,
            w_dev,
            b_dev,
            y_dev,
            np.int32(i_width),
            np.int32(i_height),
            np.int32(i_depth),
            np.int32(o_width),
            np.int32(o_height),
            np.int32(o_depth),
            np.int32(kernel_size),
        )
        for index, value in enumerate(args):
            backend.set_kernel_arg(kernel, index, value)

        global_size, local_size = launch_grid(
            o_width=o_width, o_height=o_height, o_depth=o_depth
        )
        logger.debug("launching %s global=%s local=%s", KERNEL_NAME, global_size, local_size)

        ticks = int(backend.enqueue_and_time(kernel, global_size, local_size))
        logger.debug("%s finished in %d ns", KERNEL_NAME, ticks)

        backend.read_buffer(y_dev, y)

    except DeviceError as e:
        logger.error("OpenCL convolution forward failed: %s", e)
        raise

    finally:
        release_errors = _release_call_objects(backend, kernel, buffers)

    if release_errors:
        raise release_errors[0]
    return ticks


def _release_call_objects(
    backend: IComputeBackend, kernel: Any, buffers: list[Any]
) -> list[DeviceError]:
    """
    Release the kernel and buffers of one dispatch, attempting every release.

    Failures are logged and returned rather than raised so that they never
    mask the error that interrupted the dispatch.
    """
    releases: list[tuple[Any, Any]] = []
    if kernel is not None:
        releases.append((backend.release_kernel, kernel))
    releases.extend((backend.release_buffer, buf) for buf in reversed(buffers))

    errors: list[DeviceError] = []
    for release, handle in releases:
        try:
            release(handle)
        except DeviceError as e:
            logger.warning("releasing per-call OpenCL object failed: %s", e)
            errors.append(e)
    return errors
