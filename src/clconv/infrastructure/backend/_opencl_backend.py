"""
OpenCL implementation of the compute-backend contract.

`OpenCLBackend` owns the long-lived OpenCL objects a convolution layer needs
(platform/device selection, context, profiling command queue and the program
built from `convolution.cl`) and exposes the per-call primitives consumed by
the dispatch engine: buffers, kernel lookup, argument binding, a timed
synchronous launch and a blocking readback.

Lifecycle
---------
- Nothing is acquired at construction; `open()` acquires everything once and
  is idempotent. A partially failed acquisition is rolled back.
- `close()` waits for the queue, then releases program, queue and context in
  reverse acquisition order, and is idempotent. The backend is also a
  context manager.
- Per-call objects (buffers, kernels, events) are released by the caller via
  `release_buffer` / `release_kernel`; events are released internally.
"""

from __future__ import annotations

import ctypes
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import numpy as np
from typing_extensions import Self

from ...domain._errors import DeviceError, DeviceUnavailableError
from .._config import OpenCLConfig
from ..native_opencl.python._native_loader import load_opencl_library
from ..native_opencl.python.opencl_ctypes import (
    CL_MEM_COPY_HOST_PTR,
    CL_MEM_READ_ONLY,
    CL_MEM_WRITE_ONLY,
    CL_PROFILING_COMMAND_END,
    CL_PROFILING_COMMAND_START,
    CL_QUEUE_PROFILING_ENABLE,
    OpenCLLib,
)

logger = logging.getLogger(__name__)

_SCALAR_CTYPES: dict[np.dtype, type] = {
    np.dtype(np.int32): ctypes.c_int32,
    np.dtype(np.uint32): ctypes.c_uint32,
    np.dtype(np.float32): ctypes.c_float,
}


@dataclass(frozen=True)
class DeviceBuffer:
    """Handle of an OpenCL memory object and its size in bytes."""

    handle: int
    nbytes: int


class OpenCLBackend:
    """
    OpenCL compute backend bound to one device.

    Parameters
    ----------
    config : OpenCLConfig, optional
        Library/platform/kernel settings. Defaults to `OpenCLConfig.from_env()`.
    device_index : int
        Index of the device among devices of `config.device_type` on the
        selected platform.

    Raises
    ------
    DeviceUnavailableError
        From `open()`, when the library (or its OpenCL API), platform or
        device is missing.
    DeviceError
        From any primitive whose OpenCL call fails.
    """

    def __init__(
        self, config: Optional[OpenCLConfig] = None, *, device_index: int = 0
    ) -> None:
        self.config = config if config is not None else OpenCLConfig.from_env()
        self.device_index = int(device_index)

        self._cl: Optional[OpenCLLib] = None
        self.platform: Optional[int] = None
        self.device: Optional[int] = None
        self.context: Optional[int] = None
        self.queue: Optional[int] = None
        self.program: Optional[int] = None
        self.device_name: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.program is not None

    def open(self) -> Self:
        """
        Acquire platform, device, context, queue and program (idempotent).

        Returns
        -------
        OpenCLBackend
            `self`, for chaining.
        """
        if self.is_open:
            return self

        try:
            lib = load_opencl_library(self.config.library_path)
        except OSError as e:
            raise DeviceUnavailableError("load_opencl_library", detail=str(e)) from e
        cl = OpenCLLib(lib)

        platforms = cl.get_platform_ids()
        if self.config.platform_index >= len(platforms):
            raise DeviceUnavailableError(
                "clGetPlatformIDs",
                detail=(
                    f"platform index {self.config.platform_index} requested, "
                    f"{len(platforms)} platform(s) available"
                ),
            )
        platform = platforms[self.config.platform_index]

        devices = cl.get_device_ids(platform, self.config.device_type_mask)
        if self.device_index >= len(devices):
            raise DeviceUnavailableError(
                "clGetDeviceIDs",
                detail=(
                    f"{self.config.device_type} device index {self.device_index} "
                    f"requested, {len(devices)} device(s) available"
                ),
            )
        device = devices[self.device_index]

        source = self.config.read_kernel_source()
        device_name = cl.get_device_name(device)
        platform_name = cl.get_platform_name(platform)
        logger.debug(
            "selected OpenCL device '%s' on platform '%s'", device_name, platform_name
        )

        context = queue = program = None
        try:
            context = cl.create_context(platform, device)
            queue = cl.create_command_queue(context, device, CL_QUEUE_PROFILING_ENABLE)
            program = cl.create_program_with_source(context, source)
            cl.build_program(program, device, self.config.build_options)
        except DeviceError:
            for release, handle in (
                (cl.release_program, program),
                (cl.release_command_queue, queue),
                (cl.release_context, context),
            ):
                if handle:
                    try:
                        release(handle)
                    except DeviceError as e:
                        logger.warning("rollback release failed: %s", e)
            raise

        self._cl = cl
        self.platform, self.device = platform, device
        self.context, self.queue, self.program = context, queue, program
        self.device_name = device_name

        logger.info(
            "OpenCL backend opened on '%s' (platform '%s')", device_name, platform_name
        )
        return self

    def close(self) -> None:
        """
        Drain the queue, then release program, queue and context (idempotent).

        Every release is attempted even if an earlier one fails; the first
        failure is re-raised once the backend is marked closed.
        """
        if self._cl is None:
            return

        cl = self._cl
        errors: list[DeviceError] = []
        for release, handle in (
            (cl.finish, self.queue),
            (cl.release_program, self.program),
            (cl.release_command_queue, self.queue),
            (cl.release_context, self.context),
        ):
            try:
                release(handle)
            except DeviceError as e:
                errors.append(e)

        self._cl = None
        self.platform = self.device = None
        self.context = self.queue = self.program = None
        logger.info("OpenCL backend closed")

        if errors:
            raise errors[0]

    def __enter__(self) -> Self:
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _require_open(self, op: str) -> OpenCLLib:
        if self._cl is None:
            raise DeviceError(op, detail="OpenCL backend is not open")
        return self._cl

    # ------------------------------------------------------------------
    # IComputeBackend primitives
    # ------------------------------------------------------------------

    def create_read_only_buffer(self, host: np.ndarray) -> DeviceBuffer:
        """Create a read-only device buffer initialized from `host`."""
        cl = self._require_open("create_read_only_buffer")
        host = np.ascontiguousarray(host)
        handle = cl.create_buffer(
            self.context, CL_MEM_READ_ONLY | CL_MEM_COPY_HOST_PTR, host.nbytes, host
        )
        return DeviceBuffer(handle, int(host.nbytes))

    def create_write_only_buffer(self, nbytes: int) -> DeviceBuffer:
        """Create an uninitialized write-only device buffer."""
        cl = self._require_open("create_write_only_buffer")
        handle = cl.create_buffer(self.context, CL_MEM_WRITE_ONLY, int(nbytes))
        return DeviceBuffer(handle, int(nbytes))

    def lookup_kernel(self, name: str) -> int:
        cl = self._require_open("lookup_kernel")
        return cl.create_kernel(self.program, name)

    def set_kernel_arg(self, kernel: int, index: int, value: Any) -> None:
        """
        Bind kernel argument `index`.

        `value` is either a `DeviceBuffer` or a NumPy scalar of a supported
        dtype (int32, uint32, float32).
        """
        cl = self._require_open("set_kernel_arg")
        if isinstance(value, DeviceBuffer):
            arg = ctypes.c_void_p(value.handle)
        elif isinstance(value, np.generic) and value.dtype in _SCALAR_CTYPES:
            arg = _SCALAR_CTYPES[value.dtype](value.item())
        else:
            raise TypeError(
                f"unsupported kernel argument type at index {index}: {type(value)!r}"
            )
        cl.set_kernel_arg(kernel, index, ctypes.sizeof(arg), arg)

    def enqueue_and_time(
        self,
        kernel: int,
        global_size: Sequence[int],
        local_size: Sequence[int],
    ) -> int:
        """
        Launch `kernel`, wait for completion and return its duration in ns.
        """
        cl = self._require_open("enqueue_and_time")
        event = cl.enqueue_nd_range_kernel(self.queue, kernel, global_size, local_size)
        try:
            cl.wait_for_event(event)
            start = cl.get_event_profiling_info(event, CL_PROFILING_COMMAND_START)
            end = cl.get_event_profiling_info(event, CL_PROFILING_COMMAND_END)
        finally:
            cl.release_event(event)
        return end - start

    def read_buffer(self, buffer: DeviceBuffer, host: np.ndarray) -> None:
        """Blocking copy of the whole `buffer` into `host`."""
        cl = self._require_open("read_buffer")
        cl.enqueue_read_buffer(self.queue, buffer.handle, host, buffer.nbytes)

    def release_buffer(self, buffer: DeviceBuffer) -> None:
        cl = self._require_open("release_buffer")
        cl.release_mem_object(buffer.handle)

    def release_kernel(self, kernel: int) -> None:
        cl = self._require_open("release_kernel")
        cl.release_kernel(kernel)
