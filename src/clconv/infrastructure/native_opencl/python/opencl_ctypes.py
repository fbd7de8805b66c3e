"""
ctypes bindings for the OpenCL 1.2 C API.

This module provides thin wrappers around the OpenCL entry points clconv
needs: platform/device discovery, context and profiling command queue
creation, program build from source, buffers, kernels, NDRange launch with
profiling events, blocking reads and the matching release calls.

Design goals
------------
- Keep Python overhead low: no data marshaling beyond pointer casts and
  scalar arguments.
- Fail fast: any non-`CL_SUCCESS` status raises `DeviceError` naming the
  failing call and the readable status.
- Bind argtypes/restype once per library handle (idempotent).

Notes
-----
- OpenCL handles (`cl_platform_id`, `cl_context`, `cl_mem`, ...) are opaque
  pointers represented as Python ints.
- Host arrays passed to buffers must be C-contiguous; this module does not
  copy them.
"""

from __future__ import annotations

import ctypes
from ctypes import (
    POINTER,
    byref,
    c_char_p,
    c_int32,
    c_size_t,
    c_ssize_t,
    c_uint32,
    c_uint64,
    c_void_p,
)
from typing import Any, Optional, Sequence

import numpy as np

from ....domain._errors import DeviceError, DeviceUnavailableError
from ._status import CL_SUCCESS, status_name

cl_int = c_int32
cl_uint = c_uint32
cl_ulong = c_uint64
cl_bitfield = c_uint64

Handle = int

# cl_device_type
CL_DEVICE_TYPE_DEFAULT = 1 << 0
CL_DEVICE_TYPE_CPU = 1 << 1
CL_DEVICE_TYPE_GPU = 1 << 2
CL_DEVICE_TYPE_ACCELERATOR = 1 << 3
CL_DEVICE_TYPE_ALL = 0xFFFFFFFF

# cl_platform_info / cl_device_info
CL_PLATFORM_NAME = 0x0902
CL_DEVICE_NAME = 0x102B

# cl_context_properties
CL_CONTEXT_PLATFORM = 0x1084

# cl_command_queue_properties
CL_QUEUE_PROFILING_ENABLE = 1 << 1

# cl_mem_flags
CL_MEM_READ_WRITE = 1 << 0
CL_MEM_WRITE_ONLY = 1 << 1
CL_MEM_READ_ONLY = 1 << 2
CL_MEM_COPY_HOST_PTR = 1 << 5

# cl_program_build_info
CL_PROGRAM_BUILD_LOG = 0x1183

# cl_profiling_info
CL_PROFILING_COMMAND_START = 0x1282
CL_PROFILING_COMMAND_END = 0x1283

CL_TRUE = 1
CL_FALSE = 0


def _check(op: str, status: int, detail: str = "") -> None:
    """Raise `DeviceError` unless `status` is `CL_SUCCESS`."""
    if int(status) != CL_SUCCESS:
        raise DeviceError(op, int(status), status_name(int(status)), detail)


class OpenCLLib:
    """
    Thin binding layer around a loaded OpenCL runtime library.

    Parameters
    ----------
    lib : ctypes.CDLL
        Loaded OpenCL library handle (see `load_opencl_library`).

    Notes
    -----
    This class does not own any OpenCL object; callers release what they
    create through the matching `release_*` method.
    """

    def __init__(self, lib: ctypes.CDLL) -> None:
        self.lib = lib
        self._bound = False

    def _bind(self) -> None:
        """
        Bind argtypes/restype for every entry point used (idempotent).

        Raises
        ------
        DeviceUnavailableError
            If the loaded library does not export the OpenCL API (e.g. a
            vendor ICD or an unrelated shared object).
        """
        if self._bound:
            return
        try:
            self._bind_entry_points()
        except AttributeError as e:
            raise DeviceUnavailableError(
                "load_opencl_library",
                detail=f"library does not export the OpenCL 1.2 API ({e})",
            ) from e

    def _bind_entry_points(self) -> None:
        lib = self.lib

        lib.clGetPlatformIDs.argtypes = [cl_uint, POINTER(c_void_p), POINTER(cl_uint)]
        lib.clGetPlatformIDs.restype = cl_int

        lib.clGetPlatformInfo.argtypes = [
            c_void_p,
            cl_uint,
            c_size_t,
            c_void_p,
            POINTER(c_size_t),
        ]
        lib.clGetPlatformInfo.restype = cl_int

        lib.clGetDeviceIDs.argtypes = [
            c_void_p,  # platform
            cl_bitfield,  # device type
            cl_uint,
            POINTER(c_void_p),
            POINTER(cl_uint),
        ]
        lib.clGetDeviceIDs.restype = cl_int

        lib.clGetDeviceInfo.argtypes = [
            c_void_p,
            cl_uint,
            c_size_t,
            c_void_p,
            POINTER(c_size_t),
        ]
        lib.clGetDeviceInfo.restype = cl_int

        lib.clCreateContext.argtypes = [
            POINTER(c_ssize_t),  # properties
            cl_uint,
            POINTER(c_void_p),  # devices
            c_void_p,  # pfn_notify
            c_void_p,  # user_data
            POINTER(cl_int),
        ]
        lib.clCreateContext.restype = c_void_p

        lib.clCreateCommandQueue.argtypes = [
            c_void_p,
            c_void_p,
            cl_bitfield,
            POINTER(cl_int),
        ]
        lib.clCreateCommandQueue.restype = c_void_p

        lib.clCreateProgramWithSource.argtypes = [
            c_void_p,
            cl_uint,
            POINTER(c_char_p),
            POINTER(c_size_t),
            POINTER(cl_int),
        ]
        lib.clCreateProgramWithSource.restype = c_void_p

        lib.clBuildProgram.argtypes = [
            c_void_p,
            cl_uint,
            POINTER(c_void_p),
            c_char_p,
            c_void_p,
            c_void_p,
        ]
        lib.clBuildProgram.restype = cl_int

        lib.clGetProgramBuildInfo.argtypes = [
            c_void_p,
            c_void_p,
            cl_uint,
            c_size_t,
            c_void_p,
            POINTER(c_size_t),
        ]
        lib.clGetProgramBuildInfo.restype = cl_int

        lib.clCreateBuffer.argtypes = [
            c_void_p,
            cl_bitfield,
            c_size_t,
            c_void_p,
            POINTER(cl_int),
        ]
        lib.clCreateBuffer.restype = c_void_p

        lib.clCreateKernel.argtypes = [c_void_p, c_char_p, POINTER(cl_int)]
        lib.clCreateKernel.restype = c_void_p

        lib.clSetKernelArg.argtypes = [c_void_p, cl_uint, c_size_t, c_void_p]
        lib.clSetKernelArg.restype = cl_int

        lib.clEnqueueNDRangeKernel.argtypes = [
            c_void_p,  # queue
            c_void_p,  # kernel
            cl_uint,  # work_dim
            POINTER(c_size_t),  # global offset
            POINTER(c_size_t),  # global size
            POINTER(c_size_t),  # local size
            cl_uint,
            POINTER(c_void_p),
            POINTER(c_void_p),  # event out
        ]
        lib.clEnqueueNDRangeKernel.restype = cl_int

        lib.clWaitForEvents.argtypes = [cl_uint, POINTER(c_void_p)]
        lib.clWaitForEvents.restype = cl_int

        lib.clGetEventProfilingInfo.argtypes = [
            c_void_p,
            cl_uint,
            c_size_t,
            c_void_p,
            POINTER(c_size_t),
        ]
        lib.clGetEventProfilingInfo.restype = cl_int

        lib.clEnqueueReadBuffer.argtypes = [
            c_void_p,  # queue
            c_void_p,  # buffer
            cl_uint,  # blocking
            c_size_t,  # offset
            c_size_t,  # size
            c_void_p,  # host ptr
            cl_uint,
            POINTER(c_void_p),
            POINTER(c_void_p),
        ]
        lib.clEnqueueReadBuffer.restype = cl_int

        lib.clFinish.argtypes = [c_void_p]
        lib.clFinish.restype = cl_int

        for name in (
            "clReleaseMemObject",
            "clReleaseKernel",
            "clReleaseProgram",
            "clReleaseCommandQueue",
            "clReleaseContext",
            "clReleaseEvent",
        ):
            fn = getattr(lib, name)
            fn.argtypes = [c_void_p]
            fn.restype = cl_int

        self._bound = True

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def get_platform_ids(self) -> list[Handle]:
        """Return every available platform id (empty if there are none)."""
        self._bind()
        count = cl_uint(0)
        st = self.lib.clGetPlatformIDs(0, None, byref(count))
        # ICD loaders report "no platform" as CL_PLATFORM_NOT_FOUND_KHR.
        if st == -1001 or (st == CL_SUCCESS and count.value == 0):
            return []
        _check("clGetPlatformIDs", st)

        ids = (c_void_p * count.value)()
        _check("clGetPlatformIDs", self.lib.clGetPlatformIDs(count.value, ids, None))
        return [int(p) for p in ids if p]

    def get_device_ids(self, platform: Handle, device_type: int) -> list[Handle]:
        """Return the ids of devices of `device_type` on `platform`."""
        self._bind()
        count = cl_uint(0)
        st = self.lib.clGetDeviceIDs(platform, device_type, 0, None, byref(count))
        if st == -1:  # CL_DEVICE_NOT_FOUND
            return []
        _check("clGetDeviceIDs", st)

        ids = (c_void_p * count.value)()
        _check(
            "clGetDeviceIDs",
            self.lib.clGetDeviceIDs(platform, device_type, count.value, ids, None),
        )
        return [int(d) for d in ids if d]

    def _get_info_str(self, fn_name: str, handle: Handle, param: int) -> str:
        fn = getattr(self.lib, fn_name)
        size = c_size_t(0)
        _check(fn_name, fn(handle, param, 0, None, byref(size)))
        buf = ctypes.create_string_buffer(size.value)
        _check(fn_name, fn(handle, param, size.value, buf, None))
        return buf.value.decode("utf-8", errors="replace")

    def get_platform_name(self, platform: Handle) -> str:
        self._bind()
        return self._get_info_str("clGetPlatformInfo", platform, CL_PLATFORM_NAME)

    def get_device_name(self, device: Handle) -> str:
        self._bind()
        return self._get_info_str("clGetDeviceInfo", device, CL_DEVICE_NAME)

    # ------------------------------------------------------------------
    # Context / queue / program
    # ------------------------------------------------------------------

    def create_context(self, platform: Handle, device: Handle) -> Handle:
        """Create a context for a single device of `platform`."""
        self._bind()
        props = (c_ssize_t * 3)(CL_CONTEXT_PLATFORM, platform, 0)
        devices = (c_void_p * 1)(device)
        err = cl_int(0)
        ctx = self.lib.clCreateContext(props, 1, devices, None, None, byref(err))
        _check("clCreateContext", err.value)
        return int(ctx)

    def create_command_queue(
        self, context: Handle, device: Handle, properties: int
    ) -> Handle:
        self._bind()
        err = cl_int(0)
        q = self.lib.clCreateCommandQueue(context, device, properties, byref(err))
        _check("clCreateCommandQueue", err.value)
        return int(q)

    def create_program_with_source(self, context: Handle, source: str) -> Handle:
        self._bind()
        src = source.encode("utf-8")
        strings = (c_char_p * 1)(src)
        lengths = (c_size_t * 1)(len(src))
        err = cl_int(0)
        prog = self.lib.clCreateProgramWithSource(
            context, 1, strings, lengths, byref(err)
        )
        _check("clCreateProgramWithSource", err.value)
        return int(prog)

    def get_program_build_log(self, program: Handle, device: Handle) -> str:
        self._bind()
        size = c_size_t(0)
        _check(
            "clGetProgramBuildInfo",
            self.lib.clGetProgramBuildInfo(
                program, device, CL_PROGRAM_BUILD_LOG, 0, None, byref(size)
            ),
        )
        buf = ctypes.create_string_buffer(size.value)
        _check(
            "clGetProgramBuildInfo",
            self.lib.clGetProgramBuildInfo(
                program, device, CL_PROGRAM_BUILD_LOG, size.value, buf, None
            ),
        )
        return buf.value.decode("utf-8", errors="replace")

    def build_program(self, program: Handle, device: Handle, options: str = "") -> None:
        """
        Build `program` for `device`.

        Raises
        ------
        DeviceError
            On build failure; the compiler build log is attached to the
            message when it can be retrieved.
        """
        self._bind()
        devices = (c_void_p * 1)(device)
        st = self.lib.clBuildProgram(
            program, 1, devices, options.encode("utf-8"), None, None
        )
        if st != CL_SUCCESS:
            try:
                log = self.get_program_build_log(program, device)
            except DeviceError:
                log = ""
            _check("clBuildProgram", st, log.strip())

    # ------------------------------------------------------------------
    # Buffers / kernels
    # ------------------------------------------------------------------

    def create_buffer(
        self,
        context: Handle,
        flags: int,
        nbytes: int,
        host: Optional[np.ndarray] = None,
    ) -> Handle:
        """
        Create a device buffer of `nbytes` bytes.

        When `host` is given it must be C-contiguous and `flags` should include
        `CL_MEM_COPY_HOST_PTR`.
        """
        self._bind()
        host_ptr = None
        if host is not None:
            if not host.flags["C_CONTIGUOUS"]:
                raise ValueError("host buffer must be C-contiguous")
            host_ptr = host.ctypes.data_as(c_void_p)
        err = cl_int(0)
        mem = self.lib.clCreateBuffer(
            context, flags, c_size_t(int(nbytes)), host_ptr, byref(err)
        )
        _check("clCreateBuffer", err.value)
        return int(mem)

    def create_kernel(self, program: Handle, name: str) -> Handle:
        self._bind()
        err = cl_int(0)
        k = self.lib.clCreateKernel(program, name.encode("ascii"), byref(err))
        _check("clCreateKernel", err.value, f"kernel name: {name!r}")
        return int(k)

    def set_kernel_arg(self, kernel: Handle, index: int, size: int, value: Any) -> None:
        """Bind argument `index` from a ctypes object holding `size` bytes."""
        self._bind()
        _check(
            "clSetKernelArg",
            self.lib.clSetKernelArg(
                kernel, index, size, ctypes.addressof(value)
            ),
            f"argument index: {index}",
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def enqueue_nd_range_kernel(
        self,
        queue: Handle,
        kernel: Handle,
        global_size: Sequence[int],
        local_size: Sequence[int],
    ) -> Handle:
        """Enqueue `kernel` and return the completion event handle."""
        self._bind()
        dims = len(global_size)
        g = (c_size_t * dims)(*[int(v) for v in global_size])
        lsz = (c_size_t * dims)(*[int(v) for v in local_size])
        event = c_void_p(0)
        _check(
            "clEnqueueNDRangeKernel",
            self.lib.clEnqueueNDRangeKernel(
                queue, kernel, dims, None, g, lsz, 0, None, byref(event)
            ),
        )
        return int(event.value or 0)

    def wait_for_event(self, event: Handle) -> None:
        self._bind()
        events = (c_void_p * 1)(event)
        _check("clWaitForEvents", self.lib.clWaitForEvents(1, events))

    def get_event_profiling_info(self, event: Handle, param: int) -> int:
        self._bind()
        value = cl_ulong(0)
        _check(
            "clGetEventProfilingInfo",
            self.lib.clGetEventProfilingInfo(
                event, param, ctypes.sizeof(value), byref(value), None
            ),
        )
        return int(value.value)

    def enqueue_read_buffer(
        self,
        queue: Handle,
        buffer: Handle,
        host: np.ndarray,
        nbytes: int,
        *,
        blocking: bool = True,
    ) -> None:
        """Copy `nbytes` from the start of `buffer` into `host`."""
        self._bind()
        if not host.flags["C_CONTIGUOUS"] or not host.flags["WRITEABLE"]:
            raise ValueError("host buffer must be C-contiguous and writeable")
        if int(nbytes) > int(host.nbytes):
            raise ValueError(
                f"host buffer too small: need {nbytes} bytes, have {host.nbytes}"
            )
        _check(
            "clEnqueueReadBuffer",
            self.lib.clEnqueueReadBuffer(
                queue,
                buffer,
                CL_TRUE if blocking else CL_FALSE,
                0,
                c_size_t(int(nbytes)),
                host.ctypes.data_as(c_void_p),
                0,
                None,
                None,
            ),
        )

    def finish(self, queue: Handle) -> None:
        self._bind()
        _check("clFinish", self.lib.clFinish(queue))

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    def _release(self, fn_name: str, handle: Handle) -> None:
        self._bind()
        if not handle:
            return
        _check(fn_name, getattr(self.lib, fn_name)(handle))

    def release_mem_object(self, mem: Handle) -> None:
        self._release("clReleaseMemObject", mem)

    def release_kernel(self, kernel: Handle) -> None:
        self._release("clReleaseKernel", kernel)

    def release_program(self, program: Handle) -> None:
        self._release("clReleaseProgram", program)

    def release_command_queue(self, queue: Handle) -> None:
        self._release("clReleaseCommandQueue", queue)

    def release_context(self, context: Handle) -> None:
        self._release("clReleaseContext", context)

    def release_event(self, event: Handle) -> None:
        self._release("clReleaseEvent", event)


def device_type_mask(name: str) -> int:
    """
    Map a device-type name to its `cl_device_type` bitmask.

    Raises
    ------
    ValueError
        For names other than gpu, cpu, accelerator, default, all.
    """
    masks = {
        "gpu": CL_DEVICE_TYPE_GPU,
        "cpu": CL_DEVICE_TYPE_CPU,
        "accelerator": CL_DEVICE_TYPE_ACCELERATOR,
        "default": CL_DEVICE_TYPE_DEFAULT,
        "all": CL_DEVICE_TYPE_ALL,
    }
    try:
        return masks[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown OpenCL device type {name!r}; expected one of {sorted(masks)}"
        ) from None
