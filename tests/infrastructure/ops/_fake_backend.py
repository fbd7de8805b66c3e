from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Union

import numpy as np

from clconv.domain import DeviceError


@dataclass
class FakeBuffer:
    id: int
    nbytes: int
    flags: str
    data: np.ndarray


@dataclass
class FakeKernel:
    name: str
    args: dict[int, Any] = field(default_factory=dict)


class RecordingBackend:
    """
    In-memory `IComputeBackend` that records every call.

    `enqueue_and_time` emulates `forwardGPU` work item by work item over the
    full rounded launch grid, including the padding items that must no-op.
    `fail_on` names one method (or a collection of methods) that raise
    `DeviceError` instead of running; a failed release leaves the object live.
    """

    def __init__(
        self, *, fail_on: Union[str, Iterable[str], None] = None, ticks: int = 1234
    ) -> None:
        if isinstance(fail_on, str):
            fail_on = (fail_on,)
        self.fail_on = frozenset(fail_on or ())
        self.ticks = ticks
        self.calls: list[tuple] = []
        self.buffers: dict[int, FakeBuffer] = {}
        self.live_buffers: set[int] = set()
        self.live_kernels: list[FakeKernel] = []
        self.opened = 0
        self.closed = 0
        self._next_id = 0

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail_on:
            raise DeviceError(op, -5, "CL_OUT_OF_RESOURCES")

    def open(self):
        self.opened += 1
        return self

    def close(self) -> None:
        self.closed += 1

    def _new_buffer(self, nbytes: int, flags: str, data: np.ndarray) -> FakeBuffer:
        self._next_id += 1
        buf = FakeBuffer(self._next_id, nbytes, flags, data)
        self.buffers[buf.id] = buf
        self.live_buffers.add(buf.id)
        return buf

    def create_read_only_buffer(self, host: np.ndarray) -> FakeBuffer:
        self.calls.append(("create_read_only_buffer", host.nbytes))
        self._maybe_fail("create_read_only_buffer")
        return self._new_buffer(host.nbytes, "r", np.array(host, copy=True))

    def create_write_only_buffer(self, nbytes: int) -> FakeBuffer:
        self.calls.append(("create_write_only_buffer", nbytes))
        self._maybe_fail("create_write_only_buffer")
        # garbage content: the kernel must write every real output element
        data = np.full(nbytes // 4, -7.0, dtype=np.float32)
        return self._new_buffer(nbytes, "w", data)

    def lookup_kernel(self, name: str) -> FakeKernel:
        self.calls.append(("lookup_kernel", name))
        self._maybe_fail("lookup_kernel")
        kernel = FakeKernel(name)
        self.live_kernels.append(kernel)
        return kernel

    def set_kernel_arg(self, kernel: FakeKernel, index: int, value: Any) -> None:
        self.calls.append(("set_kernel_arg", index, value))
        self._maybe_fail("set_kernel_arg")
        kernel.args[index] = value

    def enqueue_and_time(self, kernel: FakeKernel, global_size, local_size) -> int:
        self.calls.append(("enqueue_and_time", tuple(global_size), tuple(local_size)))
        self._maybe_fail("enqueue_and_time")
        self._emulate_forward(kernel, tuple(global_size))
        return self.ticks

    def read_buffer(self, buffer: FakeBuffer, host: np.ndarray) -> None:
        self.calls.append(("read_buffer", buffer.id, host.nbytes))
        self._maybe_fail("read_buffer")
        host[...] = buffer.data.reshape(host.shape)

    def release_buffer(self, buffer: FakeBuffer) -> None:
        self.calls.append(("release_buffer", buffer.id))
        self._maybe_fail("release_buffer")
        self.live_buffers.discard(buffer.id)

    def release_kernel(self, kernel: FakeKernel) -> None:
        self.calls.append(("release_kernel", kernel.name))
        self._maybe_fail("release_kernel")
        self.live_kernels.remove(kernel)

    def _emulate_forward(self, kernel: FakeKernel, global_size: tuple[int, int]) -> None:
        a = kernel.args
        x, w, b, out = (a[i].data for i in range(4))
        i_width, i_height, i_depth, o_width, o_height, o_depth, k = (
            int(a[i]) for i in range(4, 11)
        )
        for flat in range(global_size[1]):
            o, r = divmod(flat, o_height)
            for c in range(global_size[0]):
                if c >= o_width or o >= o_depth:
                    continue
                acc = 0.0
                for i in range(i_depth):
                    patch = x[
                        i * i_width * i_height : (i + 1) * i_width * i_height
                    ].reshape(i_height, i_width)[r : r + k, c : c + k]
                    base = (o * i_depth + i) * k * k
                    acc += float(np.dot(patch.reshape(-1), w[base : base + k * k]))
                out[(o * o_height + r) * o_width + c] = 1.0 / (
                    1.0 + np.exp(-(acc + b[o]))
                )
