"""
Forward-path selection.

A layer's `Device` decides whether `forward` runs the NumPy reference path
("cpu") or the OpenCL path ("gpu:N", N indexing devices of the configured
type on the configured platform). No backend resource is touched here.
"""

from enum import Enum
import re


class DeviceType(Enum):
    CPU = "cpu"
    GPU = "gpu"


class Device:
    """
    Parsed device string, "cpu" or "gpu:<index>".

    Raises
    ------
    ValueError
        For any other string.
    """

    __slots__ = ("type", "index")

    _GPU_PATTERN = re.compile(r"^gpu:(\d+)$")

    def __init__(self, device: str):
        if device == "cpu":
            self.type, self.index = DeviceType.CPU, None
            return
        m = self._GPU_PATTERN.match(device)
        if not m:
            raise ValueError(f"device must be 'cpu' or 'gpu:<index>', got {device!r}")
        self.type, self.index = DeviceType.GPU, int(m.group(1))

    def __str__(self) -> str:
        return "cpu" if self.index is None else f"gpu:{self.index}"

    def __repr__(self) -> str:
        return f"Device('{self}')"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Device):
            return NotImplemented
        return (self.type, self.index) == (other.type, other.index)

    def __hash__(self) -> int:
        return hash((self.type, self.index))

    def is_cpu(self) -> bool:
        return self.type is DeviceType.CPU

    def is_gpu(self) -> bool:
        return self.type is DeviceType.GPU
