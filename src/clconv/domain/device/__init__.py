from ._backend_protocol import IComputeBackend
from ._device import Device, DeviceType

__all__ = ["IComputeBackend", "Device", "DeviceType"]
