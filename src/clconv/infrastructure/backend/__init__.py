from ._opencl_backend import DeviceBuffer, OpenCLBackend

__all__ = ["DeviceBuffer", "OpenCLBackend"]
