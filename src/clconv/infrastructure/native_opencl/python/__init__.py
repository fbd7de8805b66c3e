from ._native_loader import load_opencl_library
from ._status import readable_status, status_name
from .opencl_ctypes import OpenCLLib

__all__ = ["load_opencl_library", "readable_status", "status_name", "OpenCLLib"]
