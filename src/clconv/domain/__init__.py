"""
Backend-agnostic contracts and value objects for clconv.

Nothing in this package touches ctypes or OpenCL; it is safe to depend on from
any layer of the project.
"""

from ._descriptor import ConvolutionDescriptor
from ._errors import (
    ConfigurationError,
    DeviceError,
    DeviceUnavailableError,
    ShapeMismatchError,
)
from ._layer import ILayer
from ._shape import VolumeShape

__all__ = [
    "ConvolutionDescriptor",
    "ConfigurationError",
    "DeviceError",
    "DeviceUnavailableError",
    "ShapeMismatchError",
    "ILayer",
    "VolumeShape",
]
