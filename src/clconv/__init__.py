"""
clconv: forward pass of a 2D convolution layer on the CPU or an OpenCL device.

The public surface is re-exported here; see `clconv.domain` for the
backend-agnostic contracts and `clconv.infrastructure` for the NumPy and
OpenCL implementations.
"""

from .domain import (
    ConfigurationError,
    ConvolutionDescriptor,
    DeviceError,
    DeviceUnavailableError,
    ILayer,
    ShapeMismatchError,
    VolumeShape,
)
from .domain.device import Device, DeviceType, IComputeBackend
from .infrastructure import (
    ConvolutionLayer,
    OpenCLBackend,
    OpenCLConfig,
    create_convolution_layer_from_file,
    load_descriptor,
)

__version__ = "1.0.0"

__all__ = [
    "ConfigurationError",
    "ConvolutionDescriptor",
    "ConvolutionLayer",
    "Device",
    "DeviceError",
    "DeviceType",
    "DeviceUnavailableError",
    "IComputeBackend",
    "ILayer",
    "OpenCLBackend",
    "OpenCLConfig",
    "ShapeMismatchError",
    "VolumeShape",
    "create_convolution_layer_from_file",
    "load_descriptor",
]
