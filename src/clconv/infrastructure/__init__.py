from ._config import OpenCLConfig
from .backend import DeviceBuffer, OpenCLBackend
from .convolution import ConvolutionLayer, create_convolution_layer_from_file
from .descriptor import load_descriptor

__all__ = [
    "OpenCLConfig",
    "DeviceBuffer",
    "OpenCLBackend",
    "ConvolutionLayer",
    "create_convolution_layer_from_file",
    "load_descriptor",
]
