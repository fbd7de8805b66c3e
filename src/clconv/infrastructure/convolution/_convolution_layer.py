"""
Convolution layer implementation for clconv.

`ConvolutionLayer` is the user-facing object that owns a validated
`ConvolutionDescriptor`, the output volume and the window scratch buffer, and
routes `forward` calls to either the CPU reference kernel or the OpenCL
dispatch engine.

Design overview
---------------
- Parameters are validated eagerly: any shape or size problem raises
  `ConfigurationError` from the constructor, never from the first forward.
- Device resources are acquired lazily on the first device-path call and
  kept for the lifetime of the layer; `close()` (or leaving a `with` block)
  releases them deterministically.
- A caller-supplied backend is used as-is and is never closed by the layer.

Concurrency
-----------
`output` and `input_buffer` are mutable state owned by the instance with no
synchronization. Concurrent `forward` calls on the same layer are unsafe;
callers must serialize them per instance.

Example
-------
>>> layer = ConvolutionLayer(3, 3, 1, 2, 1, weight=[1, 0, 0, 1], offset=[0])
>>> y = layer.forward(np.arange(1, 10, dtype=np.float32))
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import numpy as np
from typing_extensions import Self

from ...domain._descriptor import ConvolutionDescriptor
from ...domain._shape import VolumeShape
from ...domain.device._backend_protocol import IComputeBackend
from ...domain.device._device import Device
from .._config import OpenCLConfig
from ..backend._opencl_backend import OpenCLBackend
from ..descriptor._descriptor_io import load_descriptor
from ..ops.conv2d_cpu import conv2d_forward_cpu
from ..ops.conv2d_opencl import conv2d_forward_opencl

logger = logging.getLogger(__name__)


class ConvolutionLayer:
    """
    Valid-mode, stride-1 2D convolution followed by sigmoid activation.

    Parameters
    ----------
    i_width, i_height, i_depth : int
        Input volume shape.
    kernel_size : int
        Edge of the square kernel; must not exceed `i_width` or `i_height`.
    o_depth : int
        Number of output feature maps.
    weight : array-like
        `o_depth * i_depth * kernel_size**2` values, flat or nested as
        `[o_depth][i_depth][kernel_size][kernel_size]`.
    offset : array-like
        `o_depth` bias values.
    device : Device or str, optional
        "cpu" (default) or "gpu:<index>"; selects the path taken by `forward`.
    config : OpenCLConfig, optional
        OpenCL settings used when the layer creates its own backend.
        Defaults to `OpenCLConfig.from_env()` at first device use.
    backend : IComputeBackend, optional
        Externally owned backend to use for the device path.

    Attributes
    ----------
    descriptor : ConvolutionDescriptor
        Validated, immutable layer parameters.
    output : np.ndarray
        Flat float32 output volume, overwritten by every forward call.
    input_buffer : np.ndarray
        `kernel_size**2` scratch window used by the CPU path.
    last_kernel_ticks : Optional[int]
        Duration of the most recent device kernel, in nanoseconds.

    Raises
    ------
    ConfigurationError
        If the parameters are inconsistent.
    """

    def __init__(
        self,
        i_width: int,
        i_height: int,
        i_depth: int,
        kernel_size: int,
        o_depth: int,
        weight: Any,
        offset: Any,
        *,
        device: Device | str = "cpu",
        config: Optional[OpenCLConfig] = None,
        backend: Optional[IComputeBackend] = None,
    ) -> None:
        self.descriptor = ConvolutionDescriptor(
            i_width=i_width,
            i_height=i_height,
            i_depth=i_depth,
            kernel_size=kernel_size,
            o_depth=o_depth,
            weight=weight,
            offset=offset,
        )
        self.device = device if isinstance(device, Device) else Device(device)
        self.config = config

        d = self.descriptor
        self.i_width, self.i_height, self.i_depth = d.i_width, d.i_height, d.i_depth
        self.o_width, self.o_height, self.o_depth = d.o_width, d.o_height, d.o_depth
        self.kernel_size = d.kernel_size

        self.output = np.zeros(d.output_shape.size, dtype=np.float32)
        self.input_buffer = np.zeros(d.kernel_size * d.kernel_size, dtype=np.float32)
        self.last_kernel_ticks: Optional[int] = None

        self._backend: Optional[IComputeBackend] = backend
        self._owns_backend = backend is None

    @classmethod
    def from_descriptor(cls, descriptor: ConvolutionDescriptor, **kwargs: Any) -> Self:
        """Build a layer from an already validated descriptor."""
        return cls(
            descriptor.i_width,
            descriptor.i_height,
            descriptor.i_depth,
            descriptor.kernel_size,
            descriptor.o_depth,
            descriptor.weight,
            descriptor.offset,
            **kwargs,
        )

    @property
    def weight(self) -> np.ndarray:
        return self.descriptor.weight

    @property
    def offset(self) -> np.ndarray:
        return self.descriptor.offset

    @property
    def input_shape(self) -> VolumeShape:
        return self.descriptor.input_shape

    @property
    def output_shape(self) -> VolumeShape:
        return self.descriptor.output_shape

    def output_volume(self) -> np.ndarray:
        """View of `output` shaped `(o_depth, o_height, o_width)`."""
        return self.output.reshape(self.output_shape.as_tuple())

    def _shape_kwargs(self) -> dict[str, int]:
        return dict(
            i_width=self.i_width,
            i_height=self.i_height,
            i_depth=self.i_depth,
            o_width=self.o_width,
            o_height=self.o_height,
            o_depth=self.o_depth,
            kernel_size=self.kernel_size,
        )

    # ------------------------------------------------------------------
    # Forward paths
    # ------------------------------------------------------------------

    def forward(self, x: Any) -> np.ndarray:
        """
        Compute the layer output on the layer's device.

        Returns
        -------
        np.ndarray
            `output` (flat), overwritten by the next call.
        """
        if self.device.is_gpu():
            return self.forward_gpu(x)
        return self.forward_cpu(x)

    def forward_cpu(self, x: Any) -> np.ndarray:
        """
        Compute the layer output with the CPU reference kernel.

        Raises
        ------
        ShapeMismatchError
            If `x` does not match `input_shape`.
        """
        x = self.input_shape.check(x)
        conv2d_forward_cpu(
            x,
            self.weight,
            self.offset,
            self.output,
            self.input_buffer,
            **self._shape_kwargs(),
        )
        return self.output

    def forward_gpu(self, x: Any) -> np.ndarray:
        """
        Compute the layer output on the OpenCL device.

        The backend is opened on first use and reused afterwards.

        Raises
        ------
        ShapeMismatchError
            If `x` does not match `input_shape`.
        DeviceError
            If any device call fails; `output` contents are then unspecified.
        """
        x = self.input_shape.check(x)
        backend = self._acquire_backend()
        self.last_kernel_ticks = conv2d_forward_opencl(
            backend,
            x=x,
            weight=self.weight,
            offset=self.offset,
            y=self.output,
            **self._shape_kwargs(),
        )
        return self.output

    # ------------------------------------------------------------------
    # Device resource lifecycle
    # ------------------------------------------------------------------

    def _acquire_backend(self) -> IComputeBackend:
        if self._backend is None:
            index = self.device.index if self.device.index is not None else 0
            self._backend = OpenCLBackend(self.config, device_index=index)
            logger.debug("created OpenCL backend for %s", self.device)
        self._backend.open()
        return self._backend

    def close(self) -> None:
        """Release device resources owned by this layer (idempotent)."""
        if self._backend is not None and self._owns_backend:
            backend, self._backend = self._backend, None
            backend.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"ConvolutionLayer(input={self.input_shape.as_tuple()}, "
            f"kernel_size={self.kernel_size}, output={self.output_shape.as_tuple()}, "
            f"device='{self.device}')"
        )


def create_convolution_layer_from_file(path: str | Path, **kwargs: Any) -> ConvolutionLayer:
    """
    Load a descriptor file (`.xml` or `.json`) and build a layer from it.

    Extra keyword arguments (`device`, `config`, `backend`) are forwarded to
    `ConvolutionLayer`.

    Raises
    ------
    ConfigurationError
        If the file is malformed or its sizes are inconsistent.
    """
    return ConvolutionLayer.from_descriptor(load_descriptor(path), **kwargs)
