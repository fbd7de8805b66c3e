"""
Convolution layer descriptor.

`ConvolutionDescriptor` is the validated value object a layer is built from:
the input volume shape, the square kernel edge, the number of output feature
maps, and the flattened weight and offset (bias) buffers.

All checks run eagerly in `__post_init__` so that a malformed or
size-mismatched descriptor is rejected before any layer state or device
resource exists. Loaders (XML, JSON) only parse text into the raw fields and
delegate every consistency check to this class.
"""

from __future__ import annotations

from dataclasses import dataclass
from numbers import Integral

import numpy as np

from ._errors import ConfigurationError
from ._shape import VolumeShape


def _check_positive_int(field: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise ConfigurationError(
            field, "must be an integer", expected="int >= 1", actual=value
        )
    if int(value) < 1:
        raise ConfigurationError(
            field, "must be >= 1", expected="int >= 1", actual=int(value)
        )
    return int(value)


def _as_frozen_f32(field: str, values: object, expected_len: int) -> np.ndarray:
    try:
        arr = np.array(values, dtype=np.float32).reshape(-1)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            field, f"values are not numeric ({e})", actual=type(values).__name__
        ) from e

    if arr.size != expected_len:
        raise ConfigurationError(
            field,
            f"expected {expected_len} values, got {arr.size}",
            expected=expected_len,
            actual=int(arr.size),
        )
    # None converts to NaN; overflowing values convert to inf
    if not np.isfinite(arr).all():
        raise ConfigurationError(
            field,
            "values must be finite numbers",
            expected="finite float32",
            actual=arr[~np.isfinite(arr)][:1].tolist(),
        )
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class ConvolutionDescriptor:
    """
    Shape and parameters of a valid-mode, stride-1 convolution layer.

    Attributes
    ----------
    i_width, i_height, i_depth : int
        Input volume shape.
    kernel_size : int
        Edge of the square convolution kernel.
    o_depth : int
        Number of output feature maps.
    weight : np.ndarray
        Read-only float32 buffer laid out
        `[o_depth][i_depth][kernel_size][kernel_size]`.
    offset : np.ndarray
        Read-only float32 bias buffer, one value per output feature map.

    Raises
    ------
    ConfigurationError
        If any shape integer is not a positive integer, if the kernel is
        larger than the input in either spatial dimension, if `weight` /
        `offset` do not have exactly the expected number of elements, or if
        any of their values is missing, non-numeric or not finite.
    """

    i_width: int
    i_height: int
    i_depth: int
    kernel_size: int
    o_depth: int
    weight: np.ndarray
    offset: np.ndarray

    def __post_init__(self) -> None:
        for field in ("i_width", "i_height", "i_depth", "kernel_size", "o_depth"):
            object.__setattr__(
                self, field, _check_positive_int(field, getattr(self, field))
            )

        if self.kernel_size > self.i_width:
            raise ConfigurationError(
                "kernel_size",
                f"kernel ({self.kernel_size}) is wider than the input ({self.i_width})",
                expected=f"<= {self.i_width}",
                actual=self.kernel_size,
            )
        if self.kernel_size > self.i_height:
            raise ConfigurationError(
                "kernel_size",
                f"kernel ({self.kernel_size}) is taller than the input ({self.i_height})",
                expected=f"<= {self.i_height}",
                actual=self.kernel_size,
            )

        object.__setattr__(
            self, "weight", _as_frozen_f32("weight", self.weight, self.weight_size)
        )
        object.__setattr__(
            self, "offset", _as_frozen_f32("offset", self.offset, self.o_depth)
        )

    @property
    def o_width(self) -> int:
        return self.i_width - self.kernel_size + 1

    @property
    def o_height(self) -> int:
        return self.i_height - self.kernel_size + 1

    @property
    def weight_size(self) -> int:
        return self.o_depth * self.i_depth * self.kernel_size * self.kernel_size

    @property
    def weight_shape(self) -> tuple[int, int, int, int]:
        return (self.o_depth, self.i_depth, self.kernel_size, self.kernel_size)

    @property
    def input_shape(self) -> VolumeShape:
        return VolumeShape(self.i_depth, self.i_height, self.i_width)

    @property
    def output_shape(self) -> VolumeShape:
        return VolumeShape(self.o_depth, self.o_height, self.o_width)
