"""
Explicit volume shapes.

Volumes are stored as flat float32 buffers; their logical
`[depth][height][width]` layout is carried by a `VolumeShape` owned by the
layer and checked at every boundary rather than embedded in the buffer.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from ._errors import ConfigurationError, ShapeMismatchError


@dataclass(frozen=True)
class VolumeShape:
    """
    Immutable `[depth][height][width]` shape of a flat volume buffer.

    Attributes
    ----------
    depth : int
        Number of feature maps.
    height : int
        Rows per feature map.
    width : int
        Columns per feature map.
    """

    depth: int
    height: int
    width: int

    @property
    def size(self) -> int:
        """Number of elements in a volume of this shape."""
        return self.depth * self.height * self.width

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.depth, self.height, self.width)

    def check(self, x: object, name: str = "input") -> np.ndarray:
        """
        Validate a volume against this shape and return it flat.

        Parameters
        ----------
        x : array-like
            Either a flat sequence of `size` values or an array shaped
            `(depth, height, width)`.
        name : str
            Name used in the error message.

        Returns
        -------
        np.ndarray
            Flat, C-contiguous float32 array of length `size`.

        Raises
        ------
        ShapeMismatchError
            If `x` has any other shape.
        ConfigurationError
            If `x` is not convertible to float32.
        """
        try:
            arr = np.asarray(x, dtype=np.float32)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                name, f"values are not numeric ({e})", actual=type(x).__name__
            ) from e
        if arr.shape not in ((self.size,), self.as_tuple()):
            raise ShapeMismatchError(
                name, expected=(self.size,), actual=tuple(arr.shape)
            )
        return np.ascontiguousarray(arr.reshape(-1))
