"""
Layer interface definitions.

This module defines the domain-level capability contract shared by layer
variants using structural subtyping via `typing.Protocol`. Any object that
exposes a `forward` method and its input/output shapes can take part in a
feed-forward pipeline, independent of inheritance.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np

from ._shape import VolumeShape


@runtime_checkable
class ILayer(Protocol):
    """
    Domain-level layer interface.

    Notes
    -----
    `forward` returns the layer's own output buffer. The buffer is overwritten
    by the next call, so callers that need to keep a result must copy it.
    """

    @property
    def input_shape(self) -> VolumeShape: ...

    @property
    def output_shape(self) -> VolumeShape: ...

    def forward(self, x: np.ndarray) -> np.ndarray:
        """
        Compute the layer output for one input volume.

        Parameters
        ----------
        x : np.ndarray
            Input volume matching `input_shape`.

        Returns
        -------
        np.ndarray
            Flat output volume matching `output_shape`.
        """
        ...
