"""
CPU reference convolution kernel for clconv.

This module provides the reference implementation of the valid-mode,
stride-1 convolution forward pass followed by the sigmoid activation. The
kernel is intentionally written with explicit loops over output maps, input
maps and output positions, so the accumulation order is fixed and results are
reproducible bit-for-bit.

Tensor layout
-------------
All buffers are flat, C-contiguous float32 arrays:

- input:  [i_depth][i_height][i_width]
- weight: [o_depth][i_depth][kernel_size][kernel_size]
- offset: [o_depth]
- output: [o_depth][o_height][o_width]

Non-goals
---------
- High performance (no im2col, GEMM, or vectorization across positions)
- Padding, stride, dilation or batching
"""

from __future__ import annotations

import numpy as np


def sigmoid(x: np.ndarray | np.floating) -> np.ndarray:
    """
    Elementwise logistic activation `1 / (1 + exp(-x))` in float32.

    Only defined for finite inputs; no overflow guarding is performed.
    """
    one = np.float32(1.0)
    return one / (one + np.exp(-np.asarray(x, dtype=np.float32)))


def output_index(o: int, r: int, c: int, *, o_width: int, o_height: int) -> int:
    """Flat index of output element `[o][r][c]`."""
    return o * o_width * o_height + r * o_width + c


def weight_base(i: int, o: int, *, i_depth: int, kernel_size: int) -> int:
    """Flat index of the first weight of the `[o][i]` kernel slice."""
    return (o * i_depth + i) * kernel_size * kernel_size


def gather_window(
    window: np.ndarray,
    x: np.ndarray,
    i: int,
    r: int,
    c: int,
    *,
    i_width: int,
    i_height: int,
    kernel_size: int,
) -> np.ndarray:
    """
    Copy the `kernel_size x kernel_size` window of input map `i` anchored at
    `(r, c)` into `window`.

    The window is filled row-major: `window[dx * kernel_size + dy]` holds
    `x[i][r + dx][c + dy]`.
    """
    idx = 0
    plane = i * i_width * i_height
    for dx in range(kernel_size):
        row = plane + (r + dx) * i_width + c
        window[idx : idx + kernel_size] = x[row : row + kernel_size]
        idx += kernel_size
    return window


def window_dot(weight: np.ndarray, base: int, window: np.ndarray) -> np.float32:
    """Dot product of `window` with `weight[base : base + window.size]`."""
    return np.float32(np.dot(weight[base : base + window.size], window))


def conv2d_forward_cpu(
    x: np.ndarray,
    weight: np.ndarray,
    offset: np.ndarray,
    y: np.ndarray,
    window: np.ndarray,
    *,
    i_width: int,
    i_height: int,
    i_depth: int,
    o_width: int,
    o_height: int,
    o_depth: int,
    kernel_size: int,
) -> np.ndarray:
    """
    Compute the convolution forward pass into `y` (CPU, NumPy).

    Parameters
    ----------
    x : np.ndarray
        Flat input volume, length `i_depth * i_height * i_width`.
    weight : np.ndarray
        Flat weights, length `o_depth * i_depth * kernel_size**2`.
    offset : np.ndarray
        Bias per output feature map, length `o_depth`.
    y : np.ndarray
        Flat output buffer, length `o_depth * o_height * o_width`. Cleared and
        overwritten in place.
    window : np.ndarray
        Scratch buffer of length `kernel_size**2`, overwritten for every
        output position.
    i_width, i_height, i_depth : int
        Input volume shape.
    o_width, o_height, o_depth : int
        Output volume shape.
    kernel_size : int
        Square kernel edge.

    Returns
    -------
    np.ndarray
        `y`, for convenience.

    Notes
    -----
    For every output map `o`, contributions of all input maps are summed
    before the activation is applied:

        y[o][r][c] = sigmoid(sum_i dot(window_i(r, c), weight[o][i]) + offset[o])
    """
    y.fill(0.0)

    for o in range(o_depth):
        for i in range(i_depth):
            base = weight_base(i, o, i_depth=i_depth, kernel_size=kernel_size)
            for r in range(o_height):
                for c in range(o_width):
                    gather_window(
                        window,
                        x,
                        i,
                        r,
                        c,
                        i_width=i_width,
                        i_height=i_height,
                        kernel_size=kernel_size,
                    )
                    y[output_index(o, r, c, o_width=o_width, o_height=o_height)] += (
                        window_dot(weight, base, window)
                    )

        # Activation over the whole feature map once every input map is summed.
        start = output_index(o, 0, 0, o_width=o_width, o_height=o_height)
        stop = start + o_width * o_height
        y[start:stop] = sigmoid(y[start:stop] + offset[o])

    return y
