import unittest

import numpy as np

from clconv.infrastructure import OpenCLBackend, OpenCLConfig
from clconv.infrastructure.ops.conv2d_cpu import conv2d_forward_cpu
from clconv.infrastructure.ops.conv2d_opencl import conv2d_forward_opencl

from .._opencl_test_utils import skip_without_opencl
from ._reference import random_case


@skip_without_opencl
class TestConv2dOpenclDevice(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.backend = OpenCLBackend(OpenCLConfig.from_env()).open()

    @classmethod
    def tearDownClass(cls) -> None:
        cls.backend.close()

    def _both(self, *, i_width, i_height, i_depth, kernel_size, o_depth, seed=0):
        rng = np.random.default_rng(seed)
        x, w, b = random_case(
            rng,
            i_width=i_width,
            i_height=i_height,
            i_depth=i_depth,
            kernel_size=kernel_size,
            o_depth=o_depth,
        )
        o_width = i_width - kernel_size + 1
        o_height = i_height - kernel_size + 1
        shape = dict(
            i_width=i_width,
            i_height=i_height,
            i_depth=i_depth,
            o_width=o_width,
            o_height=o_height,
            o_depth=o_depth,
            kernel_size=kernel_size,
        )
        y_cpu = np.zeros(o_depth * o_height * o_width, dtype=np.float32)
        conv2d_forward_cpu(
            x, w, b, y_cpu, np.zeros(kernel_size**2, dtype=np.float32), **shape
        )

        y_dev = np.zeros_like(y_cpu)
        ticks = conv2d_forward_opencl(
            self.backend, x=x, weight=w, offset=b, y=y_dev, **shape
        )
        return y_cpu, y_dev, ticks

    def test_identity_diagonal_kernel_on_3x3(self):
        x = np.arange(1, 10, dtype=np.float32)
        w = np.array([1, 0, 0, 1], dtype=np.float32)
        b = np.zeros(1, dtype=np.float32)
        y = np.zeros(4, dtype=np.float32)

        conv2d_forward_opencl(
            self.backend,
            x=x,
            weight=w,
            offset=b,
            y=y,
            i_width=3,
            i_height=3,
            i_depth=1,
            o_width=2,
            o_height=2,
            o_depth=1,
            kernel_size=2,
        )
        expected = 1.0 / (1.0 + np.exp(-np.array([6.0, 8.0, 12.0, 14.0])))
        np.testing.assert_allclose(y, expected, atol=1e-4)

    def test_matches_cpu_within_tolerance(self):
        cases = [
            dict(i_width=5, i_height=5, i_depth=1, kernel_size=3, o_depth=1),
            dict(i_width=17, i_height=12, i_depth=3, kernel_size=2, o_depth=4),
            dict(i_width=32, i_height=32, i_depth=2, kernel_size=5, o_depth=3),
            dict(i_width=4, i_height=40, i_depth=1, kernel_size=4, o_depth=6),
        ]
        for i, shape in enumerate(cases):
            with self.subTest(**shape):
                y_cpu, y_dev, ticks = self._both(seed=i, **shape)
                np.testing.assert_allclose(y_dev, y_cpu, atol=1e-4)
                self.assertGreaterEqual(ticks, 0)

    def test_repeated_launches_are_stable(self):
        shape = dict(i_width=9, i_height=9, i_depth=2, kernel_size=3, o_depth=2)
        _, a, _ = self._both(seed=5, **shape)
        _, b, _ = self._both(seed=5, **shape)
        np.testing.assert_allclose(a, b, atol=1e-6)


if __name__ == "__main__":
    unittest.main()
