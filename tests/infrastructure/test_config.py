import os
import tempfile
import unittest
from pathlib import Path

from clconv.domain import ConfigurationError
from clconv.infrastructure import OpenCLConfig
from clconv.infrastructure._config import DEFAULT_KERNEL_SOURCE
from clconv.infrastructure.native_opencl.python.opencl_ctypes import (
    CL_DEVICE_TYPE_ACCELERATOR,
    CL_DEVICE_TYPE_ALL,
    CL_DEVICE_TYPE_CPU,
    CL_DEVICE_TYPE_GPU,
)


class TestOpenCLConfig(unittest.TestCase):
    def test_defaults(self):
        cfg = OpenCLConfig()
        self.assertIsNone(cfg.library_path)
        self.assertEqual(cfg.platform_index, 0)
        self.assertEqual(cfg.device_type, "gpu")
        self.assertEqual(cfg.device_type_mask, CL_DEVICE_TYPE_GPU)
        self.assertEqual(cfg.kernel_source, DEFAULT_KERNEL_SOURCE)
        self.assertEqual(cfg.build_options, "")

    def test_packaged_kernel_source_defines_entry_point(self):
        source = OpenCLConfig().read_kernel_source()
        self.assertIn("__kernel void forwardGPU", source)

    def test_device_type_masks(self):
        self.assertEqual(OpenCLConfig(device_type="cpu").device_type_mask, CL_DEVICE_TYPE_CPU)
        self.assertEqual(
            OpenCLConfig(device_type="Accelerator").device_type_mask,
            CL_DEVICE_TYPE_ACCELERATOR,
        )
        self.assertEqual(OpenCLConfig(device_type="all").device_type_mask, CL_DEVICE_TYPE_ALL)

    def test_invalid_values(self):
        with self.assertRaises(ConfigurationError) as ctx:
            OpenCLConfig(platform_index=-1)
        self.assertEqual(ctx.exception.field, "platform_index")

        with self.assertRaises(ConfigurationError) as ctx:
            OpenCLConfig(device_type="fpga")
        self.assertEqual(ctx.exception.field, "device_type")

    def test_missing_kernel_source(self):
        cfg = OpenCLConfig(kernel_source="does/not/exist.cl")
        self.assertIsInstance(cfg.kernel_source, Path)
        with self.assertRaises(ConfigurationError) as ctx:
            cfg.read_kernel_source()
        self.assertEqual(ctx.exception.field, "kernel_source")

    def test_from_env_empty_gives_defaults(self):
        self.assertEqual(OpenCLConfig.from_env({}), OpenCLConfig())

    def test_from_env_reads_every_variable(self):
        with tempfile.TemporaryDirectory() as tmp:
            src = os.path.join(tmp, "custom.cl")
            with open(src, "w", encoding="utf-8") as f:
                f.write("__kernel void forwardGPU() {}\n")

            cfg = OpenCLConfig.from_env(
                {
                    "CLCONV_OPENCL_LIB": "/opt/vendor/libOpenCL.so",
                    "CLCONV_PLATFORM_INDEX": " 2 ",
                    "CLCONV_DEVICE_TYPE": "cpu",
                    "CLCONV_KERNEL_SOURCE": src,
                    "CLCONV_BUILD_OPTIONS": "-cl-fast-relaxed-math",
                }
            )
            self.assertIn("forwardGPU", cfg.read_kernel_source())

        self.assertEqual(cfg.library_path, "/opt/vendor/libOpenCL.so")
        self.assertEqual(cfg.platform_index, 2)
        self.assertEqual(cfg.device_type, "cpu")
        self.assertEqual(cfg.kernel_source, Path(src))
        self.assertEqual(cfg.build_options, "-cl-fast-relaxed-math")

    def test_from_env_rejects_bad_platform_index(self):
        with self.assertRaises(ConfigurationError) as ctx:
            OpenCLConfig.from_env({"CLCONV_PLATFORM_INDEX": "first"})
        self.assertEqual(ctx.exception.field, "CLCONV_PLATFORM_INDEX")

    def test_from_env_rejects_bad_device_type(self):
        with self.assertRaises(ConfigurationError):
            OpenCLConfig.from_env({"CLCONV_DEVICE_TYPE": "tpu"})


if __name__ == "__main__":
    unittest.main()
