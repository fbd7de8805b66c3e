"""
Runtime configuration for the OpenCL backend.

Configuration is read from environment variables so deployments can point
clconv at a specific OpenCL ICD, platform or kernel source without code
changes:

- CLCONV_OPENCL_LIB      path to the OpenCL library (default: auto-detect)
- CLCONV_PLATFORM_INDEX  index of the OpenCL platform (default: 0)
- CLCONV_DEVICE_TYPE     gpu | cpu | accelerator | default | all (default: gpu)
- CLCONV_KERNEL_SOURCE   path to the `.cl` file (default: packaged source)
- CLCONV_BUILD_OPTIONS   options passed to the OpenCL compiler (default: "")
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from ..domain._errors import ConfigurationError
from .native_opencl.python.opencl_ctypes import device_type_mask

DEFAULT_KERNEL_SOURCE = (
    Path(__file__).resolve().parent / "native_opencl" / "kernels" / "convolution.cl"
)


@dataclass(frozen=True)
class OpenCLConfig:
    """
    OpenCL backend settings.

    Attributes
    ----------
    library_path : Optional[str]
        Explicit OpenCL library to load, or None to auto-detect.
    platform_index : int
        Index into the list of available OpenCL platforms.
    device_type : str
        Device category to enumerate on the platform.
    kernel_source : Path
        OpenCL C source containing the `forwardGPU` entry point.
    build_options : str
        Options passed to `clBuildProgram`.
    """

    library_path: Optional[str] = None
    platform_index: int = 0
    device_type: str = "gpu"
    kernel_source: Path = field(default=DEFAULT_KERNEL_SOURCE)
    build_options: str = ""

    def __post_init__(self) -> None:
        if self.platform_index < 0:
            raise ConfigurationError(
                "platform_index",
                "must be >= 0",
                expected=">= 0",
                actual=self.platform_index,
            )
        try:
            device_type_mask(self.device_type)
        except ValueError as e:
            raise ConfigurationError(
                "device_type", str(e), actual=self.device_type
            ) from e
        object.__setattr__(self, "kernel_source", Path(self.kernel_source))

    @property
    def device_type_mask(self) -> int:
        return device_type_mask(self.device_type)

    def read_kernel_source(self) -> str:
        """
        Return the OpenCL C source text.

        Raises
        ------
        ConfigurationError
            If the source file does not exist.
        """
        if not self.kernel_source.is_file():
            raise ConfigurationError(
                "kernel_source",
                "file not found",
                actual=str(self.kernel_source),
            )
        return self.kernel_source.read_text(encoding="utf-8")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "OpenCLConfig":
        """
        Build a configuration from environment variables.

        Parameters
        ----------
        environ : Mapping[str, str], optional
            Environment to read; defaults to `os.environ`.

        Raises
        ------
        ConfigurationError
            If a variable is set to an invalid value.
        """
        env = os.environ if environ is None else environ

        raw_index = env.get("CLCONV_PLATFORM_INDEX", "").strip()
        try:
            platform_index = int(raw_index) if raw_index else 0
        except ValueError:
            raise ConfigurationError(
                "CLCONV_PLATFORM_INDEX",
                "must be an integer",
                expected="int >= 0",
                actual=raw_index,
            ) from None

        kernel_source = env.get("CLCONV_KERNEL_SOURCE", "").strip()

        return cls(
            library_path=env.get("CLCONV_OPENCL_LIB", "").strip() or None,
            platform_index=platform_index,
            device_type=env.get("CLCONV_DEVICE_TYPE", "").strip() or "gpu",
            kernel_source=(
                Path(kernel_source) if kernel_source else DEFAULT_KERNEL_SOURCE
            ),
            build_options=env.get("CLCONV_BUILD_OPTIONS", "").strip(),
        )
