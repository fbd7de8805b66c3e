"""
OpenCL runtime library loader.

This module centralizes the logic for resolving and loading the OpenCL ICD
loader (`OpenCL.dll`, `libOpenCL.so`, the macOS OpenCL framework) via
`ctypes`, including platform-specific filename conventions.

Resolution policy
-----------------
1. An explicit `lib_path` argument always wins.
2. Otherwise the `CLCONV_OPENCL_LIB` environment variable, if set.
3. Otherwise platform candidates are tried in order, followed by whatever
   `ctypes.util.find_library("OpenCL")` reports.

Scope
-----
This module only guarantees that a library handle is located and loaded
consistently. Symbol binding lives in `opencl_ctypes`; device selection lives
in the backend.
"""

from __future__ import annotations

import ctypes
import ctypes.util
import os
import sys
from functools import lru_cache
from pathlib import Path
from typing import Optional

ENV_LIB_PATH = "CLCONV_OPENCL_LIB"


def _candidate_names() -> list[str]:
    """
    Return platform-specific OpenCL library names, most specific first.

    Notes
    -----
    - Windows:  OpenCL.dll
    - macOS:    OpenCL.framework
    - Linux:    libOpenCL.so.1, libOpenCL.so
    """
    if sys.platform.startswith("win"):
        names = ["OpenCL.dll"]
    elif sys.platform == "darwin":
        names = ["/System/Library/Frameworks/OpenCL.framework/OpenCL"]
    else:
        names = ["libOpenCL.so.1", "libOpenCL.so"]

    found = ctypes.util.find_library("OpenCL")
    if found and found not in names:
        names.append(found)
    return names


def load_opencl_library(lib_path: Optional[str] = None) -> ctypes.CDLL:
    """
    Load the OpenCL runtime library via ctypes.

    Parameters
    ----------
    lib_path : Optional[str]
        Path to a specific OpenCL library. If provided, no other candidate is
        tried.

    Returns
    -------
    ctypes.CDLL
        Loaded library handle, cached per resolved path.

    Raises
    ------
    FileNotFoundError
        If an explicit path (argument or environment) does not exist.
    OSError
        If none of the candidate libraries can be loaded.
    """
    if lib_path is None:
        lib_path = os.environ.get(ENV_LIB_PATH) or None
    return _load_cached(lib_path)


@lru_cache(maxsize=4)
def _load_cached(lib_path: Optional[str]) -> ctypes.CDLL:
    if lib_path is not None:
        p = Path(lib_path).resolve()
        if not p.exists():
            raise FileNotFoundError(f"OpenCL library not found: {p}")
        return ctypes.CDLL(str(p))

    errors: list[str] = []
    for name in _candidate_names():
        try:
            return ctypes.CDLL(name)
        except OSError as e:
            errors.append(f"- {name} (failed to load: {e})")

    raise OSError("Failed to load an OpenCL library. Tried:\n" + "\n".join(errors))
