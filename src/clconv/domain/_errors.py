"""
Configuration- and device-related exceptions for clconv.

Two families of failures are distinguished:

- Configuration errors (`ConfigurationError`, `ShapeMismatchError`) signal
  caller-correctable problems such as a malformed layer descriptor, a size
  mismatch between a weight buffer and the declared shape, or an input volume
  of the wrong length. They are raised eagerly at construction / load time or
  at the boundary of a forward call.

- Device errors (`DeviceError`, `DeviceUnavailableError`) signal a failing
  compute-backend call. They carry the failing operation and the backend
  status so the host application can decide whether to retry on another
  device, fall back to the CPU path, or abort.
"""

from __future__ import annotations

from typing import Any, Optional


class ConfigurationError(ValueError):
    """
    Raised when layer parameters or loader input are invalid.

    Attributes
    ----------
    field : str
        Name of the offending field (e.g., "weight", "kernelSize").
    expected : Any
        Expected value or constraint, if one can be stated.
    actual : Any
        Value that was actually supplied.
    """

    def __init__(
        self,
        field: str,
        message: str,
        *,
        expected: Any = None,
        actual: Any = None,
    ) -> None:
        """
        Initialize the ConfigurationError.

        Parameters
        ----------
        field : str
            Name of the offending field.
        message : str
            Human-readable description of the problem.
        expected : Any, optional
            Expected value or constraint.
        actual : Any, optional
            Value that was actually supplied.
        """
        super().__init__(f"{field}: {message}")
        self.field = field
        self.expected = expected
        self.actual = actual


class ShapeMismatchError(ConfigurationError):
    """
    Raised when a buffer does not match the shape declared for it.

    Typically raised when the input passed to `forward` does not have
    `i_depth * i_height * i_width` elements.
    """

    def __init__(self, name: str, expected: Any, actual: Any) -> None:
        super().__init__(
            name,
            f"shape mismatch: expected {expected}, got {actual}",
            expected=expected,
            actual=actual,
        )


class DeviceError(RuntimeError):
    """
    Raised when a compute-backend call fails.

    Attributes
    ----------
    op : str
        Name of the failing backend call (e.g., "clCreateBuffer").
    status : Optional[int]
        Numeric backend status, or None when the failure is not tied to a
        status code (e.g., the backend library could not be loaded).
    status_name : Optional[str]
        Symbolic name of `status`, if known.
    """

    def __init__(
        self,
        op: str,
        status: Optional[int] = None,
        status_name: Optional[str] = None,
        detail: str = "",
    ) -> None:
        msg = f"{op} failed"
        if status is not None:
            msg += f": {status_name or 'UNKNOWN_STATUS'} ({status})"
        if detail:
            msg += f"\n{detail}"
        super().__init__(msg)
        self.op = op
        self.status = status
        self.status_name = status_name


class DeviceUnavailableError(DeviceError):
    """
    Raised when no usable compute device can be acquired.

    Covers a missing OpenCL runtime library, an absent platform, or a device
    index that does not exist on the selected platform.
    """
