"""Error types shared by the editor session and its collaborators."""

from __future__ import annotations


class SketchStudioError(RuntimeError):
    """Base class for every error raised by the package."""


class ValidationError(SketchStudioError):
    """Raised when an action is blocked locally, before any request is sent."""

    EMPTY = "EMPTY"
    EXISTS = "EXISTS"
    EMPTY_WORKSPACE = "EMPTY_WORKSPACE"

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code


class EmptyWorkspace(ValidationError):
    """Raised when a visual sketch with no blocks is about to be saved."""

    def __init__(self, message: str = "You can't save an empty sketch.") -> None:
        super().__init__(ValidationError.EMPTY_WORKSPACE, message)


class UnknownDevice(SketchStudioError):
    """Raised when a device id has no entry in the device catalog."""

    def __init__(self, device_id: str) -> None:
        super().__init__(f"Unknown device: {device_id!r}")
        self.device_id = device_id


class ToolchainError(SketchStudioError):
    """Raised when the external toolchain reports a failure."""


class SketchbookError(SketchStudioError):
    """Raised when a sketch cannot be stored or read back from disk."""


__all__ = [
    "SketchStudioError",
    "ValidationError",
    "EmptyWorkspace",
    "UnknownDevice",
    "ToolchainError",
    "SketchbookError",
]
