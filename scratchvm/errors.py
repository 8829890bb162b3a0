"""Exception types raised while loading and running legacy projects."""

from typing import Any, List, Optional, Sequence


class ScratchVMError(Exception):
    """Base class for all errors raised by the VM core."""

    def __init__(self, message: str, detail: str = ""):
        self.message = message
        self.detail = detail
        super().__init__(message)

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message} ({self.detail})"
        return self.message


class DecodeError(ScratchVMError):
    """A block array could not be decoded into a block tree.

    ``path`` locates the offending element inside the script being decoded,
    outermost index first (e.g. ``[2, "branch 0", 1]``).
    """

    def __init__(self, message: str, detail: str = "", path: Optional[Sequence[Any]] = None):
        self.path: List[Any] = list(path or [])
        super().__init__(message, detail)

    def within(self, *prefix: Any) -> "DecodeError":
        """Return a copy of this error located under ``prefix``."""
        return DecodeError(self.message, self.detail, list(prefix) + self.path)

    def __str__(self) -> str:
        text = super().__str__()
        if self.path:
            location = " > ".join(str(part) for part in self.path)
            text += f" at {location}"
        return text


class ConversionError(ScratchVMError):
    """A legacy structure has no canonical representation."""


class AssetResolutionError(ScratchVMError):
    """An asset collaborator could not produce a handle for a content key."""


class ContainerError(ScratchVMError):
    """The project archive is unreadable or lacks ``project.json``."""
