"""Exception hierarchy shared by the workspace, orchestration and API layers."""

from __future__ import annotations

__all__ = [
    "BlacksmithError",
    "CheckpointError",
    "GenerationError",
    "PathTraversalError",
    "RunCancelledError",
    "UnknownTargetError",
    "ValidationError",
    "WorkspaceNotFoundError",
]


class BlacksmithError(RuntimeError):
    """Base class for every error raised by Blacksmith."""


class ValidationError(BlacksmithError):
    """A request was rejected before any side effect took place."""


class UnknownTargetError(ValidationError):
    """The requested target id is not part of the configured target list."""

    def __init__(self, target: str, known: list[str]) -> None:
        self.target = target
        self.known = list(known)
        super().__init__(f"Invalid target '{target}'. Must be one of: {', '.join(self.known)}")


class PathTraversalError(ValidationError):
    """A relative path would resolve outside its workspace root."""


class WorkspaceNotFoundError(BlacksmithError):
    """A target's workspace does not exist yet."""


class CheckpointError(BlacksmithError):
    """A revision-control operation failed."""


class GenerationError(BlacksmithError):
    """The generation capability failed or returned unusable output."""


class RunCancelledError(BlacksmithError):
    """Raised inside a run when its cancellation token has been triggered."""
