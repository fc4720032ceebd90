"""Core data models for Blacksmith.

This module defines the typed dataclasses and enumerations shared by the
workspace, orchestration and checkpoint layers:

- **Workspace-related**: StageState, StagedFileStatus, TargetState
- **Run-related**: Progress, RunHandle, OutcomeStatus, TargetOutcome, RunSummary
- **Checkpoint-related**: CommitResult, RevertResult
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class StageState(enum.Enum):
    """How a staged path differs from the last checkpoint."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"
    COPIED = "copied"
    CONFLICT = "conflict"


class OutcomeStatus(enum.Enum):
    """Per-target outcome of a single run."""

    PROCESSED = "processed"
    SKIPPED = "skipped"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def generate_id() -> str:
    """Generate a short unique identifier."""
    return uuid.uuid4().hex[:12]


def utc_now() -> datetime:
    """Return the current UTC time."""
    return datetime.now(UTC)


def format_label(target_id: str) -> str:
    """Turn a target id such as ``objective-c`` into ``Objective C``."""
    parts = target_id.replace("_", "-").split("-")
    return " ".join(part[:1].upper() + part[1:] for part in parts if part)


# ---------------------------------------------------------------------------
# Workspace-related models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StagedFileStatus:
    """Derived view of a workspace's index and working tree."""

    staged_files: dict[str, StageState] = field(default_factory=dict)
    has_staged_changes: bool = False
    has_unstaged_changes: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "stagedFiles": {path: state.value for path, state in self.staged_files.items()},
            "hasStagedChanges": self.has_staged_changes,
            "hasUnstagedChanges": self.has_unstaged_changes,
        }


@dataclass(frozen=True)
class TargetState:
    """Summary row returned when listing targets."""

    target: str
    label: str
    path: Path
    has_staged_changes: bool
    has_unstaged_changes: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.target,
            "label": self.label,
            "path": str(self.path),
            "hasStagedChanges": self.has_staged_changes,
            "hasUnstagedChanges": self.has_unstaged_changes,
        }


# ---------------------------------------------------------------------------
# Run-related models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Progress:
    """Snapshot of the current or most recent run's progress."""

    fraction: float = 0.0
    message: str = "idle"
    is_running: bool = False
    started_at: datetime | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        started = self.started_at.isoformat() if self.started_at else None
        return {
            "fraction": self.fraction,
            "message": self.message,
            "isRunning": self.is_running,
            "startedAt": started,
            "error": self.error,
        }


@dataclass(frozen=True)
class RunHandle:
    """Acknowledgement returned when a run is accepted."""

    run_id: str
    started_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "accepted": True,
            "runId": self.run_id,
            "startedAt": self.started_at.isoformat(),
        }


@dataclass(frozen=True)
class TargetOutcome:
    """What happened to one target during a run."""

    target: str
    status: OutcomeStatus
    files_written: tuple[str, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class RunSummary:
    """Aggregated result of one run."""

    run_id: str
    outcomes: list[TargetOutcome] = field(default_factory=list)
    cancelled: bool = False
    error: str | None = None
    duration_seconds: float = 0.0

    @property
    def processed_targets(self) -> list[str]:
        return [o.target for o in self.outcomes if o.status == OutcomeStatus.PROCESSED]

    @property
    def skipped_targets(self) -> list[str]:
        return [o.target for o in self.outcomes if o.status != OutcomeStatus.PROCESSED]


# ---------------------------------------------------------------------------
# Checkpoint-related models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CommitResult:
    """Result of approving a target's staged output."""

    committed: bool
    checkpoint_id: str | None = None
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"committed": self.committed}
        if self.checkpoint_id is not None:
            payload["checkpointId"] = self.checkpoint_id
        if self.message:
            payload["message"] = self.message
        return payload


@dataclass(frozen=True)
class RevertResult:
    """Result of rejecting a target's staged output."""

    reverted: bool

    def to_dict(self) -> dict[str, Any]:
        return {"reverted": self.reverted}


# ---------------------------------------------------------------------------
# Exports
# ---------------------------------------------------------------------------

__all__ = [
    "CommitResult",
    "OutcomeStatus",
    "Progress",
    "RevertResult",
    "RunHandle",
    "RunSummary",
    "StageState",
    "StagedFileStatus",
    "TargetOutcome",
    "TargetState",
    "format_label",
    "generate_id",
    "utc_now",
]
