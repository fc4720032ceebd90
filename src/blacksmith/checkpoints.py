"""Per-target approve/reject of staged generator output."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from blacksmith.errors import UnknownTargetError, ValidationError
from blacksmith.models import (
    CommitResult,
    RevertResult,
    StagedFileStatus,
    TargetState,
    format_label,
)
from blacksmith.workspace import SPEC_WORKSPACE, Workspace, WorkspaceLayout

__all__ = ["CheckpointStore"]

log = logging.getLogger(__name__)


class CheckpointStore:
    """Finalizes or discards the staged output of one target at a time.

    Only staged content is ever approved: approving first throws away
    unstaged edits.  Rejecting restores the workspace to its last checkpoint.
    The specification workspace (``english``) is accepted by the file and
    status operations but cannot be approved or rejected; it is checkpointed
    automatically by every update run.
    """

    def __init__(self, layout: WorkspaceLayout, targets: Sequence[str]) -> None:
        self._layout = layout
        self._targets = tuple(targets)

    @property
    def targets(self) -> tuple[str, ...]:
        return self._targets

    def approve(self, target: str, message: str | None = None) -> CommitResult:
        workspace = self._existing(target)
        commit_message = (message or "").strip() or f"Approve {target} implementation"
        with workspace.lock:
            workspace.discard_unstaged()
            result = workspace.commit_if_staged(commit_message)
        if result.committed:
            log.info("%s changes approved as %s", target, result.checkpoint_id)
        else:
            log.info("No staged changes to approve for %s", target)
        return result

    def reject(self, target: str) -> RevertResult:
        workspace = self._existing(target)
        with workspace.lock:
            if not workspace.has_staged_changes():
                log.info("No staged changes to reject for %s", target)
                return RevertResult(reverted=False)
            workspace.reset_to_checkpoint()
        log.info("%s changes rejected and reverted", target)
        return RevertResult(reverted=True)

    def save_file(self, target: str, relative_path: str, content: str) -> None:
        """Write one file into a workspace and stage the whole workspace."""
        workspace = self._existing(target, allow_spec=True)
        workspace.save_file(relative_path, content)
        log.info("Saved %s in %s", relative_path, target)

    def read_file(self, target: str, relative_path: str) -> str:
        return self._existing(target, allow_spec=True).read_file(relative_path)

    def list_files(self, target: str) -> list[str]:
        return self._workspace(target, allow_spec=True).list_files()

    def get_status(self, target: str) -> StagedFileStatus:
        return self._workspace(target, allow_spec=True).status()

    def list_targets(self) -> list[TargetState]:
        """Return the specification workspace followed by every target, in order."""
        states: list[TargetState] = []
        for name in (SPEC_WORKSPACE, *self._targets):
            workspace = self._layout.workspace(name)
            status = workspace.status()
            states.append(
                TargetState(
                    target=name,
                    label=format_label(name),
                    path=workspace.path,
                    has_staged_changes=status.has_staged_changes,
                    has_unstaged_changes=status.has_unstaged_changes,
                )
            )
        return states

    # -- helpers --------------------------------------------------------------

    def _workspace(self, target: str, *, allow_spec: bool = False) -> Workspace:
        if not isinstance(target, str) or not target.strip():
            msg = "Target parameter is required"
            raise ValidationError(msg)
        name = target.strip()
        if name == SPEC_WORKSPACE and allow_spec:
            return self._layout.spec
        if name not in self._targets:
            raise UnknownTargetError(name, list(self._targets))
        return self._layout.workspace(name)

    def _existing(self, target: str, *, allow_spec: bool = False) -> Workspace:
        workspace = self._workspace(target, allow_spec=allow_spec)
        workspace.require()
        return workspace
