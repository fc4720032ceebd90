"""Version-controlled workspaces: one directory plus its own git history."""

from __future__ import annotations

import logging
import os
import posixpath
import shutil
import threading
from collections.abc import Iterable, Mapping
from pathlib import Path, PurePosixPath, PureWindowsPath

from blacksmith import git_ops
from blacksmith.errors import PathTraversalError, ValidationError, WorkspaceNotFoundError
from blacksmith.models import CommitResult, StagedFileStatus

__all__ = ["SPEC_WORKSPACE", "Workspace", "WorkspaceLayout"]

log = logging.getLogger(__name__)

SPEC_WORKSPACE = "english"

_IGNORED_NAMES = frozenset((".git", ".DS_Store"))


class Workspace:
    """A directory whose working tree, stage and history are managed by git.

    All mutations take ``lock`` so that the orchestrator and the checkpoint
    store never interleave git commands on the same repository.  The lock is
    re-entrant; callers may hold it across a sequence of operations.
    """

    def __init__(self, name: str, path: Path) -> None:
        self.name = name
        self.path = path
        self.lock = threading.RLock()

    def __repr__(self) -> str:
        return f"Workspace(name={self.name!r}, path={str(self.path)!r})"

    # -- lifecycle ----------------------------------------------------------

    def exists(self) -> bool:
        return self.path.is_dir() and git_ops.is_repo(self.path)

    def ensure(self) -> None:
        """Create the directory and its history if either is missing."""
        with self.lock:
            self.path.mkdir(parents=True, exist_ok=True)
            git_ops.init_repo(self.path, self.name)

    def require(self) -> None:
        if not self.exists():
            msg = f"Workspace for {self.name} does not exist. Run an update first."
            raise WorkspaceNotFoundError(msg)

    # -- files --------------------------------------------------------------

    def resolve(self, relative_path: str) -> Path:
        """Return the absolute path for *relative_path* inside the workspace.

        Raises:
            ValidationError: If the path is empty.
            PathTraversalError: If the normalized path leaves the workspace
                root or points into the repository metadata.
        """
        if not relative_path or not relative_path.strip():
            msg = "File path is required"
            raise ValidationError(msg)
        if "\0" in relative_path:
            msg = "File path must not contain NUL bytes"
            raise PathTraversalError(msg)

        posix = relative_path.replace("\\", "/")
        if PurePosixPath(posix).is_absolute() or PureWindowsPath(relative_path).drive:
            msg = f"Absolute paths are not allowed: {relative_path}"
            raise PathTraversalError(msg)

        normalized = posixpath.normpath(posix)
        parts = PurePosixPath(normalized).parts
        if normalized in (".", "..") or parts[0] == ".." or ".git" in parts:
            msg = f"Path traversal not allowed: {relative_path}"
            raise PathTraversalError(msg)

        root = self.path.resolve()
        resolved = (root / normalized).resolve()
        if resolved == root or not resolved.is_relative_to(root):
            msg = f"Path traversal not allowed: {relative_path}"
            raise PathTraversalError(msg)
        return resolved

    def list_files(self) -> list[str]:
        return sorted(self._iter_files())

    def read_files(self) -> dict[str, str]:
        """Read every regular file into a ``{relative_path: text}`` mapping."""
        files: dict[str, str] = {}
        for relative in sorted(self._iter_files()):
            try:
                files[relative] = (self.path / relative).read_text(encoding="utf-8")
            except UnicodeDecodeError:
                log.warning("Skipping non UTF-8 file %s in %s", relative, self.name)
        return files

    def read_file(self, relative_path: str) -> str:
        return self.resolve(relative_path).read_text(encoding="utf-8")

    def write_files(self, files: Mapping[str, str]) -> list[str]:
        """Write every entry verbatim and return the relative paths written."""
        with self.lock:
            targets = [(relative, self.resolve(relative)) for relative in files]
            for relative, destination in targets:
                destination.parent.mkdir(parents=True, exist_ok=True)
                destination.write_text(files[relative], encoding="utf-8")
                log.debug("Wrote %s to %s", relative, self.name)
            return [relative for relative, _ in targets]

    def save_file(self, relative_path: str, content: str) -> None:
        """Write one file and stage the whole workspace."""
        with self.lock:
            self.write_files({relative_path: content})
            git_ops.stage_all(self.path)

    # -- stage and history ----------------------------------------------------

    def discard_unstaged(self) -> None:
        with self.lock:
            git_ops.discard_unstaged(self.path)

    def discard_changes(self) -> None:
        """Drop unstaged edits and untracked files, keeping the stage."""
        with self.lock:
            git_ops.discard_unstaged(self.path)
            git_ops.clean_untracked(self.path)

    def reset_to_checkpoint(self) -> None:
        """Restore the working tree and stage to the last checkpoint."""
        with self.lock:
            git_ops.unstage_all(self.path)
            git_ops.discard_unstaged(self.path)
            git_ops.clean_untracked(self.path)

    def stage_all(self) -> None:
        with self.lock:
            git_ops.stage_all(self.path)

    def has_staged_changes(self) -> bool:
        return git_ops.has_staged_changes(self.path)

    def commit_if_staged(self, message: str) -> CommitResult:
        with self.lock:
            if not git_ops.has_staged_changes(self.path):
                return CommitResult(committed=False, message=f"No staged changes in {self.name}")
            checkpoint_id = git_ops.commit(self.path, message)
            return CommitResult(committed=True, checkpoint_id=checkpoint_id, message=message)

    def last_checkpoint(self) -> str | None:
        return git_ops.last_checkpoint(self.path)

    def status(self) -> StagedFileStatus:
        if not self.exists():
            return StagedFileStatus()
        return git_ops.parse_staged_status(git_ops.status_porcelain(self.path))

    # -- helpers --------------------------------------------------------------

    def _iter_files(self) -> Iterable[str]:
        if not self.path.is_dir():
            return
        for current, dirs, names in os.walk(self.path):
            dirs[:] = sorted(d for d in dirs if d not in _IGNORED_NAMES)
            base = Path(current)
            for name in names:
                if name in _IGNORED_NAMES:
                    continue
                full = base / name
                if full.is_file():
                    yield full.relative_to(self.path).as_posix()


class WorkspaceLayout:
    """On-disk layout: ``<root>/english`` and ``<root>/languages/<target>``.

    Hands out a single :class:`Workspace` per name so every caller shares the
    same per-workspace lock.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.languages_root = root / "languages"
        self._workspaces: dict[str, Workspace] = {}
        self._lock = threading.Lock()

    @property
    def spec(self) -> Workspace:
        return self.workspace(SPEC_WORKSPACE)

    def workspace(self, name: str) -> Workspace:
        with self._lock:
            workspace = self._workspaces.get(name)
            if workspace is None:
                if name == SPEC_WORKSPACE:
                    path = self.root / SPEC_WORKSPACE
                else:
                    path = self.languages_root / name
                workspace = Workspace(name, path)
                self._workspaces[name] = workspace
            return workspace

    def ensure(self, targets: Iterable[str], template_dir: Path | None = None) -> None:
        """Create the root (from *template_dir* when given) and every workspace."""
        if not self.root.exists():
            if template_dir is not None and template_dir.is_dir():
                log.info("Files folder not found, copying %s", template_dir)
                shutil.copytree(template_dir, self.root)
            else:
                log.info("Creating empty files folder at %s", self.root)
                self.root.mkdir(parents=True)

        self.spec.ensure()
        self.languages_root.mkdir(parents=True, exist_ok=True)
        for target in targets:
            self.workspace(target).ensure()
