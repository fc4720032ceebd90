"""Git helpers backing the per-workspace checkpoint history.

Every workspace directory carries its own repository.  The index is the
"stage" of a workspace and commits are its checkpoints.

Safety guarantees:
- All git interactions use ``subprocess.run`` with ``shell=False``.
- Commit messages are passed as argv items, never interpolated into a shell.
- Every failure surfaces as :class:`~blacksmith.errors.CheckpointError`.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from blacksmith.errors import CheckpointError
from blacksmith.models import StagedFileStatus, StageState

__all__ = [
    "BOT_EMAIL",
    "BOT_NAME",
    "clean_untracked",
    "commit",
    "discard_unstaged",
    "has_head",
    "has_staged_changes",
    "init_repo",
    "is_repo",
    "last_checkpoint",
    "parse_staged_status",
    "stage_all",
    "status_porcelain",
    "unstage_all",
]

log = logging.getLogger(__name__)

_GIT = "git"

BOT_EMAIL = "bot@example.com"
BOT_NAME = "Bot"

_STAGE_CODES: dict[str, StageState] = {
    "A": StageState.ADDED,
    "M": StageState.MODIFIED,
    "T": StageState.MODIFIED,
    "D": StageState.DELETED,
    "R": StageState.RENAMED,
    "C": StageState.COPIED,
    "U": StageState.CONFLICT,
}


# ---------------------------------------------------------------------------
# Repository setup
# ---------------------------------------------------------------------------


def is_repo(repo_path: Path) -> bool:
    """Return True if *repo_path* has its own ``.git`` directory."""
    return (repo_path / ".git").exists()


def init_repo(repo_path: Path, description: str) -> bool:
    """Initialise a repository in *repo_path* unless one already exists.

    Any files already present are recorded in an initial checkpoint.

    Returns:
        True if a new repository was created.
    """
    if is_repo(repo_path):
        return False

    log.info("Initializing git repository for %s", description)
    _run_git(repo_path, "init", "-q")
    _run_git(repo_path, "config", "user.email", BOT_EMAIL)
    _run_git(repo_path, "config", "user.name", BOT_NAME)

    if any(entry.name != ".git" for entry in repo_path.iterdir()):
        stage_all(repo_path)
        if has_staged_changes(repo_path):
            commit(repo_path, f"Initial commit for {description}")
    return True


# ---------------------------------------------------------------------------
# Git queries
# ---------------------------------------------------------------------------


def has_head(repo_path: Path) -> bool:
    """Return True once the repository has at least one checkpoint."""
    result = _run_git(repo_path, "rev-parse", "--verify", "-q", "HEAD", check=False)
    return result.returncode == 0


def has_staged_changes(repo_path: Path) -> bool:
    result = _run_git(repo_path, "diff", "--cached", "--name-only")
    return bool(result.stdout.strip())


def status_porcelain(repo_path: Path) -> str:
    return _run_git(repo_path, "status", "--porcelain").stdout


def last_checkpoint(repo_path: Path) -> str | None:
    """Return ``<short-sha> <subject>`` for HEAD, or None for an empty history."""
    if not has_head(repo_path):
        return None
    return _run_git(repo_path, "log", "-1", "--oneline").stdout.strip() or None


def parse_staged_status(raw: str) -> StagedFileStatus:
    """Parse ``git status --porcelain`` output into a StagedFileStatus."""
    staged: dict[str, StageState] = {}
    has_staged = False
    has_unstaged = False

    for line in raw.splitlines():
        if len(line) < 3:
            continue
        stage_code = line[0]
        tree_code = line[1]
        path = line[3:].strip()

        if stage_code == "?" and tree_code == "?":
            has_unstaged = True
            continue

        if " -> " in path:
            # rename format: "old -> new"
            path = path.split(" -> ")[-1]
        path = _unquote(path)

        if stage_code not in (" ", "?"):
            has_staged = True
            staged[path] = _STAGE_CODES.get(stage_code, StageState.MODIFIED)

        if tree_code not in (" ", "?"):
            has_unstaged = True

        if "U" in (stage_code, tree_code):
            has_staged = True
            staged[path] = StageState.CONFLICT

    return StagedFileStatus(
        staged_files=staged,
        has_staged_changes=has_staged,
        has_unstaged_changes=has_unstaged,
    )


# ---------------------------------------------------------------------------
# Git mutations
# ---------------------------------------------------------------------------


def discard_unstaged(repo_path: Path) -> None:
    """Restore tracked files in the working tree from the index."""
    if not _has_tracked_files(repo_path):
        # `checkout -- .` fails on an empty index; there is nothing to restore.
        return
    _run_git(repo_path, "checkout", "--", ".")


def clean_untracked(repo_path: Path) -> None:
    _run_git(repo_path, "clean", "-fd")


def unstage_all(repo_path: Path) -> None:
    if has_head(repo_path):
        _run_git(repo_path, "reset", "-q")
    else:
        _run_git(repo_path, "rm", "-r", "-q", "--cached", "--ignore-unmatch", ".")


def stage_all(repo_path: Path) -> None:
    _run_git(repo_path, "add", "-A")


def commit(repo_path: Path, message: str) -> str:
    """Commit the index and return the new short checkpoint id."""
    _run_git(repo_path, "commit", "-q", "--no-gpg-sign", "-m", message)
    checkpoint_id = _run_git(repo_path, "rev-parse", "--short", "HEAD").stdout.strip()
    log.info("Checkpoint %s created in %s: %s", checkpoint_id, repo_path.name, message)
    return checkpoint_id


# ---------------------------------------------------------------------------
# Low-level runner
# ---------------------------------------------------------------------------


def _has_tracked_files(repo_path: Path) -> bool:
    return bool(_run_git(repo_path, "ls-files").stdout.strip())


def _unquote(path: str) -> str:
    if len(path) >= 2 and path[0] == '"' and path[-1] == '"':
        raw = path[1:-1].encode("utf-8").decode("unicode_escape")
        return raw.encode("latin-1").decode("utf-8", errors="replace")
    return path


def _run_git(
    repo_path: Path,
    *args: str,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    cmd = [_GIT, *args]
    log.debug("Running in %s: %s", repo_path, " ".join(cmd))
    try:
        return subprocess.run(
            cmd,
            cwd=repo_path,
            capture_output=True,
            text=True,
            check=check,
        )
    except subprocess.CalledProcessError as exc:
        detail = (exc.stderr or "").strip() or (exc.stdout or "").strip()
        msg = f"git {args[0]} failed (exit {exc.returncode}): {detail}"
        log.error(msg)
        raise CheckpointError(msg) from exc
    except FileNotFoundError as exc:
        msg = "git executable not found. Is git installed and on PATH?"
        raise CheckpointError(msg) from exc
