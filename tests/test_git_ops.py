"""Tests for the git command wrappers used by workspaces."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest import mock

import pytest

from blacksmith import git_ops
from blacksmith.errors import CheckpointError
from blacksmith.models import StageState


def _proc(
    args: list[str],
    *,
    returncode: int = 0,
    stdout: str = "",
    stderr: str = "",
) -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(
        args=args,
        returncode=returncode,
        stdout=stdout,
        stderr=stderr,
    )


def _git_available() -> bool:
    try:
        subprocess.run(
            ["git", "--version"],
            check=True,
            capture_output=True,
            text=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return False
    return True


# ---------------------------------------------------------------------------
# parse_staged_status
# ---------------------------------------------------------------------------


class TestParseStagedStatus:
    def test_empty_output(self) -> None:
        status = git_ops.parse_staged_status("")
        assert status.staged_files == {}
        assert status.has_staged_changes is False
        assert status.has_unstaged_changes is False

    def test_stage_codes(self) -> None:
        raw = "A  added.py\nM  changed.py\nD  gone.py\n"
        status = git_ops.parse_staged_status(raw)
        assert status.staged_files == {
            "added.py": StageState.ADDED,
            "changed.py": StageState.MODIFIED,
            "gone.py": StageState.DELETED,
        }
        assert status.has_staged_changes is True
        assert status.has_unstaged_changes is False

    def test_untracked_is_unstaged_only(self) -> None:
        status = git_ops.parse_staged_status("?? notes.txt\n")
        assert status.staged_files == {}
        assert status.has_staged_changes is False
        assert status.has_unstaged_changes is True

    def test_worktree_modification_is_unstaged(self) -> None:
        status = git_ops.parse_staged_status(" M sdk.py\n")
        assert status.staged_files == {}
        assert status.has_unstaged_changes is True

    def test_staged_and_modified_again(self) -> None:
        status = git_ops.parse_staged_status("MM sdk.py\n")
        assert status.staged_files == {"sdk.py": StageState.MODIFIED}
        assert status.has_staged_changes is True
        assert status.has_unstaged_changes is True

    def test_rename_uses_new_path(self) -> None:
        status = git_ops.parse_staged_status("R  old.py -> new.py\n")
        assert status.staged_files == {"new.py": StageState.RENAMED}

    def test_conflict(self) -> None:
        status = git_ops.parse_staged_status("UU merge.py\n")
        assert status.staged_files == {"merge.py": StageState.CONFLICT}
        assert status.has_staged_changes is True

    def test_quoted_path(self) -> None:
        status = git_ops.parse_staged_status('A  "with space.py"\n')
        assert status.staged_files == {"with space.py": StageState.ADDED}


# ---------------------------------------------------------------------------
# _run_git error handling
# ---------------------------------------------------------------------------


class TestRunGit:
    def test_nonzero_exit_raises_checkpoint_error(self) -> None:
        error = subprocess.CalledProcessError(
            returncode=128,
            cmd=["git", "add", "-A"],
            output="",
            stderr="fatal: not a git repository",
        )
        with (
            mock.patch("subprocess.run", side_effect=error),
            pytest.raises(CheckpointError, match="git add failed \\(exit 128\\)"),
        ):
            git_ops.stage_all(Path("."))

    def test_missing_git_raises_checkpoint_error(self) -> None:
        with (
            mock.patch("subprocess.run", side_effect=FileNotFoundError("git")),
            pytest.raises(CheckpointError, match="git executable not found"),
        ):
            git_ops.clean_untracked(Path("."))

    def test_has_staged_changes_reads_name_only_diff(self) -> None:
        with mock.patch(
            "subprocess.run",
            return_value=_proc(["git", "diff"], stdout="sdk.py\n"),
        ) as run:
            assert git_ops.has_staged_changes(Path("/repo")) is True
        cmd = run.call_args.args[0]
        assert cmd == ["git", "diff", "--cached", "--name-only"]
        assert run.call_args.kwargs["cwd"] == Path("/repo")

    def test_has_head_false_without_commits(self) -> None:
        with mock.patch(
            "subprocess.run",
            return_value=_proc(["git", "rev-parse"], returncode=1),
        ):
            assert git_ops.has_head(Path("/repo")) is False

    def test_discard_unstaged_skips_empty_index(self) -> None:
        with mock.patch(
            "subprocess.run",
            return_value=_proc(["git", "ls-files"], stdout=""),
        ) as run:
            git_ops.discard_unstaged(Path("/repo"))
        assert run.call_count == 1
        assert run.call_args.args[0] == ["git", "ls-files"]

    def test_unstage_all_without_head_uses_rm_cached(self) -> None:
        calls: list[list[str]] = []

        def _fake_run(cmd: list[str], **_kwargs: object) -> subprocess.CompletedProcess[str]:
            calls.append(cmd)
            if cmd[1] == "rev-parse":
                return _proc(cmd, returncode=1)
            return _proc(cmd)

        with mock.patch("subprocess.run", side_effect=_fake_run):
            git_ops.unstage_all(Path("/repo"))
        assert calls[-1] == ["git", "rm", "-r", "-q", "--cached", "--ignore-unmatch", "."]

    def test_commit_returns_short_sha(self) -> None:
        def _fake_run(cmd: list[str], **_kwargs: object) -> subprocess.CompletedProcess[str]:
            if cmd[1] == "rev-parse":
                return _proc(cmd, stdout="abc1234\n")
            return _proc(cmd)

        with mock.patch("subprocess.run", side_effect=_fake_run) as run:
            assert git_ops.commit(Path("/repo"), "Approve go implementation") == "abc1234"
        first = run.call_args_list[0].args[0]
        assert first == ["git", "commit", "-q", "--no-gpg-sign", "-m", "Approve go implementation"]


# ---------------------------------------------------------------------------
# Real repositories
# ---------------------------------------------------------------------------


@pytest.mark.skipif(not _git_available(), reason="git not available")
class TestRealRepository:
    def test_init_repo_commits_existing_files(self, tmp_path: Path) -> None:
        (tmp_path / "README.md").write_text("# spec\n", encoding="utf-8")
        assert git_ops.init_repo(tmp_path, "english") is True
        assert git_ops.has_head(tmp_path) is True
        checkpoint = git_ops.last_checkpoint(tmp_path)
        assert checkpoint is not None
        assert checkpoint.endswith("Initial commit for english")

    def test_init_repo_is_idempotent(self, tmp_path: Path) -> None:
        assert git_ops.init_repo(tmp_path, "python") is True
        assert git_ops.init_repo(tmp_path, "python") is False
        assert git_ops.has_head(tmp_path) is False
        assert git_ops.last_checkpoint(tmp_path) is None

    def test_stage_commit_cycle(self, tmp_path: Path) -> None:
        git_ops.init_repo(tmp_path, "go")
        (tmp_path / "sdk.go").write_text("package sdk\n", encoding="utf-8")
        git_ops.stage_all(tmp_path)

        status = git_ops.parse_staged_status(git_ops.status_porcelain(tmp_path))
        assert status.staged_files == {"sdk.go": StageState.ADDED}

        sha = git_ops.commit(tmp_path, "Approve go implementation")
        assert sha
        assert git_ops.has_staged_changes(tmp_path) is False

    def test_unstage_discard_and_clean_restore_checkpoint(self, tmp_path: Path) -> None:
        (tmp_path / "sdk.go").write_text("v1\n", encoding="utf-8")
        git_ops.init_repo(tmp_path, "go")

        (tmp_path / "sdk.go").write_text("v2\n", encoding="utf-8")
        (tmp_path / "extra.go").write_text("new\n", encoding="utf-8")
        git_ops.stage_all(tmp_path)

        git_ops.unstage_all(tmp_path)
        git_ops.discard_unstaged(tmp_path)
        git_ops.clean_untracked(tmp_path)

        assert (tmp_path / "sdk.go").read_text(encoding="utf-8") == "v1\n"
        assert not (tmp_path / "extra.go").exists()
        assert git_ops.status_porcelain(tmp_path) == ""
