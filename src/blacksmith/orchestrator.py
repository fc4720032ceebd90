"""Update orchestration: one cancellable regeneration run at a time.

A run resets every target workspace to its checkpointed baseline, feeds
the specification to the generator once per target (in declaration
order), writes the returned files, stages everything and checkpoints the
specification workspace.  Target workspaces are left staged for review.

Starting a new run cancels the current one and waits for it to finish
unwinding before anything else touches the workspaces.  Cancellation is
cooperative: it is observed only between steps, never inside a generator
call or a git command.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from blacksmith.errors import CheckpointError, RunCancelledError, ValidationError
from blacksmith.generator import Generator, normalize_file_map
from blacksmith.models import (
    OutcomeStatus,
    Progress,
    RunHandle,
    RunSummary,
    TargetOutcome,
    generate_id,
    utc_now,
)
from blacksmith.progress import ProgressTracker
from blacksmith.workspace import Workspace, WorkspaceLayout

__all__ = ["DEFAULT_SPEC_COMMIT_MESSAGE", "CancellationToken", "UpdateOrchestrator"]

log = logging.getLogger(__name__)

DEFAULT_SPEC_COMMIT_MESSAGE = "Update English specification"

# Setup occupies [0, 0.25]; targets share (0.25, 0.95]; staging sits at 0.95.
_SETUP_SHARE = 0.25
_TARGETS_SHARE = 0.70
_STAGING_FRACTION = 0.95


class CancellationToken:
    """Cooperative cancellation flag checked at explicit points of a run."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, where: str) -> None:
        if self._event.is_set():
            msg = f"cancelled {where}"
            raise RunCancelledError(msg)


@dataclass
class _Run:
    run_id: str
    started_at: datetime
    token: CancellationToken
    thread: threading.Thread | None = None
    # Targets whose working tree this run may have written to.
    touched: list[str] = field(default_factory=list)
    summary: RunSummary | None = None


class UpdateOrchestrator:
    """Runs the regeneration pipeline on a background thread.

    Owns the "current run" pointer and the progress tracker; nothing here is
    module-global, so tests can build as many orchestrators as they like.
    """

    def __init__(
        self,
        layout: WorkspaceLayout,
        generator: Generator,
        targets: Sequence[str],
        *,
        template_dir: Path | None = None,
        spec_commit_message: str = DEFAULT_SPEC_COMMIT_MESSAGE,
        progress: ProgressTracker | None = None,
    ) -> None:
        if not targets:
            msg = "At least one target is required"
            raise ValueError(msg)
        self._layout = layout
        self._generator = generator
        self._targets = tuple(targets)
        self._template_dir = template_dir
        self._spec_commit_message = spec_commit_message
        self._progress = progress or ProgressTracker()

        self._start_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._current: _Run | None = None
        self._last: _Run | None = None

    # -- public API -----------------------------------------------------------

    @property
    def targets(self) -> tuple[str, ...]:
        return self._targets

    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._current is not None

    @property
    def last_summary(self) -> RunSummary | None:
        with self._state_lock:
            return self._last.summary if self._last is not None else None

    def get_progress(self) -> Progress:
        return self._progress.snapshot()

    def start_update(self) -> RunHandle:
        """Supersede any current run and start a new one in the background.

        Blocks only while a superseded run unwinds; the new run itself
        continues after this returns.
        """
        with self._start_lock:
            self._supersede()
            run = _Run(run_id=generate_id(), started_at=utc_now(), token=CancellationToken())
            self._progress.begin(run.run_id, run.started_at)
            run.thread = threading.Thread(
                target=self._execute,
                args=(run,),
                name=f"blacksmith-run-{run.run_id}",
                daemon=True,
            )
            with self._state_lock:
                self._current = run
                self._last = run
            run.thread.start()

        log.info("Update run %s started", run.run_id)
        return RunHandle(run_id=run.run_id, started_at=run.started_at)

    def wait(self, timeout: float | None = None) -> RunSummary | None:
        """Block until the current (or most recent) run ends; return its summary."""
        with self._state_lock:
            run = self._current or self._last
        if run is None:
            return None
        if run.thread is not None:
            run.thread.join(timeout)
        return run.summary

    def shutdown(self) -> None:
        """Cancel the current run, if any, and wait for it to unwind."""
        with self._start_lock:
            self._supersede()

    # -- run lifecycle ----------------------------------------------------------

    def _supersede(self) -> None:
        with self._state_lock:
            previous = self._current
        if previous is None:
            return
        log.warning("Cancelling previous update run %s", previous.run_id)
        previous.token.cancel()
        if previous.thread is not None:
            previous.thread.join()

    def _execute(self, run: _Run) -> None:
        started = time.monotonic()
        outcomes: list[TargetOutcome] = []
        cancelled = False
        error: str | None = None
        try:
            self._pipeline(run, outcomes)
        except RunCancelledError as exc:
            cancelled = True
            log.warning("Update run %s %s", run.run_id, exc)
            self._revert(run.touched)
            self._progress.cancel(run.run_id)
        except Exception as exc:
            # Anything escaping the pipeline is a run-level failure; the thread
            # must still publish it and release the current-run pointer.
            error = str(exc) or exc.__class__.__name__
            log.exception("Update run %s failed", run.run_id)
            self._progress.fail(run.run_id, error)
        finally:
            summary = RunSummary(
                run_id=run.run_id,
                outcomes=outcomes,
                cancelled=cancelled,
                error=error,
                duration_seconds=time.monotonic() - started,
            )
            run.summary = summary
            with self._state_lock:
                if self._current is run:
                    self._current = None
        _log_summary(summary)

    def _pipeline(self, run: _Run, outcomes: list[TargetOutcome]) -> None:
        token = run.token
        token.raise_if_cancelled("before starting")

        self._advance(run, 0.02, "Preparing workspaces")
        self._layout.ensure(self._targets, self._template_dir)

        self._advance(run, 0.10, "Discarding unstaged changes")
        for target in self._targets:
            self._reset_target(self._layout.workspace(target))

        token.raise_if_cancelled("after resetting workspaces")

        self._advance(run, 0.20, "Reading specification files")
        spec_files = self._layout.spec.read_files()
        log.info("Loaded %d specification file(s)", len(spec_files))
        self._advance(run, _SETUP_SHARE, f"Loaded {len(spec_files)} specification file(s)")

        total = len(self._targets)
        for index, target in enumerate(self._targets):
            token.raise_if_cancelled(f"before processing {target}")
            self._advance(run, 0.0, f"Processing {target} ({index + 1}/{total})")
            outcomes.append(self._process_target(run, target, spec_files))
            fraction = _SETUP_SHARE + _TARGETS_SHARE * (index + 1) / total
            self._advance(run, fraction, f"Finished {target} ({index + 1}/{total})")

        token.raise_if_cancelled("before staging")
        self._advance(run, _STAGING_FRACTION, "Staging changes")
        self._stage_and_checkpoint()

        processed = sum(o.status == OutcomeStatus.PROCESSED for o in outcomes)
        self._progress.finish(
            run.run_id,
            f"Update complete: {processed} processed, {len(outcomes) - processed} skipped",
        )

    def _process_target(
        self,
        run: _Run,
        target: str,
        spec_files: Mapping[str, str],
    ) -> TargetOutcome:
        workspace = self._layout.workspace(target)
        current_files = workspace.read_files()

        files: dict[str, str] = {}
        failure: str | None = None
        try:
            raw = self._generator.generate(target, spec_files, current_files)
            if raw:
                files = normalize_file_map(raw)
        except Exception as exc:
            # The generator is an external collaborator; its failure only
            # skips this target.
            failure = str(exc) or exc.__class__.__name__
            log.warning("Generation failed for %s: %s", target, failure)

        if run.token.cancelled:
            run.touched.append(target)
            run.token.raise_if_cancelled(f"after generating {target}")

        if failure is not None:
            return TargetOutcome(target=target, status=OutcomeStatus.FAILED, error=failure)
        if not files:
            log.warning("%s skipped - no output from generator", target)
            return TargetOutcome(target=target, status=OutcomeStatus.SKIPPED)

        with workspace.lock:
            run.touched.append(target)
            try:
                workspace.path.mkdir(parents=True, exist_ok=True)
                written = workspace.write_files(files)
            except (OSError, ValidationError) as exc:
                failure = str(exc) or exc.__class__.__name__
                log.warning("Writing output failed for %s: %s", target, failure)
                self._discard_partial_write(workspace)
                return TargetOutcome(target=target, status=OutcomeStatus.FAILED, error=failure)
        log.info("%s completed - %d file(s) written", target, len(written))
        return TargetOutcome(
            target=target,
            status=OutcomeStatus.PROCESSED,
            files_written=tuple(written),
        )

    def _stage_and_checkpoint(self) -> None:
        errors: list[str] = []
        spec_workspace = self._layout.spec
        spec_staged = _stage(spec_workspace, errors)
        for target in self._targets:
            _stage(self._layout.workspace(target), errors)

        if spec_staged:
            try:
                result = spec_workspace.commit_if_staged(self._spec_commit_message)
            except CheckpointError as exc:
                errors.append(f"{spec_workspace.name}: {exc}")
            else:
                if not result.committed:
                    log.info("No specification changes to commit")

        if errors:
            msg = "; ".join(errors)
            raise CheckpointError(msg)

    def _reset_target(self, workspace: Workspace) -> None:
        try:
            workspace.discard_changes()
        except CheckpointError as exc:
            log.warning("Could not reset %s: %s", workspace.name, exc)

    def _discard_partial_write(self, workspace: Workspace) -> None:
        try:
            workspace.discard_changes()
        except CheckpointError as exc:
            log.error("Failed to discard partial output in %s: %s", workspace.name, exc)

    def _revert(self, targets: Sequence[str]) -> None:
        for target in dict.fromkeys(targets):
            workspace = self._layout.workspace(target)
            try:
                workspace.discard_changes()
            except CheckpointError as exc:
                log.error("Failed to revert %s: %s", target, exc)
            else:
                log.info("Reverted changes in %s due to cancellation", target)

    def _advance(self, run: _Run, fraction: float, message: str) -> None:
        self._progress.advance(run.run_id, fraction, message)


def _stage(workspace: Workspace, errors: list[str]) -> bool:
    try:
        workspace.stage_all()
    except CheckpointError as exc:
        log.error("Failed to stage %s changes: %s", workspace.name, exc)
        errors.append(f"{workspace.name}: {exc}")
        return False
    return True


def _log_summary(summary: RunSummary) -> None:
    if summary.cancelled:
        log.info("Run %s cancelled after %.2fs", summary.run_id, summary.duration_seconds)
        return
    for outcome in summary.outcomes:
        detail = f" ({outcome.error})" if outcome.error else ""
        log.info("  %-12s %s%s", outcome.target, outcome.status.value, detail)
    log.info(
        "Run %s finished in %.2fs: %d processed, %d skipped",
        summary.run_id,
        summary.duration_seconds,
        len(summary.processed_targets),
        len(summary.skipped_targets),
    )
