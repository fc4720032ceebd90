"""Command-line interface for Blacksmith."""

from __future__ import annotations

import argparse
import logging
import shutil
import subprocess
import sys
import textwrap
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

from blacksmith import __version__
from blacksmith.config import ConfigError, Settings, load_settings
from blacksmith.errors import BlacksmithError
from blacksmith.generators import GENERATOR_NAMES

if TYPE_CHECKING:
    from blacksmith.models import RunSummary
    from blacksmith.services import Services


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blacksmith",
        description=(
            "Blacksmith: regenerate SDK sources for many languages from an English "
            "specification and review them per language."
        ),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a blacksmith.yaml file. Overrides the BLACKSMITH_CONFIG env var.",
    )
    parser.add_argument(
        "--root",
        type=Path,
        default=None,
        help="Files folder holding english/ and languages/. Default: ./files.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Enable debug logging.",
    )

    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API.")
    serve_parser.add_argument("--host", type=str, default=None, help="Bind address.")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port.")
    _add_generator_option(serve_parser)

    update_parser = subparsers.add_parser(
        "update",
        help="Regenerate every target from the specification and wait for the run.",
    )
    _add_generator_option(update_parser)

    approve_parser = subparsers.add_parser("approve", help="Commit a target's staged output.")
    approve_parser.add_argument("target", help="Target id, e.g. python.")
    approve_parser.add_argument(
        "--message",
        "-m",
        type=str,
        default=None,
        help="Commit message (default: 'Approve <target> implementation').",
    )

    reject_parser = subparsers.add_parser(
        "reject",
        help="Discard a target's staged output and restore its last checkpoint.",
    )
    reject_parser.add_argument("target", help="Target id, e.g. python.")

    status_parser = subparsers.add_parser("status", help="Show staged changes.")
    status_parser.add_argument(
        "target",
        nargs="?",
        default=None,
        help="Target id (or 'english'). Without it, summarize every workspace.",
    )

    subparsers.add_parser("targets", help="List configured targets.")

    save_parser = subparsers.add_parser(
        "save",
        help="Write one file into a workspace and stage it.",
    )
    save_parser.add_argument("target", help="Target id (or 'english').")
    save_parser.add_argument("path", help="Path relative to the workspace root.")
    content_group = save_parser.add_mutually_exclusive_group(required=True)
    content_group.add_argument("--content", type=str, default=None, help="File content.")
    content_group.add_argument(
        "--from-file",
        type=Path,
        default=None,
        help="Read the file content from this local file.",
    )

    doctor_parser = subparsers.add_parser("doctor", help="Check environment health.")
    _add_generator_option(doctor_parser)

    return parser


def _add_generator_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--generator",
        type=str,
        default=None,
        choices=list(GENERATOR_NAMES),
        help=(
            "Generator used for updates. Overrides the BLACKSMITH_GENERATOR env var. "
            "Default: mock."
        ),
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _serve_command(settings: Settings, *, verbose: bool) -> int:
    import uvicorn

    from blacksmith.api import create_app

    services = _build_services(settings)
    if services is None:
        return 1
    app = create_app(services=services)
    print(f"Serving Blacksmith on http://{settings.host}:{settings.port}")
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level="debug" if verbose else "info",
    )
    return 0


def _update_command(settings: Settings) -> int:
    services = _build_services(settings)
    if services is None:
        return 1
    orchestrator = services.orchestrator
    handle = orchestrator.start_update()
    print(f"Update {handle.run_id} started for {len(orchestrator.targets)} target(s)")
    summary = orchestrator.wait()
    if summary is None:
        print("Error: update run did not report a result", file=sys.stderr)
        return 1

    _print_run_summary(summary)
    progress = orchestrator.get_progress()
    print(progress.message)
    if summary.error is not None or summary.cancelled:
        return 1
    return 0


def _approve_command(settings: Settings, target: str, message: str | None) -> int:
    services = _build_services(settings)
    if services is None:
        return 1
    try:
        result = services.store.approve(target, message)
    except BlacksmithError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    if result.committed:
        print(f"Approved {target}: {result.checkpoint_id}")
    else:
        print(f"Nothing staged for {target}.")
    return 0


def _reject_command(settings: Settings, target: str) -> int:
    services = _build_services(settings)
    if services is None:
        return 1
    try:
        result = services.store.reject(target)
    except BlacksmithError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    if result.reverted:
        print(f"Rejected {target}; restored last checkpoint.")
    else:
        print(f"Nothing staged for {target}.")
    return 0


def _status_command(settings: Settings, target: str | None) -> int:
    services = _build_services(settings)
    if services is None:
        return 1
    try:
        if target is None:
            rows = [
                (
                    state.target,
                    state.label,
                    _yes_no(state.has_staged_changes),
                    _yes_no(state.has_unstaged_changes),
                )
                for state in services.store.list_targets()
            ]
            _print_table(["Target", "Label", "Staged", "Unstaged"], rows)
            return 0
        status = services.store.get_status(target)
    except BlacksmithError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if not status.staged_files:
        print(f"{target}: no staged changes")
    else:
        _print_table(
            ["State", "Path"],
            [(state.value, path) for path, state in sorted(status.staged_files.items())],
        )
    if status.has_unstaged_changes:
        print("Unstaged changes present.")
    return 0


def _targets_command(settings: Settings) -> int:
    for target in settings.targets:
        print(target)
    return 0


def _save_command(
    settings: Settings,
    target: str,
    relative_path: str,
    *,
    content: str | None,
    from_file: Path | None,
) -> int:
    if from_file is not None:
        try:
            content = from_file.read_text(encoding="utf-8")
        except OSError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
    services = _build_services(settings)
    if services is None:
        return 1
    try:
        services.store.save_file(target, relative_path, content or "")
    except (BlacksmithError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(f"Saved {relative_path} in {target} (staged).")
    return 0


def _doctor_command(settings: Settings) -> int:
    from blacksmith.generators import resolve_generator_name

    failures = 0
    checks: list[tuple[str, bool, str]] = []

    py_ok = sys.version_info >= (3, 11)
    checks.append(("python", py_ok, _format_python_version()))

    git_ok, git_detail = _check_git()
    checks.append(("git", git_ok, git_detail))

    checks.append(("root", *_check_root(settings)))

    try:
        generator_name = resolve_generator_name(settings.generator)
    except ValueError as exc:
        checks.append(("generator", False, str(exc)))
        generator_name = None

    if generator_name is None:
        pass
    elif generator_name == "mock":
        checks.append(("generator", True, "mock generator available"))
    elif generator_name == "claude":
        checks.append(("generator", *_check_claude_executable()))
    else:
        checks.append(("generator", *_check_openai_key()))

    for name, ok, detail in checks:
        status = "OK" if ok else "FAIL"
        print(f"{name}: {status} - {detail}")
        if not ok:
            failures += 1

    return 1 if failures else 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        # No subcommand: print help by default.
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides: dict[str, object] = {"root": args.root}
    if args.command in ("serve", "update", "doctor"):
        overrides["generator"] = args.generator
    if args.command == "serve":
        overrides["host"] = args.host
        overrides["port"] = args.port
    try:
        settings = load_settings(args.config, **overrides)
    except (ConfigError, FileNotFoundError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.command == "serve":
        return _serve_command(settings, verbose=args.verbose)
    if args.command == "update":
        return _update_command(settings)
    if args.command == "approve":
        return _approve_command(settings, args.target, args.message)
    if args.command == "reject":
        return _reject_command(settings, args.target)
    if args.command == "status":
        return _status_command(settings, args.target)
    if args.command == "targets":
        return _targets_command(settings)
    if args.command == "save":
        return _save_command(
            settings,
            args.target,
            args.path,
            content=args.content,
            from_file=args.from_file,
        )
    if args.command == "doctor":
        return _doctor_command(settings)

    parser.print_help()
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _build_services(settings: Settings) -> Services | None:
    from blacksmith.services import build_services

    try:
        return build_services(settings)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return None


def _print_run_summary(summary: RunSummary) -> None:
    if not summary.outcomes:
        print("No targets processed.")
    else:
        rows = [
            (
                outcome.target,
                outcome.status.value,
                str(len(outcome.files_written)),
                _clean_detail(outcome.error or ""),
            )
            for outcome in summary.outcomes
        ]
        _print_table(["Target", "Status", "Files", "Detail"], rows)

    print(
        "Totals: "
        f"processed={len(summary.processed_targets)}, "
        f"skipped={len(summary.skipped_targets)}, "
        f"duration={summary.duration_seconds:.2f}s"
    )
    if summary.cancelled:
        print("Run was cancelled.")
    if summary.error is not None:
        print(f"Error: {summary.error}", file=sys.stderr)


def _print_table(headers: Iterable[str], rows: Iterable[tuple[str, ...]]) -> None:
    headers = list(headers)
    rows_list = list(rows)
    widths = [len(header) for header in headers]
    for row in rows_list:
        for idx, cell in enumerate(row):
            widths[idx] = max(widths[idx], len(cell))

    header_line = "  ".join(header.ljust(widths[idx]) for idx, header in enumerate(headers))
    print(header_line)
    print("-" * len(header_line))
    for row in rows_list:
        print("  ".join(row[idx].ljust(widths[idx]) for idx in range(len(widths))))


def _clean_detail(detail: str) -> str:
    collapsed = " ".join(detail.split())
    return textwrap.shorten(collapsed, width=60, placeholder="...")


def _yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


def _check_git() -> tuple[bool, str]:
    try:
        proc = subprocess.run(
            ["git", "--version"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        return False, f"git not available ({exc})"
    if proc.returncode != 0:
        return False, proc.stderr.strip() or proc.stdout.strip() or "git command failed"
    return True, proc.stdout.strip()


def _check_root(settings: Settings) -> tuple[bool, str]:
    root = settings.root.resolve()
    if root.is_dir():
        return True, str(root)
    if root.exists():
        return False, f"root is not a directory: {root}"
    template = settings.template_dir
    if template is not None and template.is_dir():
        return True, f"{root} will be created from {template.resolve()}"
    return True, f"{root} will be created on first update"


def _check_claude_executable() -> tuple[bool, str]:
    from blacksmith.generators import ClaudeCodeGenerator

    executable = ClaudeCodeGenerator().executable
    if shutil.which(executable) is None:
        return (
            False,
            (
                f"Claude Code CLI not found: '{executable}'. "
                "Install it or set CLAUDE_CODE_EXECUTABLE."
            ),
        )
    return True, f"found {executable}"


def _check_openai_key() -> tuple[bool, str]:
    from blacksmith.generators import OpenAIGenerator

    generator = OpenAIGenerator()
    try:
        if not generator.has_api_key:
            return False, "OPENAI_API_KEY is not set"
        return True, f"API key present (model {generator.model})"
    finally:
        generator.close()


def _format_python_version() -> str:
    return f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"


if __name__ == "__main__":
    sys.exit(main())
