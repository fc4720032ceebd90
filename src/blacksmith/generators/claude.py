"""Claude Code generator implementation."""

from __future__ import annotations

import json
import shutil
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from blacksmith.config import env_bool, env_float, env_int, read_env_value
from blacksmith.errors import GenerationError
from blacksmith.generator import normalize_file_map, parse_json_payload
from blacksmith.generators.prompt import FILES_SCHEMA, render_prompt

__all__ = ["ClaudeCodeConfig", "ClaudeCodeGenerator"]


_DEFAULT_TIMEOUT = 600
_DEFAULT_EXECUTABLE = "claude"

_ENV_EXECUTABLE = "CLAUDE_CODE_EXECUTABLE"
_ENV_MODEL = "CLAUDE_CODE_MODEL"
_ENV_MAX_TURNS = "CLAUDE_CODE_MAX_TURNS"
_ENV_MAX_BUDGET = "CLAUDE_CODE_MAX_BUDGET_USD"
_ENV_TIMEOUT = "CLAUDE_CODE_TIMEOUT"
_ENV_NO_SESSION = "CLAUDE_CODE_NO_SESSION_PERSISTENCE"

_SCHEMA_NOTE = (
    'Return JSON that conforms to the provided JSON Schema: put the file map under "files".'
)


@dataclass(frozen=True)
class ClaudeCodeConfig:
    """Configuration options for the Claude Code generator."""

    executable: str | None = None
    model: str | None = None
    max_turns: int | None = None
    max_budget_usd: float | None = None
    no_session_persistence: bool | None = None
    timeout: int | None = None


class ClaudeCodeGenerator:
    """Generator that shells out to the Claude Code CLI in print mode."""

    def __init__(self, config: ClaudeCodeConfig | None = None) -> None:
        resolved = config or ClaudeCodeConfig()
        self._executable = (
            resolved.executable or read_env_value(_ENV_EXECUTABLE) or _DEFAULT_EXECUTABLE
        )
        self._model = resolved.model or read_env_value(_ENV_MODEL)
        self._max_turns = resolved.max_turns or env_int(_ENV_MAX_TURNS)
        self._max_budget_usd = resolved.max_budget_usd or env_float(_ENV_MAX_BUDGET)
        self._timeout = resolved.timeout or env_int(_ENV_TIMEOUT) or _DEFAULT_TIMEOUT
        env_no_session = env_bool(_ENV_NO_SESSION)
        self._no_session_persistence = (
            resolved.no_session_persistence
            if resolved.no_session_persistence is not None
            else (env_no_session if env_no_session is not None else True)
        )

    @property
    def executable(self) -> str:
        return self._executable

    def generate(
        self,
        target: str,
        spec_files: Mapping[str, str],
        current_files: Mapping[str, str],
    ) -> dict[str, str]:
        executable = shutil.which(self._executable)
        if executable is None:
            msg = (
                f"Claude Code CLI not found: '{self._executable}'. "
                "Install it or set CLAUDE_CODE_EXECUTABLE to the correct path."
            )
            raise GenerationError(msg)

        prompt = f"{render_prompt(target, spec_files, current_files)}\n\n{_SCHEMA_NOTE}"
        cmd = self._build_command(executable, prompt)
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as exc:
            msg = f"Claude Code timed out after {self._timeout} seconds."
            raise GenerationError(msg) from exc

        if proc.returncode != 0:
            output = proc.stderr.strip() or proc.stdout.strip() or f"Exit code {proc.returncode}"
            msg = f"Claude Code failed (exit {proc.returncode}): {output}"
            raise GenerationError(msg)

        return normalize_file_map(_extract_files(proc.stdout))

    def _build_command(self, executable: str, prompt: str) -> list[str]:
        cmd = [
            executable,
            "-p",
            "--output-format",
            "json",
            "--json-schema",
            json.dumps(FILES_SCHEMA, separators=(",", ":")),
        ]
        if self._model:
            cmd.extend(["--model", self._model])
        if self._max_turns is not None:
            cmd.extend(["--max-turns", str(self._max_turns)])
        if self._max_budget_usd is not None:
            cmd.extend(["--max-budget-usd", str(self._max_budget_usd)])
        if self._no_session_persistence:
            cmd.append("--no-session-persistence")
        cmd.append(prompt)
        return cmd


def _extract_files(raw: str) -> object:
    envelope = parse_json_payload(raw)
    if not isinstance(envelope, dict):
        msg = "Expected JSON object output from Claude Code."
        raise GenerationError(msg)

    structured: Any = envelope.get("structured_output")
    if structured is None and isinstance(envelope.get("result"), str):
        # Without schema enforcement the CLI puts the model text under "result".
        structured = parse_json_payload(envelope["result"])
    if not isinstance(structured, dict):
        msg = "Claude Code returned missing structured output"
        raise GenerationError(msg)

    return structured.get("files", structured)
