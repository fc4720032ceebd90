"""Prompt template and structured output schema shared by the model generators."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

__all__ = ["FILES_SCHEMA", "file_extension", "render_input", "render_instructions", "render_prompt"]

_EXTENSIONS: dict[str, str] = {
    "javascript": "js",
    "python": "py",
    "java": "java",
    "csharp": "cs",
    "cpp": "cpp",
    "ruby": "rb",
    "go": "go",
    "rust": "rs",
    "swift": "swift",
    "kotlin": "kt",
}

FILES_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "files": {
            "type": "object",
            "additionalProperties": {"type": "string"},
        }
    },
    "required": ["files"],
    "additionalProperties": False,
}


def file_extension(target: str) -> str:
    return _EXTENSIONS.get(target, "txt")


def render_instructions(target: str, *, has_existing_files: bool) -> str:
    """Render the system instructions for one target."""
    verb = "Update" if has_existing_files else "Create"
    if has_existing_files:
        step_two = (
            f"Update the existing {target} code to implement the English spec. If files are "
            "missing that should exist based on the spec, CREATE them with appropriate content."
        )
        step_three = (
            "For existing files: Keep changes minimal - preserve existing code style and structure"
        )
    else:
        step_two = (
            f"Create NEW {target} files that implement the English spec since no existing "
            "files were found."
        )
        step_three = f"Create clean, idiomatic code following best practices for {target}"

    ext = file_extension(target)
    lines = [
        f"Task: {verb} {target} code files to match the English specification.",
        "",
        "Instructions:",
        "1. Analyze the English language specification files below",
        f"2. {step_two}",
        f"3. {step_three}",
        "4. If the English spec references files that don't exist in the current "
        "implementation, CREATE those missing files",
        "5. Output ONLY a valid JSON object with filename keys and file content values",
        "6. Do not include any explanation, markdown, or extra text",
        "",
        "Output format (MUST be valid JSON):",
        "{",
        f'  "filename1.{ext}": "file content here",',
        f'  "filename2.{ext}": "another file content"',
        "}",
    ]
    return "\n".join(lines)


def render_input(
    target: str,
    spec_files: Mapping[str, str],
    current_files: Mapping[str, str],
) -> str:
    """Render the specification and the target's current files."""
    if current_files:
        current = json.dumps(dict(current_files), indent=2)
    else:
        current = "(No existing files - please create all necessary files from scratch)"
    return "\n".join(
        [
            "English Specification Files:",
            json.dumps(dict(spec_files), indent=2),
            "",
            f"Current {target} Implementation Files:",
            current,
        ]
    )


def render_prompt(
    target: str,
    spec_files: Mapping[str, str],
    current_files: Mapping[str, str],
) -> str:
    """Render instructions and input as a single prompt."""
    instructions = render_instructions(target, has_existing_files=bool(current_files))
    return f"{instructions}\n\n{render_input(target, spec_files, current_files)}"
