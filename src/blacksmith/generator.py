"""Generator protocol and output validation for the generation capability."""

from __future__ import annotations

import json
import posixpath
import re
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from blacksmith.errors import GenerationError

__all__ = ["Generator", "normalize_file_map", "parse_json_payload"]

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


@runtime_checkable
class Generator(Protocol):
    """Turns a specification plus a target's current files into new files."""

    def generate(
        self,
        target: str,
        spec_files: Mapping[str, str],
        current_files: Mapping[str, str],
    ) -> dict[str, str]:
        """Return the complete new file set for *target*.

        Raises:
            GenerationError: If generation failed or produced unusable output.
        """
        ...


def parse_json_payload(raw: str) -> Any:
    """Parse model output as JSON, unwrapping a fenced code block if present."""
    cleaned = raw.strip()
    match = _FENCE_RE.search(cleaned)
    if match:
        cleaned = match.group(1)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        msg = f"Invalid JSON output: {str(exc).strip()}"
        raise GenerationError(msg) from exc


def normalize_file_map(raw: object) -> dict[str, str]:
    """Validate a generated ``{path: content}`` mapping.

    Paths must be non-empty relative POSIX paths without ``..`` segments;
    contents must be strings, and no path may also be the parent directory
    of another.  An empty mapping is unusable output.
    """
    if not isinstance(raw, Mapping):
        msg = f"Expected a mapping of file paths to contents, got {type(raw).__name__}"
        raise GenerationError(msg)
    if not raw:
        msg = "Generator returned no files"
        raise GenerationError(msg)

    files: dict[str, str] = {}
    for key, value in raw.items():
        if not isinstance(key, str) or not key.strip():
            msg = f"Invalid file name: {key!r}"
            raise GenerationError(msg)
        if not isinstance(value, str):
            msg = f"Content for {key!r} must be a string"
            raise GenerationError(msg)
        path = key.strip().replace("\\", "/")
        normalized = posixpath.normpath(path)
        segments = normalized.split("/")
        if (
            "\0" in path
            or path.startswith("/")
            or normalized == "."
            or segments[0] == ".."
            or ".git" in segments
        ):
            msg = f"Invalid file name: {key!r}"
            raise GenerationError(msg)
        files[normalized] = value

    for path in files:
        parent = posixpath.dirname(path)
        while parent:
            if parent in files:
                msg = f"File name {parent!r} is also used as a directory by {path!r}"
                raise GenerationError(msg)
            parent = posixpath.dirname(parent)
    return files
