"""Deterministic mock generator for tests and offline use."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from blacksmith.errors import GenerationError
from blacksmith.generators.prompt import file_extension

__all__ = ["MockGenerator", "MockGeneratorConfig"]

_HASH_COMMENT = frozenset(("python", "ruby"))


@dataclass(frozen=True)
class MockGeneratorConfig:
    """Configuration for deterministic mock output.

    ``files`` replaces the default output for every target; ``per_target``
    overrides it for individual targets (``None`` meaning "produce nothing").
    ``error`` makes every call fail.
    """

    files: dict[str, str] | None = None
    per_target: dict[str, dict[str, str] | None] = field(default_factory=dict)
    error: str | None = None


class MockGenerator:
    """Generator that echoes the specification into one stub file per target."""

    def __init__(self, *, config: MockGeneratorConfig | None = None) -> None:
        self._config = config or MockGeneratorConfig()
        self.calls: list[str] = []

    def generate(
        self,
        target: str,
        spec_files: Mapping[str, str],
        current_files: Mapping[str, str],
    ) -> dict[str, str]:
        self.calls.append(target)
        if self._config.error is not None:
            raise GenerationError(self._config.error)
        if target in self._config.per_target:
            override = self._config.per_target[target]
            return dict(override) if override else {}
        if self._config.files is not None:
            return dict(self._config.files)
        return {f"sdk.{file_extension(target)}": _render_stub(target, spec_files)}


def _render_stub(target: str, spec_files: Mapping[str, str]) -> str:
    marker = "#" if target in _HASH_COMMENT else "//"
    lines = [f"{marker} Generated {target} implementation ({len(spec_files)} spec file(s))"]
    for name in sorted(spec_files):
        lines.append(f"{marker} === {name} ===")
        lines.extend(f"{marker} {line}".rstrip() for line in spec_files[name].splitlines())
    return "\n".join(lines) + "\n"
