"""Generator implementations and selection helpers."""

from __future__ import annotations

import os

from blacksmith.generators.claude import ClaudeCodeConfig, ClaudeCodeGenerator
from blacksmith.generators.mock import MockGenerator, MockGeneratorConfig
from blacksmith.generators.openai_http import OpenAIConfig, OpenAIGenerator

__all__ = [
    "GENERATOR_NAMES",
    "ClaudeCodeConfig",
    "ClaudeCodeGenerator",
    "MockGenerator",
    "MockGeneratorConfig",
    "OpenAIConfig",
    "OpenAIGenerator",
    "create_generator",
    "resolve_generator_name",
]

GENERATOR_NAMES = ("claude", "mock", "openai")

_ENV_VAR = "BLACKSMITH_GENERATOR"
_DEFAULT_GENERATOR = "mock"


def resolve_generator_name(cli_value: str | None = None) -> str:
    """Return the effective generator name after applying precedence rules."""
    name = cli_value or os.environ.get(_ENV_VAR) or _DEFAULT_GENERATOR
    name = name.strip().lower()
    if name not in GENERATOR_NAMES:
        msg = f"Unknown generator '{name}'. Available generators: {', '.join(GENERATOR_NAMES)}"
        raise ValueError(msg)
    return name


def create_generator(
    name: str,
    *,
    claude_config: ClaudeCodeConfig | None = None,
    openai_config: OpenAIConfig | None = None,
    mock_config: MockGeneratorConfig | None = None,
) -> MockGenerator | ClaudeCodeGenerator | OpenAIGenerator:
    """Instantiate a generator by its registered name."""
    if name == "mock":
        return MockGenerator(config=mock_config)
    if name == "claude":
        return ClaudeCodeGenerator(config=claude_config)
    if name == "openai":
        return OpenAIGenerator(config=openai_config)
    msg = f"Unknown generator: {name}"
    raise ValueError(msg)
