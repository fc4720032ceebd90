"""Settings loading.

Precedence for every setting: explicit override (CLI flag) > environment
variable > YAML config file > built-in default.  The YAML file is looked up
from ``--config``, then ``BLACKSMITH_CONFIG``, then ``./blacksmith.yaml``.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

__all__ = [
    "DEFAULT_TARGETS",
    "ConfigError",
    "Settings",
    "env_bool",
    "env_float",
    "env_int",
    "env_list",
    "load_settings",
    "read_env_value",
    "validate_targets",
]

DEFAULT_TARGETS: tuple[str, ...] = (
    "javascript",
    "python",
    "java",
    "csharp",
    "cpp",
    "ruby",
    "go",
    "rust",
    "swift",
    "kotlin",
)

_CONFIG_FILENAME = "blacksmith.yaml"
_TARGET_ID_RE = re.compile(r"^[a-z0-9][a-z0-9_+-]*$")
_RESERVED_IDS = frozenset(("english", "languages"))
_FILE_KEYS = frozenset(
    (
        "root",
        "template_dir",
        "targets",
        "generator",
        "spec_commit_message",
        "host",
        "port",
        "cors_origins",
    )
)

_ENV_CONFIG = "BLACKSMITH_CONFIG"
_ENV_ROOT = "BLACKSMITH_ROOT"
_ENV_TEMPLATE_DIR = "BLACKSMITH_TEMPLATE_DIR"
_ENV_TARGETS = "BLACKSMITH_TARGETS"
_ENV_GENERATOR = "BLACKSMITH_GENERATOR"
_ENV_HOST = "BLACKSMITH_HOST"
_ENV_PORT = "BLACKSMITH_PORT"
_ENV_CORS = "BLACKSMITH_CORS_ORIGINS"


class ConfigError(ValueError):
    """Raised when configuration values fail validation."""

    def __init__(self, source: str, errors: Iterable[str]) -> None:
        self.source = source
        self.errors = [error for error in errors if error]
        details = "\n".join(f"- {error}" for error in self.errors)
        message = f"Invalid configuration: {source}"
        if details:
            message = f"{message}\n{details}"
        super().__init__(message)


@dataclass(frozen=True)
class Settings:
    """Resolved process configuration."""

    root: Path = Path("files")
    template_dir: Path | None = Path("default-files")
    targets: tuple[str, ...] = DEFAULT_TARGETS
    generator: str = "mock"
    spec_commit_message: str = "Update English specification"
    host: str = "127.0.0.1"
    port: int = 3003
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    config_path: Path | None = None


def load_settings(config_path: Path | None = None, **overrides: Any) -> Settings:
    """Build Settings from overrides, the environment and an optional YAML file.

    Relative paths read from the config file are anchored at the file's
    directory; every other relative path stays relative to the cwd.
    """
    path = _find_config_file(config_path)
    data = _load_config_file(path) if path is not None else {}
    source = str(path) if path is not None else "environment"
    defaults = Settings()

    def pick(key: str, env_value: Any) -> Any:
        override = overrides.get(key)
        if override is not None:
            return override
        if env_value is not None:
            return env_value
        if key in data:
            return data[key]
        return getattr(defaults, key)

    def pick_path(key: str, env_key: str) -> Path | None:
        value = pick(key, read_env_value(env_key))
        if not value:
            return None
        resolved = Path(value)
        from_file = overrides.get(key) is None and read_env_value(env_key) is None
        if path is not None and from_file and key in data and not resolved.is_absolute():
            return path.parent / resolved
        return resolved

    targets = validate_targets(pick("targets", env_list(_ENV_TARGETS)), source=source)
    port_raw = pick("port", read_env_value(_ENV_PORT))
    try:
        port = int(port_raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(source, [f"port must be an integer, got {port_raw!r}"]) from exc

    root = pick_path("root", _ENV_ROOT)
    if root is None:
        raise ConfigError(source, ["root must not be empty"])

    return Settings(
        root=root,
        template_dir=pick_path("template_dir", _ENV_TEMPLATE_DIR),
        targets=targets,
        generator=str(pick("generator", read_env_value(_ENV_GENERATOR))).strip().lower(),
        spec_commit_message=str(pick("spec_commit_message", None)),
        host=str(pick("host", read_env_value(_ENV_HOST))),
        port=port,
        cors_origins=[str(origin) for origin in pick("cors_origins", env_list(_ENV_CORS))],
        config_path=path,
    )


def validate_targets(raw: object, *, source: str = "targets") -> tuple[str, ...]:
    """Validate a target list: unique, non-empty, lowercase ids."""
    if isinstance(raw, str) or not isinstance(raw, Iterable):
        raise ConfigError(source, ["targets must be a list of strings"])
    errors: list[str] = []
    seen: list[str] = []
    for item in raw:
        if not isinstance(item, str) or not _TARGET_ID_RE.match(item):
            errors.append(f"invalid target id {item!r} (use lowercase letters, digits, _ + -)")
            continue
        if item in _RESERVED_IDS:
            errors.append(f"target id '{item}' is reserved")
            continue
        if item in seen:
            errors.append(f"duplicate target id '{item}'")
            continue
        seen.append(item)
    if not seen and not errors:
        errors.append("at least one target is required")
    if errors:
        raise ConfigError(source, errors)
    return tuple(seen)


# ---------------------------------------------------------------------------
# Environment helpers
# ---------------------------------------------------------------------------


def read_env_value(key: str) -> str | None:
    value = os.environ.get(key)
    if value is None:
        return None
    return value.strip() or None


def env_list(key: str) -> list[str] | None:
    raw = read_env_value(key)
    if not raw:
        return None
    return [item.strip() for item in raw.split(",") if item.strip()]


def env_int(key: str) -> int | None:
    raw = read_env_value(key)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def env_float(key: str) -> float | None:
    raw = read_env_value(key)
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def env_bool(key: str) -> bool | None:
    raw = read_env_value(key)
    if not raw:
        return None
    return raw.lower() in {"1", "true", "yes", "on"}


# ---------------------------------------------------------------------------
# Config file
# ---------------------------------------------------------------------------


def _find_config_file(explicit: Path | None) -> Path | None:
    if explicit is not None:
        resolved = explicit.resolve()
        if not resolved.is_file():
            msg = f"Config file not found: {resolved}"
            raise FileNotFoundError(msg)
        return resolved
    env_path = read_env_value(_ENV_CONFIG)
    if env_path:
        return _find_config_file(Path(env_path))
    default = Path.cwd() / _CONFIG_FILENAME
    return default.resolve() if default.is_file() else None


def _load_config_file(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(str(path), [f"YAML parse error: {exc}"]) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(str(path), ["top-level value must be a mapping"])
    unknown = sorted(str(key) for key in data if key not in _FILE_KEYS)
    if unknown:
        raise ConfigError(str(path), [f"unknown key '{key}'" for key in unknown])
    return data
