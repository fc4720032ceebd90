"""Tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from blacksmith.config import (
    DEFAULT_TARGETS,
    ConfigError,
    Settings,
    load_settings,
    validate_targets,
)

_ENV_VARS = (
    "BLACKSMITH_CONFIG",
    "BLACKSMITH_ROOT",
    "BLACKSMITH_TEMPLATE_DIR",
    "BLACKSMITH_TARGETS",
    "BLACKSMITH_GENERATOR",
    "BLACKSMITH_HOST",
    "BLACKSMITH_PORT",
    "BLACKSMITH_CORS_ORIGINS",
)


@pytest.fixture(autouse=True)
def _isolated(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def _write_config(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    def test_defaults(self) -> None:
        settings = load_settings()
        assert settings == Settings()
        assert settings.targets == DEFAULT_TARGETS
        assert settings.root == Path("files")
        assert settings.port == 3003
        assert settings.generator == "mock"
        assert settings.config_path is None

    def test_default_targets(self) -> None:
        assert DEFAULT_TARGETS[:3] == ("javascript", "python", "java")
        assert len(DEFAULT_TARGETS) == 10


class TestPrecedence:
    def test_yaml_file(self, tmp_path: Path) -> None:
        config = _write_config(
            tmp_path / "custom.yaml",
            "root: data\ntargets: [python, go]\nport: 8080\ngenerator: Claude\n",
        )
        settings = load_settings(config)
        assert settings.root == config.resolve().parent / "data"
        assert settings.targets == ("python", "go")
        assert settings.port == 8080
        assert settings.generator == "claude"
        assert settings.config_path == config.resolve()

    def test_default_file_in_cwd(self, tmp_path: Path) -> None:
        _write_config(tmp_path / "blacksmith.yaml", "targets: [rust]\n")
        assert load_settings().targets == ("rust",)

    def test_config_env_var(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        config = _write_config(tmp_path / "other.yaml", "host: 0.0.0.0\n")
        monkeypatch.setenv("BLACKSMITH_CONFIG", str(config))
        assert load_settings().host == "0.0.0.0"

    def test_env_beats_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        config = _write_config(tmp_path / "b.yaml", "targets: [python]\nport: 8080\nroot: data\n")
        monkeypatch.setenv("BLACKSMITH_TARGETS", "go, rust")
        monkeypatch.setenv("BLACKSMITH_PORT", "9000")
        monkeypatch.setenv("BLACKSMITH_ROOT", "elsewhere")
        settings = load_settings(config)
        assert settings.targets == ("go", "rust")
        assert settings.port == 9000
        # Environment paths stay relative to the working directory.
        assert settings.root == Path("elsewhere")

    def test_override_beats_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BLACKSMITH_ROOT", "from-env")
        monkeypatch.setenv("BLACKSMITH_GENERATOR", "openai")
        settings = load_settings(root=Path("from-flag"), generator="mock")
        assert settings.root == Path("from-flag")
        assert settings.generator == "mock"

    def test_empty_template_dir_disables_template(self, tmp_path: Path) -> None:
        config = _write_config(tmp_path / "b.yaml", "template_dir: ''\n")
        assert load_settings(config).template_dir is None

    def test_cors_origins_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BLACKSMITH_CORS_ORIGINS", "http://a.test, http://b.test")
        assert load_settings().cors_origins == ["http://a.test", "http://b.test"]


class TestErrors:
    def test_missing_explicit_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_settings(tmp_path / "missing.yaml")

    def test_unknown_key(self, tmp_path: Path) -> None:
        config = _write_config(tmp_path / "b.yaml", "languages: [python]\n")
        with pytest.raises(ConfigError, match="unknown key 'languages'"):
            load_settings(config)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        config = _write_config(tmp_path / "b.yaml", "- python\n- go\n")
        with pytest.raises(ConfigError, match="top-level value must be a mapping"):
            load_settings(config)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        config = _write_config(tmp_path / "b.yaml", "targets: [python\n")
        with pytest.raises(ConfigError, match="YAML parse error"):
            load_settings(config)

    def test_bad_port(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BLACKSMITH_PORT", "http")
        with pytest.raises(ConfigError, match="port must be an integer"):
            load_settings()

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        config = _write_config(tmp_path / "b.yaml", "")
        assert load_settings(config).targets == DEFAULT_TARGETS


class TestValidateTargets:
    def test_valid(self) -> None:
        assert validate_targets(["python", "objective-c", "c++"]) == (
            "python",
            "objective-c",
            "c++",
        )

    @pytest.mark.parametrize(
        ("raw", "message"),
        [
            ("python", "targets must be a list"),
            ([], "at least one target is required"),
            (["Python"], "invalid target id"),
            (["../x"], "invalid target id"),
            (["english"], "target id 'english' is reserved"),
            (["languages"], "target id 'languages' is reserved"),
            (["go", "go"], "duplicate target id 'go'"),
        ],
    )
    def test_invalid(self, raw: object, message: str) -> None:
        with pytest.raises(ConfigError, match=message):
            validate_targets(raw)

    def test_collects_every_error(self) -> None:
        with pytest.raises(ConfigError) as excinfo:
            validate_targets(["Go", "english"])
        assert len(excinfo.value.errors) == 2
