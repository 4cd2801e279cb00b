"""Unit tests for config loading and validation (moltguard/config.py).

Covers:
  - Missing config file → defaults, no exception
  - Missing / unsupported version, bad YAML, non-mapping → SystemExit(1)
  - Invalid policy.mode / policy.sensitivity → SystemExit(1)
  - Non-numeric port / timeout, non-mapping section → SystemExit(1)
  - File values merged onto defaults
  - Environment overrides win over the file
  - Config is immutable
"""

from __future__ import annotations

import dataclasses
import textwrap
from pathlib import Path

import pytest

from moltguard.config import (
    SUPPORTED_VERSIONS,
    Config,
    load_config,
)
from moltguard.models.policy import Sensitivity, ValidationMode


@pytest.fixture(autouse=True)
def no_default_paths(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep a developer's own ~/.moltguard/config.yaml out of the tests."""
    monkeypatch.setattr(
        "moltguard.config.DEFAULT_CONFIG_PATHS", [str(tmp_path / "absent.yaml")]
    )


def _write(tmp_path: Path, content: str) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent(content))
    return str(path)


# ─── Defaults ─────────────────────────────────────────────────────────────────


class TestDefaults:
    def test_missing_file_returns_defaults(self) -> None:
        config = load_config(config_path="/nonexistent/config.yaml", environ={})
        assert config == Config.defaults()

    def test_default_values(self) -> None:
        config = Config.defaults()
        assert config.backend.url == "http://localhost:11434"
        assert config.backend.timeout_s == 60.0
        assert config.backend.auto_pull is True
        assert config.policy.mode == ValidationMode.LOCAL
        assert config.policy.sensitivity == Sensitivity.MEDIUM
        assert config.policy.guard_model == "granite3-guardian"
        assert config.proxy.host == "127.0.0.1"
        assert config.proxy.port == 3000
        assert config.vault.enabled is False
        assert config.path is None

    def test_supported_versions(self) -> None:
        assert SUPPORTED_VERSIONS == frozenset({1})

    def test_config_is_frozen(self) -> None:
        config = Config.defaults()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.policy.mode = ValidationMode.REMOTE  # type: ignore[misc]


# ─── File loading ─────────────────────────────────────────────────────────────


class TestFileLoading:
    def test_full_file(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            """
            version: 1
            backend:
              url: http://gpu-box:11434
              timeout_s: 15
              auto_pull: false
            policy:
              mode: Remote
              sensitivity: HIGH
              guard_model: shieldgemma:2b
            proxy:
              port: 8080
            """,
        )
        config = load_config(config_path=path, environ={})
        assert config.path == path
        assert config.backend.url == "http://gpu-box:11434"
        assert config.backend.timeout_s == 15.0
        assert config.backend.auto_pull is False
        assert config.policy.mode == ValidationMode.REMOTE
        assert config.policy.sensitivity == Sensitivity.HIGH
        assert config.policy.guard_model == "shieldgemma:2b"
        assert config.proxy.port == 8080
        assert config.proxy.host == "127.0.0.1"

    def test_version_only(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "version: 1\n")
        config = load_config(config_path=path, environ={})
        assert config.backend == Config.defaults().backend
        assert config.policy == Config.defaults().policy

    def test_env_config_path(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "version: 1\nproxy:\n  port: 9999\n")
        config = load_config(environ={"MOLTGUARD_CONFIG": path})
        assert config.proxy.port == 9999


class TestInvalidFiles:
    def test_missing_version(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        path = _write(tmp_path, "backend:\n  url: http://x\n")
        with pytest.raises(SystemExit) as exc_info:
            load_config(config_path=path, environ={})
        assert exc_info.value.code == 1
        assert "version" in capsys.readouterr().err

    def test_empty_file(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "")
        with pytest.raises(SystemExit):
            load_config(config_path=path, environ={})

    def test_unsupported_version(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        path = _write(tmp_path, "version: 2\n")
        with pytest.raises(SystemExit) as exc_info:
            load_config(config_path=path, environ={})
        assert exc_info.value.code == 1
        assert "Unsupported config version" in capsys.readouterr().err

    def test_bad_yaml(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "version: 1\npolicy: [unclosed\n")
        with pytest.raises(SystemExit):
            load_config(config_path=path, environ={})

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "- a\n- b\n")
        with pytest.raises(SystemExit):
            load_config(config_path=path, environ={})

    def test_invalid_mode(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        path = _write(tmp_path, "version: 1\npolicy:\n  mode: cloud\n")
        with pytest.raises(SystemExit):
            load_config(config_path=path, environ={})
        assert "policy.mode" in capsys.readouterr().err

    def test_invalid_sensitivity(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "version: 1\npolicy:\n  sensitivity: extreme\n")
        with pytest.raises(SystemExit):
            load_config(config_path=path, environ={})

    @pytest.mark.parametrize(
        "content, field",
        [
            ("version: 1\nproxy:\n  port: abc\n", "proxy.port"),
            ("version: 1\nproxy:\n  port: [3000]\n", "proxy.port"),
            ("version: 1\nbackend:\n  timeout_s: soon\n", "backend.timeout_s"),
            ("version: 1\nbackend:\n  timeout_s: true\n", "backend.timeout_s"),
        ],
    )
    def test_non_numeric_value(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str], content: str, field: str
    ) -> None:
        path = _write(tmp_path, content)
        with pytest.raises(SystemExit) as exc_info:
            load_config(config_path=path, environ={})
        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "CONFIG ERROR" in err
        assert field in err

    @pytest.mark.parametrize("section", ["backend", "policy", "proxy", "vault"])
    def test_section_not_a_mapping(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str], section: str
    ) -> None:
        path = _write(tmp_path, f"version: 1\n{section}: foo\n")
        with pytest.raises(SystemExit) as exc_info:
            load_config(config_path=path, environ={})
        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "CONFIG ERROR" in err
        assert f"'{section}'" in err

    def test_empty_section_uses_defaults(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "version: 1\nproxy:\n")
        assert load_config(config_path=path, environ={}).proxy.port == 3000


# ─── Environment overrides ────────────────────────────────────────────────────


class TestEnvironmentOverrides:
    def test_overrides_without_file(self) -> None:
        config = load_config(
            environ={
                "OLLAMA_URL": "http://10.0.0.5:11434",
                "VALIDATION_MODE": "remote",
                "SENSITIVITY": "low",
                "GUARD_MODEL": "llama-guard3",
                "MOLTGUARD_PORT": "4000",
            }
        )
        assert config.backend.url == "http://10.0.0.5:11434"
        assert config.policy.mode == ValidationMode.REMOTE
        assert config.policy.sensitivity == Sensitivity.LOW
        assert config.policy.guard_model == "llama-guard3"
        assert config.proxy.port == 4000

    def test_env_beats_file(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "version: 1\npolicy:\n  sensitivity: high\n")
        config = load_config(config_path=path, environ={"SENSITIVITY": "low"})
        assert config.policy.sensitivity == Sensitivity.LOW

    def test_vault_settings(self) -> None:
        config = load_config(
            environ={
                "VAULT_ADDR": "http://vault:8200",
                "VAULT_TOKEN": "root",
                "VAULT_SECRET_PATH": "secret/data/gateway",
            }
        )
        assert config.vault.enabled is True
        assert config.vault.address == "http://vault:8200"
        assert config.vault.path == "secret/data/gateway"

    def test_vault_needs_token(self) -> None:
        config = load_config(environ={"VAULT_ADDR": "http://vault:8200"})
        assert config.vault.enabled is False

    def test_invalid_env_mode(self) -> None:
        with pytest.raises(SystemExit):
            load_config(environ={"VALIDATION_MODE": "sometimes"})

    def test_invalid_env_port(self) -> None:
        with pytest.raises(SystemExit):
            load_config(environ={"MOLTGUARD_PORT": "not-a-port"})

    def test_os_environ_used_by_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SENSITIVITY", "high")
        assert load_config().policy.sensitivity == Sensitivity.HIGH


class TestWithBackendUrl:
    def test_returns_copy(self) -> None:
        config = Config.defaults()
        updated = config.with_backend_url("http://elsewhere:11434")
        assert updated.backend.url == "http://elsewhere:11434"
        assert config.backend.url == "http://localhost:11434"
        assert updated.policy == config.policy
