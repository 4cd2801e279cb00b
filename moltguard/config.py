"""Config loading for Molt-Guard.

Reads `.moltguard/config.yaml` (or `~/.moltguard/config.yaml`).
Raises SystemExit on parse errors, a missing/unsupported `version` field, or an
invalid policy value. If no config file is found, returns default values.

The result is an immutable ``Config`` built once at process start and handed to
the application; no other module reads the environment.

Config search order:
  1. `config_path` argument (if provided — for testing or explicit override)
  2. MOLTGUARD_CONFIG environment variable (if set)
  3. `.moltguard/config.yaml` (working directory — for development)
  4. `~/.moltguard/config.yaml` (home directory — for deployments)

Environment variable overrides (applied after the file):
  OLLAMA_URL         — backend.url
  VALIDATION_MODE    — policy.mode          (local | remote)
  SENSITIVITY        — policy.sensitivity   (low | medium | high)
  GUARD_MODEL        — policy.guard_model
  MOLTGUARD_PORT     — proxy.port
  VAULT_ADDR / VAULT_TOKEN / VAULT_SECRET_PATH — vault.*

Example file::

    version: 1
    backend:
      url: http://localhost:11434
      timeout_s: 60
      auto_pull: true
    policy:
      mode: remote
      sensitivity: medium
      guard_model: granite3-guardian
    proxy:
      host: 127.0.0.1
      port: 3000
"""

from __future__ import annotations

import dataclasses
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, NoReturn, Optional, TypeVar

import yaml

from moltguard.constants import (
    DEFAULT_BACKEND_TIMEOUT_S,
    DEFAULT_BACKEND_URL,
    DEFAULT_GUARD_MODEL,
    DEFAULT_PROXY_HOST,
    DEFAULT_PROXY_PORT,
)
from moltguard.models.policy import Sensitivity, ValidationMode
from moltguard.utils.logger import get_logger

logger = get_logger(__name__)

NumberT = TypeVar("NumberT", int, float)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

DEFAULT_CONFIG_PATHS = [
    ".moltguard/config.yaml",
    os.path.expanduser("~/.moltguard/config.yaml"),
]

DEFAULT_VAULT_SECRET_PATH = "secret/molt-bot"


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class BackendConfig:
    """Inference backend connection settings.

    url:       Base URL of the backend (no trailing slash needed).
    timeout_s: Client-wide timeout for every backend call.
    auto_pull: Pull the guard model in the background at startup (remote mode).
    """

    url: str = DEFAULT_BACKEND_URL
    timeout_s: float = DEFAULT_BACKEND_TIMEOUT_S
    auto_pull: bool = True


@dataclass(frozen=True)
class PolicyConfig:
    """Prompt policy settings."""

    mode: ValidationMode = ValidationMode.LOCAL
    sensitivity: Sensitivity = Sensitivity.MEDIUM
    guard_model: str = DEFAULT_GUARD_MODEL


@dataclass(frozen=True)
class ProxyConfig:
    """Gateway binding configuration."""

    host: str = DEFAULT_PROXY_HOST
    port: int = DEFAULT_PROXY_PORT


@dataclass(frozen=True)
class VaultConfig:
    """Optional secret store holding the backend URL.

    Only consulted when both ``address`` and ``token`` are set.
    """

    address: Optional[str] = None
    token: Optional[str] = None
    path: str = DEFAULT_VAULT_SECRET_PATH

    @property
    def enabled(self) -> bool:
        return bool(self.address and self.token)


@dataclass(frozen=True)
class Config:
    """Root configuration object. All fields have safe defaults."""

    version: int = SUPPORTED_CONFIG_VERSION
    backend: BackendConfig = field(default_factory=BackendConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    vault: VaultConfig = field(default_factory=VaultConfig)
    path: Optional[str] = None  # Path to the loaded config file

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are ignored.

        Raises:
            SystemExit(1): On invalid policy.mode or policy.sensitivity, a
                non-numeric backend.timeout_s or proxy.port, or a section
                that is not a mapping.
        """
        backend_raw = _section(raw, "backend")
        backend = BackendConfig(
            url=str(backend_raw.get("url", DEFAULT_BACKEND_URL)),
            timeout_s=_number(
                backend_raw.get("timeout_s", DEFAULT_BACKEND_TIMEOUT_S), float, "backend.timeout_s"
            ),
            auto_pull=bool(backend_raw.get("auto_pull", True)),
        )

        policy_raw = _section(raw, "policy")
        policy = PolicyConfig(
            mode=_parse_mode(policy_raw.get("mode", ValidationMode.LOCAL.value), "policy.mode"),
            sensitivity=_parse_sensitivity(
                policy_raw.get("sensitivity", Sensitivity.MEDIUM.value), "policy.sensitivity"
            ),
            guard_model=str(policy_raw.get("guard_model", DEFAULT_GUARD_MODEL)),
        )

        proxy_raw = _section(raw, "proxy")
        proxy = ProxyConfig(
            host=str(proxy_raw.get("host", DEFAULT_PROXY_HOST)),
            port=_number(proxy_raw.get("port", DEFAULT_PROXY_PORT), int, "proxy.port"),
        )

        vault_raw = _section(raw, "vault")
        vault = VaultConfig(
            address=vault_raw.get("address"),
            token=vault_raw.get("token"),
            path=str(vault_raw.get("path", DEFAULT_VAULT_SECRET_PATH)),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            backend=backend,
            policy=policy,
            proxy=proxy,
            vault=vault,
            path=path,
        )

    def with_backend_url(self, url: str) -> "Config":
        """Copy of this config pointing at a different backend."""
        return dataclasses.replace(self, backend=dataclasses.replace(self.backend, url=url))


# ─── Parsing helpers ──────────────────────────────────────────────────────────


def _config_error(msg: str) -> NoReturn:
    print(f"CONFIG ERROR: {msg}", file=sys.stderr)
    raise SystemExit(1)


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name)
    if section is None:
        return {}
    if not isinstance(section, Mapping):
        _config_error(f"Invalid '{name}' section: expected a mapping, got {type(section).__name__}.")
    return section


def _number(value: Any, kind: Callable[[Any], NumberT], source: str) -> NumberT:
    if isinstance(value, bool):
        _config_error(f"Invalid {source}: '{value}' is not a number.")
    try:
        return kind(value)
    except (TypeError, ValueError):
        _config_error(f"Invalid {source}: '{value}' is not a number.")


def _parse_mode(value: Any, source: str) -> ValidationMode:
    try:
        return ValidationMode.parse(str(value))
    except ValueError:
        _config_error(
            f"Invalid {source}: '{value}'. "
            f"Supported values: {[m.value for m in ValidationMode]}."
        )


def _parse_sensitivity(value: Any, source: str) -> Sensitivity:
    try:
        return Sensitivity.parse(str(value))
    except ValueError:
        _config_error(
            f"Invalid {source}: '{value}'. "
            f"Supported values: {[s.value for s in Sensitivity]}."
        )


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """Load and validate Molt-Guard configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes an error to stderr and raises SystemExit(1).
    Environment overrides are applied in both cases.

    Args:
        config_path: Explicit file to try first.
        environ:     Environment mapping (defaults to ``os.environ``).

    Raises:
        SystemExit(1): On YAML parse error, missing ``version`` field, unsupported
                       version, invalid policy value, or invalid ``MOLTGUARD_PORT``.
    """
    env = os.environ if environ is None else environ

    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = env.get("MOLTGUARD_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("No config file found — using defaults", searched=search_paths)
        return _apply_env_overrides(Config.defaults(), env)

    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _config_error(
            f"Failed to parse {found_path}: {exc}\n"
            "Molt-Guard refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _config_error(f"Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _config_error(
                f"{found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _config_error(
            f"{found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    version = raw.get("version")
    if version is None:
        _config_error(
            f"{found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        _config_error(
            f"Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = _apply_env_overrides(Config.from_dict(raw, path=found_path), env)

    if config.proxy.host == "0.0.0.0":
        logger.warning(
            "SECURITY WARNING: Molt-Guard is configured to bind on 0.0.0.0 (all interfaces). "
            "Recommended: use proxy.host: '127.0.0.1' for local-only access."
        )

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        validation_mode=config.policy.mode.value,
        sensitivity=config.policy.sensitivity.value,
    )
    return config


def _apply_env_overrides(config: Config, env: Mapping[str, str]) -> Config:
    """Return ``config`` with environment overrides applied.

    Raises:
        SystemExit(1): If an override value is invalid.
    """
    backend = config.backend
    if env.get("OLLAMA_URL"):
        backend = dataclasses.replace(backend, url=env["OLLAMA_URL"])

    policy = config.policy
    if env.get("VALIDATION_MODE"):
        policy = dataclasses.replace(
            policy, mode=_parse_mode(env["VALIDATION_MODE"], "VALIDATION_MODE")
        )
    if env.get("SENSITIVITY"):
        policy = dataclasses.replace(
            policy, sensitivity=_parse_sensitivity(env["SENSITIVITY"], "SENSITIVITY")
        )
    if env.get("GUARD_MODEL"):
        policy = dataclasses.replace(policy, guard_model=env["GUARD_MODEL"])

    proxy = config.proxy
    env_port = env.get("MOLTGUARD_PORT")
    if env_port is not None:
        try:
            proxy = dataclasses.replace(proxy, port=int(env_port))
        except ValueError:
            _config_error(
                f"MOLTGUARD_PORT environment variable is not a valid integer: '{env_port}'"
            )

    vault = config.vault
    if env.get("VAULT_ADDR"):
        vault = dataclasses.replace(vault, address=env["VAULT_ADDR"])
    if env.get("VAULT_TOKEN"):
        vault = dataclasses.replace(vault, token=env["VAULT_TOKEN"])
    if env.get("VAULT_SECRET_PATH"):
        vault = dataclasses.replace(vault, path=env["VAULT_SECRET_PATH"])

    return dataclasses.replace(
        config, backend=backend, policy=policy, proxy=proxy, vault=vault
    )
