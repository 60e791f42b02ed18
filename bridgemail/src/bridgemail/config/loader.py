"""Locate, parse, validate, and persist the bridgemail configuration file.

What:
  Resolve ``config.yaml`` through an explicit path, the ``BRIDGEMAIL_CONFIG``
  environment variable, or the XDG config directory, and turn it into a
  validated :class:`AppConfig`.

Why:
  Configuration lives outside the package and may be missing, malformed, or
  hand-edited. Centralising discovery and validation gives every command the
  same error messages and lets a fresh install run on defaults.

How:
  Parse YAML with :func:`yaml.safe_load`, validate with
  :meth:`AppConfig.model_validate`, and wrap filesystem, YAML, and schema
  failures in :class:`ConfigError` with path context. Loading returns a
  :class:`LoadedConfig` that remembers where the file lives (or would live)
  so ``config set`` can write it back.

Interfaces:
  :class:`LoadedConfig`, :func:`candidate_paths`, :func:`load_config`,
  :func:`save_config`, :func:`set_config_value`, :func:`default_state_dir`.

Invariants & Safety:
  - No module-level cache; callers pass the loaded object explicitly.
  - Saved files are created with mode ``0600`` because they name the account.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple, Union

import yaml
from pydantic import ValidationError as _PydanticValidationError

from ..errors import ConfigError
from .schema import AppConfig

CONFIG_ENV = "BRIDGEMAIL_CONFIG"
APP_DIR = "bridgemail"
CONFIG_NAME = "config.yaml"


@dataclass
class LoadedConfig:
    """A validated configuration plus the file it belongs to."""

    path: Path
    config: AppConfig
    exists: bool


def _config_home() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME") or "~/.config"
    return Path(base).expanduser() / APP_DIR


def candidate_paths(path: Optional[Union[str, Path]] = None) -> Iterable[Path]:
    """Yield configuration locations from most to least specific."""

    seen = set()
    env_path = os.environ.get(CONFIG_ENV)
    for raw in (path, env_path, _config_home() / CONFIG_NAME):
        if not raw:
            continue
        candidate = Path(raw).expanduser()
        if candidate not in seen:
            seen.add(candidate)
            yield candidate


def _parse(text: str, source: Path) -> Dict[str, Any]:
    try:
        payload = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {source}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"{source} must contain a mapping at the top level")
    return payload


def _load_from_path(path: Path) -> AppConfig:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to read configuration file {path}: {exc}") from exc
    payload = _parse(text, path)
    try:
        return AppConfig.model_validate(payload)
    except _PydanticValidationError as exc:
        raise ConfigError(f"Invalid configuration in {path}: {exc}") from exc


def resolve_config_path(path: Optional[Union[str, Path]] = None) -> Tuple[Path, bool]:
    """Return the first existing candidate, or the most specific one, and whether it exists."""

    candidates = list(candidate_paths(path))
    for candidate in candidates:
        if candidate.exists():
            return candidate, True
    return candidates[0], False


def load_config(path: Optional[Union[str, Path]] = None) -> LoadedConfig:
    """Load the first existing configuration file, or defaults.

    What:
      Walks :func:`candidate_paths` and validates the first file that exists.

    Why:
      A bridge on ``127.0.0.1`` with default ports works without any file, so
      a missing configuration is not an error; only a broken one is.

    How:
      When nothing exists the defaults are returned together with the most
      specific candidate path, which is where :func:`save_config` will write.

    Args:
      path: Explicit ``--config`` value.

    Returns:
      The loaded configuration and its location.

    Raises:
      ConfigError: If an existing file cannot be read, parsed, or validated.
    """

    location, exists = resolve_config_path(path)
    if not exists:
        return LoadedConfig(location, AppConfig(), False)
    return LoadedConfig(location, _load_from_path(location), True)


def save_config(loaded: LoadedConfig) -> Path:
    """Write ``loaded.config`` back to ``loaded.path`` as YAML."""

    payload = loaded.config.model_dump(mode="json")
    text = yaml.safe_dump(payload, sort_keys=False, default_flow_style=False)
    try:
        loaded.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(loaded.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
    except OSError as exc:
        raise ConfigError(f"Unable to write configuration file {loaded.path}: {exc}") from exc
    loaded.exists = True
    return loaded.path


def set_config_value(config: AppConfig, key: str, value: str) -> AppConfig:
    """Return a copy of ``config`` with dotted ``key`` set to ``value``.

    String fields take ``value`` verbatim; other fields parse it as a YAML
    scalar so ``50`` becomes an integer and ``false`` a boolean. The result is
    revalidated.

    Raises:
      ConfigError: For unknown keys or values rejected by the schema.
    """

    payload = config.model_dump(mode="json")
    parts = key.split(".")
    node = payload
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            raise ConfigError(f"Unknown configuration key: {key}")
        node = child
    if parts[-1] not in node:
        raise ConfigError(f"Unknown configuration key: {key}")
    current = node[parts[-1]]
    if isinstance(current, str):
        node[parts[-1]] = value
    elif current is None:
        node[parts[-1]] = None if value.lower() in ("", "null", "~") else value
    else:
        try:
            node[parts[-1]] = yaml.safe_load(value)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid value for {key}: {value!r}") from exc
    try:
        return AppConfig.model_validate(payload)
    except _PydanticValidationError as exc:
        raise ConfigError(f"Invalid value for {key}: {exc}") from exc


def default_state_dir(loaded: LoadedConfig) -> Path:
    """Directory holding runtime state such as the idempotency ledger."""

    if loaded.config.state_dir:
        return Path(loaded.config.state_dir).expanduser()
    return loaded.path.parent


__all__ = [
    "CONFIG_ENV",
    "LoadedConfig",
    "candidate_paths",
    "default_state_dir",
    "load_config",
    "resolve_config_path",
    "save_config",
    "set_config_value",
]
