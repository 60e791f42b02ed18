"""Look up the bridge password without storing it in the configuration file."""
from __future__ import annotations

import os
from typing import Mapping, Optional

from ..errors import ConfigError
from .schema import BridgeSettings


def resolve_password(settings: BridgeSettings, environ: Optional[Mapping[str, str]] = None) -> str:
    """Return the password held in the environment variable named by ``settings``.

    Raises:
      ConfigError: When the variable is unset or empty.
    """

    env = os.environ if environ is None else environ
    password = env.get(settings.password_env, "")
    if not password:
        raise ConfigError(
            f"Bridge password not set; export {settings.password_env} with the bridge password"
        )
    return password


def resolve_username(settings: BridgeSettings) -> str:
    """Return the login name, which is the configured account address."""

    if not settings.email:
        raise ConfigError("Account email not configured; run 'bridgemail config set bridge.email <address>'")
    return settings.email


__all__ = ["resolve_password", "resolve_username"]
