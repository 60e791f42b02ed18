"""Pydantic models describing the bridgemail configuration file."""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Security = Literal["starttls", "ssl", "plain"]


class BridgeSettings(BaseModel):
    """Connection parameters for the local IMAP/SMTP bridge."""

    model_config = ConfigDict(extra="forbid")

    imap_host: str = "127.0.0.1"
    imap_port: int = Field(default=1143, gt=0, lt=65536)
    imap_security: Security = "starttls"
    smtp_host: str = "127.0.0.1"
    smtp_port: int = Field(default=1025, gt=0, lt=65536)
    smtp_security: Security = "starttls"
    email: str = ""
    password_env: str = "BRIDGEMAIL_PASSWORD"
    verify_tls: bool = False
    timeout: float = Field(default=30.0, gt=0)


class DefaultsSettings(BaseModel):
    """Defaults applied when a command omits the matching option."""

    model_config = ConfigDict(extra="forbid")

    mailbox: str = "INBOX"
    limit: int = Field(default=20, gt=0)
    format: Literal["text", "json"] = "text"


class WatchSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    interval: int = Field(default=30, gt=0)


class AppConfig(BaseModel):
    """Top-level configuration document."""

    model_config = ConfigDict(extra="forbid")

    bridge: BridgeSettings = Field(default_factory=BridgeSettings)
    defaults: DefaultsSettings = Field(default_factory=DefaultsSettings)
    watch: WatchSettings = Field(default_factory=WatchSettings)
    state_dir: Optional[str] = None


__all__ = ["AppConfig", "BridgeSettings", "DefaultsSettings", "Security", "WatchSettings"]
