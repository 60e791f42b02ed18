"""bridgemail: command-line mail client for a local IMAP/SMTP bridge."""

__all__ = ["__version__"]

__version__ = "0.1.0"
