"""Shared utilities for bridgemail."""
