"""Exceptions raised by aca-safety-net."""

from __future__ import annotations


class SafetyNetError(Exception):
    """Base class for errors raised by this package."""


class ConfigError(SafetyNetError, ValueError):
    """A configuration file could not be read, parsed or validated."""


class InputError(SafetyNetError, ValueError):
    """The hook payload on stdin is not a valid tool request."""
