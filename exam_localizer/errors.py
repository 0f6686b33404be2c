"""Exception types raised by the localization pipeline."""

from __future__ import annotations


class LocalizerError(Exception):
    """Base class for every error raised by this package."""


class RegistryError(LocalizerError):
    """The image registry cannot be used."""


class RegistryNotFoundError(RegistryError):
    """A registry file is required but does not exist."""


class RegistryFormatError(RegistryError):
    """The registry file is not a readable registry document."""


class InvalidTransitionError(RegistryError):
    """A status change that the entry state machine does not allow."""


class DownloadError(LocalizerError):
    """A remote image could not be retrieved or stored."""


class RecordError(LocalizerError):
    """An exam record could not be read or parsed."""
