from __future__ import annotations


class SalesDocsError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(SalesDocsError):
    """Required input is missing or malformed. Raised before any side effect."""


class ConfigurationError(SalesDocsError):
    """A credential or asset a collaborator needs is absent."""


class TransportError(SalesDocsError):
    """A remote call on a delivery channel failed."""

    def __init__(self, channel: str, message: str) -> None:
        super().__init__(f"{channel}: {message}")
        self.channel = channel


class RenderError(SalesDocsError):
    """A document could not be produced (template, font or image failure)."""
