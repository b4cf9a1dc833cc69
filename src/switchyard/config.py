"""Application configuration objects."""

from __future__ import annotations

from msgspec import Struct


class AppConfig(Struct, frozen=True):
    """Typed configuration for an :class:`~switchyard.application.Application` instance."""

    name: str = "switchyard"
    debug: bool = False
    head_fallback: bool = True
