"""Service wiring."""

from notequiz.core.services.container import ServiceContainer

__all__ = ["ServiceContainer"]
