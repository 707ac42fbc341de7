"""Degraded-mode product reads."""

from .service import CMSFallbackService

__all__ = ["CMSFallbackService"]
