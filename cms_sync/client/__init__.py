"""CMS client public surface."""

from .cms_client import CMSClient

__all__ = ["CMSClient"]
