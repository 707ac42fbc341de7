"""Mock CMS servers for testing."""

from .app import create_app, create_mock_cms, render_product, sample_catalog

__all__ = ["create_app", "create_mock_cms", "render_product", "sample_catalog"]
