"""Service configuration."""

from storefront_commerce.config.settings import StorefrontSettings, settings

__all__ = ["StorefrontSettings", "settings"]
