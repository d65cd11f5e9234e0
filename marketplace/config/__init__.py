"""Configuration package for the asset marketplace."""
from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
