"""
Configuration package for SheetBridge
"""

from .settings import ApplicationSettings, get_settings, reload_settings

__all__ = ["ApplicationSettings", "get_settings", "reload_settings"]
