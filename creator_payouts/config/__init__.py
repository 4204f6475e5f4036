"""Configuration package for creator payouts."""
from .settings import Settings, get_settings, load_settings_or_exit

__all__ = ["Settings", "get_settings", "load_settings_or_exit"]
