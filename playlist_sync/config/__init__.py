"""Settings and credential handling"""

from .settings import Settings, get_settings, reload_settings, reset_settings

__all__ = ['Settings', 'get_settings', 'reload_settings', 'reset_settings']
