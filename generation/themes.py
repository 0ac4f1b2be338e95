"""
Theme registry: theme key -> template bundle directory.
"""
from sitehost_backend.errors import ThemeNotFound


class ThemeRegistry:

    def __init__(self, themes, default=''):
        self._themes = dict(themes)
        self.default = default

    @classmethod
    def from_config(cls, config):
        return cls(config.themes, default=config.default_theme)

    def get(self, key):
        try:
            return self._themes[key]
        except KeyError:
            raise ThemeNotFound(f"unknown theme {key!r}")

    def validate(self, key):
        """Return `key` if it names a registered theme."""
        return self.get((key or '').strip()).key

    def choices(self):
        return [(theme.key, theme.name) for theme in self._themes.values()]

    def __contains__(self, key):
        return key in self._themes
