"""
Typed view of the SITEHOST settings block.

Components take a HostingConfig in their constructor rather than reading
django.conf.settings at call time.
"""
from dataclasses import dataclass, field
from pathlib import Path

from django.conf import settings


@dataclass(frozen=True)
class Theme:
    key: str
    name: str
    path: Path
    description: str = ''


@dataclass(frozen=True)
class HostingConfig:
    root_domain: str
    protocol: str
    checkouts_path: Path
    folders_path: Path
    websites_path: Path
    email_domain: str
    default_theme: str
    themes: dict = field(default_factory=dict)
    reserved_subdomains: frozenset = frozenset()

    @classmethod
    def from_settings(cls, conf=None):
        conf = conf if conf is not None else settings.SITEHOST
        themes = {
            key: Theme(
                key=key,
                name=value.get('name', key),
                path=Path(value['path']),
                description=value.get('description', ''),
            )
            for key, value in conf.get('THEMES', {}).items()
        }
        return cls(
            root_domain=conf['ROOT_DOMAIN'].lower().rstrip('.'),
            protocol=conf.get('PROTOCOL', 'https'),
            checkouts_path=Path(conf['CHECKOUTS_PATH']),
            folders_path=Path(conf['FOLDERS_PATH']),
            websites_path=Path(conf['WEBSITES_PATH']),
            email_domain=conf.get('EMAIL_DOMAIN') or conf['ROOT_DOMAIN'],
            default_theme=conf.get('DEFAULT_THEME') or next(iter(themes), ''),
            themes=themes,
            reserved_subdomains=frozenset(s.lower() for s in conf.get('RESERVED_SUBDOMAINS', ())),
        )

    def service_url(self, path=''):
        return f"{self.protocol}://{self.root_domain}{path}"

    def site_url(self, subdomain, path=''):
        return f"{self.protocol}://{subdomain}.{self.root_domain}{path}"
