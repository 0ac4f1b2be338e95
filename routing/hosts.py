"""
Host resolution: which site, if any, a request host belongs to.

canonicalize_host() only normalises the header value; HostResolver decides
what the canonical host means.
"""
from django.http.request import split_domain_port

from sitehost_backend.errors import ErrorKind, InvalidSubdomain, SiteHostError
from sitehost_backend.hosting import HostingConfig
from sites.domains import parse_subdomain
from sites.models import Site

LOCAL_ALIASES = {
    '127.0.0.1': 'localhost',
}


class _ServiceHost:
    def __repr__(self):
        return 'IS_SERVICE'


# Returned by resolve() for the service's own host.
IS_SERVICE = _ServiceHost()


def canonicalize_host(host):
    """
    Lowercase `host`, drop whitespace, port and trailing dot.

    Returns '' for a value that is not a valid host.
    """
    domain, _port = split_domain_port((host or '').strip())
    return LOCAL_ALIASES.get(domain, domain)


class HostResolver:

    def __init__(self, config):
        self.config = config

    def resolve(self, host):
        """
        Resolve a request host to IS_SERVICE or a Site.

        Raises SiteHostError with kind UNKNOWN_SUBDOMAIN, UNKNOWN_DOMAIN or
        SITE_OFFLINE.
        """
        host = canonicalize_host(host)
        root = self.config.root_domain
        if host == root:
            return IS_SERVICE
        suffix = '.' + root
        if host.endswith(suffix):
            site = self._by_subdomain(host[:-len(suffix)])
        else:
            site = self._by_custom_domain(host)
        if not site.is_live:
            raise SiteHostError(f"{host} is offline", kind=ErrorKind.SITE_OFFLINE)
        return site

    def _by_subdomain(self, label):
        try:
            subdomain = parse_subdomain(label)
        except InvalidSubdomain:
            raise SiteHostError(kind=ErrorKind.UNKNOWN_SUBDOMAIN)
        site = Site.objects.filter(subdomain=subdomain).first()
        if site is None:
            raise SiteHostError(kind=ErrorKind.UNKNOWN_SUBDOMAIN)
        return site

    def _by_custom_domain(self, host):
        site = Site.objects.filter(custom_domain=host).first() if host else None
        if site is None:
            raise SiteHostError(kind=ErrorKind.UNKNOWN_DOMAIN)
        return site


def resolve_host(host):
    return HostResolver(HostingConfig.from_settings()).resolve(host)
