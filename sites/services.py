"""
Configuration changes for sites.

Every operation that changes what a site renders to (theme, branch,
subdomain, source hash, custom domain) runs in one transaction that locks the
site row, applies the change, marks the site's generations stale and builds
the replacement generation. Readers either see the old configuration's
bindings or the new one's, never a mix.
"""
import logging
import shutil

from django.db import DatabaseError, IntegrityError, transaction

from sitehost_backend.errors import ErrorKind, InvalidSubdomain, SiteHostError, StorageError
from generation.engine import GenerationEngine, remove_output
from generation.models import Generation
from .domains import parse_custom_domain, parse_subdomain
from .models import Site

logger = logging.getLogger(__name__)

BRANCH_LIVE = 'live'
BRANCH_TEST = 'test'


class SiteService:

    def __init__(self, engine):
        self.engine = engine
        self.config = engine.config

    @classmethod
    def from_settings(cls):
        return cls(GenerationEngine.from_settings())

    def validate_subdomain(self, raw):
        subdomain = parse_subdomain(raw)
        if subdomain in self.config.reserved_subdomains:
            raise InvalidSubdomain(f"{subdomain!r} is reserved")
        return subdomain

    def subdomain_available(self, raw):
        subdomain = self.validate_subdomain(raw)
        return not Site.objects.filter(subdomain=subdomain).exists()

    def create_site(self, user, subdomain, theme=None, source_type=Site.SOURCE_REPOSITORY,
                    repository_url='', live_branch='', test_branch='', name='',
                    email_mode=Site.EMAIL_MODE_HTML):
        """
        Create a site and generate it when its source is already available.

        Validation happens before anything is written.
        """
        subdomain = self.validate_subdomain(subdomain)
        theme = self.engine.themes.validate(theme or self.config.default_theme)
        if Site.objects.filter(subdomain=subdomain).exists():
            raise SiteHostError(kind=ErrorKind.SUBDOMAIN_TAKEN)
        try:
            with transaction.atomic():
                site = Site.objects.create(
                    user=user,
                    name=name,
                    subdomain=subdomain,
                    theme=theme,
                    source_type=source_type,
                    repository_url=repository_url,
                    live_branch=live_branch,
                    test_branch=test_branch,
                    email_mode=email_mode,
                )
                if self.engine.sources.has_source(site):
                    self.engine.get_fresh_generation(site)
        except IntegrityError as exc:
            raise SiteHostError(kind=ErrorKind.SUBDOMAIN_TAKEN) from exc
        except DatabaseError as exc:
            raise StorageError(f"creating site {subdomain!r}: {exc}") from exc
        logger.info("Created site %s (%s) for user %s", site.pk, subdomain, user.pk)
        return site

    def change_theme(self, site, theme):
        theme = self.engine.themes.validate(theme)
        return self._apply(site, theme=theme)

    def change_branch(self, site, kind, branch):
        branch = (branch or '').strip()
        if kind == BRANCH_LIVE:
            return self._apply(site, live_branch=branch)
        if kind == BRANCH_TEST:
            return self._apply(site, test_branch=branch)
        raise ValueError(f"unknown branch kind {kind!r}")

    def change_subdomain(self, site, raw):
        subdomain = self.validate_subdomain(raw)
        if subdomain == site.subdomain:
            return site
        if Site.objects.filter(subdomain=subdomain).exclude(pk=site.pk).exists():
            raise SiteHostError(kind=ErrorKind.SUBDOMAIN_TAKEN)
        try:
            return self._apply(site, subdomain=subdomain)
        except IntegrityError as exc:
            raise SiteHostError(kind=ErrorKind.SUBDOMAIN_TAKEN) from exc

    def update_source(self, site, content_hash=''):
        """
        Record a newly fetched source and regenerate.

        Repository sites point at the checkout for `content_hash`; folder
        sites hash their uploaded folder, so the argument is ignored.
        """
        if site.source_type == Site.SOURCE_REPOSITORY:
            return self._apply(site, require_source=True, live_hash=(content_hash or '').strip())
        return self._apply(site, require_source=True)

    def set_custom_domain(self, site, raw):
        domain = parse_custom_domain(raw, self.config.root_domain) if raw else None
        if domain == site.custom_domain:
            return site
        if domain and Site.objects.filter(custom_domain=domain).exclude(pk=site.pk).exists():
            raise SiteHostError(kind=ErrorKind.DOMAIN_TAKEN)
        try:
            with transaction.atomic():
                locked = Site.objects.select_for_update().get(pk=site.pk)
                locked.custom_domain = domain
                locked.save(update_fields=['custom_domain', 'updated_at'])
        except IntegrityError as exc:
            raise SiteHostError(kind=ErrorKind.DOMAIN_TAKEN) from exc
        except DatabaseError as exc:
            raise StorageError(f"setting domain of site {site.pk}: {exc}") from exc
        site.custom_domain = domain
        logger.info("Site %s custom domain set to %s", site.pk, domain)
        return site

    def set_live(self, site, is_live):
        Site.objects.filter(pk=site.pk).update(is_live=bool(is_live))
        site.is_live = bool(is_live)
        logger.info("Site %s is now %s", site.pk, 'live' if site.is_live else 'offline')
        return site

    def delete_site(self, site):
        """Delete a site with its generations and every generation's rendered output."""
        try:
            with transaction.atomic():
                locked = Site.objects.select_for_update().get(pk=site.pk)
                generations = Generation.objects.filter(site=locked)
                output_paths = list(generations.values_list('output_path', flat=True))
                generations.delete()
                locked.delete()
        except DatabaseError as exc:
            raise StorageError(f"deleting site {site.pk}: {exc}") from exc
        # Generations from before a subdomain change live under the old subdomain.
        remove_output(output_paths)
        shutil.rmtree(self.config.websites_path / site.subdomain, ignore_errors=True)
        logger.info("Deleted site %s (%s)", site.pk, site.subdomain)

    def _needs_generation(self, site):
        """Whether a configuration change must rebuild the site rather than just mark it stale."""
        if site.live_hash or Generation.objects.filter(site=site).exists():
            return True
        return self.engine.sources.has_source(site)

    def _apply(self, site, require_source=False, **changes):
        """
        Apply `changes` and regenerate under the site row lock.

        Only a site that has never had a source (no live hash, no
        generations, nothing uploaded) has its settings saved without a
        rebuild; it is generated once `update_source` supplies a tree. Any
        other site is rebuilt, and a missing source rolls the change back
        with SourceUnavailable so the current generation stays fresh.
        """
        try:
            with transaction.atomic():
                locked = Site.objects.select_for_update().get(pk=site.pk)
                for field, value in changes.items():
                    setattr(locked, field, value)
                if changes:
                    locked.save(update_fields=[*changes, 'updated_at'])
                if require_source or self._needs_generation(locked):
                    self.engine.regenerate(locked)
                else:
                    self.engine.mark_stale(locked)
        except IntegrityError:
            raise
        except DatabaseError as exc:
            raise StorageError(f"updating site {site.pk}: {exc}") from exc
        for field, value in changes.items():
            setattr(site, field, value)
        site.name = locked.name
        logger.info("Site %s reconfigured (%s)", site.pk, ', '.join(changes) or 'source')
        return site
