"""
Generation engine.

get_fresh_generation() returns the site's unique non-stale generation,
rendering and storing a new one when none exists. regenerate() marks the
current generation stale and builds its replacement in the same transaction,
which is what every configuration change goes through.
"""
import logging
import shutil
import uuid
from pathlib import Path

from django.db import DatabaseError, transaction
from django.utils.html import format_html

from sitehost_backend.errors import StorageError
from sitehost_backend.hosting import HostingConfig
from sites.models import Site
from .models import Binding, Generation, Post, PostEmailBinding
from .renderer import CustomPage, SiteRenderer
from .sources import SiteSourceProvider
from .themes import ThemeRegistry

logger = logging.getLogger(__name__)


class GenerationEngine:

    def __init__(self, config, sources=None, themes=None):
        self.config = config
        self.sources = sources or SiteSourceProvider(config)
        self.themes = themes or ThemeRegistry.from_config(config)

    @classmethod
    def from_settings(cls):
        return cls(HostingConfig.from_settings())

    def get_fresh_generation(self, site):
        """
        Id of the site's fresh generation, generating one if needed.

        A cache hit performs no writes. A miss locks the site row, checks
        again, then renders and stores the generation, its bindings and its
        posts atomically. Raises StorageError if the transaction fails and
        GenerationFailed / SourceUnavailable / ThemeNotFound if rendering
        cannot start or finish.
        """
        fresh_id = Generation.objects.fresh_id(site)
        if fresh_id is not None:
            return fresh_id
        try:
            with transaction.atomic():
                locked = Site.objects.select_for_update().get(pk=site.pk)
                fresh_id = Generation.objects.fresh_id(locked)
                if fresh_id is not None:
                    return fresh_id
                generation = self._generate(locked)
        except DatabaseError as exc:
            raise StorageError(f"generating site {site.pk}: {exc}") from exc
        site.name = locked.name
        return generation.pk

    def mark_stale(self, site):
        """
        Mark the site's fresh generation stale.

        Its output directory is deleted once the surrounding transaction
        commits; a rolled-back regeneration keeps it.
        """
        try:
            superseded = list(
                Generation.objects.fresh().filter(site=site).values_list('output_path', flat=True)
            )
            count = Generation.mark_stale(site)
        except DatabaseError as exc:
            raise StorageError(f"marking site {site.pk} stale: {exc}") from exc
        if count:
            logger.info("Marked %s generation(s) of site %s stale", count, site.pk)
            transaction.on_commit(lambda: remove_output(superseded))
        return count

    def regenerate(self, site):
        """Supersede the current generation. Must leave exactly one fresh generation."""
        try:
            with transaction.atomic():
                self.mark_stale(site)
                return self.get_fresh_generation(site)
        except DatabaseError as exc:
            raise StorageError(f"regenerating site {site.pk}: {exc}") from exc

    def _generate(self, site):
        theme = self.themes.get(site.theme)
        tree = self.sources.fetch(site)
        dest = self.config.websites_path / site.subdomain / uuid.uuid4().hex
        renderer = SiteRenderer(theme, custom_pages=self.custom_pages(site))
        try:
            rendered = renderer.render(tree.path, dest)
            if rendered.title and rendered.title != site.name:
                site.name = rendered.title
                site.save(update_fields=['name', 'updated_at'])

            generation = Generation.objects.create(
                site=site,
                content_hash=tree.content_hash,
                output_path=str(dest),
            )
            Binding.objects.bulk_create([
                Binding(generation=generation, url=url, path=str(rsc.path))
                for url, rsc in rendered.bindings.items()
            ])
            email_bindings = []
            for url, post in rendered.posts().items():
                Post.objects.update_or_create(
                    site=site,
                    url=url,
                    defaults={'title': post.title, 'published_at': post.published_at},
                )
                email_bindings.append(PostEmailBinding(
                    generation=generation,
                    url=url,
                    html_path=str(post.html_email_path),
                    text_path=str(post.text_email_path),
                ))
            PostEmailBinding.objects.bulk_create(email_bindings)
        except Exception:
            shutil.rmtree(dest, ignore_errors=True)
            raise

        logger.info(
            "Created generation %s for site %s (hash %s, %s bindings, %s posts)",
            generation.pk, site.pk, tree.content_hash[:12],
            len(rendered.bindings), len(email_bindings),
        )
        return generation

    def custom_pages(self, site):
        subscribe_action = self.config.service_url(f"/api/v1/sites/{site.pk}/subscribe/")
        return {
            '/subscribe': CustomPage(
                title='Subscribe',
                content=format_html(
                    '<h1>Subscribe</h1>'
                    '<form method="post" action="{}">'
                    '<label for="email">Email</label> '
                    '<input type="email" id="email" name="email" required> '
                    '<button type="submit">Subscribe</button>'
                    '</form>',
                    subscribe_action,
                ),
            ),
            '/subscribed': CustomPage(
                title='Subscribed',
                content='<h1>Subscribed</h1><p>You have been subscribed. Please check your email.</p>',
            ),
            '/unsubscribed': CustomPage(
                title='Unsubscribed',
                content=(
                    '<h1>Unsubscribed</h1>'
                    '<p>You have been unsubscribed from this site. '
                    'You will no longer receive email updates for posts.</p>'
                    '<p>If this was a mistake, you can resubscribe <a href="/subscribe">here</a>.</p>'
                ),
            ),
        }


def remove_output(paths):
    """Delete generation output directories and any site directory they leave empty."""
    for path in map(Path, paths):
        shutil.rmtree(path, ignore_errors=True)
        try:
            path.parent.rmdir()
        except OSError:
            # not empty, or already gone
            pass
        logger.info("Removed generation output %s", path)


def get_fresh_generation(site):
    return GenerationEngine.from_settings().get_fresh_generation(site)


def regenerate(site):
    return GenerationEngine.from_settings().regenerate(site)
