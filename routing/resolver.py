"""
Serving a site's files from its fresh generation.
"""
import logging
import uuid
from pathlib import Path

from django.db import DatabaseError, transaction
from django.utils import timezone

from sitehost_backend.errors import ErrorKind, SiteHostError
from generation.models import Binding, Generation
from subscribers.models import SubscriberEmail
from .models import Visit

logger = logging.getLogger(__name__)


def get_binding(site, path):
    """
    File bound to `path` in the site's fresh generation.

    Raises NOT_READY when the site has no fresh generation and
    PAGE_NOT_FOUND when the fresh generation has no such path. Stale
    generations are never consulted.
    """
    generation_id = Generation.objects.fresh_id(site)
    if generation_id is None:
        raise SiteHostError(kind=ErrorKind.NOT_READY)
    bound = (
        Binding.objects.filter(generation_id=generation_id, url=path)
        .values_list('path', flat=True)
        .first()
    )
    if bound is None:
        raise SiteHostError(f"{path} not found", kind=ErrorKind.PAGE_NOT_FOUND)
    return Path(bound)


def serve(site, path):
    """get_binding() plus a best-effort visit record."""
    bound = get_binding(site, path)
    record_visit(site, path)
    return bound


def record_visit(site, path):
    try:
        with transaction.atomic():
            Visit.objects.create(site=site, url=path)
    except DatabaseError as exc:
        logger.warning("Could not record visit to %s on site %s: %s", path, site.pk, exc)
        return False
    return True


def record_email_click(site, token):
    """
    Mark the SubscriberEmail carrying `token` as clicked.

    Only tokens issued to subscribers of `site` count, and only the first
    click sets the flag and timestamp. Returns True if this call recorded
    the click.
    """
    try:
        token = uuid.UUID(str(token))
    except ValueError:
        logger.warning("Ignoring malformed subscriber token %r", token)
        return False
    updated = SubscriberEmail.objects.filter(
        token=token,
        subscriber__site=site,
        clicked=False,
    ).update(
        clicked=True,
        clicked_at=timezone.now(),
    )
    if updated:
        logger.info("Recorded email click for token %s on site %s", token, site.pk)
    return bool(updated)
