"""
Subscribing and unsubscribing.
"""
import logging

from django.db import DatabaseError, transaction

from sitehost_backend.errors import StorageError
from .models import Subscriber

logger = logging.getLogger(__name__)


def subscribe(site, email, notifier):
    """
    Create or reactivate the subscriber and queue a welcome email.

    Subscribing an address that is already active does nothing and sends no
    second welcome email. Returns (subscriber, created).
    """
    email = email.strip().lower()
    try:
        with transaction.atomic():
            subscriber, created = Subscriber.objects.select_for_update().get_or_create(
                site=site, email=email,
            )
            if not created and subscriber.is_active:
                return subscriber, False
            if not created:
                subscriber.status = Subscriber.STATUS_ACTIVE
                subscriber.save(update_fields=['status'])
            notifier.send_welcome(subscriber)
    except DatabaseError as exc:
        raise StorageError(f"subscribing to site {site.pk}: {exc}") from exc
    logger.info("%s subscribed to site %s", email, site.pk)
    return subscriber, True


def unsubscribe(token):
    """Unsubscribe the subscriber holding `token`. Returns it, or None for an unknown token."""
    subscriber = Subscriber.objects.filter(unsubscribe_token=token).select_related('site').first()
    if subscriber is None:
        return None
    if subscriber.is_active:
        Subscriber.objects.filter(pk=subscriber.pk).update(status=Subscriber.STATUS_UNSUBSCRIBED)
        subscriber.status = Subscriber.STATUS_UNSUBSCRIBED
        logger.info("%s unsubscribed from site %s", subscriber.email, subscriber.site_id)
    return subscriber


def remove_subscriber(subscriber):
    """Delete a subscriber outright, with the record of the emails sent to it."""
    try:
        subscriber.delete()
    except DatabaseError as exc:
        raise StorageError(f"deleting subscriber {subscriber.pk}: {exc}") from exc
    logger.info("Removed %s from site %s", subscriber.email, subscriber.site_id)
