"""
Enqueueing outbound email.

Headers travel as an ordered list of (name, value) pairs from the caller to
the transport; duplicates and order are kept exactly as given.
"""
import logging
from dataclasses import dataclass, field

from django.db import DatabaseError, transaction

from sitehost_backend.errors import StorageError
from .models import QueuedEmail, QueuedEmailHeader

logger = logging.getLogger(__name__)


@dataclass
class OutboundEmail:
    from_addr: str
    to_addr: str
    subject: str
    body: str
    mode: str = QueuedEmail.MODE_HTML
    stream: str = QueuedEmail.STREAM_OUTBOUND
    headers: list = field(default_factory=list)


def enqueue(email):
    """
    Store `email` and its headers as a pending QueuedEmail.

    Raises StorageError if the transaction fails; nothing is stored then.
    """
    if email.mode not in dict(QueuedEmail.MODE_CHOICES):
        raise ValueError(f"invalid email mode {email.mode!r}")
    try:
        with transaction.atomic():
            queued = QueuedEmail.objects.create(
                from_addr=email.from_addr,
                to_addr=email.to_addr,
                subject=email.subject,
                body=email.body,
                mode=email.mode,
                stream=email.stream,
            )
            QueuedEmailHeader.objects.bulk_create([
                QueuedEmailHeader(email=queued, position=position, name=name, value=value)
                for position, (name, value) in enumerate(email.headers)
            ])
    except DatabaseError as exc:
        raise StorageError(f"queueing email to {email.to_addr}: {exc}") from exc
    logger.debug("Queued email %s to %s", queued.pk, email.to_addr)
    return queued
