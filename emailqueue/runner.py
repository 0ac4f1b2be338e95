"""
Queue runner: delivers pending emails in batches, forever.

Each cycle is one transaction over up to `batch_size` of the oldest pending
emails, delivered one at a time. A failed delivery bumps the email's fail
count and, once it reaches `max_retries`, fails the email for good; it never
stops the batch. Database errors are not caught and end the run.

Only one runner should process a database at a time: there is no claim step,
so two runners would deliver the same email twice.
"""
import logging
import time
from dataclasses import dataclass

from django.conf import settings
from django.db import transaction

from .models import QueuedEmail, QueuedEmailError
from .transports import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueConfig:
    batch_size: int = 500
    max_retries: int = 3
    period: float = 30.0

    @classmethod
    def from_settings(cls, conf=None):
        conf = conf if conf is not None else settings.EMAIL_QUEUE
        return cls(
            batch_size=int(conf.get('BATCH_SIZE', 500)),
            max_retries=int(conf.get('MAX_RETRIES', 3)),
            period=float(conf.get('PERIOD_SECONDS', 30)),
        )


@dataclass(frozen=True)
class BatchResult:
    sent: int = 0
    retrying: int = 0
    failed: int = 0

    @property
    def attempted(self):
        return self.sent + self.retrying + self.failed


class EmailQueueRunner:

    def __init__(self, transport, config, sleep=time.sleep):
        self.transport = transport
        self.config = config
        self.sleep = sleep

    def run(self):
        logger.info(
            "Email queue runner started (batch %s, max retries %s, period %ss)",
            self.config.batch_size, self.config.max_retries, self.config.period,
        )
        while True:
            result = self.run_batch()
            if result.attempted:
                logger.info(
                    "Email batch done: %s sent, %s retrying, %s failed",
                    result.sent, result.retrying, result.failed,
                )
            self.sleep(self.config.period)

    def run_batch(self):
        sent = retrying = failed = 0
        with transaction.atomic():
            batch = list(
                QueuedEmail.objects.select_for_update()
                .filter(status=QueuedEmail.STATUS_PENDING)
                .order_by('created_at', 'id')[:self.config.batch_size]
            )
            for email in batch:
                if self.deliver(email):
                    sent += 1
                elif email.status == QueuedEmail.STATUS_FAILED:
                    failed += 1
                else:
                    retrying += 1
        return BatchResult(sent=sent, retrying=retrying, failed=failed)

    def deliver(self, email):
        """Attempt one delivery. Returns True if the email was sent."""
        try:
            self.transport.send(
                from_addr=email.from_addr,
                to_addr=email.to_addr,
                subject=email.subject,
                body=email.body,
                mode=email.mode,
                headers=email.header_pairs(),
                stream=email.stream,
            )
        except TransportError as exc:
            self._record_failure(email, exc.message, exc.code)
            return False
        except Exception as exc:
            logger.exception("Transport raised an unexpected error for email %s", email.pk)
            self._record_failure(email, str(exc) or exc.__class__.__name__, None)
            return False
        email.mark_sent()
        return True

    def _record_failure(self, email, message, code):
        QueuedEmailError.objects.create(email=email, code=code, message=message)
        email.mark_failed_attempt(self.config.max_retries)
        if email.status == QueuedEmail.STATUS_FAILED:
            logger.error(
                "Email %s to %s failed after %s attempts: %s",
                email.pk, email.to_addr, email.fail_count, message,
            )
        else:
            logger.warning(
                "Email %s to %s failed (attempt %s of %s): %s",
                email.pk, email.to_addr, email.fail_count, self.config.max_retries, message,
            )
