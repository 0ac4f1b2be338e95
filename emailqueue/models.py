"""
Outbound email queue.

A QueuedEmail starts pending and ends either sent or failed. Both end states
are terminal: the only fields that ever change are status, fail_count and
sent_at, and only while the email is pending.
"""
from django.db import models
from django.utils import timezone


class QueuedEmail(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_SENT = 'sent'
    STATUS_FAILED = 'failed'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_SENT, 'Sent'),
        (STATUS_FAILED, 'Failed'),
    ]

    MODE_HTML = 'html'
    MODE_PLAINTEXT = 'plaintext'
    MODE_CHOICES = [
        (MODE_HTML, 'HTML'),
        (MODE_PLAINTEXT, 'Plain text'),
    ]

    # Postmark message streams: transactional vs. newsletter mail
    STREAM_OUTBOUND = 'outbound'
    STREAM_BROADCAST = 'broadcast'
    STREAM_CHOICES = [
        (STREAM_OUTBOUND, 'Outbound'),
        (STREAM_BROADCAST, 'Broadcast'),
    ]

    from_addr = models.CharField(max_length=320)
    to_addr = models.CharField(max_length=320)
    subject = models.CharField(max_length=998)
    body = models.TextField()
    mode = models.CharField(max_length=20, choices=MODE_CHOICES, default=MODE_HTML)
    stream = models.CharField(max_length=20, choices=STREAM_CHOICES, default=STREAM_OUTBOUND)
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
        db_index=True
    )
    fail_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    sent_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'queued_emails'
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='queued_email_status_idx'),
        ]

    def __str__(self):
        return f"{self.subject} -> {self.to_addr} ({self.status})"

    @property
    def is_terminal(self):
        return self.status != self.STATUS_PENDING

    def header_pairs(self):
        """Headers as an ordered list of (name, value) pairs."""
        return [(h.name, h.value) for h in self.headers.order_by('position')]

    def _require_pending(self):
        if self.is_terminal:
            raise ValueError(f"email {self.pk} is already {self.status}")

    def mark_sent(self):
        self._require_pending()
        self.status = self.STATUS_SENT
        self.sent_at = timezone.now()
        self.save(update_fields=['status', 'sent_at'])

    def mark_failed_attempt(self, max_retries):
        """Count a failed delivery; the email fails for good once `max_retries` is reached."""
        self._require_pending()
        self.fail_count += 1
        if self.fail_count >= max_retries:
            self.status = self.STATUS_FAILED
        self.save(update_fields=['fail_count', 'status'])


class QueuedEmailHeader(models.Model):
    email = models.ForeignKey(
        QueuedEmail,
        on_delete=models.CASCADE,
        related_name='headers'
    )
    position = models.PositiveIntegerField()
    name = models.CharField(max_length=255)
    value = models.TextField()

    class Meta:
        db_table = 'queued_email_headers'
        ordering = ['email', 'position']
        constraints = [
            models.UniqueConstraint(fields=['email', 'position'], name='unique_header_position'),
        ]

    def __str__(self):
        return f"{self.name}: {self.value}"


class QueuedEmailError(models.Model):
    """One row per failed delivery attempt."""
    email = models.ForeignKey(
        QueuedEmail,
        on_delete=models.CASCADE,
        related_name='errors'
    )
    code = models.IntegerField(null=True, blank=True)
    message = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'queued_email_errors'
        ordering = ['created_at']

    def __str__(self):
        return f"email {self.email_id}: {self.code} {self.message[:80]}"
