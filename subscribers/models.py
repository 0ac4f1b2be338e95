"""
Subscriber models.

A Subscriber follows one site. Each email sent about a post to a subscriber
gets a SubscriberEmail whose token appears in the post link; the routing
middleware uses it to record the click.
"""
import uuid

from django.db import models


class Subscriber(models.Model):
    STATUS_ACTIVE = 'active'
    STATUS_UNSUBSCRIBED = 'unsubscribed'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_UNSUBSCRIBED, 'Unsubscribed'),
    ]

    site = models.ForeignKey(
        'sites.Site',
        on_delete=models.CASCADE,
        related_name='subscribers'
    )
    email = models.EmailField()
    unsubscribe_token = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'subscribers'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['site', 'email'], name='unique_site_subscriber'),
        ]

    def __str__(self):
        return f"{self.email} -> site {self.site_id} ({self.status})"

    @property
    def is_active(self):
        return self.status == self.STATUS_ACTIVE


class SubscriberEmail(models.Model):
    """One post email to one subscriber; `clicked` only ever goes from False to True."""
    subscriber = models.ForeignKey(
        Subscriber,
        on_delete=models.CASCADE,
        related_name='emails'
    )
    post = models.ForeignKey(
        'generation.Post',
        on_delete=models.CASCADE,
        related_name='subscriber_emails'
    )
    token = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    clicked = models.BooleanField(default=False)
    clicked_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'subscriber_emails'
        ordering = ['-created_at']

    def __str__(self):
        return f"post {self.post_id} to subscriber {self.subscriber_id}"
