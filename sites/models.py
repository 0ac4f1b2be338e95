"""
Site model.
"""
from django.db import models
from django.conf import settings


class Site(models.Model):
    """
    A tenant site generated from a repository checkout or an uploaded folder
    and served at <subdomain>.<root domain> or at a custom domain.
    One user can own multiple sites.
    """
    SOURCE_REPOSITORY = 'repository'
    SOURCE_FOLDER = 'folder'
    SOURCE_TYPE_CHOICES = [
        (SOURCE_REPOSITORY, 'Repository'),
        (SOURCE_FOLDER, 'Uploaded folder'),
    ]

    EMAIL_MODE_HTML = 'html'
    EMAIL_MODE_PLAINTEXT = 'plaintext'
    EMAIL_MODE_CHOICES = [
        (EMAIL_MODE_HTML, 'HTML'),
        (EMAIL_MODE_PLAINTEXT, 'Plain text'),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='sites'
    )
    name = models.CharField(max_length=255, blank=True)
    subdomain = models.CharField(
        max_length=63,
        unique=True,
        help_text="DNS label under the root domain"
    )
    custom_domain = models.CharField(
        max_length=253,
        unique=True,
        null=True,
        blank=True,
        help_text="Fully-qualified custom domain, if registered"
    )
    theme = models.CharField(max_length=50)
    source_type = models.CharField(
        max_length=20,
        choices=SOURCE_TYPE_CHOICES,
        default=SOURCE_REPOSITORY
    )
    repository_url = models.URLField(blank=True)
    live_branch = models.CharField(max_length=255, blank=True)
    test_branch = models.CharField(max_length=255, blank=True)
    live_hash = models.CharField(
        max_length=64,
        blank=True,
        help_text="Content hash of the last fetched source for the live branch"
    )
    is_live = models.BooleanField(default=True)
    email_mode = models.CharField(
        max_length=20,
        choices=EMAIL_MODE_CHOICES,
        default=EMAIL_MODE_HTML
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'sites'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.name or self.subdomain} ({self.subdomain})"

    @property
    def display_name(self):
        return self.name or self.subdomain
