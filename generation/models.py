"""
Generation, binding and post models.

A Generation is an immutable snapshot of a site's rendered output. Its
Bindings map request paths to files inside the output directory. Only the
staleness flag of a generation ever changes, and only from fresh to stale.
"""
from django.db import models
from django.db.models import Q


class GenerationQuerySet(models.QuerySet):

    def fresh(self):
        return self.filter(stale=False)

    def fresh_id(self, site):
        """Id of the site's fresh generation, or None."""
        return self.filter(site=site, stale=False).values_list('id', flat=True).first()


class Generation(models.Model):
    site = models.ForeignKey(
        'sites.Site',
        on_delete=models.PROTECT,
        related_name='generations'
    )
    content_hash = models.CharField(
        max_length=64,
        help_text="Content hash of the source tree this generation was rendered from"
    )
    output_path = models.CharField(max_length=1024)
    stale = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = GenerationQuerySet.as_manager()

    class Meta:
        db_table = 'generations'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['site'],
                condition=Q(stale=False),
                name='one_fresh_generation_per_site',
            ),
        ]

    def __str__(self):
        state = 'stale' if self.stale else 'fresh'
        return f"Generation {self.pk} of site {self.site_id} ({state})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("generations are immutable; use Generation.mark_stale()")
        super().save(*args, **kwargs)

    @classmethod
    def mark_stale(cls, site):
        """Mark every fresh generation of `site` stale. Returns the number marked."""
        return cls.objects.filter(site=site, stale=False).update(stale=True)


class Binding(models.Model):
    generation = models.ForeignKey(
        Generation,
        on_delete=models.CASCADE,
        related_name='bindings'
    )
    url = models.CharField(max_length=1024)
    path = models.CharField(max_length=1024, help_text="Absolute path of the bound file")

    class Meta:
        db_table = 'bindings'
        constraints = [
            models.UniqueConstraint(fields=['generation', 'url'], name='unique_binding_url'),
        ]

    def __str__(self):
        return f"{self.url} -> {self.path}"


class Post(models.Model):
    """
    A post's logical identity across generations, keyed by (site, url).
    Regenerating a site updates the title and publish time in place.
    """
    site = models.ForeignKey(
        'sites.Site',
        on_delete=models.CASCADE,
        related_name='posts'
    )
    url = models.CharField(max_length=1024)
    title = models.CharField(max_length=500)
    published_at = models.DateTimeField(null=True, blank=True)
    email_sent = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'posts'
        ordering = ['-published_at', '-created_at']
        constraints = [
            models.UniqueConstraint(fields=['site', 'url'], name='unique_post_url'),
        ]

    def __str__(self):
        return f"{self.title} ({self.url})"


class PostEmailBinding(models.Model):
    """Email bodies rendered for a post in one generation."""
    generation = models.ForeignKey(
        Generation,
        on_delete=models.CASCADE,
        related_name='post_email_bindings'
    )
    url = models.CharField(max_length=1024)
    html_path = models.CharField(max_length=1024)
    text_path = models.CharField(max_length=1024)

    class Meta:
        db_table = 'post_email_bindings'
        constraints = [
            models.UniqueConstraint(fields=['generation', 'url'], name='unique_post_email_binding'),
        ]

    def __str__(self):
        return f"email bodies for {self.url} in generation {self.generation_id}"

    def body_path(self, mode):
        """Path of the body for an email mode ('html' or 'plaintext')."""
        return self.html_path if mode == 'html' else self.text_path
