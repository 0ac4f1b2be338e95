"""
Visit log for tenant sites.
"""
from django.db import models


class Visit(models.Model):
    site = models.ForeignKey(
        'sites.Site',
        on_delete=models.CASCADE,
        related_name='visits'
    )
    url = models.CharField(max_length=1024)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'visits'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['site', 'created_at'], name='visits_site_created_idx'),
        ]

    def __str__(self):
        return f"{self.url} on site {self.site_id}"
