"""
Owner-facing numbers for a site: per-post views and email clicks, subscriber
growth, and the subscriber export.
"""
import csv
import io

from django.db.models import Count, Q
from django.db.models.functions import TruncHour

from routing.models import Visit
from subscribers.models import Subscriber

EXPORT_FIELDS = ['Email', 'CreatedAt']


def post_metrics(site, config):
    """
    One row per post of `site`, newest first.

    `views` counts recorded visits to the post's URL; `email_clicks` counts
    subscribers who followed the post link in its email.
    """
    views = dict(
        Visit.objects.filter(site=site)
        .values('url')
        .annotate(count=Count('id'))
        .values_list('url', 'count')
    )
    posts = site.posts.annotate(
        email_clicks=Count('subscriber_emails', filter=Q(subscriber_emails__clicked=True)),
    )
    return [
        {
            'id': post.pk,
            'title': post.title,
            'url': post.url,
            'link': config.site_url(site.subdomain, post.url),
            'published_at': post.published_at,
            'email_sent': post.email_sent,
            'views': views.get(post.url, 0),
            'email_clicks': post.email_clicks,
        }
        for post in posts
    ]


def subscriber_metrics(site):
    """Active subscriber count and the cumulative count at the end of each hour someone subscribed."""
    per_hour = (
        Subscriber.objects.filter(site=site, status=Subscriber.STATUS_ACTIVE)
        .annotate(hour=TruncHour('created_at'))
        .values('hour')
        .annotate(count=Count('id'))
        .order_by('hour')
    )
    cumulative = []
    total = 0
    for row in per_hour:
        total += row['count']
        cumulative.append({'timestamp': row['hour'], 'count': total})
    return {'count': total, 'cumulative_counts': cumulative}


def subscribers_csv(site):
    """CSV of the site's active subscribers: Email, CreatedAt (ISO 8601)."""
    output = io.StringIO()
    writer = csv.writer(output)

    writer.writerow(EXPORT_FIELDS)
    subscribers = Subscriber.objects.filter(site=site, status=Subscriber.STATUS_ACTIVE).order_by('created_at', 'id')
    for subscriber in subscribers:
        writer.writerow([subscriber.email, subscriber.created_at.isoformat()])

    return output.getvalue()
