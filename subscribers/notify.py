"""
Subscriber emails: the welcome email and the new-post fan-out.

Both only queue mail (emailqueue.enqueue); the queue runner delivers it.
"""
import logging
from email.utils import formataddr
from pathlib import Path

from django.db import DatabaseError, transaction
from django.template.loader import render_to_string
from django.utils.http import urlencode
from django.utils.safestring import mark_safe

from sitehost_backend.errors import ErrorKind, SiteHostError, StorageError
from sitehost_backend.hosting import HostingConfig
from emailqueue.models import QueuedEmail
from emailqueue.queue import OutboundEmail, enqueue
from generation.models import Generation, Post, PostEmailBinding
from .models import Subscriber, SubscriberEmail

logger = logging.getLogger(__name__)

CLICK_PARAM = 'subscriber'
TEMPLATE_SUFFIX = {
    QueuedEmail.MODE_HTML: 'html',
    QueuedEmail.MODE_PLAINTEXT: 'txt',
}


def unsubscribe_headers(unsubscribe_link):
    return [
        ('List-Unsubscribe-Post', 'List-Unsubscribe=One-Click'),
        ('List-Unsubscribe', f"<{unsubscribe_link}>"),
    ]


class PostNotifier:

    def __init__(self, config):
        self.config = config

    @classmethod
    def from_settings(cls):
        return cls(HostingConfig.from_settings())

    def from_addr(self, site):
        return formataddr((site.display_name, f"{site.subdomain}@{self.config.email_domain}"))

    def unsubscribe_link(self, subscriber):
        query = urlencode({'token': str(subscriber.unsubscribe_token)})
        return self.config.service_url(f"/api/v1/subscribers/unsubscribe/?{query}")

    def post_link(self, site, post, token):
        query = urlencode({CLICK_PARAM: str(token)})
        return self.config.site_url(site.subdomain, f"{post.url}?{query}")

    def render(self, name, mode, context):
        return render_to_string(f"subscribers/emails/{name}.{TEMPLATE_SUFFIX[mode]}", context)

    def send_welcome(self, subscriber):
        site = subscriber.site
        unsubscribe_link = self.unsubscribe_link(subscriber)
        body = self.render('welcome', site.email_mode, {
            'site_title': site.display_name,
            'unsubscribe_link': unsubscribe_link,
        })
        return enqueue(OutboundEmail(
            from_addr=self.from_addr(site),
            to_addr=subscriber.email,
            subject=f"Welcome to {site.display_name}",
            body=body,
            mode=site.email_mode,
            stream=QueuedEmail.STREAM_OUTBOUND,
            headers=unsubscribe_headers(unsubscribe_link),
        ))

    def send_post_email(self, post):
        """
        Queue `post` for every active subscriber of its site and mark it sent.

        Runs in one transaction: either every subscriber's email is queued
        and the post is marked sent, or nothing is. Returns the number of
        emails queued.
        """
        try:
            with transaction.atomic():
                post = Post.objects.select_for_update().select_related('site').get(pk=post.pk)
                if post.email_sent:
                    raise SiteHostError(kind=ErrorKind.EMAIL_ALREADY_SENT)
                site = post.site
                body = self._post_body(site, post)
                count = 0
                for subscriber in Subscriber.objects.filter(site=site, status=Subscriber.STATUS_ACTIVE).order_by('id'):
                    record = SubscriberEmail.objects.create(subscriber=subscriber, post=post)
                    unsubscribe_link = self.unsubscribe_link(subscriber)
                    rendered = self.render('new_post', site.email_mode, {
                        'body': mark_safe(body) if site.email_mode == QueuedEmail.MODE_HTML else body,
                        'post_link': self.post_link(site, post, record.token),
                        'unsubscribe_link': unsubscribe_link,
                    })
                    enqueue(OutboundEmail(
                        from_addr=self.from_addr(site),
                        to_addr=subscriber.email,
                        subject=post.title,
                        body=rendered,
                        mode=site.email_mode,
                        stream=QueuedEmail.STREAM_BROADCAST,
                        headers=unsubscribe_headers(unsubscribe_link),
                    ))
                    count += 1
                post.email_sent = True
                post.save(update_fields=['email_sent', 'updated_at'])
        except DatabaseError as exc:
            raise StorageError(f"sending post {post.pk}: {exc}") from exc
        logger.info("Queued post %s (%s) for %s subscribers of site %s", post.pk, post.url, count, site.pk)
        return count

    def _post_body(self, site, post):
        generation_id = Generation.objects.fresh_id(site)
        if generation_id is None:
            raise SiteHostError(kind=ErrorKind.NOT_READY)
        binding = PostEmailBinding.objects.filter(generation_id=generation_id, url=post.url).first()
        if binding is None:
            raise SiteHostError(f"post {post.url} is not in the current version of the site", kind=ErrorKind.PAGE_NOT_FOUND)
        try:
            return Path(binding.body_path(site.email_mode)).read_text(encoding='utf-8')
        except OSError as exc:
            raise StorageError(f"reading email body for {post.url}: {exc}") from exc
