"""
Mail transports used by the queue runner.

A transport delivers one email and raises TransportError when delivery
fails; the runner turns that into a retry or a terminal failure.
"""
import logging

import requests
from django.conf import settings
from django.core.mail import EmailMessage
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

POSTMARK_EMAIL_URL = 'https://api.postmarkapp.com/email'


class TransportError(Exception):

    def __init__(self, message, code=None):
        super().__init__(message)
        self.message = message
        self.code = code


class BaseTransport:
    """Interface: send(from_addr, to_addr, subject, body, mode, headers, stream)."""

    def send(self, from_addr, to_addr, subject, body, mode, headers, stream):
        raise NotImplementedError


class PostmarkTransport(BaseTransport):

    def __init__(self, api_key='', timeout=15, url=POSTMARK_EMAIL_URL, session=None):
        self.api_key = api_key
        self.timeout = timeout
        self.url = url
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls):
        conf = settings.EMAIL_QUEUE
        return cls(api_key=conf.get('POSTMARK_API_KEY', ''), timeout=conf.get('POSTMARK_TIMEOUT', 15))

    def payload(self, from_addr, to_addr, subject, body, mode, headers, stream):
        payload = {
            'From': from_addr,
            'To': to_addr,
            'Subject': subject,
            'Headers': [{'Name': name, 'Value': value} for name, value in headers],
            'MessageStream': stream,
        }
        if mode == 'html':
            payload['HtmlBody'] = body
        elif mode == 'plaintext':
            payload['TextBody'] = body
        else:
            raise TransportError(f"invalid mode {mode!r}")
        return payload

    def send(self, from_addr, to_addr, subject, body, mode, headers, stream):
        payload = self.payload(from_addr, to_addr, subject, body, mode, headers, stream)
        try:
            resp = self.session.post(
                self.url,
                json=payload,
                headers={
                    'Accept': 'application/json',
                    'X-Postmark-Server-Token': self.api_key,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"postmark request failed: {exc}") from exc

        try:
            data = resp.json()
        except ValueError:
            data = {}
        code = data.get('ErrorCode', 0) if isinstance(data, dict) else 0
        if resp.status_code != 200 or code:
            message = data.get('Message') if isinstance(data, dict) else None
            raise TransportError(
                message or f"HTTP {resp.status_code}: {resp.text[:500]}",
                code=code or resp.status_code,
            )
        return data


class DjangoMailTransport(BaseTransport):
    """Delivers through Django's configured EMAIL_BACKEND."""

    def send(self, from_addr, to_addr, subject, body, mode, headers, stream):
        # EmailMessage takes a dict, so a repeated header name keeps its last value.
        message = EmailMessage(
            subject=subject,
            body=body,
            from_email=from_addr,
            to=[to_addr],
            headers=dict(headers),
        )
        if mode == 'html':
            message.content_subtype = 'html'
        try:
            message.send(fail_silently=False)
        except Exception as exc:
            raise TransportError(f"mail backend failed: {exc}") from exc


class ConsoleTransport(BaseTransport):
    """Logs emails instead of sending them (development)."""

    def send(self, from_addr, to_addr, subject, body, mode, headers, stream):
        logger.info(
            "Email [%s/%s] %s -> %s: %s (%s headers, %s chars)",
            stream, mode, from_addr, to_addr, subject, len(headers), len(body),
        )


def load_transport(path=None):
    """Instantiate the transport class named by EMAIL_QUEUE['TRANSPORT']."""
    cls = import_string(path or settings.EMAIL_QUEUE['TRANSPORT'])
    if hasattr(cls, 'from_settings'):
        return cls.from_settings()
    return cls()
