"""
Error kinds shared by the generation engine, routing and the email queue.

Every failure the core reports to a caller is a SiteHostError carrying one
ErrorKind, so views and middleware pick the response from the kind instead of
inspecting exception types.
"""
import enum
import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ErrorKind(enum.Enum):
    # (code, default message, suggested HTTP status)
    INVALID_SUBDOMAIN = ('INVALID_SUBDOMAIN', 'Invalid subdomain', 400)
    SUBDOMAIN_TAKEN = ('SUBDOMAIN_TAKEN', 'Subdomain already exists', 400)
    DOMAIN_TAKEN = ('DOMAIN_TAKEN', 'Domain is already registered', 400)
    UNKNOWN_THEME = ('UNKNOWN_THEME', 'Unknown theme', 400)
    UNKNOWN_SUBDOMAIN = ('UNKNOWN_SUBDOMAIN', 'Unknown subdomain', 404)
    UNKNOWN_DOMAIN = ('UNKNOWN_DOMAIN', 'Unknown domain', 404)
    SITE_OFFLINE = ('SITE_OFFLINE', 'Site is offline', 404)
    PAGE_NOT_FOUND = ('PAGE_NOT_FOUND', 'Page not found', 404)
    NOT_READY = ('NOT_READY', 'Site is being generated, try again shortly', 503)
    SOURCE_UNAVAILABLE = ('SOURCE_UNAVAILABLE', 'Site source is not available', 409)
    EMAIL_ALREADY_SENT = ('EMAIL_ALREADY_SENT', 'Post email has already been sent', 409)
    STORAGE = ('STORAGE', 'Storage error', 500)
    GENERATION_FAILED = ('GENERATION_FAILED', 'Site generation failed', 500)

    def __init__(self, code, default_message, status):
        self.code = code
        self.default_message = default_message
        self.status = status

    @property
    def is_client_error(self):
        return self.status < 500


class SiteHostError(Exception):
    """Base error; `kind` decides how callers render it."""

    kind = ErrorKind.STORAGE

    def __init__(self, message=None, kind=None):
        if kind is not None:
            self.kind = kind
        self.message = message or self.kind.default_message
        super().__init__(self.message)

    @property
    def status(self):
        return self.kind.status

    def as_dict(self):
        return {
            'error': {
                'code': self.kind.code,
                'message': self.message if self.kind.is_client_error else self.kind.default_message,
                'status': self.kind.status,
            }
        }


class InvalidSubdomain(SiteHostError):
    kind = ErrorKind.INVALID_SUBDOMAIN


class StorageError(SiteHostError):
    kind = ErrorKind.STORAGE


class SourceUnavailable(SiteHostError):
    kind = ErrorKind.SOURCE_UNAVAILABLE


class ThemeNotFound(SiteHostError):
    kind = ErrorKind.UNKNOWN_THEME


class GenerationFailed(SiteHostError):
    kind = ErrorKind.GENERATION_FAILED


def api_exception_handler(exc, context):
    """DRF exception handler that renders SiteHostError in the API error envelope."""
    if isinstance(exc, SiteHostError):
        if not exc.kind.is_client_error:
            logger.error("API request failed (%s): %s", exc.kind.code, exc)
        return Response(exc.as_dict(), status=exc.status)
    return exception_handler(exc, context)
