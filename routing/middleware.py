"""
Tenant routing middleware.

Requests for the service host continue down the normal Django stack.
Requests for a site's subdomain or custom domain are answered here, straight
from the site's fresh generation.
"""
import logging

from django.conf import settings
from django.http import FileResponse, HttpResponseRedirect, JsonResponse

from sitehost_backend.errors import ErrorKind, SiteHostError
from sitehost_backend.hosting import HostingConfig
from subscribers.notify import CLICK_PARAM
from .hosts import IS_SERVICE, HostResolver
from .resolver import record_email_click, serve

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 5
ALLOWED_METHODS = ('GET', 'HEAD')


class HttpResponseRedirect308(HttpResponseRedirect):
    status_code = 308


def error_response(exc):
    response = JsonResponse(exc.as_dict(), status=exc.status)
    if exc.kind is ErrorKind.NOT_READY:
        response['Retry-After'] = str(RETRY_AFTER_SECONDS)
    return response


def request_host(request):
    meta = request.META
    if settings.USE_X_FORWARDED_HOST and 'HTTP_X_FORWARDED_HOST' in meta:
        return meta['HTTP_X_FORWARDED_HOST'].split(',')[0]
    return meta.get('HTTP_HOST') or meta.get('SERVER_NAME', '')


def strip_click_token(request):
    """Path and query of `request` without the subscriber token."""
    query = request.GET.copy()
    query.pop(CLICK_PARAM, None)
    if query:
        return f"{request.path}?{query.urlencode()}"
    return request.path


class SiteRoutingMiddleware:

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        resolver = HostResolver(HostingConfig.from_settings())
        try:
            target = resolver.resolve(request_host(request))
        except SiteHostError as exc:
            return error_response(exc)
        if target is IS_SERVICE:
            return self.get_response(request)
        return self.serve_site(request, target)

    def serve_site(self, request, site):
        if request.method not in ALLOWED_METHODS:
            response = JsonResponse({
                'error': {'code': 'METHOD_NOT_ALLOWED', 'message': 'Method not allowed', 'status': 405}
            }, status=405)
            response['Allow'] = ', '.join(ALLOWED_METHODS)
            return response

        if CLICK_PARAM in request.GET:
            # The redirected request is the one that counts as a visit. Only a
            # GET counts as a click.
            if request.method == 'GET':
                record_email_click(site, request.GET.get(CLICK_PARAM))
            return HttpResponseRedirect308(strip_click_token(request))

        try:
            path = serve(site, request.path)
        except SiteHostError as exc:
            return error_response(exc)
        try:
            return FileResponse(path.open('rb'))
        except OSError:
            logger.exception("Bound file %s of site %s is missing", path, site.pk)
            return error_response(SiteHostError(f"missing file {path}", kind=ErrorKind.STORAGE))
