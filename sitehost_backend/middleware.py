"""
Custom middleware for sitehost_backend.
"""
from django.middleware.common import CommonMiddleware


class APICommonMiddleware(CommonMiddleware):
    """
    CommonMiddleware that disables APPEND_SLASH for API routes, so POSTs from
    the subscribe forms on tenant sites are not redirected and dropped.
    """
    def should_redirect_with_slash(self, request):
        if request.path.startswith('/api/'):
            return False
        return super().should_redirect_with_slash(request)
