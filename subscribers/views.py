"""
Public subscriber endpoints.

The subscribe endpoint is the target of the form on every tenant site's
/subscribe page; unsubscribe links and one-click List-Unsubscribe requests
come from subscriber emails. Neither requires authentication.
"""
from django.http import HttpResponseRedirect
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from sitehost_backend.hosting import HostingConfig
from sites.models import Site
from .notify import PostNotifier
from .serializers import SubscribeSerializer, UnsubscribeSerializer, SubscriberSerializer
from .services import subscribe as subscribe_to_site, unsubscribe as unsubscribe_token


def _wants_json(request):
    return (request.content_type or '').startswith('application/json')


@csrf_exempt
@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def subscribe(request, site_id):
    """
    Subscribe an email address to a site.

    POST /api/v1/sites/{site_id}/subscribe/
    Body: {"email": "reader@example.com"} (JSON or form-encoded)

    Form posts from the site's /subscribe page are redirected back to the
    site's /subscribed page; JSON requests get the subscriber back.
    """
    site = get_object_or_404(Site, pk=site_id)
    serializer = SubscribeSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    config = HostingConfig.from_settings()
    subscriber, created = subscribe_to_site(site, serializer.validated_data['email'], PostNotifier(config))
    if not _wants_json(request):
        return HttpResponseRedirect(config.site_url(site.subdomain, '/subscribed'))
    return Response(
        SubscriberSerializer(subscriber).data,
        status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
    )


@csrf_exempt
@api_view(['GET', 'POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def unsubscribe(request):
    """
    Unsubscribe using the token from an email.

    GET  /api/v1/subscribers/unsubscribe/?token=<uuid> - link in the email body,
         redirects to the site's /unsubscribed page
    POST /api/v1/subscribers/unsubscribe/?token=<uuid> - one-click
         List-Unsubscribe, answers JSON
    """
    serializer = UnsubscribeSerializer(data=request.query_params)
    serializer.is_valid(raise_exception=True)
    subscriber = unsubscribe_token(serializer.validated_data['token'])
    if subscriber is None:
        return Response(
            {'error': {'code': 'UNKNOWN_TOKEN', 'message': 'Unknown unsubscribe token.', 'status': 404}},
            status=status.HTTP_404_NOT_FOUND,
        )
    if request.method == 'GET':
        config = HostingConfig.from_settings()
        return HttpResponseRedirect(config.site_url(subscriber.site.subdomain, '/unsubscribed'))
    return Response({'status': subscriber.status})
