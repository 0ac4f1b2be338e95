"""
Views for Site management and configuration changes.
"""
import logging

from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from sitehost_backend.hosting import HostingConfig
from generation.models import Post
from subscribers.models import Subscriber
from subscribers.notify import PostNotifier
from subscribers.serializers import SubscriberSerializer
from subscribers.services import remove_subscriber
from . import metrics as site_metrics
from .models import Site
from .permissions import IsSiteOwner
from .serializers import (
    SiteSerializer, SiteCreateSerializer, ThemeSerializer, BranchSerializer,
    SubdomainSerializer, SourceSerializer, StatusSerializer, DomainSerializer,
    PostSerializer,
)
from .services import SiteService

logger = logging.getLogger(__name__)


class SiteViewSet(viewsets.ModelViewSet):
    """
    ViewSet for managing sites.

    list: GET /api/v1/sites/ - List all sites for current user
    create: POST /api/v1/sites/ - Create a site (generated if its source is available)
    retrieve: GET /api/v1/sites/{id}/ - Get site details
    update: PUT/PATCH /api/v1/sites/{id}/ - Update name, repository URL or email mode
    destroy: DELETE /api/v1/sites/{id}/ - Delete site, its generations and output

    Configuration changes regenerate the site before responding:
    theme, branch, subdomain, source. status and domain do not.
    """
    serializer_class = SiteSerializer
    permission_classes = [IsAuthenticated, IsSiteOwner]

    def get_queryset(self):
        """Return only sites owned by the current user."""
        return Site.objects.filter(user=self.request.user)

    def get_service(self):
        return SiteService.from_settings()

    def create(self, request, *args, **kwargs):
        serializer = SiteCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        site = self.get_service().create_site(user=request.user, **serializer.validated_data)
        return Response(SiteSerializer(site).data, status=status.HTTP_201_CREATED)

    def perform_destroy(self, instance):
        self.get_service().delete_site(instance)

    def _configure(self, request, serializer_class, change):
        site = self.get_object()
        serializer = serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        site = change(self.get_service(), site, serializer.validated_data)
        return Response(SiteSerializer(site).data)

    @action(detail=True, methods=['post'])
    def theme(self, request, pk=None):
        """POST /api/v1/sites/{id}/theme/ {"theme": "lit"}"""
        return self._configure(
            request, ThemeSerializer,
            lambda service, site, data: service.change_theme(site, data['theme']),
        )

    @action(detail=True, methods=['post'])
    def branch(self, request, pk=None):
        """POST /api/v1/sites/{id}/branch/ {"kind": "live"|"test", "branch": "main"}"""
        return self._configure(
            request, BranchSerializer,
            lambda service, site, data: service.change_branch(site, data['kind'], data['branch']),
        )

    @action(detail=True, methods=['post'])
    def subdomain(self, request, pk=None):
        """POST /api/v1/sites/{id}/subdomain/ {"subdomain": "blog"}"""
        return self._configure(
            request, SubdomainSerializer,
            lambda service, site, data: service.change_subdomain(site, data['subdomain']),
        )

    @action(detail=True, methods=['post'])
    def source(self, request, pk=None):
        """
        Record a newly fetched source and regenerate.

        POST /api/v1/sites/{id}/source/ {"content_hash": "<checkout hash>"}
        Folder sites post an empty body after their folder has been uploaded.
        """
        return self._configure(
            request, SourceSerializer,
            lambda service, site, data: service.update_source(site, data['content_hash']),
        )

    @action(detail=True, methods=['post'], url_path='status')
    def set_status(self, request, pk=None):
        """POST /api/v1/sites/{id}/status/ {"is_live": false}"""
        return self._configure(
            request, StatusSerializer,
            lambda service, site, data: service.set_live(site, data['is_live']),
        )

    @action(detail=True, methods=['post'])
    def domain(self, request, pk=None):
        """POST /api/v1/sites/{id}/domain/ {"domain": "blog.example.com"} (empty to remove)"""
        return self._configure(
            request, DomainSerializer,
            lambda service, site, data: service.set_custom_domain(site, data['domain']),
        )

    @action(detail=False, methods=['get'], url_path='subdomain-check')
    def subdomain_check(self, request):
        """
        GET /api/v1/sites/subdomain-check/?subdomain=blog

        Returns {"subdomain": "blog", "available": true}. Invalid labels are
        answered with a 400 INVALID_SUBDOMAIN error.
        """
        raw = request.query_params.get('subdomain', '')
        subdomain = self.get_service().validate_subdomain(raw)
        return Response({
            'subdomain': subdomain,
            'available': not Site.objects.filter(subdomain=subdomain).exists(),
        })

    @action(detail=True, methods=['get'])
    def posts(self, request, pk=None):
        """GET /api/v1/sites/{id}/posts/"""
        site = self.get_object()
        page = self.paginate_queryset(site.posts.all())
        return self.get_paginated_response(PostSerializer(page, many=True).data)

    @action(detail=True, methods=['post'], url_path=r'posts/(?P<post_id>\d+)/send-email')
    def send_post_email(self, request, pk=None, post_id=None):
        """
        Email a post to every active subscriber of the site.

        POST /api/v1/sites/{id}/posts/{post_id}/send-email/
        Returns {"post_id": ..., "queued": <number of emails queued>}.
        A post can only be sent once (409 EMAIL_ALREADY_SENT).
        """
        site = self.get_object()
        post = get_object_or_404(Post, pk=post_id, site=site)
        queued = PostNotifier.from_settings().send_post_email(post)
        return Response({'post_id': post.pk, 'queued': queued})

    @action(detail=True, methods=['get'])
    def subscribers(self, request, pk=None):
        """GET /api/v1/sites/{id}/subscribers/?status=active"""
        site = self.get_object()
        queryset = Subscriber.objects.filter(site=site)
        status_filter = request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(SubscriberSerializer(page, many=True).data)

    @action(detail=True, methods=['get'], url_path='subscribers/metrics')
    def subscriber_metrics(self, request, pk=None):
        """
        GET /api/v1/sites/{id}/subscribers/metrics/

        Returns {"count": <active subscribers>, "cumulative_counts": [{"timestamp": ..., "count": ...}]}
        with one entry per hour in which someone subscribed.
        """
        return Response(site_metrics.subscriber_metrics(self.get_object()))

    @action(detail=True, methods=['get'], url_path='subscribers/export')
    def export_subscribers(self, request, pk=None):
        """GET /api/v1/sites/{id}/subscribers/export/ - active subscribers as subscribers.csv"""
        site = self.get_object()
        response = HttpResponse(site_metrics.subscribers_csv(site), content_type='text/csv')
        response['Content-Disposition'] = 'attachment; filename=subscribers.csv'
        logger.info("Exported subscribers of site %s", site.pk)
        return response

    @action(detail=True, methods=['delete'], url_path=r'subscribers/(?P<subscriber_id>\d+)')
    def delete_subscriber(self, request, pk=None, subscriber_id=None):
        """DELETE /api/v1/sites/{id}/subscribers/{subscriber_id}/"""
        site = self.get_object()
        remove_subscriber(get_object_or_404(Subscriber, pk=subscriber_id, site=site))
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['get'])
    def metrics(self, request, pk=None):
        """
        GET /api/v1/sites/{id}/metrics/

        Per-post views and email clicks: {"posts": [{"id", "title", "url", "link",
        "published_at", "email_sent", "views", "email_clicks"}, ...]}
        """
        site = self.get_object()
        config = HostingConfig.from_settings()
        return Response({'posts': site_metrics.post_metrics(site, config)})
