"""
Serializers for Site and its configuration-change actions.
"""
from rest_framework import serializers

from sitehost_backend.hosting import HostingConfig
from generation.models import Post
from .models import Site
from .services import BRANCH_LIVE, BRANCH_TEST


class SiteSerializer(serializers.ModelSerializer):
    """Serializer for Site model."""
    url = serializers.SerializerMethodField()
    post_count = serializers.SerializerMethodField()
    subscriber_count = serializers.SerializerMethodField()

    class Meta:
        model = Site
        fields = (
            'id', 'name', 'subdomain', 'custom_domain', 'url', 'theme',
            'source_type', 'repository_url', 'live_branch', 'test_branch',
            'live_hash', 'is_live', 'email_mode', 'post_count',
            'subscriber_count', 'created_at', 'updated_at',
        )
        read_only_fields = (
            'id', 'subdomain', 'custom_domain', 'theme', 'source_type',
            'live_branch', 'test_branch', 'live_hash', 'is_live',
            'created_at', 'updated_at',
        )

    def get_url(self, obj):
        config = HostingConfig.from_settings()
        if obj.custom_domain:
            return f"{config.protocol}://{obj.custom_domain}/"
        return config.site_url(obj.subdomain, '/')

    def get_post_count(self, obj):
        return obj.posts.count()

    def get_subscriber_count(self, obj):
        return obj.subscribers.filter(status='active').count()


class SiteCreateSerializer(serializers.Serializer):
    """Input for POST /api/v1/sites/. Subdomain and theme are checked by the service."""
    subdomain = serializers.CharField(max_length=255)
    name = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    theme = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    source_type = serializers.ChoiceField(choices=Site.SOURCE_TYPE_CHOICES, default=Site.SOURCE_REPOSITORY)
    repository_url = serializers.URLField(required=False, allow_blank=True, default='')
    live_branch = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    test_branch = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    email_mode = serializers.ChoiceField(choices=Site.EMAIL_MODE_CHOICES, default=Site.EMAIL_MODE_HTML)


class ThemeSerializer(serializers.Serializer):
    theme = serializers.CharField(max_length=50)


class BranchSerializer(serializers.Serializer):
    kind = serializers.ChoiceField(choices=[BRANCH_LIVE, BRANCH_TEST], default=BRANCH_LIVE)
    branch = serializers.CharField(max_length=255, allow_blank=True)


class SubdomainSerializer(serializers.Serializer):
    subdomain = serializers.CharField(max_length=255, allow_blank=True)


class SourceSerializer(serializers.Serializer):
    content_hash = serializers.CharField(max_length=64, required=False, allow_blank=True, default='')


class StatusSerializer(serializers.Serializer):
    is_live = serializers.BooleanField()


class DomainSerializer(serializers.Serializer):
    domain = serializers.CharField(max_length=253, required=False, allow_blank=True, allow_null=True, default=None)


class PostSerializer(serializers.ModelSerializer):

    class Meta:
        model = Post
        fields = ('id', 'url', 'title', 'published_at', 'email_sent', 'created_at', 'updated_at')
        read_only_fields = fields
