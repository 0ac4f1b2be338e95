"""
Serializers for subscribers.
"""
from rest_framework import serializers

from .models import Subscriber


class SubscriberSerializer(serializers.ModelSerializer):

    class Meta:
        model = Subscriber
        fields = ('id', 'email', 'status', 'created_at')
        read_only_fields = fields


class SubscribeSerializer(serializers.Serializer):
    email = serializers.EmailField()


class UnsubscribeSerializer(serializers.Serializer):
    token = serializers.UUIDField()
