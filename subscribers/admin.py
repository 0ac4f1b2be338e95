from django.contrib import admin
from .models import Subscriber, SubscriberEmail


@admin.register(Subscriber)
class SubscriberAdmin(admin.ModelAdmin):
    list_display = ('email', 'site', 'status', 'created_at')
    list_filter = ('status', 'created_at')
    search_fields = ('email', 'site__subdomain')
    readonly_fields = ('unsubscribe_token', 'created_at')


@admin.register(SubscriberEmail)
class SubscriberEmailAdmin(admin.ModelAdmin):
    list_display = ('subscriber', 'post', 'clicked', 'clicked_at', 'created_at')
    list_filter = ('clicked', 'created_at')
    search_fields = ('subscriber__email', 'post__url')
    readonly_fields = ('token', 'clicked', 'clicked_at', 'created_at')
