from django.contrib import admin
from .models import Visit


@admin.register(Visit)
class VisitAdmin(admin.ModelAdmin):
    list_display = ('url', 'site', 'created_at')
    list_filter = ('created_at',)
    search_fields = ('url', 'site__subdomain')
    readonly_fields = ('site', 'url', 'created_at')
