from django.contrib import admin
from .models import Site


@admin.register(Site)
class SiteAdmin(admin.ModelAdmin):
    list_display = ('subdomain', 'name', 'custom_domain', 'user', 'theme', 'is_live', 'created_at')
    list_filter = ('is_live', 'source_type', 'theme', 'created_at')
    search_fields = ('name', 'subdomain', 'custom_domain', 'user__email')
    readonly_fields = ('live_hash', 'created_at', 'updated_at')
