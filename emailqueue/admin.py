from django.contrib import admin
from .models import QueuedEmail, QueuedEmailHeader, QueuedEmailError


class QueuedEmailHeaderInline(admin.TabularInline):
    model = QueuedEmailHeader
    extra = 0
    readonly_fields = ('position', 'name', 'value')


class QueuedEmailErrorInline(admin.TabularInline):
    model = QueuedEmailError
    extra = 0
    readonly_fields = ('code', 'message', 'created_at')


@admin.register(QueuedEmail)
class QueuedEmailAdmin(admin.ModelAdmin):
    list_display = ('subject', 'to_addr', 'stream', 'status', 'fail_count', 'created_at', 'sent_at')
    list_filter = ('status', 'stream', 'mode', 'created_at')
    search_fields = ('to_addr', 'from_addr', 'subject')
    readonly_fields = ('fail_count', 'created_at', 'sent_at')
    inlines = [QueuedEmailHeaderInline, QueuedEmailErrorInline]
