from django.apps import AppConfig


class EmailQueueConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'emailqueue'
    verbose_name = 'Email queue'
