"""
URL routing for subscribers app.
"""
from django.urls import path

from .views import unsubscribe

urlpatterns = [
    path('unsubscribe/', unsubscribe, name='subscriber-unsubscribe'),
]
