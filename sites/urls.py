"""
URL routing for sites app.
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from subscribers.views import subscribe
from .views import SiteViewSet

router = DefaultRouter()
router.register(r'', SiteViewSet, basename='site')

urlpatterns = [
    # Public subscribe form target (posted from the tenant site's /subscribe page)
    path('<int:site_id>/subscribe/', subscribe, name='site-subscribe'),
    path('', include(router.urls)),
]
