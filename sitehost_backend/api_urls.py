"""
API URL routing for sitehost_backend.
All API endpoints are prefixed with /api/v1/
"""
from django.urls import path, include
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .views import health_check

urlpatterns = [
    # Health check (no auth) - GET /api/v1/health/
    path('health/', health_check, name='health'),
    # Owner authentication (JWT)
    path('auth/token/', TokenObtainPairView.as_view(), name='token-obtain'),
    path('auth/token/refresh/', TokenRefreshView.as_view(), name='token-refresh'),
    # Subscriber endpoints used from tenant sites and emails
    path('subscribers/', include('subscribers.urls')),
    # Site management, configuration changes, posts
    path('sites/', include('sites.urls')),
]
