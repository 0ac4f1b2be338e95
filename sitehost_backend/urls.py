"""
URL configuration for sitehost_backend project.

Only requests for the service host reach this URLConf; tenant hosts are
answered by routing.middleware.SiteRoutingMiddleware.
"""
from django.contrib import admin
from django.urls import path, include


urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('sitehost_backend.api_urls')),
]

# Custom error handlers - return JSON instead of HTML
handler404 = 'sitehost_backend.views.custom_404'
handler500 = 'sitehost_backend.views.custom_500'
