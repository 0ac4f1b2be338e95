"""
Custom permissions for sites app.
"""
from rest_framework import permissions


class IsSiteOwner(permissions.BasePermission):
    """
    Object permission for a Site, or for anything with a `site` (posts,
    subscribers): only the site's owner may see or change it.
    """
    def has_object_permission(self, request, view, obj):
        site = getattr(obj, 'site', obj)
        return site.user_id == request.user.id
