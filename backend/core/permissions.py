from rest_framework.permissions import BasePermission

from .models import ROLE_ADMIN, ROLE_MANAGER


class IsAdmin(BasePermission):
    message = 'Only administrators can perform this operation.'

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.has_role(ROLE_ADMIN))


class IsAdminOrManager(BasePermission):
    message = 'Only administrators and managers can perform this operation.'

    def has_permission(self, request, view):
        return bool(
            request.user and request.user.is_authenticated
            and request.user.has_role(ROLE_ADMIN, ROLE_MANAGER)
        )


class IsAdminOrManagerForWrites(BasePermission):
    """Every role reads; USER cannot create, change or delete"""
    message = 'User does not have permission to modify this resource.'

    def has_permission(self, request, view):
        if request.method in ('GET', 'HEAD', 'OPTIONS'):
            return True
        return bool(
            request.user and request.user.is_authenticated
            and request.user.has_role(ROLE_ADMIN, ROLE_MANAGER)
        )


def is_admin_or_manager(user):
    return user.has_role(ROLE_ADMIN, ROLE_MANAGER)
