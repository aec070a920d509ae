from rest_framework.permissions import BasePermission

from .utils import get_request_role, normalize_role


class HasRole(BasePermission):
    """
    Allow-list check on the role claim. Both sides are normalized, so
    ``admin`` and ``ADMIN`` are equivalent.
    """
    allowed_roles = ()
    message = 'Sin permisos'

    def has_permission(self, request, view):
        if not (request.user and request.user.is_authenticated):
            return False
        allowed = {normalize_role(role) for role in self.allowed_roles}
        return get_request_role(request) in allowed


def role_required(*roles):
    """Build a HasRole permission class for the given roles"""
    name = 'HasRole_' + '_'.join(normalize_role(role) for role in roles)
    return type(name, (HasRole,), {'allowed_roles': tuple(roles)})


IsAdminRole = role_required('ADMIN')
IsAdminOrCashier = role_required('ADMIN', 'CAJERO')
