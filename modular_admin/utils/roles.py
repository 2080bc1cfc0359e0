from functools import wraps
from flask_login import current_user

from modular_admin.exceptions import AuthenticationRequired, PermissionDenied
from modular_admin.permissions import has_any_permission, is_super_admin
from modular_admin.utils.responses import error_response


def permission_required(*codes):
    """
    Restrict a view to users holding at least one of the given permission codes.
    Example: @permission_required('roles:update')
    """
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                return error_response("Unauthorized", 401)
            if not has_any_permission(current_user.id, codes, current_user.tenant_id):
                raise PermissionDenied(codes)
            return f(*args, **kwargs)
        return wrapper
    return decorator


def super_admin_required(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            return error_response("Unauthorized", 401)
        if not is_super_admin(current_user.id, current_user.tenant_id):
            raise PermissionDenied(description="Super admin access required")
        return f(*args, **kwargs)
    return wrapper


def require_permission(code):
    """Inline variant of :func:`permission_required` for module handlers."""
    if not current_user.is_authenticated:
        raise AuthenticationRequired()
    if not has_any_permission(current_user.id, (code,), current_user.tenant_id):
        raise PermissionDenied((code,))
    return current_user._get_current_object()
