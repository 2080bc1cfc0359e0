# -*- coding: utf-8 -*-
"""
HTTP errors raised by the permission engine and the API blueprints.
``details`` is rendered next to ``error`` by the application error handler.
"""

from werkzeug.exceptions import BadRequest, Conflict, Forbidden, NotFound, Unauthorized


class ApiErrorMixin:
    details = None

    def __init__(self, description=None, details=None):
        super().__init__(description=description)
        if details is not None:
            self.details = details


class AuthenticationRequired(ApiErrorMixin, Unauthorized):
    description = "Unauthorized"


class PermissionDenied(ApiErrorMixin, Forbidden):
    description = "Forbidden - insufficient permissions"

    def __init__(self, required=(), description=None):
        super().__init__(description, details={"requiredPermissions": list(required)})
        self.required_permissions = tuple(required)


class RoleNotFound(ApiErrorMixin, NotFound):
    description = "Role not found"


class ModuleNotFound(ApiErrorMixin, NotFound):
    description = "Module not found"


class RecordNotFound(ApiErrorMixin, NotFound):
    description = "Record not found"


class PayloadError(ApiErrorMixin, BadRequest):
    description = "Invalid request payload"


class DuplicateError(ApiErrorMixin, Conflict):
    description = "Resource already exists"


def validation_details(exc):
    """Flatten a pydantic ``ValidationError`` into ``[{loc, msg}]``."""

    return [
        {"loc": ".".join(str(part) for part in err.get("loc", ())), "msg": err.get("msg")}
        for err in exc.errors()
    ]
