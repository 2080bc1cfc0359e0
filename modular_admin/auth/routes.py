# -*- coding: utf-8 -*-
"""
Authentication and permission introspection endpoints.
Bearer tokens are issued here; every other blueprint reads the identity through Flask-Login.
"""

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import create_access_token
from flask_login import current_user, login_required
from sqlalchemy import func, or_

from modular_admin.models import Module, User
from modular_admin.permissions import (
    get_effective_permissions,
    get_field_access,
    get_user_roles,
)
from modular_admin.navigation import required_permissions_for
from modular_admin.registry import get_registry
from modular_admin.utils.responses import error_response

auth_bp = Blueprint("auth", __name__)


@auth_bp.route("/login", methods=["POST"])
def login():
    data = request.get_json(silent=True) or {}
    identifier = (data.get("username") or data.get("email") or "").strip()
    password = data.get("password") or ""
    if not identifier or not password:
        return error_response("Username and password are required", 400)

    user = User.query.filter(or_(User.username == identifier, func.lower(User.email) == identifier.lower())).first()
    if not user or not user.check_password(password):
        current_app.logger.info("Failed login for %s", identifier)
        return error_response("Invalid credentials", 401)
    if not user.active:
        return error_response("Account is disabled", 401)

    token = create_access_token(identity=str(user.id), additional_claims={"tenant_id": user.tenant_id})
    current_app.logger.info("User %s logged in", user.username)
    return jsonify({"accessToken": token, "tokenType": "Bearer", "user": user.to_dict()})


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    roles = get_user_roles(current_user.id, current_user.tenant_id)
    perms = get_effective_permissions(current_user.id, current_user.tenant_id)
    return jsonify({
        "user": current_user.to_dict(),
        "roles": [role.to_dict() for role in roles],
        "isSuperAdmin": perms.is_super_admin,
    })


@auth_bp.route("/permissions", methods=["GET"])
@login_required
def permissions():
    perms = get_effective_permissions(current_user.id, current_user.tenant_id)
    return jsonify({
        "permissions": sorted(perms.codes),
        "roles": list(perms.role_codes),
        "isSuperAdmin": perms.is_super_admin,
    })


@auth_bp.route("/field-permissions", methods=["GET"])
@login_required
def field_permissions():
    module_code = (request.args.get("moduleCode") or "").strip()
    if module_code:
        codes = [module_code]
    else:
        codes = [m.code for m in Module.query.filter_by(is_active=True).order_by(Module.sort_order, Module.code)]

    result = {}
    for code in codes:
        flags = get_field_access(current_user.id, code, current_user.tenant_id)
        if flags is None:
            continue
        result[code] = {field_code: value.to_dict() for field_code, value in flags.items()}
    return jsonify({"fieldPermissions": result})


@auth_bp.route("/check-route-permission", methods=["POST"])
def check_route_permission():
    if not current_user.is_authenticated:
        return error_response("Unauthorized", 401)
    data = request.get_json(silent=True) or {}
    pathname = data.get("pathname")
    if not pathname or not isinstance(pathname, str):
        return error_response("pathname is required", 400)
    pathname = pathname.split("?", 1)[0].split("#", 1)[0] or "/"

    required = required_permissions_for(pathname, get_registry())
    if not required:
        return jsonify({"hasAccess": True})

    perms = get_effective_permissions(current_user.id, current_user.tenant_id)
    if perms.allows_any(required):
        return jsonify({"hasAccess": True})
    return jsonify({
        "hasAccess": False,
        "error": "Forbidden - insufficient permissions",
        "requiredPermissions": list(required),
    }), 403
