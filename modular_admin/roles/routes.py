# -*- coding: utf-8 -*-
"""
Role management and the role permission matrix API.
The built-in SUPER_ADMIN role answers 404 to anybody who is not a super-admin.
"""

from flask import Blueprint, current_app, jsonify
from flask_login import current_user
from sqlalchemy import func, or_

from modular_admin import db
from modular_admin.exceptions import DuplicateError, PayloadError, PermissionDenied
from modular_admin.models import (
    ModuleField,
    Permission,
    Role,
    RoleFieldPermission,
    RoleModuleAccess,
    RoleModulePermission,
    RolePermission,
    UserRole,
)
from modular_admin.models.role import SUPER_ADMIN_ROLE
from modular_admin.permissions import (
    clear_permission_cache,
    ensure_role_visible,
    get_matrix_module,
    get_role_module_permissions,
    get_role_permissions,
    is_super_admin,
    update_role_module_permissions,
    update_role_permissions,
)
from modular_admin.schemas import ModuleAccessUpdate, RoleCreate, RolePermissionsUpdate, RoleUpdate
from modular_admin.utils.responses import parse_payload
from modular_admin.utils.roles import permission_required

roles_bp = Blueprint("roles", __name__)


# ───────── Helpers ───────── #
def _actor_is_super_admin() -> bool:
    return is_super_admin(current_user.id, current_user.tenant_id)


def _visible_role(role_id: int) -> Role:
    return ensure_role_visible(db.session.get(Role, role_id), current_user.id, current_user.tenant_id)


def _check_parent(role_id, parent_role_id):
    if parent_role_id is None:
        return
    if parent_role_id == role_id:
        raise PayloadError("A role cannot be its own parent")
    parent = db.session.get(Role, parent_role_id)
    if parent is None or (parent.is_super_admin and not _actor_is_super_admin()):
        raise PayloadError("Parent role not found")
    if parent.is_super_admin:
        raise PayloadError(f"{SUPER_ADMIN_ROLE} cannot be a parent role")


def _code_taken(code: str, tenant_id, exclude_id=None) -> bool:
    query = Role.query.filter(Role.code == code)
    if tenant_id is None:
        query = query.filter(Role.tenant_id.is_(None))
    else:
        query = query.filter(Role.tenant_id == tenant_id)
    if exclude_id is not None:
        query = query.filter(Role.id != exclude_id)
    return db.session.query(query.exists()).scalar()


# ───────── Roles ───────── #
@roles_bp.route("", methods=["GET"])
@permission_required("roles:read")
def list_roles():
    query = Role.query
    if current_user.tenant_id is not None:
        query = query.filter(or_(Role.tenant_id.is_(None), Role.tenant_id == current_user.tenant_id))
    if not _actor_is_super_admin():
        query = query.filter(Role.code != SUPER_ADMIN_ROLE)
    roles = query.order_by(Role.priority.desc(), Role.name).all()

    counts = dict(
        db.session.query(UserRole.role_id, func.count(UserRole.id))
        .filter(UserRole.is_active.is_(True))
        .group_by(UserRole.role_id)
        .all()
    )
    return jsonify({"roles": [role.to_dict(user_count=counts.get(role.id, 0)) for role in roles]})


@roles_bp.route("", methods=["POST"])
@permission_required("roles:create")
def create_role():
    payload = parse_payload(RoleCreate)
    if payload.code == SUPER_ADMIN_ROLE:
        raise PayloadError(f"{SUPER_ADMIN_ROLE} is a reserved role code")
    if _code_taken(payload.code, current_user.tenant_id):
        raise DuplicateError(f"Role code {payload.code} already exists")
    _check_parent(None, payload.parent_role_id)

    role = Role(
        tenant_id=current_user.tenant_id,
        code=payload.code,
        name=payload.name,
        description=payload.description,
        priority=payload.priority,
        status=payload.status,
        parent_role_id=payload.parent_role_id,
        is_system=False,
    )
    db.session.add(role)
    db.session.commit()
    current_app.logger.info("Role %s created by user %s", role.code, current_user.id)
    return jsonify({"role": role.to_dict()}), 201


@roles_bp.route("/<int:role_id>", methods=["GET"])
@permission_required("roles:read")
def get_role(role_id):
    role = _visible_role(role_id)
    return jsonify({"role": role.to_dict()})


@roles_bp.route("/<int:role_id>", methods=["PATCH", "PUT"])
@permission_required("roles:update")
def update_role(role_id):
    role = _visible_role(role_id)
    payload = parse_payload(RoleUpdate)
    changes = payload.model_dump(exclude_unset=True)

    if "code" in changes and changes["code"] != role.code:
        if role.is_system:
            raise PermissionDenied(description="System role codes cannot be changed")
        if changes["code"] == SUPER_ADMIN_ROLE:
            raise PayloadError(f"{SUPER_ADMIN_ROLE} is a reserved role code")
        if _code_taken(changes["code"], role.tenant_id, exclude_id=role.id):
            raise DuplicateError(f"Role code {changes['code']} already exists")
    if "parent_role_id" in changes:
        _check_parent(role.id, changes["parent_role_id"])

    for key in ("code", "name", "description", "priority", "status", "parent_role_id"):
        if key in changes:
            value = changes[key]
            if key in ("code", "name", "priority", "status") and value is None:
                continue
            setattr(role, key, value)
    db.session.commit()
    clear_permission_cache()
    current_app.logger.info("Role %s updated by user %s", role.code, current_user.id)
    return jsonify({"role": role.to_dict()})


@roles_bp.route("/<int:role_id>", methods=["DELETE"])
@permission_required("roles:delete")
def delete_role(role_id):
    role = _visible_role(role_id)
    if role.is_system:
        raise PermissionDenied(description="System roles cannot be deleted")
    assigned = UserRole.query.filter_by(role_id=role.id, is_active=True).count()
    if assigned:
        raise DuplicateError(
            "Role is still assigned to users", details={"assignedUsers": assigned})

    role_code = role.code
    Role.query.filter_by(parent_role_id=role.id).update({"parent_role_id": None})
    for model in (RoleModuleAccess, RoleModulePermission, RoleFieldPermission, RolePermission, UserRole):
        model.query.filter_by(role_id=role.id).delete(synchronize_session=False)
    db.session.delete(role)
    db.session.commit()
    clear_permission_cache()
    current_app.logger.info("Role %s deleted by user %s", role_code, current_user.id)
    return jsonify({"success": True})


# ───────── Permission matrix ───────── #
@roles_bp.route("/<int:role_id>/permissions", methods=["GET"])
@permission_required("roles:read")
def role_permissions(role_id):
    role = _visible_role(role_id)
    modules = get_role_permissions(role.id)
    return jsonify({"role": role.to_dict(), "modules": [m.to_json() for m in modules]})


@roles_bp.route("/<int:role_id>/permissions", methods=["PUT"])
@permission_required("roles:update")
def replace_role_permissions(role_id):
    role = _visible_role(role_id)
    payload = parse_payload(RolePermissionsUpdate)
    updates = [(entry.module_id, entry) for entry in payload.modules]
    modules = update_role_permissions(role.id, updates, current_user.id)
    return jsonify({"role": role.to_dict(), "modules": [m.to_json() for m in modules]})


@roles_bp.route("/<int:role_id>/permissions/<int:module_id>", methods=["GET"])
@permission_required("roles:read")
def role_module_permissions(role_id, module_id):
    role = _visible_role(role_id)
    module = get_matrix_module(module_id)
    matrix = get_role_module_permissions(role.id, module.id)
    available_permissions = (
        Permission.query.filter_by(module=module.code, is_active=True).order_by(Permission.id).all()
    )
    available_fields = (
        ModuleField.query.filter_by(module_id=module.id, is_active=True)
        .order_by(ModuleField.sort_order, ModuleField.id).all()
    )
    return jsonify({
        "roleModulePermissions": matrix.to_json(),
        "availablePermissions": [p.to_dict() for p in available_permissions],
        "availableFields": [f.to_dict() for f in available_fields],
    })


@roles_bp.route("/<int:role_id>/permissions/<int:module_id>", methods=["PUT", "PATCH"])
@permission_required("roles:update")
def replace_role_module_permissions(role_id, module_id):
    role = _visible_role(role_id)
    payload = parse_payload(ModuleAccessUpdate)
    matrix = update_role_module_permissions(role.id, module_id, payload, current_user.id)
    return jsonify({"roleModulePermissions": matrix.to_json()})
