# -*- coding: utf-8 -*-
"""
Permission resolution engine.

Computes, per role and module, the access matrix (module access, data scope,
per-action grants, per-field visibility/editability), persists changes to it
transactionally and answers "does this user hold permission X" for request gating.

The reserved ``SUPER_ADMIN`` role bypasses stored rows entirely. Wildcard codes
(``module:*`` and the global ``*`` / ``admin:*``) are kept as tagged values and
expanded only when a permission is checked.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple, Union

from flask import current_app, g, has_app_context, has_request_context
from sqlalchemy import or_, select

from modular_admin import db
from modular_admin.exceptions import ModuleNotFound, PayloadError, RoleNotFound
from modular_admin.models import (
    Module,
    ModuleField,
    Permission,
    Role,
    RoleFieldPermission,
    RoleModuleAccess,
    RoleModulePermission,
    RolePermission,
    UserRole,
)
from modular_admin.models.module_permission import DATA_ACCESS_LEVELS
from modular_admin.models.role import SUPER_ADMIN_ROLE
from modular_admin.schemas import (
    AccessState,
    FieldAccess,
    ModuleAccessUpdate,
    ModulePermissionMatrix,
    PermissionGrant,
)

SELF_SERVICE_MODULE = "profile"
GLOBAL_WILDCARD_CODES = frozenset({"*", "admin:*"})
ROLE_HIERARCHY_MAX_DEPTH = 5
DATA_ACCESS_RANK = {level: rank for rank, level in enumerate(DATA_ACCESS_LEVELS)}

_CACHE_KEY = "_permission_cache"


# ───────── Permission codes ───────── #
@dataclass(frozen=True)
class ExactPermission:
    module: str
    action: str

    @property
    def code(self) -> str:
        return f"{self.module}:{self.action}"


@dataclass(frozen=True)
class ModuleWildcard:
    module: str

    @property
    def code(self) -> str:
        return f"{self.module}:*"


@dataclass(frozen=True)
class GlobalWildcard:
    @property
    def code(self) -> str:
        return "*"


PermissionCode = Union[ExactPermission, ModuleWildcard, GlobalWildcard]


def parse_permission_code(code: str) -> PermissionCode:
    text = (code or "").strip()
    if text in GLOBAL_WILDCARD_CODES:
        return GlobalWildcard()
    module, sep, action = text.partition(":")
    if not sep or not module or not action or module == "*":
        raise ValueError(f"Malformed permission code: {code!r}")
    if action == "*":
        return ModuleWildcard(module)
    return ExactPermission(module, action)


def grant_satisfies(grant: PermissionCode, requested: PermissionCode) -> bool:
    if isinstance(grant, GlobalWildcard):
        return True
    if isinstance(grant, ModuleWildcard):
        return not isinstance(requested, GlobalWildcard) and requested.module == grant.module
    if isinstance(grant, ExactPermission):
        return grant == requested
    return False


# ───────── Effective permissions ───────── #
@dataclass(frozen=True)
class EffectivePermissions:
    user_id: int
    role_ids: Tuple[int, ...]
    role_codes: Tuple[str, ...]
    codes: FrozenSet[str]
    grants: Tuple[PermissionCode, ...]
    is_super_admin: bool = False

    def allows(self, code: str) -> bool:
        if self.is_super_admin:
            return True
        try:
            requested = parse_permission_code(code)
        except ValueError:
            return False
        return any(grant_satisfies(grant, requested) for grant in self.grants)

    def allows_any(self, codes: Iterable[str]) -> bool:
        return any(self.allows(code) for code in codes)

    def allows_all(self, codes: Iterable[str]) -> bool:
        return all(self.allows(code) for code in codes)


def get_user_roles(user_id: int, tenant_id: Optional[int] = None) -> List[Role]:
    """Roles currently in effect for a user, highest priority first."""

    now = datetime.utcnow()
    query = (
        UserRole.query
        .join(Role, Role.id == UserRole.role_id)
        .filter(
            UserRole.user_id == user_id,
            UserRole.is_active.is_(True),
            Role.status == "active",
            or_(UserRole.valid_from.is_(None), UserRole.valid_from <= now),
            or_(UserRole.valid_until.is_(None), UserRole.valid_until > now),
        )
    )
    if tenant_id is not None:
        query = query.filter(or_(UserRole.tenant_id.is_(None), UserRole.tenant_id == tenant_id))

    roles: Dict[int, Role] = {}
    for assignment in query.all():
        roles.setdefault(assignment.role_id, assignment.role)
    return sorted(roles.values(), key=lambda role: (-(role.priority or 0), role.id))


def expand_role_hierarchy(roles: Sequence[Role]) -> List[Role]:
    """Add inherited parent roles, walking at most ``ROLE_HIERARCHY_MAX_DEPTH`` levels.

    The super-admin role is never inherited; only a direct assignment grants it.
    """

    seen: Dict[int, Role] = {role.id: role for role in roles}
    frontier = list(roles)
    for _ in range(ROLE_HIERARCHY_MAX_DEPTH):
        parent_ids = {
            role.parent_role_id for role in frontier
            if role.parent_role_id and role.parent_role_id not in seen
        }
        if not parent_ids:
            break
        frontier = [
            parent for parent in Role.query.filter(Role.id.in_(parent_ids), Role.status == "active")
            if not parent.is_super_admin
        ]
        for parent in frontier:
            seen[parent.id] = parent
    return list(seen.values())


def _parse_grants(codes: Iterable[str]) -> Tuple[PermissionCode, ...]:
    grants = []
    for code in sorted(codes):
        try:
            grants.append(parse_permission_code(code))
        except ValueError:
            current_app.logger.warning("Ignoring malformed permission code %r", code)
    return tuple(grants)


def resolve_user_permissions(user_id: int, tenant_id: Optional[int] = None) -> EffectivePermissions:
    roles = expand_role_hierarchy(get_user_roles(user_id, tenant_id))
    role_ids = tuple(role.id for role in roles)
    role_codes = tuple(role.code for role in roles)

    if any(role.is_super_admin for role in roles):
        codes = frozenset(
            code for (code,) in db.session.query(Permission.code).filter(Permission.is_active.is_(True))
        )
        return EffectivePermissions(user_id, role_ids, role_codes, codes, (GlobalWildcard(),), True)

    if not role_ids:
        return EffectivePermissions(user_id, (), (), frozenset(), ())

    access_rows = RoleModuleAccess.query.filter(RoleModuleAccess.role_id.in_(role_ids)).all()
    managed_module_ids = {row.module_id for row in access_rows}
    accessible = {(row.role_id, row.module_id) for row in access_rows if row.has_access}

    codes = set()
    structured = (
        db.session.query(RoleModulePermission.role_id, RoleModulePermission.module_id, Permission.code)
        .join(Permission, Permission.id == RoleModulePermission.permission_id)
        .filter(
            RoleModulePermission.role_id.in_(role_ids),
            RoleModulePermission.granted.is_(True),
            Permission.is_active.is_(True),
        )
    )
    for role_id, module_id, code in structured:
        if (role_id, module_id) in accessible:
            codes.add(code)

    # flat grants only count for modules the structured matrix does not manage
    managed_codes = set()
    if managed_module_ids:
        managed_codes = {
            code for (code,) in db.session.query(Module.code).filter(Module.id.in_(managed_module_ids))
        }
    legacy = (
        db.session.query(Permission.code, Permission.module)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .filter(RolePermission.role_id.in_(role_ids), Permission.is_active.is_(True))
    )
    for code, module in legacy:
        if module not in managed_codes:
            codes.add(code)

    return EffectivePermissions(user_id, role_ids, role_codes, frozenset(codes), _parse_grants(codes))


def get_effective_permissions(user_id: int, tenant_id: Optional[int] = None) -> EffectivePermissions:
    """Resolve once per request; outside a request every call hits the database."""

    if not has_request_context():
        return resolve_user_permissions(user_id, tenant_id)
    cache = g.setdefault(_CACHE_KEY, {})
    key = (user_id, tenant_id)
    if key not in cache:
        cache[key] = resolve_user_permissions(user_id, tenant_id)
    return cache[key]


def clear_permission_cache() -> None:
    if has_app_context():
        g.pop(_CACHE_KEY, None)


def has_permission(user_id: int, code: str, tenant_id: Optional[int] = None) -> bool:
    return get_effective_permissions(user_id, tenant_id).allows(code)


def has_any_permission(user_id: int, codes: Iterable[str], tenant_id: Optional[int] = None) -> bool:
    return get_effective_permissions(user_id, tenant_id).allows_any(codes)


def has_all_permissions(user_id: int, codes: Iterable[str], tenant_id: Optional[int] = None) -> bool:
    return get_effective_permissions(user_id, tenant_id).allows_all(codes)


def is_super_admin(user_id: int, tenant_id: Optional[int] = None) -> bool:
    return get_effective_permissions(user_id, tenant_id).is_super_admin


def get_user_permission_codes(user_id: int, tenant_id: Optional[int] = None) -> List[str]:
    return sorted(get_effective_permissions(user_id, tenant_id).codes)


def get_data_access(user_id: int, module_code: str, tenant_id: Optional[int] = None) -> str:
    """Widest data scope any of the user's roles holds on a module."""

    perms = get_effective_permissions(user_id, tenant_id)
    if perms.is_super_admin:
        return "all"
    if not perms.role_ids:
        return "none"
    rows = (
        db.session.query(RoleModuleAccess.data_access)
        .join(Module, Module.id == RoleModuleAccess.module_id)
        .filter(
            RoleModuleAccess.role_id.in_(perms.role_ids),
            RoleModuleAccess.has_access.is_(True),
            Module.code == module_code,
            Module.is_active.is_(True),
        )
    )
    best = "none"
    for (level,) in rows:
        if DATA_ACCESS_RANK.get(level, 0) > DATA_ACCESS_RANK[best]:
            best = level
    return best


@dataclass(frozen=True)
class FieldFlags:
    visible: bool = False
    editable: bool = False

    def to_dict(self) -> dict:
        return {"isVisible": self.visible, "isEditable": self.editable}


def get_field_access(user_id: int, module_code: str,
                     tenant_id: Optional[int] = None) -> Optional[Dict[str, FieldFlags]]:
    """Field flags OR-ed over the user's roles; ``None`` when the module has no field catalog."""

    module = Module.query.filter_by(code=module_code, is_active=True).first()
    if module is None:
        return None
    fields = ModuleField.query.filter_by(module_id=module.id, is_active=True).all()
    if not fields:
        return None

    perms = get_effective_permissions(user_id, tenant_id)
    if perms.is_super_admin:
        return {field.code: FieldFlags(True, True) for field in fields}

    flags = {field.code: FieldFlags() for field in fields}
    if not perms.role_ids:
        return flags
    code_by_id = {field.id: field.code for field in fields}
    accessible_roles = select(RoleModuleAccess.role_id).where(
        RoleModuleAccess.role_id.in_(perms.role_ids),
        RoleModuleAccess.module_id == module.id,
        RoleModuleAccess.has_access.is_(True),
    )
    rows = RoleFieldPermission.query.filter(
        RoleFieldPermission.role_id.in_(accessible_roles),
        RoleFieldPermission.module_id == module.id,
    )
    for row in rows:
        code = code_by_id.get(row.field_id)
        if code is None:
            continue
        current = flags[code]
        visible = current.visible or bool(row.is_visible)
        editable = current.editable or bool(row.is_editable and row.is_visible)
        flags[code] = FieldFlags(visible, editable)
    return flags


# ───────── Role matrix ───────── #
def _matrix_modules() -> List[Module]:
    return (
        Module.query
        .filter(Module.is_active.is_(True), Module.code != SELF_SERVICE_MODULE)
        .order_by(Module.sort_order, Module.code)
        .all()
    )


def _catalog_for(modules: Sequence[Module]):
    codes = [module.code for module in modules]
    ids = [module.id for module in modules]
    permissions = defaultdict(list)
    fields = defaultdict(list)
    if codes:
        for permission in (Permission.query
                           .filter(Permission.module.in_(codes), Permission.is_active.is_(True))
                           .order_by(Permission.id)):
            permissions[permission.module].append(permission)
        for field in (ModuleField.query
                      .filter(ModuleField.module_id.in_(ids), ModuleField.is_active.is_(True))
                      .order_by(ModuleField.sort_order, ModuleField.id)):
            fields[field.module_id].append(field)
    return permissions, fields


def _build_matrix(module, permissions, fields, *, state, has_access, data_access,
                  granted_ids=frozenset(), field_rows=None) -> ModulePermissionMatrix:
    override = state is AccessState.SUPER_ADMIN_OVERRIDE
    field_rows = field_rows or {}

    grants = []
    for permission in permissions:
        grants.append(PermissionGrant(
            permission_id=permission.id,
            permission_code=permission.code,
            permission_name=permission.name,
            action=permission.action,
            is_dangerous=bool(permission.is_dangerous),
            granted=override or (has_access and permission.id in granted_ids),
        ))

    field_access = []
    for field in fields:
        row = field_rows.get(field.id)
        visible = override or bool(has_access and row is not None and row.is_visible)
        editable = override or bool(visible and row is not None and row.is_editable)
        field_access.append(FieldAccess(
            field_id=field.id,
            field_code=field.code,
            field_name=field.name,
            field_label=field.label or field.name,
            is_visible=visible,
            is_editable=editable,
        ))

    return ModulePermissionMatrix(
        module_id=module.id,
        module_code=module.code,
        module_name=module.name,
        module_icon=module.icon,
        state=state,
        has_access=has_access,
        data_access=data_access,
        permissions=grants,
        field_access=field_access,
    )


def _module_state(access_row) -> Tuple[AccessState, bool, str]:
    if access_row is None or not access_row.has_access:
        return AccessState.DENIED, False, "none"
    data_access = access_row.data_access if access_row.data_access in DATA_ACCESS_RANK else "team"
    if data_access == "all":
        return AccessState.UNRESTRICTED, True, data_access
    return AccessState.SCOPED, True, data_access


def _role_matrices(role: Role, modules: Sequence[Module]) -> List[ModulePermissionMatrix]:
    permissions, fields = _catalog_for(modules)

    if role.is_super_admin:
        return [
            _build_matrix(module, permissions[module.code], fields[module.id],
                          state=AccessState.SUPER_ADMIN_OVERRIDE, has_access=True, data_access="all")
            for module in modules
        ]

    module_ids = [module.id for module in modules]
    access = {
        row.module_id: row
        for row in RoleModuleAccess.query.filter(
            RoleModuleAccess.role_id == role.id, RoleModuleAccess.module_id.in_(module_ids))
    }
    granted = defaultdict(set)
    for row in RoleModulePermission.query.filter_by(role_id=role.id, granted=True):
        granted[row.module_id].add(row.permission_id)
    field_rows = defaultdict(dict)
    for row in RoleFieldPermission.query.filter_by(role_id=role.id):
        field_rows[row.module_id][row.field_id] = row

    matrices = []
    for module in modules:
        state, has_access, data_access = _module_state(access.get(module.id))
        matrices.append(_build_matrix(
            module, permissions[module.code], fields[module.id],
            state=state, has_access=has_access, data_access=data_access,
            granted_ids=granted[module.id], field_rows=field_rows[module.id],
        ))
    return matrices


def get_role(role_id: int) -> Role:
    role = db.session.get(Role, role_id)
    if role is None:
        raise RoleNotFound()
    return role


def get_matrix_module(module_id: int) -> Module:
    module = db.session.get(Module, module_id)
    if module is None or not module.is_active or module.code == SELF_SERVICE_MODULE:
        raise ModuleNotFound()
    return module


def get_role_permissions(role_id: int) -> List[ModulePermissionMatrix]:
    return _role_matrices(get_role(role_id), _matrix_modules())


def get_role_module_permissions(role_id: int, module_id: int) -> ModulePermissionMatrix:
    role = get_role(role_id)
    return _role_matrices(role, [get_matrix_module(module_id)])[0]


def ensure_role_visible(role: Optional[Role], actor_id: int, tenant_id: Optional[int] = None) -> Role:
    """Hide the super-admin role from everybody who is not a super-admin."""

    if role is None:
        raise RoleNotFound()
    if role.is_super_admin and not is_super_admin(actor_id, tenant_id):
        raise RoleNotFound()
    return role


# ───────── Writes ───────── #
def _validate_update(module: Module, update: ModuleAccessUpdate):
    resolved = update.resolved()
    catalog_permissions = {
        pid for (pid,) in db.session.query(Permission.id).filter(Permission.module == module.code)
    }
    catalog_fields = {
        fid for (fid,) in db.session.query(ModuleField.id).filter(ModuleField.module_id == module.id)
    }
    unknown_permissions = sorted(set(resolved.granted_permission_ids) - catalog_permissions)
    unknown_fields = sorted({f.field_id for f in resolved.field_access} - catalog_fields)
    if unknown_permissions or unknown_fields:
        raise PayloadError(
            f"Permissions or fields do not belong to module {module.code}",
            details={"permissionIds": unknown_permissions, "fieldIds": unknown_fields},
        )
    return resolved


def _write_module_access(role_id: int, module_id: int, resolved, actor_id: Optional[int]) -> None:
    access = RoleModuleAccess.query.filter_by(role_id=role_id, module_id=module_id).first()
    if access is None:
        access = RoleModuleAccess(role_id=role_id, module_id=module_id, created_by=actor_id)
        db.session.add(access)
    access.has_access = resolved.has_access
    access.data_access = resolved.data_access
    access.updated_by = actor_id

    RoleModulePermission.query.filter_by(role_id=role_id, module_id=module_id).delete()
    for permission_id in resolved.granted_permission_ids:
        db.session.add(RoleModulePermission(
            role_id=role_id, module_id=module_id, permission_id=permission_id, granted=True))

    RoleFieldPermission.query.filter_by(role_id=role_id, module_id=module_id).delete()
    for item in resolved.field_access:
        db.session.add(RoleFieldPermission(
            role_id=role_id,
            module_id=module_id,
            field_id=item.field_id,
            is_visible=item.is_visible,
            is_editable=item.is_editable and item.is_visible,
        ))
    db.session.flush()


def sync_legacy_role_permissions(role_id: int) -> None:
    """Re-derive the flat ``role_permission`` rows from the structured matrix."""

    access_rows = RoleModuleAccess.query.filter_by(role_id=role_id).all()
    if not access_rows:
        return
    managed_ids = [row.module_id for row in access_rows]
    accessible_ids = [row.module_id for row in access_rows if row.has_access]
    managed_codes = [code for (code,) in db.session.query(Module.code).filter(Module.id.in_(managed_ids))]

    RolePermission.query.filter(
        RolePermission.role_id == role_id,
        RolePermission.permission_id.in_(
            select(Permission.id).where(Permission.module.in_(managed_codes))),
    ).delete(synchronize_session="fetch")

    derived = set()
    if accessible_ids:
        derived = {
            pid for (pid,) in db.session.query(RoleModulePermission.permission_id).filter(
                RoleModulePermission.role_id == role_id,
                RoleModulePermission.granted.is_(True),
                RoleModulePermission.module_id.in_(accessible_ids),
            )
        }
    for permission_id in sorted(derived):
        db.session.add(RolePermission(role_id=role_id, permission_id=permission_id))
    db.session.flush()


def _commit_role_changes(role: Role, changes, actor_id: Optional[int]) -> None:
    try:
        for module, resolved in changes:
            _write_module_access(role.id, module.id, resolved, actor_id)
        sync_legacy_role_permissions(role.id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Permission update rolled back (role=%s modules=%s actor=%s)",
            role.id, [module.id for module, _ in changes], actor_id)
        raise
    finally:
        clear_permission_cache()
    current_app.logger.info(
        "Permissions updated (role=%s modules=%s actor=%s)",
        role.id, [module.id for module, _ in changes], actor_id)


def update_role_module_permissions(role_id: int, module_id: int, update: ModuleAccessUpdate,
                                   actor_id: Optional[int]) -> ModulePermissionMatrix:
    """Atomically replace one module's access, grants and field rows for a role."""

    role = get_role(role_id)
    module = get_matrix_module(module_id)
    resolved = _validate_update(module, update)
    _commit_role_changes(role, [(module, resolved)], actor_id)
    return _role_matrices(role, [module])[0]


def update_role_permissions(role_id: int, updates: Sequence[Tuple[int, ModuleAccessUpdate]],
                            actor_id: Optional[int]) -> List[ModulePermissionMatrix]:
    """Apply several module updates for a role in a single transaction."""

    role = get_role(role_id)
    changes = []
    seen = set()
    for module_id, update in updates:
        if module_id in seen:
            raise PayloadError(f"Module {module_id} appears more than once")
        seen.add(module_id)
        module = get_matrix_module(module_id)
        changes.append((module, _validate_update(module, update)))
    if changes:
        _commit_role_changes(role, changes, actor_id)
    return get_role_permissions(role.id)
