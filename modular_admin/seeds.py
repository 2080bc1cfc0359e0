from time import sleep
from typing import Any, Dict, Iterable, List

from sqlalchemy import or_
from sqlalchemy.exc import OperationalError

from modular_admin import db
from modular_admin.models import Module, ModuleField, Permission, Role, User, UserRole
from modular_admin.models.role import SUPER_ADMIN_ROLE


def _crud(module: str, label: str, extra: Iterable[Dict[str, Any]] = ()) -> List[Dict[str, Any]]:
    permissions = [
        {"code": f"{module}:read", "name": f"View {label}", "action": "read"},
        {"code": f"{module}:create", "name": f"Create {label}", "action": "create"},
        {"code": f"{module}:update", "name": f"Update {label}", "action": "update"},
        {"code": f"{module}:delete", "name": f"Delete {label}", "action": "delete", "isDangerous": True},
    ]
    permissions.extend(extra)
    permissions.append({"code": f"{module}:*", "name": f"Manage {label}", "action": "manage", "isDangerous": True})
    return permissions


CORE_MODULES: List[Dict[str, Any]] = [
    {
        "code": "dashboard",
        "name": "Dashboard",
        "icon": "LayoutDashboard",
        "sortOrder": 10,
        "permissions": [{"code": "dashboard:read", "name": "View dashboard", "action": "read"}],
    },
    {
        "code": "users",
        "name": "Users",
        "icon": "Users",
        "sortOrder": 20,
        "permissions": _crud("users", "users"),
        "fields": [
            {"code": "username", "name": "Username", "sortOrder": 1},
            {"code": "email", "name": "Email", "fieldType": "email", "sortOrder": 2},
            {"code": "full_name", "name": "Full name", "sortOrder": 3},
            {"code": "department", "name": "Department", "sortOrder": 4},
        ],
    },
    {
        "code": "roles",
        "name": "Roles",
        "icon": "ShieldCheck",
        "sortOrder": 30,
        "permissions": _crud("roles", "roles"),
    },
    {
        "code": "settings",
        "name": "Settings",
        "icon": "Settings",
        "sortOrder": 900,
        "permissions": [
            {"code": "settings:read", "name": "View settings", "action": "read"},
            {"code": "settings:update", "name": "Update settings", "action": "update", "isDangerous": True},
            {"code": "settings:general:read", "name": "View general settings", "action": "read"},
            {"code": "settings:security:read", "name": "View security settings", "action": "read"},
        ],
    },
    {
        "code": "profile",
        "name": "Profile",
        "icon": "User",
        "sortOrder": 1000,
        "permissions": [
            {"code": "profile:read", "name": "View own profile", "action": "read"},
            {"code": "profile:update", "name": "Update own profile", "action": "update"},
        ],
    },
]

SYSTEM_ROLES = [
    {"code": SUPER_ADMIN_ROLE, "name": "Super Administrator", "priority": 100,
     "description": "Unrestricted access to every module"},
    {"code": "USER", "name": "User", "priority": 0, "description": "Default role for new accounts"},
]


def _descriptor_definitions(registry) -> List[Dict[str, Any]]:
    definitions = []
    for descriptor in registry.get_all_modules():
        nav_order = descriptor.navigation.order if descriptor.navigation else None
        definitions.append({
            "code": descriptor.id,
            "name": descriptor.name,
            "description": descriptor.description,
            "icon": descriptor.icon or (descriptor.navigation.icon if descriptor.navigation else None),
            "sortOrder": nav_order if nav_order is not None else 999,
            "active": descriptor.is_enabled,
            "permissions": [p.model_dump(by_alias=True) for p in descriptor.permissions],
            "fields": [f.model_dump(by_alias=True) for f in descriptor.field_definitions],
        })
    return definitions


def _upsert_module(definition: Dict[str, Any]) -> Module:
    code = definition["code"].lower()
    active = definition.get("active", True)
    module = Module.query.filter_by(code=code).first()
    if module is None:
        module = Module(code=code)
        db.session.add(module)
    module.name = definition["name"]
    module.description = definition.get("description")
    module.icon = definition.get("icon")
    module.sort_order = definition.get("sortOrder", 0)
    module.is_active = active
    db.session.flush()

    declared_permissions = {item["code"] for item in definition.get("permissions", [])}
    stale = Permission.query.filter(Permission.module == code, Permission.code.notin_(declared_permissions))
    for permission in stale.all():
        permission.is_active = False
    for item in definition.get("permissions", []):
        permission = Permission.query.filter_by(code=item["code"]).first()
        if permission is None:
            permission = Permission(code=item["code"])
            db.session.add(permission)
        permission.name = item["name"]
        permission.module = code
        permission.action = item["action"]
        permission.description = item.get("description")
        permission.is_dangerous = bool(item.get("isDangerous", False))
        permission.is_active = active

    for item in definition.get("fields", []):
        field = ModuleField.query.filter_by(module_id=module.id, code=item["code"]).first()
        if field is None:
            field = ModuleField(module_id=module.id, code=item["code"])
            db.session.add(field)
        field.name = item["name"]
        field.label = item.get("label")
        field.field_type = item.get("fieldType") or "text"
        field.sort_order = item.get("sortOrder", 0)
        field.is_active = True

    declared_fields = {item["code"] for item in definition.get("fields", [])}
    stale = ModuleField.query.filter(ModuleField.module_id == module.id, ModuleField.code.notin_(declared_fields))
    for field in stale.all():
        field.is_active = False
    return module


def _retire_missing_modules(codes) -> None:
    """Deactivate catalog rows for modules no longer declared anywhere."""
    for module in Module.query.filter(Module.code.notin_(codes), Module.is_active.is_(True)).all():
        module.is_active = False
        for field in ModuleField.query.filter_by(module_id=module.id).all():
            field.is_active = False
    retired = Permission.query.filter(Permission.module.notin_(codes), Permission.is_active.is_(True))
    for permission in retired.all():
        permission.is_active = False


def sync_module_catalog(registry, logger=None) -> int:
    """Project core modules and every descriptor into the module catalog tables."""
    definitions = CORE_MODULES + _descriptor_definitions(registry)
    for definition in definitions:
        _upsert_module(definition)
    _retire_missing_modules({definition["code"].lower() for definition in definitions})
    db.session.commit()
    if logger is not None:
        logger.info("Module catalog synced (%d modules).", len(definitions))
    return len(definitions)


def ensure_system_roles() -> Dict[str, Role]:
    roles = {}
    for item in SYSTEM_ROLES:
        role = Role.query.filter_by(code=item["code"], tenant_id=None).first()
        if role is None:
            role = Role(code=item["code"], tenant_id=None, is_system=True, status="active")
            db.session.add(role)
        role.name = item["name"]
        role.description = item["description"]
        role.priority = item["priority"]
        role.is_system = True
        roles[item["code"]] = role
    db.session.commit()
    return roles


def ensure_default_admin(app: Any) -> None:
    """Create the default super-admin account if it does not already exist."""
    if not app.config.get("DEFAULT_ADMIN_ENABLED", True):
        app.logger.info("Skipping default admin creation (DEFAULT_ADMIN_ENABLED disabled).")
        return

    username = app.config.get("DEFAULT_ADMIN_USERNAME") or "admin"
    email = app.config.get("DEFAULT_ADMIN_EMAIL") or "admin@example.com"
    password = app.config.get("DEFAULT_ADMIN_PASSWORD")
    full_name = app.config.get("DEFAULT_ADMIN_FULL_NAME")

    if not password:
        app.logger.warning("DEFAULT_ADMIN_PASSWORD not provided; cannot seed default admin.")
        return

    super_admin = ensure_system_roles()[SUPER_ADMIN_ROLE]
    admin = User.query.filter(or_(User.username == username, User.email == email)).first()
    if admin is None:
        admin = User(username=username, email=email, full_name=full_name, active=True)
        admin.set_password(password)
        db.session.add(admin)
        db.session.flush()
        app.logger.info("Default admin created (username=%s).", username)
    else:
        app.logger.debug("Default admin already exists (username=%s).", admin.username)

    assignment = UserRole.query.filter_by(user_id=admin.id, role_id=super_admin.id).first()
    if assignment is None:
        db.session.add(UserRole(user_id=admin.id, role_id=super_admin.id, is_active=True))
        app.logger.info("Granted %s to %s.", SUPER_ADMIN_ROLE, admin.username)
    db.session.commit()


def ensure_default_admin_with_retry(app: Any) -> None:
    """Retry wrapper so container startup can handle transient DB availability."""
    attempts = int(app.config.get("DEFAULT_ADMIN_RETRY_ATTEMPTS", 5))
    delay = float(app.config.get("DEFAULT_ADMIN_RETRY_DELAY", 2))

    for attempt in range(1, attempts + 1):
        try:
            ensure_default_admin(app)
            return
        except OperationalError as exc:
            db.session.rollback()
            if attempt == attempts:
                app.logger.error(
                    "Unable to seed default admin after %d attempts: %s", attempt, exc
                )
                raise
            app.logger.warning(
                "Database not ready (attempt %d/%d): %s; retrying in %.1f sec",
                attempt,
                attempts,
                exc,
                delay,
            )
            sleep(delay)


def bootstrap(app: Any) -> None:
    """Create tables, sync the module catalog and seed the system roles and admin."""
    from modular_admin.registry import get_registry

    with app.app_context():
        db.create_all()
        sync_module_catalog(get_registry(), app.logger)
        ensure_system_roles()
        ensure_default_admin_with_retry(app)
