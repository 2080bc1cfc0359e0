"""
Pytest configuration and fixtures.

Every test gets a fresh application bound to an in-memory SQLite database with the
module catalog and the system roles already seeded. Helpers create users and roles,
grant module access through the permission engine and mint bearer tokens.

Fixtures:
    app: application with tables and catalog in place
    client: Flask test client (never use it while ``ctx`` is active)
    ctx: active application context for direct engine calls
    make_role / make_user / grant: data builders returning ids
    auth_headers: bearer token headers for a user id
    super_admin: id of a user holding SUPER_ADMIN
"""

from contextlib import nullcontext

import pytest
from flask import has_app_context
from flask_jwt_extended import create_access_token

from modular_admin import create_app, db
from modular_admin.models import Module, ModuleField, Permission, Role, User, UserRole
from modular_admin.permissions import update_role_module_permissions
from modular_admin.registry import get_registry
from modular_admin.schemas import ModuleAccessUpdate
from modular_admin.seeds import ensure_system_roles, sync_module_catalog

TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite://",
    "SECRET_KEY": "test-secret",
    "JWT_SECRET_KEY": "test-jwt-secret-key-that-is-long-enough-for-hs256",
    "LOG_FILE": None,
    "LOG_LEVEL": "WARNING",
    "SEED_ON_STARTUP": False,
}


# =============================================================================
# APPLICATION FIXTURES
# =============================================================================


@pytest.fixture
def app():
    """Application with tables created and the module catalog synced."""
    application = create_app(dict(TEST_CONFIG))
    with application.app_context():
        db.create_all()
        sync_module_catalog(get_registry())
        ensure_system_roles()
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ctx(app):
    """Push an application context for tests that call the engine directly."""
    with app.app_context():
        yield app


# =============================================================================
# DATA HELPERS
# =============================================================================


def app_scope(app):
    """Reuse the active application context so helpers share the test's session."""
    return nullcontext() if has_app_context() else app.app_context()


def role_id_for(code):
    return Role.query.filter_by(code=code).first().id


def module_for(code):
    return Module.query.filter_by(code=code).first()


def permission_ids(*codes):
    rows = Permission.query.filter(Permission.code.in_(codes)).all()
    assert len(rows) == len(codes), f"unknown permission codes in {codes}"
    return [row.id for row in rows]


def field_id(module_code, field_code):
    module = module_for(module_code)
    return ModuleField.query.filter_by(module_id=module.id, code=field_code).first().id


@pytest.fixture
def make_role(app):
    def _make(code, *, parent_id=None, status="active", priority=0, tenant_id=None):
        with app_scope(app):
            role = Role(code=code, name=code.title(), parent_role_id=parent_id,
                        status=status, priority=priority, tenant_id=tenant_id)
            db.session.add(role)
            db.session.commit()
            return role.id
    return _make


@pytest.fixture
def make_user(app):
    def _make(username, *, roles=(), tenant_id=None, department=None,
              password="Secret123!", valid_from=None, valid_until=None):
        with app_scope(app):
            user = User(username=username, email=f"{username}@example.com",
                        tenant_id=tenant_id, department=department, active=True)
            user.set_password(password)
            db.session.add(user)
            db.session.flush()
            for role in roles:
                role_id = role if isinstance(role, int) else role_id_for(role)
                db.session.add(UserRole(user_id=user.id, role_id=role_id, is_active=True,
                                        valid_from=valid_from, valid_until=valid_until))
            db.session.commit()
            return user.id
    return _make


@pytest.fixture
def grant(app):
    """Give a role access to a module with the listed permission codes."""
    def _grant(role_id, module_code, *codes, data_access="team", has_access=True, fields=None):
        with app_scope(app):
            module = module_for(module_code)
            update = ModuleAccessUpdate(
                has_access=has_access,
                data_access=data_access,
                permissions=[{"permissionId": pid, "granted": True} for pid in permission_ids(*codes)] if codes else [],
                fields=[
                    {"fieldId": field_id(module_code, code), "isVisible": visible, "isEditable": editable}
                    for code, (visible, editable) in (fields or {}).items()
                ],
            )
            update_role_module_permissions(role_id, module.id, update, actor_id=None)
            return module.id
    return _grant


@pytest.fixture
def auth_headers(app):
    def _headers(user_id):
        with app_scope(app):
            token = create_access_token(identity=str(user_id))
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def super_admin(make_user):
    return make_user("root", roles=["SUPER_ADMIN"])
