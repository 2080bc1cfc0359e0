# -*- coding: utf-8 -*-
"""
Roles and role assignments.
A user holds any number of roles (optionally per tenant and within a validity window);
roles may inherit from a parent role. ``RolePermission`` is the flat permission list
derived from the structured module matrix.
"""

from datetime import datetime
from modular_admin import db

SUPER_ADMIN_ROLE = "SUPER_ADMIN"


class Role(db.Model):
    __tablename__ = "role"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenant.id"), nullable=True, index=True)
    parent_role_id = db.Column(db.Integer, db.ForeignKey("role.id", ondelete="SET NULL"), nullable=True)
    code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text)
    is_system = db.Column(db.Boolean, default=False, nullable=False)
    priority = db.Column(db.Integer, default=0, nullable=False)
    status = db.Column(db.String(16), default="active", nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    parent = db.relationship("Role", remote_side=[id])

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "code", name="uq_role_tenant_code"),
    )

    @property
    def is_super_admin(self) -> bool:
        return (self.code or "").upper() == SUPER_ADMIN_ROLE

    def to_dict(self, user_count=None):
        data = {
            "id": self.id,
            "tenantId": self.tenant_id,
            "parentRoleId": self.parent_role_id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "isSystem": self.is_system,
            "priority": self.priority,
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
        if user_count is not None:
            data["userCount"] = user_count
        return data

    def __repr__(self):
        return f"<Role {self.code}>"


class UserRole(db.Model):
    __tablename__ = "user_role"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = db.Column(db.Integer, db.ForeignKey("role.id", ondelete="CASCADE"), nullable=False, index=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenant.id"), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    valid_from = db.Column(db.DateTime, nullable=True)
    valid_until = db.Column(db.DateTime, nullable=True)
    granted_by = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True)
    assigned_at = db.Column(db.DateTime, default=datetime.utcnow)

    role = db.relationship("Role", lazy="joined")

    __table_args__ = (
        db.UniqueConstraint("user_id", "role_id", "tenant_id", name="uq_user_role_tenant"),
    )

    def __repr__(self):
        return f"<UserRole user={self.user_id} role={self.role_id}>"


class RolePermission(db.Model):
    __tablename__ = "role_permission"

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey("role.id", ondelete="CASCADE"), nullable=False, index=True)
    permission_id = db.Column(db.Integer, db.ForeignKey("permission.id", ondelete="CASCADE"), nullable=False)
    granted_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
    )

    def __repr__(self):
        return f"<RolePermission role={self.role_id} permission={self.permission_id}>"
