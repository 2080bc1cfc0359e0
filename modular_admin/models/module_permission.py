# -*- coding: utf-8 -*-
"""
Module level permissions.
Stores, per role and module, the access switch with its data scope, the granted
permission rows and the field visibility/editability rows.
"""

from datetime import datetime
from modular_admin import db

DATA_ACCESS_LEVELS = ("none", "own", "team", "all")


class RoleModuleAccess(db.Model):
    __tablename__ = "role_module_access"

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey("role.id", ondelete="CASCADE"), nullable=False)
    module_id = db.Column(db.Integer, db.ForeignKey("module.id", ondelete="CASCADE"), nullable=False)
    has_access = db.Column(db.Boolean, default=False, nullable=False)
    data_access = db.Column(db.String(8), default="none", nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("role_id", "module_id", name="uq_role_module_access"),
        db.CheckConstraint(
            "data_access IN ('none', 'own', 'team', 'all')",
            name="ck_role_module_access_data_access",
        ),
    )

    def __repr__(self):
        return f"<RoleModuleAccess role={self.role_id} module={self.module_id} access={self.has_access}/{self.data_access}>"


class RoleModulePermission(db.Model):
    __tablename__ = "role_module_permission"

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey("role.id", ondelete="CASCADE"), nullable=False)
    module_id = db.Column(db.Integer, db.ForeignKey("module.id", ondelete="CASCADE"), nullable=False)
    permission_id = db.Column(db.Integer, db.ForeignKey("permission.id", ondelete="CASCADE"), nullable=False)
    granted = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("role_id", "module_id", "permission_id", name="uq_role_module_permission"),
    )

    def __repr__(self):
        return f"<RoleModulePermission role={self.role_id} permission={self.permission_id} granted={self.granted}>"


class RoleFieldPermission(db.Model):
    __tablename__ = "role_field_permission"

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey("role.id", ondelete="CASCADE"), nullable=False)
    module_id = db.Column(db.Integer, db.ForeignKey("module.id", ondelete="CASCADE"), nullable=False)
    field_id = db.Column(db.Integer, db.ForeignKey("module_field.id", ondelete="CASCADE"), nullable=False)
    is_visible = db.Column(db.Boolean, default=False, nullable=False)
    is_editable = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("role_id", "module_id", "field_id", name="uq_role_field_permission"),
    )

    def __repr__(self):
        return f"<RoleFieldPermission role={self.role_id} field={self.field_id} {self.is_visible}/{self.is_editable}>"
