# -*- coding: utf-8 -*-
"""
Module catalog.
Persisted projection of the core modules and every module descriptor: the modules
themselves, the permission codes they define and the fields they expose.
"""

from datetime import datetime
from modular_admin import db


class Module(db.Model):
    __tablename__ = "module"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), unique=True, nullable=False)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text)
    icon = db.Column(db.String(64))
    sort_order = db.Column(db.Integer, default=0, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    fields = db.relationship(
        "ModuleField",
        back_populates="module",
        order_by="ModuleField.sort_order",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "sortOrder": self.sort_order,
            "isActive": self.is_active,
        }

    def __repr__(self):
        return f"<Module {self.code}>"


class Permission(db.Model):
    __tablename__ = "permission"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(128), unique=True, nullable=False)
    name = db.Column(db.String(150), nullable=False)
    module = db.Column(db.String(64), nullable=False, index=True)
    action = db.Column(db.String(32), nullable=False)
    description = db.Column(db.Text)
    is_dangerous = db.Column(db.Boolean, default=False, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "module": self.module,
            "action": self.action,
            "description": self.description,
            "isDangerous": self.is_dangerous,
        }

    def __repr__(self):
        return f"<Permission {self.code}>"


class ModuleField(db.Model):
    __tablename__ = "module_field"

    id = db.Column(db.Integer, primary_key=True)
    module_id = db.Column(db.Integer, db.ForeignKey("module.id", ondelete="CASCADE"), nullable=False)
    code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    label = db.Column(db.String(120))
    field_type = db.Column(db.String(32), default="text", nullable=False)
    sort_order = db.Column(db.Integer, default=0, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    module = db.relationship("Module", back_populates="fields")

    __table_args__ = (
        db.UniqueConstraint("module_id", "code", name="uq_module_field_code"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "moduleId": self.module_id,
            "code": self.code,
            "name": self.name,
            "label": self.label or self.name,
            "fieldType": self.field_type,
            "sortOrder": self.sort_order,
        }

    def __repr__(self):
        return f"<ModuleField {self.module_id}:{self.code}>"
