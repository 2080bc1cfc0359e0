# -*- coding: utf-8 -*-
"""
Request payloads and read models for role permissions.
Wire keys are camelCase; attributes are snake_case.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DataAccess = Literal["none", "own", "team", "all"]


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class AccessState(str, Enum):
    DENIED = "DENIED"
    SCOPED = "SCOPED"
    UNRESTRICTED = "UNRESTRICTED"
    SUPER_ADMIN_OVERRIDE = "SUPER_ADMIN_OVERRIDE"


# ───────── Read models ───────── #
class PermissionGrant(ApiModel):
    permission_id: int
    permission_code: str
    permission_name: str
    action: str
    is_dangerous: bool = False
    granted: bool = False


class FieldAccess(ApiModel):
    field_id: int
    field_code: str
    field_name: str
    field_label: Optional[str] = None
    is_visible: bool = False
    is_editable: bool = False


class ModulePermissionMatrix(ApiModel):
    module_id: int
    module_code: str
    module_name: str
    module_icon: Optional[str] = None
    state: AccessState
    has_access: bool
    data_access: DataAccess
    permissions: List[PermissionGrant] = Field(default_factory=list)
    field_access: List[FieldAccess] = Field(default_factory=list, alias="fields")


# ───────── Write payloads ───────── #
class PermissionGrantInput(ApiModel):
    permission_id: Optional[int] = None
    granted: bool = False


class FieldAccessInput(ApiModel):
    field_id: Optional[int] = None
    is_visible: bool = False
    is_editable: bool = False


class ResolvedModuleAccess(ApiModel):
    has_access: bool
    data_access: DataAccess
    granted_permission_ids: List[int]
    field_access: List[FieldAccessInput] = Field(alias="fields")


class ModuleAccessUpdate(ApiModel):
    """Desired state of one (role, module) pair."""

    has_access: Optional[bool] = None
    data_access: Optional[DataAccess] = None
    permissions: List[PermissionGrantInput] = Field(default_factory=list)
    field_access: List[FieldAccessInput] = Field(default_factory=list, alias="fields")

    def resolved(self) -> ResolvedModuleAccess:
        granted_ids = sorted({
            p.permission_id for p in self.permissions
            if p.granted and p.permission_id is not None
        })
        has_access = self.has_access if self.has_access is not None else bool(granted_ids)
        if not has_access:
            data_access = "none"
        else:
            data_access = self.data_access or "team"

        fields = {}
        for item in self.field_access:
            if item.field_id is None:
                continue
            fields[item.field_id] = FieldAccessInput(
                field_id=item.field_id,
                is_visible=item.is_visible,
                is_editable=item.is_editable and item.is_visible,
            )
        return ResolvedModuleAccess(
            has_access=has_access,
            data_access=data_access,
            granted_permission_ids=granted_ids,
            field_access=[fields[key] for key in sorted(fields)],
        )


class ModuleAccessEntry(ModuleAccessUpdate):
    module_id: int


class RolePermissionsUpdate(ApiModel):
    modules: List[ModuleAccessEntry] = Field(default_factory=list)


# ───────── Roles ───────── #
class RoleCreate(ApiModel):
    code: str = Field(min_length=2, max_length=64)
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = None
    priority: int = 0
    status: Literal["active", "inactive"] = "active"
    parent_role_id: Optional[int] = None

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        return value.strip().upper().replace(" ", "_")


class RoleUpdate(ApiModel):
    code: Optional[str] = Field(default=None, min_length=2, max_length=64)
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = None
    priority: Optional[int] = None
    status: Optional[Literal["active", "inactive"]] = None
    parent_role_id: Optional[int] = None

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: Optional[str]) -> Optional[str]:
        return value.strip().upper().replace(" ", "_") if value is not None else None
