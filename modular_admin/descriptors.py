# -*- coding: utf-8 -*-
"""
Module descriptors and the stores they are read from.

A descriptor is the declarative definition of one feature module: identity,
enabled flag, navigation entry, page routes, API endpoints and the permission and
field catalogs the module contributes. Stores only yield raw payloads; validation
happens in the registry so one broken module never stops the others from loading.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Iterator, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

DESCRIPTOR_FILENAME = "module.json"
HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]


def validate_path_pattern(pattern: str) -> str:
    """Reject catch-all segments and unnamed parameters in a path pattern."""

    for segment in pattern.split("/"):
        if not segment:
            continue
        if "*" in segment:
            raise ValueError(f"wildcard segments are not supported: {pattern!r}")
        if segment.startswith(":") and len(segment) == 1:
            raise ValueError(f"path parameter without a name: {pattern!r}")
    return pattern


class DescriptorModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class NavigationEntry(DescriptorModel):
    label: str
    path: Optional[str] = None
    icon: Optional[str] = None
    order: Optional[int] = None


class UiRoute(DescriptorModel):
    path: str
    component: str
    title: Optional[str] = None
    requires_auth: bool = True
    permissions: Tuple[str, ...] = ()

    @field_validator("path")
    @classmethod
    def _check_path(cls, value: str) -> str:
        return validate_path_pattern(value)


class ApiEndpoint(DescriptorModel):
    method: HttpMethod
    path: str = ""
    handler: str
    requires_auth: bool = True
    permissions: Tuple[str, ...] = ()

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @field_validator("path")
    @classmethod
    def _check_path(cls, value: str) -> str:
        return validate_path_pattern(value)


class ApiConfig(DescriptorModel):
    base_path: str
    endpoints: Tuple[ApiEndpoint, ...] = ()

    @field_validator("base_path")
    @classmethod
    def _normalize_base_path(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith("/"):
            raise ValueError("basePath must start with '/'")
        if ":" in value or "*" in value:
            raise ValueError("basePath must be a literal path")
        return value.rstrip("/") or "/"


class PermissionDefinition(DescriptorModel):
    code: str
    name: str
    action: str
    description: Optional[str] = None
    is_dangerous: bool = False


class FieldDefinition(DescriptorModel):
    code: str
    name: str
    label: Optional[str] = None
    field_type: str = "text"
    sort_order: int = 0


class ModuleDescriptor(DescriptorModel):
    id: str = Field(pattern=r"^[a-z][a-z0-9_-]*$")
    name: str
    version: str
    description: Optional[str] = None
    icon: Optional[str] = None
    enabled: bool = True
    navigation: Optional[NavigationEntry] = None
    routes: Tuple[UiRoute, ...] = ()
    api: Optional[ApiConfig] = None
    permissions: Tuple[PermissionDefinition, ...] = ()
    field_definitions: Tuple[FieldDefinition, ...] = Field(default=(), alias="fields")

    @model_validator(mode="after")
    def _check_permission_codes(self) -> "ModuleDescriptor":
        for permission in self.permissions:
            module, sep, action = permission.code.partition(":")
            if not sep or module != self.id or not action:
                raise ValueError(
                    f"permission {permission.code!r} must be '{self.id}:<action>' or '{self.id}:*'")
        return self

    @property
    def is_enabled(self) -> bool:
        return self.enabled is not False

    @property
    def navigation_path(self) -> Optional[str]:
        if self.navigation is None:
            return None
        if self.navigation.path:
            return self.navigation.path
        return self.routes[0].path if self.routes else None


class FileDescriptorError(Exception):
    """Raised when a descriptor file cannot be read or decoded."""


class DirectoryDescriptorStore:
    """Reads ``<root>/<module>/module.json`` for every module directory."""

    def __init__(self, root):
        self.root = Path(root)

    def iter_raw_descriptors(self) -> Iterator[Tuple[str, Any]]:
        if not self.root.is_dir():
            logger.warning("Module directory %s does not exist; no modules loaded", self.root)
            return
        for entry in sorted(self.root.iterdir(), key=lambda p: p.name):
            if not entry.is_dir() or entry.name.startswith(("_", ".")):
                continue
            path = entry / DESCRIPTOR_FILENAME
            if not path.is_file():
                logger.warning("Skipping %s: no %s found", entry, DESCRIPTOR_FILENAME)
                continue
            try:
                payload = self._read(path)
            except FileDescriptorError as exc:
                logger.error("Skipping module descriptor %s: %s", path, exc)
                continue
            yield str(path), payload

    @staticmethod
    def _read(path: Path) -> Any:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise FileDescriptorError(f"cannot read file ({exc})") from exc
        except json.JSONDecodeError as exc:
            raise FileDescriptorError(f"invalid JSON ({exc})") from exc


class StaticDescriptorStore:
    """In-memory descriptor payloads, mostly for tests and embedding apps."""

    def __init__(self, payloads: Iterable[Mapping[str, Any]] = ()):
        self.payloads = list(payloads)

    def iter_raw_descriptors(self) -> Iterator[Tuple[str, Any]]:
        for index, payload in enumerate(list(self.payloads)):
            yield f"static[{index}]", payload
