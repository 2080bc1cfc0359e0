# -*- coding: utf-8 -*-
"""
Module registry.

Loads every descriptor from a store, validates it and publishes an immutable
index. A forced reload builds a complete new index and swaps it in with a single
assignment, so concurrent readers always see either the old or the new index.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from flask import current_app
from pydantic import ValidationError

from .descriptors import ApiEndpoint, ModuleDescriptor, UiRoute

logger = logging.getLogger(__name__)

NAVIGATION_ORDER_SENTINEL = 999


class RegistryNotInitialized(RuntimeError):
    """Raised when the registry is read before ``initialize()`` ran."""


@dataclass(frozen=True)
class NavigationItem:
    module_id: str
    label: str
    path: Optional[str]
    icon: Optional[str] = None
    order: Optional[int] = None

    @property
    def sort_key(self) -> int:
        return NAVIGATION_ORDER_SENTINEL if self.order is None else self.order

    def to_dict(self) -> dict:
        return {
            "moduleId": self.module_id,
            "label": self.label,
            "path": self.path,
            "icon": self.icon,
            "order": self.order,
        }


@dataclass(frozen=True)
class RegisteredRoute:
    module_id: str
    route: UiRoute

    def to_dict(self) -> dict:
        return {"moduleId": self.module_id, **self.route.model_dump(by_alias=True)}


@dataclass(frozen=True)
class RegisteredEndpoint:
    module_id: str
    base_path: str
    endpoint: ApiEndpoint

    def to_dict(self) -> dict:
        return {
            "moduleId": self.module_id,
            "basePath": self.base_path,
            **self.endpoint.model_dump(by_alias=True),
        }


@dataclass(frozen=True)
class RegistryIndex:
    """One complete, immutable view of the loaded modules."""

    modules: Mapping[str, ModuleDescriptor]
    navigation: Tuple[NavigationItem, ...]
    routes: Tuple[RegisteredRoute, ...]
    endpoints: Tuple[RegisteredEndpoint, ...]
    skipped: Tuple[str, ...] = ()
    loaded_at: datetime = field(default_factory=datetime.utcnow)

    def is_enabled(self, module_id: str) -> bool:
        module = self.modules.get(module_id)
        return bool(module and module.is_enabled)


def build_index(store) -> RegistryIndex:
    modules: Dict[str, ModuleDescriptor] = {}
    skipped: List[str] = []

    for source, payload in store.iter_raw_descriptors():
        try:
            descriptor = ModuleDescriptor.model_validate(payload)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in exc.errors()
            )
            logger.warning("Skipping invalid module descriptor %s (%s)", source, problems)
            skipped.append(source)
            continue
        if descriptor.id in modules:
            logger.warning("Skipping module descriptor %s: duplicate module id %r", source, descriptor.id)
            skipped.append(source)
            continue
        modules[descriptor.id] = descriptor

    navigation: List[NavigationItem] = []
    all_routes: List[RegisteredRoute] = []
    all_endpoints: List[RegisteredEndpoint] = []
    for descriptor in modules.values():
        all_routes.extend(RegisteredRoute(descriptor.id, route) for route in descriptor.routes)
        if descriptor.api is not None:
            all_endpoints.extend(
                RegisteredEndpoint(descriptor.id, descriptor.api.base_path, endpoint)
                for endpoint in descriptor.api.endpoints
            )
        if descriptor.navigation is not None and descriptor.is_enabled:
            navigation.append(NavigationItem(
                module_id=descriptor.id,
                label=descriptor.navigation.label,
                path=descriptor.navigation_path,
                icon=descriptor.navigation.icon or descriptor.icon,
                order=descriptor.navigation.order,
            ))

    navigation.sort(key=lambda item: item.sort_key)
    enabled = {module_id for module_id, descriptor in modules.items() if descriptor.is_enabled}

    return RegistryIndex(
        modules=MappingProxyType(modules),
        navigation=tuple(navigation),
        routes=tuple(r for r in all_routes if r.module_id in enabled),
        endpoints=tuple(e for e in all_endpoints if e.module_id in enabled),
        skipped=tuple(skipped),
    )


class ModuleRegistry:
    """Registry of feature modules backed by a descriptor store."""

    def __init__(self, store):
        self._store = store
        self._index: Optional[RegistryIndex] = None
        self._lock = threading.Lock()

    def initialize(self, force: bool = False) -> None:
        with self._lock:
            if self._index is not None and not force:
                return
            index = build_index(self._store)
            self._index = index
        logger.info(
            "Module registry loaded %d module(s) (%d enabled, %d skipped)",
            len(index.modules),
            sum(1 for m in index.modules.values() if m.is_enabled),
            len(index.skipped),
        )

    def snapshot(self) -> RegistryIndex:
        index = self._index
        if index is None:
            raise RegistryNotInitialized("ModuleRegistry.initialize() has not been called")
        return index

    def get_all_modules(self) -> List[ModuleDescriptor]:
        return list(self.snapshot().modules.values())

    def get_module(self, module_id: str) -> Optional[ModuleDescriptor]:
        return self.snapshot().modules.get(module_id)

    def is_enabled(self, module_id: str) -> bool:
        return self.snapshot().is_enabled(module_id)

    def get_navigation_items(self) -> List[NavigationItem]:
        return list(self.snapshot().navigation)

    def get_all_routes(self) -> List[RegisteredRoute]:
        return list(self.snapshot().routes)

    def get_all_api_endpoints(self) -> List[RegisteredEndpoint]:
        return list(self.snapshot().endpoints)

    def get_module_api_endpoints(self, module_id: str) -> List[ApiEndpoint]:
        index = self.snapshot()
        module = index.modules.get(module_id)
        if module is None or not module.is_enabled or module.api is None:
            return []
        return list(module.api.endpoints)


def get_registry() -> ModuleRegistry:
    return current_app.extensions["module_registry"]
