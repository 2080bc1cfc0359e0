# -*- coding: utf-8 -*-
"""
Navigation utilities: the per-user menu and the permission table for page paths.
Core screens are declared here; feature modules contribute through their descriptors.
"""

from typing import Any, Dict, List, Optional, Tuple

from modular_admin.permissions import get_effective_permissions
from modular_admin.registry import NAVIGATION_ORDER_SENTINEL
from modular_admin.routing import find_page_route


MENU_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "key": "dashboard",
        "label": "Dashboard",
        "icon": "LayoutDashboard",
        "path": "/dashboard",
        "permission": "dashboard:read",
        "order": 10,
    },
    {
        "key": "users",
        "label": "Users",
        "icon": "Users",
        "path": "/users",
        "permission": "users:read",
        "order": 20,
    },
    {
        "key": "roles",
        "label": "Roles",
        "icon": "ShieldCheck",
        "path": "/roles",
        "permission": "roles:read",
        "order": 30,
    },
    {
        "key": "settings",
        "label": "Settings",
        "icon": "Settings",
        "permission": "settings:read",
        "order": 900,
        "children": [
            {
                "key": "settings_general",
                "label": "General",
                "path": "/settings/general",
                "permission": "settings:general:read",
            },
            {
                "key": "settings_security",
                "label": "Security",
                "path": "/settings/security",
                "permission": "settings:security:read",
            },
        ],
    },
]


# (path, required codes, exact match only)
ROUTE_PERMISSIONS: List[Tuple[str, Tuple[str, ...], bool]] = [
    ("/settings/general", ("settings:general:read",), True),
    ("/settings/security", ("settings:security:read",), True),
    ("/dashboard", ("dashboard:read",), False),
    ("/profile", (), False),
    ("/users", ("users:read",), False),
    ("/roles", ("roles:read",), False),
    ("/settings", ("settings:read",), False),
]


def _path_matches(pathname: str, path: str, exact: bool) -> bool:
    if pathname == path:
        return True
    return not exact and pathname.startswith(path.rstrip("/") + "/")


def required_permissions_for(pathname: str, registry) -> Optional[Tuple[str, ...]]:
    """Codes any one of which opens ``pathname``; ``None`` when the path is not gated."""

    pathname = "/" + pathname.strip().strip("/")
    for path, codes, exact in ROUTE_PERMISSIONS:
        if _path_matches(pathname, path, exact):
            return codes or None

    match = find_page_route(registry.get_all_routes(), pathname)
    if match is None:
        return None
    if not match.route.requires_auth:
        return None
    return match.route.permissions or (f"{match.module_id}:read",)


def resolve_menu_item(item: Dict[str, Any], perms) -> Optional[Dict[str, Any]]:
    permission = item.get("permission")
    if permission and not perms.allows(permission):
        return None

    children = item.get("children")
    if children:
        resolved_children = [c for c in (resolve_menu_item(child, perms) for child in children) if c]
        if not resolved_children:
            return None
        return {
            "type": "dropdown",
            "key": item["key"],
            "label": item["label"],
            "icon": item.get("icon"),
            "children": resolved_children,
            "order": item.get("order"),
        }
    return {
        "type": "link",
        "key": item["key"],
        "label": item["label"],
        "icon": item.get("icon"),
        "path": item.get("path"),
        "order": item.get("order"),
    }


def get_navigation_for_user(user, registry) -> List[Dict[str, Any]]:
    perms = get_effective_permissions(user.id, user.tenant_id)
    candidates = list(MENU_DEFINITIONS)
    for nav in registry.get_navigation_items():
        candidates.append({
            "key": nav.module_id,
            "label": nav.label,
            "icon": nav.icon,
            "path": nav.path,
            "permission": f"{nav.module_id}:read",
            "order": nav.order,
        })

    def order_of(item):
        order = item.get("order")
        return NAVIGATION_ORDER_SENTINEL if order is None else order

    navigation = []
    for item in sorted(candidates, key=order_of):
        resolved = resolve_menu_item(item, perms)
        if resolved:
            navigation.append(resolved)
    return navigation
