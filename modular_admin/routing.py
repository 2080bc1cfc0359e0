# -*- coding: utf-8 -*-
"""
Request router.

Purely structural dispatch: match method and path against the registry's endpoint
table, bind ``:name`` segments and call the module handler. Static patterns are
tried before parametric ones. Unknown paths and paths owned by a disabled module
produce the same 404 so module topology is never revealed. Authentication and
authorization are left to the handlers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, TypeVar

from flask import current_app
from werkzeug.exceptions import HTTPException, InternalServerError, NotFound

from .descriptors import ApiEndpoint, UiRoute
from .registry import RegisteredEndpoint, RegisteredRoute, RegistryIndex

ENDPOINT_NOT_FOUND = "Endpoint not found"
PAGE_NOT_FOUND = "Page not found"
HANDLER_NOT_FOUND = "Handler not found"

T = TypeVar("T")


def split_segments(path: str) -> List[str]:
    return [segment for segment in (path or "").split("/") if segment]


def match_path(path: str, pattern: str) -> Optional[Dict[str, str]]:
    """Match ``path`` against ``pattern``; return bound parameters or ``None``."""

    pattern_parts = split_segments(pattern)
    path_parts = split_segments(path)
    if len(pattern_parts) != len(path_parts):
        return None

    params: Dict[str, str] = {}
    for expected, actual in zip(pattern_parts, path_parts):
        if expected.startswith(":"):
            params[expected[1:]] = actual
        elif expected != actual:
            return None
    return params


def is_static_pattern(pattern: str) -> bool:
    return not any(segment.startswith(":") for segment in split_segments(pattern))


def static_first(candidates: Iterable[T], pattern_of) -> List[T]:
    """Stable sort putting parameter-free patterns before parametric ones."""

    return sorted(candidates, key=lambda c: 0 if is_static_pattern(pattern_of(c)) else 1)


def strip_base_path(full_path: str, base_path: str) -> Optional[str]:
    """Return the remainder of ``full_path`` under ``base_path`` or ``None``."""

    if base_path == "/":
        return full_path or "/"
    if not full_path.startswith(base_path):
        return None
    remainder = full_path[len(base_path):]
    if remainder and not remainder.startswith("/"):
        return None
    return remainder or "/"


@dataclass(frozen=True)
class ApiMatch:
    module_id: str
    base_path: str
    endpoint: ApiEndpoint
    params: Dict[str, str]


@dataclass(frozen=True)
class PageMatch:
    module_id: str
    route: UiRoute
    params: Dict[str, str]

    def to_dict(self) -> dict:
        return {
            "moduleId": self.module_id,
            "path": self.route.path,
            "component": self.route.component,
            "title": self.route.title,
            "requiresAuth": self.route.requires_auth,
            "params": self.params,
        }


def find_api_endpoint(endpoints: Sequence[RegisteredEndpoint], method: str, full_path: str) -> Optional[ApiMatch]:
    method = method.upper()
    candidates = []
    for entry in endpoints:
        if entry.endpoint.method != method:
            continue
        remainder = strip_base_path(full_path, entry.base_path)
        if remainder is None:
            continue
        candidates.append((entry, remainder))

    for entry, remainder in static_first(candidates, lambda c: c[0].endpoint.path):
        params = match_path(remainder, entry.endpoint.path)
        if params is not None:
            return ApiMatch(entry.module_id, entry.base_path, entry.endpoint, params)
    return None


def find_page_route(routes: Sequence[RegisteredRoute], path: str) -> Optional[PageMatch]:
    for entry in static_first(routes, lambda r: r.route.path):
        params = match_path(path, entry.route.path)
        if params is not None:
            return PageMatch(entry.module_id, entry.route, params)
    return None


def resolve_api_endpoint(index: RegistryIndex, method: str, full_path: str) -> ApiMatch:
    """Resolve an API request or raise ``NotFound``.

    Only enabled modules are indexed, so a path owned by a disabled module is
    answered exactly like a path nobody owns.
    """

    match = find_api_endpoint(index.endpoints, method, full_path)
    if match is None:
        raise NotFound(ENDPOINT_NOT_FOUND)
    return match


def resolve_page_route(index: RegistryIndex, path: str) -> PageMatch:
    match = find_page_route(index.routes, path)
    if match is None:
        raise NotFound(PAGE_NOT_FOUND)
    return match


def dispatch_api_request(registry, handlers, method: str, full_path: str):
    match = resolve_api_endpoint(registry.snapshot(), method, full_path)
    handler_name = match.endpoint.handler
    func = handlers.get(match.module_id, handler_name, match.endpoint.method)
    if func is None:
        current_app.logger.error(
            "No handler %r registered for %s %s (module %s)",
            handler_name, match.endpoint.method, full_path, match.module_id)
        raise InternalServerError(HANDLER_NOT_FOUND)

    try:
        result = func(match.params)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception(
            "Handler %s.%s failed for %s %s",
            match.module_id, handler_name, match.endpoint.method, full_path)
        raise InternalServerError("Internal server error")
    return current_app.make_response(result)
