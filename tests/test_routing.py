"""
Tests for path matching, endpoint resolution and gateway dispatch.
"""

import pytest
from flask import jsonify
from werkzeug.exceptions import NotFound

from modular_admin.descriptors import StaticDescriptorStore
from modular_admin.handlers import HandlerRegistry
from modular_admin.registry import ModuleRegistry, build_index
from modular_admin.routing import (
    ENDPOINT_NOT_FOUND,
    find_page_route,
    match_path,
    resolve_api_endpoint,
    resolve_page_route,
    strip_base_path,
)


def items_module(endpoints, *, module_id="items", base_path="/api/items", enabled=True):
    return {
        "id": module_id,
        "name": module_id.title(),
        "version": "1.0.0",
        "enabled": enabled,
        "routes": [
            {"path": f"/{module_id}/:id", "component": "Detail"},
            {"path": f"/{module_id}/new", "component": "Form"},
            {"path": f"/{module_id}", "component": "List"},
        ],
        "api": {"basePath": base_path, "endpoints": endpoints},
    }


BY_ID = {"method": "GET", "path": "/:id", "handler": "getById"}
EXPORT = {"method": "GET", "path": "/export", "handler": "export"}


# =============================================================================
# MATCHING
# =============================================================================


@pytest.mark.parametrize("path, pattern, expected", [
    ("/items/42", "/items/:id", {"id": "42"}),
    ("/items/42/", "/items/:id", {"id": "42"}),
    ("/items", "/items", {}),
    ("/items/42/notes/7", "/items/:id/notes/:note", {"id": "42", "note": "7"}),
    ("/items/42/notes", "/items/:id", None),
    ("/things/42", "/items/:id", None),
    ("/", "", {}),
])
def test_match_path(path, pattern, expected):
    assert match_path(path, pattern) == expected


def test_parameters_are_bound_verbatim():
    assert match_path("/items/a b", "/items/:id") == {"id": "a b"}


@pytest.mark.parametrize("full_path, expected", [
    ("/api/items", "/"),
    ("/api/items/", "/"),
    ("/api/items/5", "/5"),
    ("/api/itemsx/5", None),
    ("/api/other", None),
])
def test_strip_base_path_respects_segment_boundary(full_path, expected):
    assert strip_base_path(full_path, "/api/items") == expected


# =============================================================================
# API RESOLUTION
# =============================================================================


@pytest.mark.parametrize("endpoints", [[BY_ID, EXPORT], [EXPORT, BY_ID]])
def test_static_endpoint_wins_regardless_of_declaration_order(endpoints):
    index = build_index(StaticDescriptorStore([items_module(endpoints)]))

    match = resolve_api_endpoint(index, "GET", "/api/items/export")
    assert match.endpoint.handler == "export"
    assert match.params == {}

    match = resolve_api_endpoint(index, "GET", "/api/items/17")
    assert match.endpoint.handler == "getById"
    assert match.params == {"id": "17"}


def test_method_must_match():
    index = build_index(StaticDescriptorStore([items_module([BY_ID])]))
    with pytest.raises(NotFound):
        resolve_api_endpoint(index, "DELETE", "/api/items/17")
    assert resolve_api_endpoint(index, "get", "/api/items/17").endpoint.handler == "getById"


def test_root_endpoint_matches_base_path_with_and_without_slash():
    index = build_index(StaticDescriptorStore([
        items_module([{"method": "GET", "path": "/", "handler": "list"}]),
    ]))
    assert resolve_api_endpoint(index, "GET", "/api/items").endpoint.handler == "list"
    assert resolve_api_endpoint(index, "GET", "/api/items/").endpoint.handler == "list"


def test_prefix_sharing_base_paths_do_not_collide():
    index = build_index(StaticDescriptorStore([
        items_module([{"method": "GET", "path": "", "handler": "list"}]),
        items_module([{"method": "GET", "path": "", "handler": "list"}],
                     module_id="items-archive", base_path="/api/items-archive"),
    ]))
    assert resolve_api_endpoint(index, "GET", "/api/items-archive").module_id == "items-archive"
    assert resolve_api_endpoint(index, "GET", "/api/items").module_id == "items"


def test_disabled_module_paths_look_like_unknown_paths():
    index = build_index(StaticDescriptorStore([
        items_module([BY_ID], module_id="legacy", base_path="/api/legacy", enabled=False),
    ]))
    with pytest.raises(NotFound) as disabled:
        resolve_api_endpoint(index, "GET", "/api/legacy/1")
    with pytest.raises(NotFound) as unknown:
        resolve_api_endpoint(index, "GET", "/api/nothing/1")
    assert disabled.value.description == unknown.value.description == ENDPOINT_NOT_FOUND


def test_enabled_module_is_not_shadowed_by_disabled_one():
    index = build_index(StaticDescriptorStore([
        items_module([BY_ID], module_id="old", base_path="/api/items", enabled=False),
        items_module([BY_ID], module_id="items", base_path="/api/items"),
    ]))
    assert resolve_api_endpoint(index, "GET", "/api/items/3").module_id == "items"


# =============================================================================
# PAGE ROUTES
# =============================================================================


def test_page_route_prefers_static_segment():
    index = build_index(StaticDescriptorStore([items_module([])]))

    assert resolve_page_route(index, "/items/new").route.component == "Form"
    match = resolve_page_route(index, "/items/9")
    assert match.route.component == "Detail"
    assert match.to_dict()["params"] == {"id": "9"}
    assert resolve_page_route(index, "/items").route.component == "List"


def test_unknown_page_raises_not_found():
    index = build_index(StaticDescriptorStore([items_module([])]))
    with pytest.raises(NotFound):
        resolve_page_route(index, "/items/9/edit")
    assert find_page_route(index.routes, "/elsewhere") is None


# =============================================================================
# GATEWAY DISPATCH
# =============================================================================


@pytest.fixture
def gateway_client(app):
    """Client whose gateway serves a small in-memory module set."""
    registry = ModuleRegistry(StaticDescriptorStore([
        items_module([
            {"method": "GET", "path": "", "handler": "list"},
            BY_ID,
            EXPORT,
            {"method": "POST", "path": "", "handler": "create"},
            {"method": "DELETE", "path": "/:id", "handler": "explode"},
        ]),
        items_module([BY_ID], module_id="legacy", base_path="/api/legacy", enabled=False),
    ]))
    registry.initialize()

    table = HandlerRegistry()
    table.add("items", "list", "GET", lambda params: jsonify({"items": []}))
    table.add("items", "getById", "GET", lambda params: jsonify({"id": params["id"]}))
    table.add("items", "export", "GET", lambda params: ("a,b\n", 200, {"Content-Type": "text/csv"}))
    table.add("legacy", "getById", "*", lambda params: jsonify({"legacy": True}))

    def explode(params):
        raise RuntimeError("connection string postgres://secret@db")

    table.add("items", "explode", "DELETE", explode)

    app.extensions["module_registry"] = registry
    app.extensions["module_handlers"] = table
    return app.test_client()


def test_gateway_dispatches_with_bound_params(gateway_client):
    response = gateway_client.get("/api/items/12")
    assert response.status_code == 200
    assert response.get_json() == {"id": "12"}

    response = gateway_client.get("/api/items/export")
    assert response.status_code == 200
    assert response.mimetype == "text/csv"


def test_gateway_hides_disabled_modules(gateway_client):
    disabled = gateway_client.get("/api/legacy/1")
    unknown = gateway_client.get("/api/unknown/1")

    assert disabled.status_code == unknown.status_code == 404
    assert disabled.get_json() == unknown.get_json() == {"error": ENDPOINT_NOT_FOUND}


def test_gateway_reports_missing_handler(gateway_client):
    response = gateway_client.post("/api/items", json={})
    assert response.status_code == 500
    assert response.get_json() == {"error": "Handler not found"}


def test_gateway_handler_failure_is_generic(gateway_client):
    response = gateway_client.delete("/api/items/3")
    assert response.status_code == 500
    assert response.get_json() == {"error": "Internal server error"}
    assert b"secret" not in response.data


def test_handler_table_rejects_duplicates():
    table = HandlerRegistry()
    table.add("items", "list", "get", lambda params: None)
    with pytest.raises(ValueError):
        table.add("items", "list", "GET", lambda params: None)
    assert ("items", "list", "GET") in table
    assert table.get("items", "list", "POST") is None


def test_missing_handlers_are_listed_for_enabled_endpoints():
    registry = ModuleRegistry(StaticDescriptorStore([
        items_module([BY_ID, EXPORT]),
        items_module([BY_ID], module_id="legacy", base_path="/api/legacy", enabled=False),
    ]))
    registry.initialize()
    table = HandlerRegistry()
    table.add("items", "getById", "GET", lambda params: None)

    assert list(table.missing_for(registry)) == [("items", "export", "GET")]
