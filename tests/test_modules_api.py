"""
Tests for the supplier and customer modules served through the gateway,
and for the module catalog endpoints.
"""

import csv
import io

import pytest

SUPPLIER_FIELDS = ("supplier_code", "supplier_name", "contact_person", "email", "phone", "address", "status")
ALL_SUPPLIER_FIELDS = {code: (True, True) for code in SUPPLIER_FIELDS}


@pytest.fixture
def supplier_role(make_role, grant):
    """Factory for a role with supplier access at a given scope."""
    def _role(code, *permissions, data_access="own", fields=None):
        role_id = make_role(code)
        grant(role_id, "suppliers", *permissions, data_access=data_access,
              fields=ALL_SUPPLIER_FIELDS if fields is None else fields)
        return role_id
    return _role


def create_supplier(client, headers, code, **extra):
    payload = {"supplier_code": code, "supplier_name": f"Supplier {code}", **extra}
    return client.post("/api/suppliers", headers=headers, json=payload)


# =============================================================================
# AUTHENTICATION AND PERMISSIONS
# =============================================================================


def test_module_endpoints_require_authentication(client):
    response = client.get("/api/suppliers")
    assert response.status_code == 401
    assert response.get_json() == {"error": "Unauthorized"}


def test_missing_action_permission_is_forbidden(client, supplier_role, make_user, auth_headers):
    user_id = make_user("reader", roles=[supplier_role("READER", "suppliers:read")])
    response = create_supplier(client, auth_headers(user_id), "ACME")
    assert response.status_code == 403
    assert response.get_json()["details"]["requiredPermissions"] == ["suppliers:create"]


def test_permission_without_data_access_is_forbidden(client, make_role, make_user, grant, auth_headers):
    role_id = make_role("ODD")
    grant(role_id, "suppliers", "suppliers:read", data_access="none")
    user_id = make_user("odd", roles=[role_id])

    response = client.get("/api/suppliers", headers=auth_headers(user_id))
    assert response.status_code == 403
    assert response.get_json()["error"] == "No data access for this module"


# =============================================================================
# CRUD AND DATA SCOPE
# =============================================================================


def test_supplier_crud(client, supplier_role, make_user, auth_headers):
    role_id = supplier_role("BUYER", "suppliers:*")
    headers = auth_headers(make_user("buyer", roles=[role_id]))

    response = create_supplier(client, headers, "acme", email="sales@acme.test")
    assert response.status_code == 201
    supplier = response.get_json()["data"]
    assert supplier["supplier_code"] == "ACME"
    assert response.get_json()["ignoredFields"] == []

    assert create_supplier(client, headers, "ACME").status_code == 409
    assert create_supplier(client, headers, "BAD", status="unknown").status_code == 400

    response = client.patch(f"/api/suppliers/{supplier['id']}", headers=headers, json={"phone": "555-0100"})
    assert response.status_code == 200
    assert response.get_json()["data"]["phone"] == "555-0100"

    response = client.get(f"/api/suppliers/{supplier['id']}", headers=headers)
    assert response.get_json()["data"]["email"] == "sales@acme.test"

    assert client.delete(f"/api/suppliers/{supplier['id']}", headers=headers).status_code == 200
    assert client.get(f"/api/suppliers/{supplier['id']}", headers=headers).status_code == 404


def test_own_scope_sees_only_own_records(client, supplier_role, make_user, auth_headers):
    role_id = supplier_role("BUYER", "suppliers:read", "suppliers:create", data_access="own")
    alice = auth_headers(make_user("alice", roles=[role_id], department="purchasing"))
    bob = auth_headers(make_user("bob", roles=[role_id], department="purchasing"))

    alice_supplier = create_supplier(client, alice, "ALPHA").get_json()["data"]
    create_supplier(client, bob, "BRAVO")

    body = client.get("/api/suppliers", headers=alice).get_json()
    assert [s["supplier_code"] for s in body["data"]] == ["ALPHA"]
    assert body["dataAccess"] == "own"
    assert client.get(f"/api/suppliers/{alice_supplier['id']}", headers=bob).status_code == 404


def test_team_scope_covers_department(client, supplier_role, make_user, auth_headers):
    creator = supplier_role("CREATOR", "suppliers:create")
    lead = supplier_role("LEAD", "suppliers:read", data_access="team")
    alice = auth_headers(make_user("alice", roles=[creator], department="purchasing"))
    bob = auth_headers(make_user("bob", roles=[creator], department="purchasing"))
    carol = auth_headers(make_user("carol", roles=[creator], department="finance"))
    lead_headers = auth_headers(make_user("lead", roles=[lead], department="purchasing"))

    for headers, code in ((alice, "ALPHA"), (bob, "BRAVO"), (carol, "CHARLIE")):
        assert create_supplier(client, headers, code).status_code == 201

    body = client.get("/api/suppliers", headers=lead_headers).get_json()
    assert sorted(s["supplier_code"] for s in body["data"]) == ["ALPHA", "BRAVO"]
    assert body["pagination"]["total"] == 2


def test_super_admin_sees_everything(client, supplier_role, make_user, super_admin, auth_headers):
    creator = supplier_role("CREATOR", "suppliers:create")
    create_supplier(client, auth_headers(make_user("alice", roles=[creator])), "ALPHA")
    create_supplier(client, auth_headers(super_admin), "ROOT")

    body = client.get("/api/suppliers", headers=auth_headers(super_admin)).get_json()
    assert sorted(s["supplier_code"] for s in body["data"]) == ["ALPHA", "ROOT"]
    assert body["dataAccess"] == "all"


def test_pagination(client, super_admin, auth_headers):
    headers = auth_headers(super_admin)
    for index in range(5):
        create_supplier(client, headers, f"S{index}")

    body = client.get("/api/suppliers?page=2&pageSize=2", headers=headers).get_json()
    assert body["pagination"] == {"page": 2, "pageSize": 2, "total": 5}
    assert len(body["data"]) == 2
    assert client.get("/api/suppliers?page=x", headers=headers).status_code == 400


# =============================================================================
# FIELD PERMISSIONS
# =============================================================================


def test_hidden_fields_are_removed_and_protected(client, supplier_role, make_user, auth_headers):
    fields = dict(ALL_SUPPLIER_FIELDS, email=(False, False), phone=(True, False))
    role_id = supplier_role("BUYER", "suppliers:read", "suppliers:create", fields=fields)
    headers = auth_headers(make_user("buyer", roles=[role_id]))

    response = create_supplier(client, headers, "ACME", email="x@acme.test", phone="555")
    assert response.status_code == 201
    body = response.get_json()
    assert sorted(body["ignoredFields"]) == ["email", "phone"]
    assert "email" not in body["data"]
    assert body["data"]["phone"] is None

    listed = client.get("/api/suppliers", headers=headers).get_json()["data"][0]
    assert "email" not in listed
    assert "phone" in listed


# =============================================================================
# EXPORT
# =============================================================================


def test_export_is_not_captured_by_id_route(client, supplier_role, make_user, auth_headers):
    fields = dict(ALL_SUPPLIER_FIELDS, address=(False, False))
    role_id = supplier_role("AUDITOR", "suppliers:*", data_access="all", fields=fields)
    headers = auth_headers(make_user("auditor", roles=[role_id]))
    create_supplier(client, headers, "ACME")

    response = client.get("/api/suppliers/export", headers=headers)
    assert response.status_code == 200
    assert response.mimetype == "text/csv"
    assert "suppliers.csv" in response.headers["Content-Disposition"]

    rows = list(csv.reader(io.StringIO(response.get_data(as_text=True))))
    assert "address" not in rows[0]
    assert rows[1][rows[0].index("supplier_code")] == "ACME"


def test_export_requires_export_permission(client, supplier_role, make_user, auth_headers):
    role_id = supplier_role("READER", "suppliers:read")
    response = client.get("/api/suppliers/export", headers=auth_headers(make_user("reader", roles=[role_id])))
    assert response.status_code == 403


# =============================================================================
# CUSTOMERS AND DISABLED MODULES
# =============================================================================


def test_customers_root_endpoint(client, super_admin, auth_headers):
    headers = auth_headers(super_admin)
    response = client.post("/api/customers", headers=headers,
                           json={"customer_code": "C1", "full_name": "Jane Roe", "credit_limit": "1500.50"})
    assert response.status_code == 201
    assert response.get_json()["data"]["credit_limit"] == 1500.5

    body = client.get("/api/customers", headers=headers).get_json()
    assert [c["customer_code"] for c in body["data"]] == ["C1"]

    response = client.get("/api/customers/export", headers=headers)
    assert response.mimetype == "text/csv"


def test_disabled_module_answers_like_unknown_path(client, super_admin, auth_headers):
    headers = auth_headers(super_admin)
    disabled = client.get("/api/carts", headers=headers)
    unknown = client.get("/api/nowhere", headers=headers)
    assert disabled.status_code == unknown.status_code == 404
    assert disabled.get_json() == unknown.get_json()


# =============================================================================
# CATALOG
# =============================================================================


def test_navigation_follows_permissions(client, supplier_role, make_user, auth_headers):
    role_id = supplier_role("BUYER", "suppliers:read")
    headers = auth_headers(make_user("buyer", roles=[role_id]))

    navigation = client.get("/api/modules/navigation", headers=headers).get_json()["navigation"]
    assert [item["key"] for item in navigation] == ["suppliers"]


def test_super_admin_navigation_is_ordered(client, super_admin, auth_headers):
    navigation = client.get("/api/modules/navigation", headers=auth_headers(super_admin)).get_json()["navigation"]
    keys = [item["key"] for item in navigation]
    assert keys == ["dashboard", "users", "roles", "suppliers", "customers", "settings"]
    assert navigation[-1]["type"] == "dropdown"
    assert navigation[4]["path"] == "/customers"


def test_catalog_lists_modules_and_routes(client, super_admin, auth_headers):
    headers = auth_headers(super_admin)
    modules = client.get("/api/modules", headers=headers).get_json()["modules"]
    suppliers = next(m for m in modules if m["code"] == "suppliers")
    assert suppliers["version"] == "1.2.0"
    assert len(suppliers["fields"]) == 7
    assert all(m["code"] != "carts" for m in modules)

    routes = client.get("/api/modules/routes", headers=headers).get_json()["routes"]
    assert {r["moduleId"] for r in routes} == {"suppliers", "customers"}

    resolved = client.get("/api/modules/resolve?path=/suppliers/new", headers=headers).get_json()
    assert resolved["component"] == "SupplierForm"
    assert client.get("/api/modules/resolve?path=/carts", headers=headers).status_code == 404

    endpoints = client.get("/api/modules/carts/endpoints", headers=headers).get_json()
    assert endpoints == {"moduleId": "carts", "endpoints": []}


def test_reload_requires_super_admin(client, supplier_role, make_user, super_admin, auth_headers):
    buyer = make_user("buyer", roles=[supplier_role("BUYER", "suppliers:read")])
    assert client.post("/api/modules/reload", headers=auth_headers(buyer)).status_code == 403

    body = client.post("/api/modules/reload", headers=auth_headers(super_admin)).get_json()
    assert body["modules"] == 3
    assert body["enabled"] == 2
    assert body["skipped"] == []
    assert body["loadedAt"]
