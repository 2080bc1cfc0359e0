# -*- coding: utf-8 -*-
"""
Supplier handlers.
Every handler authenticates, checks its action permission, scopes rows to the
caller's data access and hides or protects fields per the caller's field flags.
"""

from flask import current_app, jsonify, request
from sqlalchemy import or_

from modular_admin import db
from modular_admin.exceptions import DuplicateError, PayloadError
from modular_admin.models import Supplier
from modular_admin.models.supplier import SUPPLIER_STATUSES
from modular_admin.modules.common import (
    apply_data_scope,
    authorize,
    commit_or_rollback,
    csv_response,
    editable_values,
    get_scoped_or_404,
    json_body,
    page_args,
    paginate,
    visible_record,
)

MODULE = "suppliers"
WRITABLE_FIELDS = (
    "supplier_code",
    "supplier_name",
    "contact_person",
    "email",
    "phone",
    "address",
    "status",
)
EXPORT_COLUMNS = ["id", *WRITABLE_FIELDS, "created_at"]


def _validate(values, *, creating):
    if creating:
        missing = [key for key in ("supplier_code", "supplier_name") if not values.get(key)]
        if missing:
            raise PayloadError("Missing required fields", details={"fields": missing})
    for key in ("supplier_code", "supplier_name"):
        if key in values and not str(values[key] or "").strip():
            raise PayloadError(f"{key} cannot be empty")
    if "status" in values and values["status"] not in SUPPLIER_STATUSES:
        raise PayloadError("Invalid status", details={"allowed": list(SUPPLIER_STATUSES)})
    if "supplier_code" in values:
        values["supplier_code"] = str(values["supplier_code"]).strip().upper()


def _code_exists(tenant_id, code, exclude_id=None):
    query = Supplier.query.filter(Supplier.supplier_code == code)
    query = query.filter(Supplier.tenant_id.is_(None) if tenant_id is None else Supplier.tenant_id == tenant_id)
    if exclude_id is not None:
        query = query.filter(Supplier.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def _filtered_query(user, level):
    query = apply_data_scope(Supplier.query, Supplier, user, level)
    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        query = query.filter(or_(
            Supplier.supplier_code.ilike(like),
            Supplier.supplier_name.ilike(like),
            Supplier.contact_person.ilike(like),
            Supplier.email.ilike(like),
        ))
    status = (request.args.get("status") or "").strip()
    if status:
        query = query.filter(Supplier.status == status)
    return query.order_by(Supplier.supplier_name, Supplier.id)


def list_suppliers(params):
    user, level, flags = authorize(MODULE, "read")
    page, size = page_args()
    items, total = paginate(_filtered_query(user, level), page, size)
    return jsonify({
        "success": True,
        "data": [visible_record(s.to_dict(), flags) for s in items],
        "pagination": {"page": page, "pageSize": size, "total": total},
        "dataAccess": level,
    })


def get_supplier(params):
    user, level, flags = authorize(MODULE, "read")
    supplier = get_scoped_or_404(Supplier, params.get("id"), user, level)
    return jsonify({"success": True, "data": visible_record(supplier.to_dict(), flags)})


def create_supplier(params):
    user, level, flags = authorize(MODULE, "create")
    values, ignored = editable_values(json_body(), WRITABLE_FIELDS, flags)
    _validate(values, creating=True)
    if _code_exists(user.tenant_id, values["supplier_code"]):
        raise DuplicateError(f"Supplier code {values['supplier_code']} already exists")

    supplier = Supplier(tenant_id=user.tenant_id, created_by=user.id, **values)
    db.session.add(supplier)
    commit_or_rollback()
    current_app.logger.info("Supplier %s created by user %s", supplier.supplier_code, user.id)
    return jsonify({
        "success": True,
        "data": visible_record(supplier.to_dict(), flags),
        "ignoredFields": ignored,
    }), 201


def update_supplier(params):
    user, level, flags = authorize(MODULE, "update")
    supplier = get_scoped_or_404(Supplier, params.get("id"), user, level)
    values, ignored = editable_values(json_body(), WRITABLE_FIELDS, flags)
    _validate(values, creating=False)
    if "supplier_code" in values and _code_exists(user.tenant_id, values["supplier_code"], supplier.id):
        raise DuplicateError(f"Supplier code {values['supplier_code']} already exists")

    for key, value in values.items():
        setattr(supplier, key, value)
    commit_or_rollback()
    return jsonify({
        "success": True,
        "data": visible_record(supplier.to_dict(), flags),
        "ignoredFields": ignored,
    })


def delete_supplier(params):
    user, level, _ = authorize(MODULE, "delete")
    supplier = get_scoped_or_404(Supplier, params.get("id"), user, level)
    code = supplier.supplier_code
    db.session.delete(supplier)
    commit_or_rollback()
    current_app.logger.info("Supplier %s deleted by user %s", code, user.id)
    return jsonify({"success": True})


def export_suppliers(params):
    user, level, flags = authorize(MODULE, "export")
    rows = [visible_record(s.to_dict(), flags) for s in _filtered_query(user, level).all()]
    columns = [c for c in EXPORT_COLUMNS if flags is None or c not in flags or flags[c].visible]
    return csv_response(rows, columns, "suppliers.csv")


def register(table) -> None:
    table.add(MODULE, "list", "GET", list_suppliers)
    table.add(MODULE, "create", "POST", create_supplier)
    table.add(MODULE, "getById", "GET", get_supplier)
    table.add(MODULE, "update", "PATCH", update_supplier)
    table.add(MODULE, "delete", "DELETE", delete_supplier)
    table.add(MODULE, "export", "GET", export_suppliers)
