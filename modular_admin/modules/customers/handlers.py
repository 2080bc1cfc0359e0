from decimal import Decimal, InvalidOperation

from flask import jsonify

from modular_admin import db
from modular_admin.exceptions import DuplicateError, PayloadError
from modular_admin.models import Customer
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

MODULE = "customers"
WRITABLE_FIELDS = ("customer_code", "full_name", "company", "email", "phone", "credit_limit", "status")


def _scoped(user, level):
    return apply_data_scope(Customer.query, Customer, user, level).order_by(Customer.full_name, Customer.id)


def list_customers(params):
    user, level, flags = authorize(MODULE, "read")
    page, size = page_args()
    items, total = paginate(_scoped(user, level), page, size)
    return jsonify({
        "success": True,
        "data": [visible_record(c.to_dict(), flags) for c in items],
        "pagination": {"page": page, "pageSize": size, "total": total},
    })


def get_customer(params):
    user, level, flags = authorize(MODULE, "read")
    customer = get_scoped_or_404(Customer, params.get("id"), user, level)
    return jsonify({"success": True, "data": visible_record(customer.to_dict(), flags)})


def create_customer(params):
    user, _, flags = authorize(MODULE, "create")
    values, ignored = editable_values(json_body(), WRITABLE_FIELDS, flags)
    missing = [key for key in ("customer_code", "full_name") if not values.get(key)]
    if missing:
        raise PayloadError("Missing required fields", details={"fields": missing})
    if values.get("credit_limit") is not None:
        try:
            values["credit_limit"] = Decimal(str(values["credit_limit"]))
        except InvalidOperation:
            raise PayloadError("credit_limit must be a number")

    exists = Customer.query.filter_by(tenant_id=user.tenant_id, customer_code=values["customer_code"]).first()
    if exists:
        raise DuplicateError(f"Customer code {values['customer_code']} already exists")
    customer = Customer(tenant_id=user.tenant_id, created_by=user.id, **values)
    db.session.add(customer)
    commit_or_rollback()
    return jsonify({
        "success": True,
        "data": visible_record(customer.to_dict(), flags),
        "ignoredFields": ignored,
    }), 201


def export_customers(params):
    user, level, flags = authorize(MODULE, "export")
    rows = [visible_record(c.to_dict(), flags) for c in _scoped(user, level).all()]
    columns = ["id", *WRITABLE_FIELDS]
    if flags is not None:
        columns = [c for c in columns if c not in flags or flags[c].visible]
    return csv_response(rows, columns, "customers.csv")


def register(table) -> None:
    table.add(MODULE, "list", "GET", list_customers)
    table.add(MODULE, "create", "POST", create_customer)
    table.add(MODULE, "getById", "GET", get_customer)
    table.add(MODULE, "export", "GET", export_customers)
