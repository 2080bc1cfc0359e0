# -*- coding: utf-8 -*-
"""
Helpers shared by module handlers: data scoping, field visibility and exports.
"""

import csv
import io
from typing import Dict, Iterable, List, Optional, Tuple

from flask import Response, request
from sqlalchemy import false, select

from modular_admin import db
from modular_admin.exceptions import PayloadError, PermissionDenied, RecordNotFound
from modular_admin.models import User
from modular_admin.permissions import FieldFlags, get_data_access, get_field_access
from modular_admin.utils.roles import require_permission


def authorize(module_code: str, action: str):
    """Return the acting user, its data scope and field flags for a module action."""
    user = require_permission(f"{module_code}:{action}")
    level = get_data_access(user.id, module_code, user.tenant_id)
    if level == "none":
        raise PermissionDenied((f"{module_code}:{action}",), description="No data access for this module")
    return user, level, get_field_access(user.id, module_code, user.tenant_id)


def apply_data_scope(query, model, user, level: str):
    if user.tenant_id is not None:
        query = query.filter(model.tenant_id == user.tenant_id)
    if level == "all":
        return query
    if level == "team" and user.department:
        team = select(User.id).where(User.department == user.department)
        if user.tenant_id is not None:
            team = team.where(User.tenant_id == user.tenant_id)
        return query.filter(model.created_by.in_(team))
    if level in ("team", "own"):
        return query.filter(model.created_by == user.id)
    return query.filter(false())


def get_scoped_or_404(model, record_id, user, level):
    try:
        record_id = int(record_id)
    except (TypeError, ValueError):
        raise RecordNotFound()
    record = apply_data_scope(model.query, model, user, level).filter(model.id == record_id).first()
    if record is None:
        raise RecordNotFound()
    return record


def visible_record(record: Dict, flags: Optional[Dict[str, FieldFlags]]) -> Dict:
    if flags is None:
        return record
    return {key: value for key, value in record.items() if key not in flags or flags[key].visible}


def editable_values(data: Dict, allowed: Iterable[str],
                    flags: Optional[Dict[str, FieldFlags]]) -> Tuple[Dict, List[str]]:
    """Split a write payload into accepted values and fields the caller may not edit."""
    accepted, ignored = {}, []
    for key in allowed:
        if key not in data:
            continue
        if flags is not None and key in flags and not flags[key].editable:
            ignored.append(key)
            continue
        accepted[key] = data[key]
    return accepted, ignored


def json_body() -> Dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise PayloadError("Request body must be a JSON object")
    return data


def page_args(default_size: int = 50, max_size: int = 200) -> Tuple[int, int]:
    try:
        page = max(int(request.args.get("page", 1)), 1)
        size = min(max(int(request.args.get("pageSize", default_size)), 1), max_size)
    except (TypeError, ValueError):
        raise PayloadError("page and pageSize must be integers")
    return page, size


def paginate(query, page: int, size: int):
    total = query.order_by(None).count()
    items = query.offset((page - 1) * size).limit(size).all()
    return items, total


def csv_response(rows: List[Dict], columns: List[str], filename: str) -> Response:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(columns)
    for row in rows:
        writer.writerow(["" if row.get(column) is None else row.get(column) for column in columns])
    return Response(
        output.getvalue(),
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


def commit_or_rollback():
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
