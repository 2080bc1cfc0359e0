# -*- coding: utf-8 -*-
"""
Module catalog endpoints: loaded modules, navigation, page routes and registry reloads.
"""

from collections import defaultdict

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from modular_admin.models import Module, ModuleField, Permission
from modular_admin.navigation import get_navigation_for_user
from modular_admin.registry import get_registry
from modular_admin.routing import resolve_page_route
from modular_admin.seeds import sync_module_catalog
from modular_admin.utils.responses import error_response
from modular_admin.utils.roles import super_admin_required

catalog_bp = Blueprint("catalog", __name__)


@catalog_bp.route("", methods=["GET"])
@login_required
def list_modules():
    modules = Module.query.filter_by(is_active=True).order_by(Module.sort_order, Module.code).all()
    permissions = defaultdict(list)
    for permission in Permission.query.filter_by(is_active=True).order_by(Permission.id):
        permissions[permission.module].append(permission.to_dict())
    fields = defaultdict(list)
    for field in ModuleField.query.filter_by(is_active=True).order_by(ModuleField.sort_order, ModuleField.id):
        fields[field.module_id].append(field.to_dict())

    registry = get_registry()
    payload = []
    for module in modules:
        entry = module.to_dict()
        descriptor = registry.get_module(module.code)
        entry["version"] = descriptor.version if descriptor else None
        entry["permissions"] = permissions[module.code]
        entry["fields"] = fields[module.id]
        payload.append(entry)
    return jsonify({"modules": payload})


@catalog_bp.route("/navigation", methods=["GET"])
@login_required
def navigation():
    return jsonify({"navigation": get_navigation_for_user(current_user, get_registry())})


@catalog_bp.route("/routes", methods=["GET"])
@login_required
def routes():
    return jsonify({"routes": [route.to_dict() for route in get_registry().get_all_routes()]})


@catalog_bp.route("/resolve", methods=["GET"])
@login_required
def resolve():
    path = (request.args.get("path") or "").strip()
    if not path:
        return error_response("path is required", 400)
    match = resolve_page_route(get_registry().snapshot(), path)
    return jsonify(match.to_dict())


@catalog_bp.route("/<module_id>/endpoints", methods=["GET"])
@login_required
def module_endpoints(module_id):
    endpoints = get_registry().get_module_api_endpoints(module_id)
    return jsonify({"moduleId": module_id, "endpoints": [e.model_dump(by_alias=True) for e in endpoints]})


@catalog_bp.route("/reload", methods=["POST"])
@super_admin_required
def reload_modules():
    registry = get_registry()
    registry.initialize(force=True)
    count = sync_module_catalog(registry, current_app.logger)
    current_app.logger.info("Module registry reloaded by user %s", current_user.id)
    snapshot = registry.snapshot()
    return jsonify({
        "modules": len(snapshot.modules),
        "enabled": sum(1 for m in snapshot.modules.values() if m.is_enabled),
        "skipped": list(snapshot.skipped),
        "loadedAt": snapshot.loaded_at.isoformat(),
        "catalogModules": count,
    })
