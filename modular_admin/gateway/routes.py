# -*- coding: utf-8 -*-
"""
Module gateway: every ``/api/...`` request not served by a core blueprint is
dispatched to the owning module's handler by the request router.
"""

from flask import Blueprint, request

from modular_admin.handlers import get_handler_registry
from modular_admin.registry import get_registry
from modular_admin.routing import dispatch_api_request

gateway_bp = Blueprint("gateway", __name__)

MODULE_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


@gateway_bp.route("/api/<path:subpath>", methods=MODULE_METHODS)
def module_api(subpath):
    return dispatch_api_request(get_registry(), get_handler_registry(), request.method, request.path)
