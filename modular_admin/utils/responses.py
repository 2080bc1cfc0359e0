from flask import jsonify, request
from pydantic import ValidationError

from modular_admin.exceptions import PayloadError, validation_details


def error_response(message: str, status: int = 400, details=None):
    body = {"error": message}
    if details is not None:
        body["details"] = details
    return jsonify(body), status


def parse_payload(model):
    """Validate the JSON body against a pydantic model or raise a 400."""

    payload = request.get_json(silent=True)
    if payload is None:
        raise PayloadError("Request body must be a JSON object")
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise PayloadError("Invalid request payload", details=validation_details(exc)) from exc
