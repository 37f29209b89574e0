# Overview: Request body checks shared by the JSON routes.

from __future__ import annotations

from typing import Any

from flask import request

from .errors import ValidationError


def json_object() -> dict[str, Any]:
    """
    Return the request's JSON body as a dict.

    A missing or unparseable body is treated as {}; any other JSON value
    (list, string, number) is rejected.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def string_fields(data: dict[str, Any], *names: str) -> dict[str, Any]:
    """
    Check that the named fields are strings or absent.

    Integers are accepted and converted (serials and order numbers typed as
    numbers in spreadsheets); booleans, floats, lists and objects are not.
    """
    for name in names:
        value = data.get(name)
        if value is None or isinstance(value, str):
            continue
        if isinstance(value, int) and not isinstance(value, bool):
            data[name] = str(value)
            continue
        raise ValidationError(f"{name} must be a string")
    return data
