"""
Small helpers shared by the web layer.
"""

from __future__ import annotations

import json
from typing import Any, TypeVar, Union

import jsonpatch
from pydantic import BaseModel, ValidationError

from accounts.exceptions import FieldError, MultiErrorException

M = TypeVar("M", bound=BaseModel)


def apply_patch(document: dict[str, Any], patch: Union[str, bytes]) -> dict[str, Any]:
    """
    Apply a JSON Patch (RFC 6902) given as text or UTF-8 bytes to ``document``.

    Returns the patched copy; ``document`` itself is left untouched.
    Malformed or non-applicable patches raise ``jsonpatch.JsonPatchException``
    (or ``jsonpointer.JsonPointerException`` for a bad path).
    """
    try:
        if isinstance(patch, bytes):
            patch = patch.decode("utf-8")
        operations = json.loads(patch)
    except ValueError as e:
        raise jsonpatch.InvalidJsonPatch(f"Patch is not valid JSON: {e}")

    if not isinstance(operations, list):
        raise jsonpatch.InvalidJsonPatch("Patch must be a JSON array of operations")

    return jsonpatch.JsonPatch(operations).apply(document, in_place=False)


def parse_model(model_class: type[M], data: dict[str, Any]) -> M:
    """
    Validate ``data`` into ``model_class``, reporting problems as a 422
    MultiErrorException instead of a pydantic ValidationError.
    """
    try:
        return model_class.model_validate(data)
    except ValidationError as e:
        errors = [
            FieldError(
                ".".join(str(part) for part in error.get("loc", ())) or None,
                error.get("type"),
                error.get("msg", "Invalid value"),
            )
            for error in e.errors()
        ]
        raise MultiErrorException(errors=errors)
