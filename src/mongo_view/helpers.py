"""Helpers for normalising the documents callers pass to builders."""

from __future__ import annotations

import copy
from typing import Any, Mapping

from pymongo import ASCENDING


def _sort_document(key_or_list: Any, direction: int | None = None) -> dict[str, Any]:
    """Helper to generate a sort specifying document.

    Takes a mapping, a list of (key, direction) pairs, a single key, or a
    single key and direction.
    """
    if isinstance(key_or_list, str):
        return {key_or_list: ASCENDING if direction is None else direction}
    if direction is not None:
        raise TypeError("direction is only allowed with a single key")
    if isinstance(key_or_list, Mapping):
        return dict(key_or_list)
    if not isinstance(key_or_list, (list, tuple)):
        raise TypeError("must use a key, a mapping or a list of (key, direction) pairs, "
                        "not: " + repr(key_or_list))

    sort: dict[str, Any] = {}
    for (key, value) in key_or_list:
        if not isinstance(key, str):
            raise TypeError("first item in each key pair must be a string")
        sort[key] = value
    return sort


def _fields_list_to_dict(fields: Any) -> dict[str, Any]:
    """Takes a list of field names and returns a matching dictionary.

    ["a", "b"] becomes {"a": 1, "b": 1}
    """
    if isinstance(fields, Mapping):
        return dict(fields)

    as_dict = {}
    for field in fields:
        if not isinstance(field, str):
            raise TypeError("fields must be a list of key names, each an instance of str")
        as_dict[field] = 1
    return as_dict


def _copy_document(document: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Deep copy ``document`` so a descriptor never shares it with the caller."""
    if document is None:
        return None
    return copy.deepcopy(dict(document))
