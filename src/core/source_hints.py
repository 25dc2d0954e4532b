"""Helpers for attributing a notice to the code that produced it."""

from __future__ import annotations

import inspect
from typing import Any, Optional

from core.models import UNKNOWN_SOURCE

CLOSURE = "Closure"
METHOD_SEPARATOR = "::"


def _class_name(target: Any) -> Optional[str]:
    if inspect.isclass(target):
        return target.__qualname__
    if isinstance(target, str):
        return target or None
    if target is None:
        return None
    return type(target).__qualname__


def describe_source(callback: Any) -> str:
    """Return a human-readable name for a notice callback.

    Supported shapes:
    - "function_name" strings are returned unchanged
    - (Class, "method") or (instance, "method") pairs become Class::method
    - bound methods become Class::method
    - lambdas cannot be told apart and all become "Closure"
    - plain functions use their qualified name
    - callable instances become Class::__call__
    """

    if isinstance(callback, str):
        return callback.strip() or UNKNOWN_SOURCE

    if isinstance(callback, (tuple, list)) and len(callback) >= 2:
        class_name = _class_name(callback[0])
        method = callback[1]
        if not class_name or not isinstance(method, str) or not method:
            return UNKNOWN_SOURCE
        return f"{class_name}{METHOD_SEPARATOR}{method}"

    if inspect.ismethod(callback):
        owner = _class_name(callback.__self__)
        return f"{owner}{METHOD_SEPARATOR}{callback.__name__}"

    if inspect.isfunction(callback):
        if callback.__name__ == "<lambda>":
            return CLOSURE
        return callback.__qualname__

    if inspect.isbuiltin(callback):
        return callback.__name__

    if callable(callback) and not inspect.isclass(callback):
        return f"{type(callback).__qualname__}{METHOD_SEPARATOR}__call__"

    return UNKNOWN_SOURCE


def split_source_hint(source_hint: str) -> tuple[str, Optional[str]]:
    """Split "Class::method" into (class, method); plain names have no method."""

    if METHOD_SEPARATOR not in source_hint:
        return source_hint, None
    owner, _, method = source_hint.partition(METHOD_SEPARATOR)
    if not owner or not method:
        return source_hint, None
    return owner, method
