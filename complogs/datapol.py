"""Detection of sensitive data inside values that are about to be logged."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from http.cookies import Morsel
from typing import Any

_log = logging.getLogger(__name__)

_HEADER = ("password", "token")
_COOKIE = ("token",)
_CERTIFICATE = ("security-key",)

# Matched by qualified type name so that no dependency on the types is needed.
_BY_TYPE_NAME: dict[str, tuple[str, ...]] = {
    "http.client.HTTPMessage": _HEADER,
    "wsgiref.headers.Headers": _HEADER,
    "http.cookies.Morsel": _COOKIE,
    "http.cookies.SimpleCookie": _COOKIE,
    "http.cookiejar.Cookie": _COOKIE,
    "cryptography.x509.Certificate": _CERTIFICATE,
    "cryptography.x509.base.Certificate": _CERTIFICATE,
    "cryptography.hazmat.bindings._rust.x509.Certificate": _CERTIFICATE,
}


def _by_type(t: type) -> list[str]:
    return list(_BY_TYPE_NAME.get(f"{t.__module__}.{t.__qualname__}", ()))


def _is_zero(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, bytes, bytearray, bool, int, float, complex)):
        return not value
    if isinstance(value, Morsel):
        return not value.key and not value.value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return all(_is_zero(getattr(value, f.name)) for f in dataclasses.fields(value))
    try:
        return len(value) == 0
    except TypeError:
        pass
    try:
        attributes = vars(value)
    except TypeError:
        return False
    return all(_is_zero(v) for v in attributes.values())


def _datatypes(value: Any) -> list[str]:
    types = _by_type(type(value))
    if types and not _is_zero(value):
        return types
    if isinstance(value, Mapping):
        for key, item in value.items():
            found = _datatypes(key) or _datatypes(item)
            if found:
                return found
    elif isinstance(value, (list, tuple, set, frozenset)):
        for item in value:
            found = _datatypes(item)
            if found:
                return found
    elif dataclasses.is_dataclass(value) and not isinstance(value, type):
        for f in dataclasses.fields(value):
            item = getattr(value, f.name)
            reason = f.metadata.get("datapolicy")
            if reason is not None and not _is_zero(item):
                return reason.split(",")
            found = _datatypes(item)
            if found:
                return found
    return []


def verify(value: Any) -> list[str]:
    """Return the kinds of sensitive data found in ``value``.

    Dataclass fields declare their kind through ``metadata={"datapolicy": ...}``.
    """
    try:
        return _datatypes(value)
    except Exception as exc:  # inspection must never break logging
        _log.warning("Error while inspecting arguments for sensitive data: %s", exc)
        return []


def global_datapolicy_mapping(value: Any) -> list[str]:
    """Return the sensitive data kinds carried by the type of ``value``."""
    return _by_type(type(value))