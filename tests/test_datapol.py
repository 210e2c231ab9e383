from dataclasses import dataclass, field
from http.client import HTTPMessage
from http.cookies import Morsel, SimpleCookie
from typing import Any

import pytest

from complogs.datapol import global_datapolicy_mapping, verify

MARKER = "hunter2"


@dataclass
class WithDatapolTag:
    key: str = field(default="", metadata={"datapolicy": "password"})


@dataclass
class WithExternalType:
    header: Any = None


@dataclass
class NoDatapol:
    key: str = ""


@dataclass
class DatapolInMember:
    secrets: WithDatapolTag = field(default_factory=WithDatapolTag)


@dataclass
class DatapolInSlice:
    secrets: list = field(default_factory=list)


@dataclass
class DatapolInMap:
    secrets: dict = field(default_factory=dict)


@dataclass
class Holder:
    v: Any = None


def _header(**values):
    message = HTTPMessage()
    for name, value in values.items():
        message[name] = value
    return message


CASES = [
    ("empty password", WithDatapolTag(), []),
    ("non-empty password", WithDatapolTag(key=MARKER), ["password"]),
    ("empty external type", WithExternalType(header=_header()), []),
    (
        "external type",
        WithExternalType(header=_header(Authorization="Bearer token")),
        ["password", "token"],
    ),
    ("no datapol tag", NoDatapol(key=MARKER), []),
    ("nested", DatapolInMember(secrets=WithDatapolTag(key=MARKER)), ["password"]),
    ("nested in slice", DatapolInSlice(secrets=[WithDatapolTag(key=MARKER)]), ["password"]),
    ("nested in map", DatapolInMap(secrets={"key": WithDatapolTag(key=MARKER)}), ["password"]),
    ("nested in map but empty", DatapolInMap(secrets={"key": WithDatapolTag()}), []),
    ("struct in interface", Holder(v=WithDatapolTag(key=MARKER)), ["password"]),
]


@pytest.mark.parametrize("name, value, expect", CASES, ids=[c[0] for c in CASES])
def test_verify(name, value, expect):
    assert sorted(verify(value)) == sorted(expect)


def test_verify_none_is_clean():
    assert verify(None) == []


def test_verify_swallows_inspection_errors():
    class Boom:
        def __len__(self):
            raise RuntimeError("broken")

    assert verify(WithDatapolTag(key=Boom())) == []


def test_multiple_reasons_are_split():
    @dataclass
    class Multi:
        key: str = field(default="", metadata={"datapolicy": "password,token"})

    assert verify(Multi(key=MARKER)) == ["password", "token"]


def test_cookie_in_dataclass():
    cookie = SimpleCookie()
    cookie["session"] = "token"
    assert verify(Holder(v=cookie)) == ["token"]
    assert verify(Holder(v=SimpleCookie())) == []


def test_global_mapping_types():
    assert sorted(global_datapolicy_mapping(HTTPMessage())) == ["password", "token"]
    assert global_datapolicy_mapping(Morsel()) == ["token"]
    assert global_datapolicy_mapping(SimpleCookie()) == ["token"]
    certificate_type = type("Certificate", (), {"__module__": "cryptography.x509.base"})
    assert global_datapolicy_mapping(certificate_type()) == ["security-key"]


def test_global_mapping_unknown_type():
    assert global_datapolicy_mapping({"a": 1}) == []