"""Shared pytest fixtures for login audit tests.

Directory lookups are served by an in-memory fake resolver, and the SQL
Server principal reader runs against an in-memory SQLite database that
exposes a ``sys.server_principals`` table through an attached schema.
"""

from __future__ import annotations

import struct
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from loginaudit.core.models import (
    DirectoryObject,
    LookupOutcome,
    PrincipalKind,
    SecurityPrincipal,
)
from loginaudit.errors import ServerConnectionError
from loginaudit.main import app
from loginaudit.routes import get_principal_source, get_resolver

DOMAIN_SID = "S-1-5-21-1004336348-1177238915-682003330"


def string_to_sid(value: str) -> bytes:
    """Pack ``S-1-5-21-...`` into the binary form stored by SQL Server and AD."""
    parts = value.strip().split("-")
    if len(parts) < 3 or parts[0].upper() != "S":
        raise ValueError(f"Invalid SID string: {value!r}")

    sub_authorities = [int(p) for p in parts[3:]]
    data = struct.pack("BB", int(parts[1]), len(sub_authorities))
    data += int(parts[2]).to_bytes(6, byteorder="big")
    for sub_authority in sub_authorities:
        data += struct.pack("<I", sub_authority)
    return data


def make_sid(rid: int) -> bytes:
    return string_to_sid(f"{DOMAIN_SID}-{rid}")


# ---------------------------------------------------------------------------
# Fake directory
# ---------------------------------------------------------------------------

class FakeResolver:
    """Resolver answering from a dict of ``name -> outcome``.

    A value may be a ``LookupOutcome``, a ``DirectoryObject`` (found) or an
    exception instance (raised).  Unknown names are not found.
    """

    def __init__(self, entries: dict | None = None) -> None:
        self.entries = dict(entries or {})
        self.calls: list[tuple[str, PrincipalKind]] = []

    def lookup(self, qualified_name: str, kind: PrincipalKind) -> LookupOutcome:
        self.calls.append((qualified_name, kind))
        value = self.entries.get(qualified_name)
        if value is None:
            return LookupOutcome.not_found()
        if isinstance(value, Exception):
            raise value
        if isinstance(value, DirectoryObject):
            return LookupOutcome.found(value)
        return value


@pytest.fixture()
def fake_resolver():
    """Factory building a ``FakeResolver`` from a dict of entries."""
    return FakeResolver


@pytest.fixture()
def principals() -> list[SecurityPrincipal]:
    """Three users and two groups, all in the CORP domain."""
    return [
        SecurityPrincipal(name="CORP\\alice", sid=make_sid(1001), kind=PrincipalKind.user),
        SecurityPrincipal(name="CORP\\bob", sid=make_sid(1002), kind=PrincipalKind.user),
        SecurityPrincipal(
            name="CORP\\SQL Admins", sid=make_sid(2001), kind=PrincipalKind.group,
            login_type="G",
        ),
        SecurityPrincipal(
            name="CORP\\carol", sid=make_sid(1003), kind=PrincipalKind.user,
            disabled_on_server=True,
        ),
        SecurityPrincipal(
            name="CORP\\svcgroup", sid=make_sid(2002), kind=PrincipalKind.group,
            login_type="G",
        ),
    ]


# ---------------------------------------------------------------------------
# SQLite stand-in for sys.server_principals
# ---------------------------------------------------------------------------

SERVER_PRINCIPAL_ROWS = [
    (1, "sa", None, "S", 0),
    (2, "public", None, "R", 0),
    (3, "NT AUTHORITY\\SYSTEM", b"\x01\x01\x00\x00\x00\x00\x00\x05\x12\x00\x00\x00", "U", 0),
    (4, "NT SERVICE\\MSSQLSERVER", b"\x01\x06", "U", 0),
    (5, "BUILTIN\\Administrators", b"\x01\x02", "G", 0),
    (6, "SQLHOST\\localadmin", b"\x01\x05", "U", 0),
    (7, "CORP\\alice", make_sid(1001), "U", 0),
    (8, "CORP\\DBA Team", make_sid(2001), "G", 0),
    (9, "CORP\\bob", make_sid(1002), "U", 1),
    (10, "##MS_PolicyEventProcessingLogin##", b"\x01", "C", 1),
]


@pytest.fixture()
def sqlite_engine() -> Generator[Engine, None, None]:
    """In-memory SQLite engine with a populated ``sys.server_principals``."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _attach_sys_schema(dbapi_conn, connection_record):
        dbapi_conn.create_function("SERVERPROPERTY", 1, lambda prop: "SQLHOST")
        dbapi_conn.execute("ATTACH DATABASE ':memory:' AS sys")

    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE sys.server_principals ("
            "principal_id INTEGER PRIMARY KEY, name TEXT, sid BLOB, "
            "type TEXT, is_disabled INTEGER)"
        ))
        for row in SERVER_PRINCIPAL_ROWS:
            conn.execute(
                text(
                    "INSERT INTO sys.server_principals "
                    "VALUES (:id, :name, :sid, :type, :disabled)"
                ),
                dict(zip(("id", "name", "sid", "type", "disabled"), row)),
            )

    yield engine
    engine.dispose()


# ---------------------------------------------------------------------------
# FastAPI TestClient with dependency overrides
# ---------------------------------------------------------------------------

@pytest.fixture()
def directory() -> FakeResolver:
    """Directory used by the API client: alice matches, bob was recreated."""
    return FakeResolver({
        "CORP\\alice": DirectoryObject(sid=make_sid(1001), account_control=512),
        "CORP\\bob": DirectoryObject(sid=make_sid(9999), account_control=514),
        "CORP\\DBA Team": DirectoryObject(sid=make_sid(2001)),
    })


@pytest.fixture()
def server_principals(sqlite_engine) -> dict:
    """``server -> (machine name, principals)`` served to the API client."""
    from loginaudit.connectors.mssql.principals import fetch_principals

    return {"sql01": fetch_principals(sqlite_engine, "sql01")}


@pytest.fixture()
def client(directory, server_principals) -> Generator[TestClient, None, None]:
    """Return a ``TestClient`` wired to the fake directory and principals."""
    def _source(server: str):
        if server not in server_principals:
            raise ServerConnectionError(server, "login timeout expired")
        return server_principals[server]

    def _override_get_resolver():
        yield directory

    app.dependency_overrides[get_resolver] = _override_get_resolver
    app.dependency_overrides[get_principal_source] = lambda: _source
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
    app.dependency_overrides.clear()
