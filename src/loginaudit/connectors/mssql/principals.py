"""
SQL Server principal collection.

Reads logins and groups from ``sys.server_principals`` on a target server
together with the host's machine name (used to recognise local machine
accounts).
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError

from loginaudit.core.models import PrincipalKind, SecurityPrincipal
from loginaudit.errors import ServerConnectionError
from loginaudit.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

_PRINCIPALS_SQL = text(
    "SELECT name, sid, type, is_disabled "
    "FROM sys.server_principals "
    "ORDER BY principal_id"
)

_MACHINE_NAME_SQL = text(
    "SELECT CAST(SERVERPROPERTY('MachineName') AS nvarchar(128))"
)


def _split_server(server: str) -> tuple[str, int | None]:
    """Split ``host,port`` (SQL Server notation) into host and port."""
    host, sep, port = server.partition(",")
    if sep and port.strip().isdigit():
        return host.strip(), int(port)
    return server.strip(), None


def build_engine(server: str, config: Settings | None = None) -> Engine:
    """Create a SQLAlchemy engine for *server*.

    Named instances (``HOST\\INSTANCE``) are passed through to the driver
    unchanged.
    """
    config = config or default_settings
    host, port = _split_server(server)
    url = URL.create(
        config.SQL_DRIVER,
        username=config.SQL_USERNAME or None,
        password=config.SQL_PASSWORD or None,
        host=host,
        port=port,
        database=config.SQL_DATABASE,
    )
    connect_args: dict[str, Any] = {}
    if "pymssql" in config.SQL_DRIVER:
        connect_args["login_timeout"] = config.SQL_LOGIN_TIMEOUT
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


def _row_to_principal(row: Any) -> SecurityPrincipal:
    data = row._mapping
    login_type = (data["type"] or "").strip().upper()
    sid = bytes(data["sid"]) if data["sid"] is not None else None
    return SecurityPrincipal(
        name=data["name"],
        sid=sid,
        kind=PrincipalKind.group if login_type == "G" else PrincipalKind.user,
        disabled_on_server=bool(data["is_disabled"]),
        login_type=login_type,
    )


def fetch_principals(
    engine: Engine,
    server: str = "",
) -> tuple[str | None, list[SecurityPrincipal]]:
    """Read every server principal.

    Parameters
    ----------
    engine:
        Engine bound to the target server.
    server:
        Display name of the server, used in log and error messages.

    Returns
    -------
    tuple[str | None, list[SecurityPrincipal]]
        The host's machine name (``None`` if the server does not report
        one) and the principals in ``principal_id`` order.

    Raises
    ------
    ServerConnectionError
        When the server cannot be reached or queried.
    """
    try:
        with engine.connect() as conn:
            machine_name = conn.execute(_MACHINE_NAME_SQL).scalar()
            rows = conn.execute(_PRINCIPALS_SQL).all()
    except SQLAlchemyError as exc:
        logger.error("fetch_principals: server=%s failed: %s", server, exc)
        raise ServerConnectionError(server, str(exc)) from exc

    principals = [_row_to_principal(row) for row in rows]
    logger.info(
        "fetch_principals: server=%s machine=%s principals=%d",
        server,
        machine_name,
        len(principals),
    )
    return machine_name, principals


class SqlPrincipalSource:
    """Principal source that opens a short-lived engine per server."""

    def __init__(self, config: Settings | None = None) -> None:
        self.config = config or default_settings

    def __call__(self, server: str) -> tuple[str | None, list[SecurityPrincipal]]:
        try:
            engine = build_engine(server, self.config)
        except (SQLAlchemyError, ValueError) as exc:
            raise ServerConnectionError(server, str(exc)) from exc
        try:
            return fetch_principals(engine, server)
        finally:
            engine.dispose()
