"""
Active Directory lookup of server principals.

Resolves ``DOMAIN\\account`` names to directory objects over LDAP and returns
their ``objectSid`` and ``userAccountControl`` attributes.  One read-only
connection is opened per NetBIOS domain on first use and kept for the
lifetime of the resolver.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import ldap3
from ldap3 import SUBTREE, Connection, Server
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from loginaudit.core.filters import split_name
from loginaudit.core.models import DirectoryObject, LookupOutcome, PrincipalKind
from loginaudit.errors import DirectoryLookupError
from loginaudit.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

# Attributes requested from the directory
_LDAP_ATTRIBUTES = [
    "objectSid",
    "userAccountControl",
]

# LDAP result codes a search may end with while still returning entries
_SEARCH_OK_CODES = (0, 4)  # success, sizeLimitExceeded

_FILTERS = {
    PrincipalKind.user: "(&(objectCategory=person)(objectClass=user)(sAMAccountName={name}))",
    PrincipalKind.group: "(&(objectClass=group)(sAMAccountName={name}))",
}


def _first_raw(raw_attributes: dict[str, Any], name: str) -> bytes | None:
    """Return the first raw value of an attribute (case-insensitive key)."""
    for key, values in raw_attributes.items():
        if key.lower() == name.lower():
            if isinstance(values, (list, tuple)):
                return values[0] if values else None
            return values
    return None


def _as_text(value: bytes | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _parse_account_control(value: bytes | None) -> int | None:
    """Parse the raw ``userAccountControl`` value.  Anything that is not an
    integer is treated as unavailable."""
    text = _as_text(value)
    if text is None:
        return None
    try:
        return int(text.strip()) & 0xFFFFFFFF
    except ValueError:
        logger.warning("_parse_account_control: ignoring non-integer value %r", text)
        return None


def _entry_to_object(entry: dict[str, Any]) -> DirectoryObject:
    raw_attributes = entry.get("raw_attributes", {})
    sid = _first_raw(raw_attributes, "objectSid")
    return DirectoryObject(
        sid=bytes(sid) if sid else None,
        account_control=_parse_account_control(
            _first_raw(raw_attributes, "userAccountControl")
        ),
        distinguished_name=entry.get("dn") or None,
    )


class LdapDirectoryResolver:
    """Directory resolver backed by ldap3.

    Parameters
    ----------
    config:
        Settings holding the LDAP server, bind credentials and per-domain
        overrides.  Defaults to the process settings.
    connection_factory:
        Optional callable ``(domain) -> ldap3.Connection`` returning a bound
        connection.  Used by tests to plug in an ldap3 mock connection.
    """

    def __init__(
        self,
        config: Settings | None = None,
        connection_factory: Callable[[str], Connection] | None = None,
    ) -> None:
        self.config = config or default_settings
        self._connection_factory = connection_factory or self._connect
        self._connections: dict[str, Connection] = {}
        self._failed_domains: dict[str, str] = {}

    # -- Connection handling ---------------------------------------------------

    def _host_for(self, domain: str) -> str:
        overrides = {k.upper(): v for k, v in self.config.LDAP_DOMAINS.items()}
        return overrides.get(domain) or self.config.LDAP_SERVER or domain

    def _connect(self, domain: str) -> Connection:
        host = self._host_for(domain)
        ldap_server = Server(
            host,
            port=int(self.config.LDAP_PORT),
            use_ssl=self.config.LDAP_USE_SSL,
            get_info=ldap3.DSA,
        )
        conn = Connection(
            ldap_server,
            user=self.config.LDAP_BIND_DN or None,
            password=self.config.LDAP_BIND_PASSWORD or None,
            auto_bind=True,
            read_only=True,
            receive_timeout=self.config.LDAP_RECEIVE_TIMEOUT,
        )
        logger.info(
            "LdapDirectoryResolver: connected to %s:%s for domain %s (ssl=%s)",
            host,
            self.config.LDAP_PORT,
            domain,
            self.config.LDAP_USE_SSL,
        )
        return conn

    def _connection_for(self, domain: str) -> Connection:
        if domain in self._failed_domains:
            raise DirectoryLookupError(domain, self._failed_domains[domain])
        conn = self._connections.get(domain)
        if conn is None:
            try:
                conn = self._connection_factory(domain)
            except LDAPException as exc:
                self._failed_domains[domain] = str(exc)
                raise DirectoryLookupError(domain, str(exc)) from exc
            self._connections[domain] = conn
        return conn

    def _search_base(self, domain: str, conn: Connection) -> str:
        bases = {k.upper(): v for k, v in self.config.LDAP_SEARCH_BASES.items()}
        base = bases.get(domain)
        if base:
            return base
        info = conn.server.info
        naming = info.other.get("defaultNamingContext") if info is not None else None
        if naming:
            return naming[0]
        raise DirectoryLookupError(domain, "no search base configured or advertised")

    # -- Lookup ----------------------------------------------------------------

    def lookup(self, qualified_name: str, kind: PrincipalKind) -> LookupOutcome:
        """Look up *qualified_name* as a user or group.

        Returns a found outcome with the first matching entry, a not-found
        outcome when the search returns nothing, or an error outcome when
        the directory cannot be queried.
        """
        parts = split_name(qualified_name)
        if parts is None:
            return LookupOutcome.error(f"{qualified_name!r} is not a DOMAIN\\name value")
        domain, account = parts
        domain = domain.upper()

        try:
            conn = self._connection_for(domain)
            succeeded = conn.search(
                search_base=self._search_base(domain, conn),
                search_filter=_FILTERS[kind].format(name=escape_filter_chars(account)),
                search_scope=SUBTREE,
                attributes=_LDAP_ATTRIBUTES,
                size_limit=2,
            )
        except DirectoryLookupError as exc:
            return LookupOutcome.error(exc.detail)
        except LDAPException as exc:
            logger.error(
                "LdapDirectoryResolver.lookup: %s failed: %s",
                qualified_name,
                exc,
                exc_info=True,
            )
            return LookupOutcome.error(str(exc))

        result = conn.result or {}
        if not succeeded and result.get("result") not in _SEARCH_OK_CODES:
            detail = str(result.get("description") or "search failed")
            if result.get("message"):
                detail = f"{detail}: {result['message']}"
            logger.warning(
                "LdapDirectoryResolver.lookup: %s search failed: %s",
                qualified_name,
                detail,
            )
            return LookupOutcome.error(detail)

        entries = [
            r for r in (conn.response or []) if r.get("type") == "searchResEntry"
        ]
        if not entries:
            return LookupOutcome.not_found()
        if len(entries) > 1:
            logger.warning(
                "LdapDirectoryResolver.lookup: %s matched %d entries, using the first",
                qualified_name,
                len(entries),
            )
        return LookupOutcome.found(_entry_to_object(entries[0]))

    def close(self) -> None:
        for domain, conn in self._connections.items():
            try:
                conn.unbind()
            except LDAPException as exc:
                logger.debug("LdapDirectoryResolver.close: unbind %s: %s", domain, exc)
        self._connections.clear()
        self._failed_domains.clear()

    def __enter__(self) -> "LdapDirectoryResolver":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
