"""Exceptions raised by the login audit collaborators.

The reconciliation core never raises these to its caller: a failed lookup
becomes a ``ValidationResult`` with ``found=False`` plus a diagnostic, and a
failed server connection becomes a failed ``ServerReport``.
"""

from __future__ import annotations


class LoginAuditError(Exception):
    """Base class for all login audit errors."""


class ServerConnectionError(LoginAuditError):
    """The database server could not be contacted or queried."""

    def __init__(self, server: str, detail: str) -> None:
        super().__init__(f"Cannot connect to {server}: {detail}")
        self.server = server
        self.detail = detail


class DirectoryLookupError(LoginAuditError):
    """The directory service could not resolve a name (as opposed to
    resolving it and finding nothing)."""

    def __init__(self, name: str, detail: str) -> None:
        super().__init__(f"Directory lookup for {name} failed: {detail}")
        self.name = name
        self.detail = detail
