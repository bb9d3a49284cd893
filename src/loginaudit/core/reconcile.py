"""
Reconciliation of server principals against the directory service.

For every in-scope principal the directory is asked for an object of the
same name and kind.  A principal only counts as found when the directory
object also carries the same SID: a name that resolves to a different SID
means the account was renamed, deleted and recreated, or reused.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator, Iterable
from typing import Protocol

from pydantic import BaseModel, Field

from loginaudit.core.account_control import (
    UNKNOWN_ATTRIBUTES,
    decode_account_control,
    describe_flags,
)
from loginaudit.core.filters import is_domain_excluded, split_name
from loginaudit.core.models import (
    Diagnostic,
    LookupOutcome,
    LookupStatus,
    MatchStatus,
    PrincipalKind,
    SecurityPrincipal,
    ValidationResult,
)
from loginaudit.core.sid import sid_to_string, sids_match

logger = logging.getLogger(__name__)


class DirectoryResolver(Protocol):
    def lookup(self, qualified_name: str, kind: PrincipalKind) -> LookupOutcome:
        ...


class ReconciliationReport(BaseModel):
    server: str = ""
    results: list[ValidationResult] = Field(default_factory=list)
    diagnostics: list[Diagnostic] = Field(default_factory=list)
    cancelled: bool = False


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _safe_lookup(
    resolver: DirectoryResolver,
    principal: SecurityPrincipal,
) -> LookupOutcome:
    """Call the resolver, turning any exception into an error outcome."""
    try:
        outcome = resolver.lookup(principal.name, principal.kind)
    except Exception as exc:
        logger.debug(
            "_safe_lookup: resolver raised for %s: %s",
            principal.name,
            exc,
            exc_info=True,
        )
        return LookupOutcome.error(str(exc) or exc.__class__.__name__)
    if outcome is None:
        return LookupOutcome.not_found()
    return outcome


def _reconcile_one(
    principal: SecurityPrincipal,
    domain: str,
    login: str,
    outcome: LookupOutcome,
    server: str,
) -> tuple[ValidationResult, Diagnostic | None]:
    server_sid = sid_to_string(principal.sid)
    diagnostic: Diagnostic | None = None
    flags: int | None = None

    if outcome.status == LookupStatus.error:
        status = MatchStatus.lookup_error
        message = f"Directory lookup failed: {outcome.detail}"
        logger.warning(
            "reconcile: server=%s domain=%s login=%s lookup failed: %s",
            server, domain, login, outcome.detail,
        )
        diagnostic = Diagnostic(
            kind=status, server=server, domain=domain, login=login,
            message=message, server_sid=server_sid,
        )

    elif outcome.status == LookupStatus.not_found or outcome.directory_object is None:
        status = MatchStatus.not_found
        logger.info(
            "reconcile: server=%s domain=%s login=%s not found in directory",
            server, domain, login,
        )
        diagnostic = Diagnostic(
            kind=status, server=server, domain=domain, login=login,
            message="Not found in directory", server_sid=server_sid,
        )

    else:
        directory_object = outcome.directory_object
        if sids_match(principal.sid, directory_object.sid):
            status = MatchStatus.matched
            flags = directory_object.account_control
            if principal.kind == PrincipalKind.user:
                logger.debug(
                    "reconcile: server=%s domain=%s login=%s flags=%s %s",
                    server, domain, login, flags, describe_flags(flags),
                )
        else:
            status = MatchStatus.sid_mismatch
            directory_sid = sid_to_string(directory_object.sid)
            dn = directory_object.distinguished_name
            logger.warning(
                "reconcile: server=%s domain=%s login=%s SID mismatch "
                "(server=%s directory=%s dn=%s)",
                server, domain, login, server_sid, directory_sid, dn,
            )
            detail = f"server {server_sid}, directory {directory_sid}"
            if dn:
                detail = f"{detail}, {dn}"
            diagnostic = Diagnostic(
                kind=status, server=server, domain=domain, login=login,
                message=f"Name resolves in the directory but the SID differs ({detail})",
                server_sid=server_sid,
                directory_sid=directory_sid,
                distinguished_name=dn,
            )

    if principal.kind == PrincipalKind.user:
        attributes = decode_account_control(flags)
    else:
        attributes = UNKNOWN_ATTRIBUTES

    result = ValidationResult(
        server=server,
        domain=domain,
        login=login,
        kind=principal.kind,
        found=status == MatchStatus.matched,
        status=status,
        disabled_on_server=principal.disabled_on_server,
        attributes=attributes,
    )
    return result, diagnostic


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def iter_reconcile(
    principals: Iterable[SecurityPrincipal],
    resolver: DirectoryResolver,
    excluded_domains: Iterable[str] | None = None,
    server: str = "",
    cancel: threading.Event | None = None,
) -> Generator[tuple[ValidationResult, Diagnostic | None], None, bool]:
    """Yield ``(result, diagnostic)`` pairs one principal at a time, in
    input order.

    Principals whose domain is in *excluded_domains* (case-insensitive) are
    skipped without a lookup.  Iteration stops before the next lookup once
    *cancel* is set.  The generator returns ``True`` when it stopped early
    because of *cancel*, ``False`` when every principal was handled.
    """
    excluded = list(excluded_domains or ())

    for principal in principals:
        if cancel is not None and cancel.is_set():
            logger.info("iter_reconcile: server=%s cancelled", server)
            return True

        parts = split_name(principal.name)
        if parts is None:
            logger.debug("iter_reconcile: skipping %r (no domain part)", principal.name)
            continue
        domain, login = parts
        if is_domain_excluded(domain, excluded):
            logger.debug(
                "iter_reconcile: skipping %s (domain %s excluded)",
                principal.name,
                domain,
            )
            continue

        outcome = _safe_lookup(resolver, principal)
        yield _reconcile_one(principal, domain, login, outcome, server)

    return False


def reconcile(
    principals: Iterable[SecurityPrincipal],
    resolver: DirectoryResolver,
    excluded_domains: Iterable[str] | None = None,
    server: str = "",
    cancel: threading.Event | None = None,
) -> ReconciliationReport:
    """Validate each principal against the directory.

    Parameters
    ----------
    principals:
        Principals already passed through ``filter_principals``.
    resolver:
        Directory lookup capability.
    excluded_domains:
        Domains whose principals produce no result at all.
    server:
        Name of the database server, copied onto every result and
        diagnostic.
    cancel:
        Optional event; once set, no further lookups are issued.

    Returns
    -------
    ReconciliationReport
        One result per non-excluded principal, in input order, plus the
        diagnostics raised along the way.
    """
    results: list[ValidationResult] = []
    diagnostics: list[Diagnostic] = []

    pairs = iter_reconcile(
        principals, resolver, excluded_domains, server=server, cancel=cancel
    )
    while True:
        try:
            result, diagnostic = next(pairs)
        except StopIteration as stop:
            cancelled = bool(stop.value)
            break
        results.append(result)
        if diagnostic is not None:
            diagnostics.append(diagnostic)

    logger.info(
        "reconcile: server=%s validated=%d diagnostics=%d cancelled=%s",
        server,
        len(results),
        len(diagnostics),
        cancelled,
    )
    return ReconciliationReport(
        server=server,
        results=results,
        diagnostics=diagnostics,
        cancelled=cancelled,
    )
