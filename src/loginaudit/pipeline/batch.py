"""
Per-server validation runs.

Each target server is an independent unit of work: principals are read,
filtered and reconciled against the directory, and the results projected
into the requested view.  A server that cannot be reached gets a failed
report; the remaining servers still run.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from loginaudit.core.filters import filter_principals
from loginaudit.core.models import Diagnostic, SecurityPrincipal, ValidationOptions
from loginaudit.core.projection import project
from loginaudit.core.reconcile import DirectoryResolver, reconcile
from loginaudit.errors import ServerConnectionError

logger = logging.getLogger(__name__)

# server -> (machine name, principals); raises ServerConnectionError
PrincipalSource = Callable[[str], tuple[str | None, list[SecurityPrincipal]]]


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


class ServerReport(BaseModel):
    server: str
    status: str = "pending"
    started_at: datetime | None = None
    finished_at: datetime | None = None
    records_found: int = 0
    records_in_scope: int = 0
    results: list[dict[str, Any]] = Field(default_factory=list)
    diagnostics: list[Diagnostic] = Field(default_factory=list)
    error_message: str | None = None


def validate_server(
    server: str,
    options: ValidationOptions,
    resolver: DirectoryResolver,
    principal_source: PrincipalSource,
    cancel: threading.Event | None = None,
) -> ServerReport:
    """Validate every in-scope principal of one server.

    Never raises: connection failures and unexpected errors are recorded on
    the returned report with ``status="failed"``.
    """
    report = ServerReport(server=server, status="running", started_at=_utcnow())

    try:
        machine_name, principals = principal_source(server)
        report.records_found = len(principals)

        in_scope = filter_principals(
            principals,
            include_names=options.include_names,
            exclude_names=options.exclude_names,
            kind_filter=options.kind_filter,
            machine_name=machine_name,
        )
        report.records_in_scope = len(in_scope)

        outcome = reconcile(
            in_scope,
            resolver,
            excluded_domains=options.excluded_domains,
            server=server,
            cancel=cancel,
        )
        report.results = [project(r, detailed=options.detailed) for r in outcome.results]
        report.diagnostics = outcome.diagnostics
        report.status = "cancelled" if outcome.cancelled else "completed"

        logger.info(
            "validate_server: server=%s %s. found=%d in_scope=%d results=%d",
            server,
            report.status,
            report.records_found,
            report.records_in_scope,
            len(report.results),
        )

    except ServerConnectionError as exc:
        logger.error("validate_server: server=%s unreachable: %s", server, exc.detail)
        report.status = "failed"
        report.error_message = str(exc)

    except Exception as exc:
        logger.error(
            "validate_server: server=%s failed: %s", server, exc, exc_info=True
        )
        report.status = "failed"
        report.error_message = str(exc)

    report.finished_at = _utcnow()
    return report


def validate_servers(
    servers: Iterable[str],
    options: ValidationOptions,
    resolver: DirectoryResolver,
    principal_source: PrincipalSource,
    cancel: threading.Event | None = None,
) -> list[ServerReport]:
    """Run :func:`validate_server` for each server, in order."""
    reports: list[ServerReport] = []
    for server in servers:
        if cancel is not None and cancel.is_set():
            reports.append(
                ServerReport(server=server, status="cancelled", finished_at=_utcnow())
            )
            continue
        reports.append(
            validate_server(server, options, resolver, principal_source, cancel=cancel)
        )

    failed = sum(1 for r in reports if r.status == "failed")
    logger.info("validate_servers: %d servers, %d failed", len(reports), failed)
    return reports
