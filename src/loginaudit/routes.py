"""
Login audit - API Routes

Endpoint for validating the Windows logins and groups of one or more SQL
Server instances against Active Directory.
"""

from __future__ import annotations

import logging
from collections.abc import Generator

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from loginaudit.connectors.ad.resolver import LdapDirectoryResolver
from loginaudit.connectors.mssql.principals import SqlPrincipalSource
from loginaudit.core.models import ValidationOptions
from loginaudit.core.reconcile import DirectoryResolver
from loginaudit.pipeline.batch import PrincipalSource, ServerReport, validate_servers
from loginaudit.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["validation"])


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_resolver() -> Generator[DirectoryResolver, None, None]:
    """Provide a directory resolver for one request, closed afterwards."""
    resolver = LdapDirectoryResolver(settings)
    try:
        yield resolver
    finally:
        resolver.close()


def get_principal_source() -> PrincipalSource:
    return SqlPrincipalSource(settings)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class ValidateRequest(BaseModel):
    """Request body for POST /api/v1/validate."""

    servers: list[str] = Field(min_length=1)
    options: ValidationOptions = Field(default_factory=ValidationOptions)


# ---------------------------------------------------------------------------
# Route: validate
# ---------------------------------------------------------------------------

@router.post("/validate", response_model=list[ServerReport])
def validate(
    body: ValidateRequest,
    resolver: DirectoryResolver = Depends(get_resolver),
    principal_source: PrincipalSource = Depends(get_principal_source),
) -> list[ServerReport]:
    """Validate the directory-backed principals of each requested server.

    Domains listed in ``EXCLUDED_DOMAINS`` are excluded in addition to the
    ones given in the request.
    """
    options = body.options.model_copy(
        update={
            "excluded_domains": set(body.options.excluded_domains)
            | set(settings.EXCLUDED_DOMAINS)
        }
    )
    logger.info(
        "validate: servers=%s kind_filter=%s detailed=%s",
        body.servers,
        options.kind_filter.value,
        options.detailed,
    )
    return validate_servers(body.servers, options, resolver, principal_source)
