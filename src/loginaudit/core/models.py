"""Value types shared by the filter, decoder, reconciliation engine and
projector.

All models are frozen pydantic v2 models: a ``ValidationResult`` is built
once per principal and never mutated afterwards.
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict, Field

_FROZEN = ConfigDict(frozen=True)

# sys.server_principals.type codes backed by a Windows directory account
DIRECTORY_LOGIN_TYPES = frozenset({"U", "G"})


class PrincipalKind(str, enum.Enum):
    user = "user"
    group = "group"


class KindFilter(str, enum.Enum):
    none = "none"
    users_only = "users_only"
    groups_only = "groups_only"


class LookupStatus(str, enum.Enum):
    found = "found"
    not_found = "not_found"
    error = "error"


class MatchStatus(str, enum.Enum):
    """Why a result ended up with the ``found`` value it has."""

    matched = "matched"
    not_found = "not_found"
    sid_mismatch = "sid_mismatch"
    lookup_error = "lookup_error"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

class SecurityPrincipal(BaseModel):
    """A login or group registered on the database server."""

    model_config = _FROZEN

    name: str
    sid: bytes | None = None
    kind: PrincipalKind = PrincipalKind.user
    disabled_on_server: bool = False
    login_type: str = "U"

    @property
    def is_directory_backed(self) -> bool:
        return self.login_type.upper() in DIRECTORY_LOGIN_TYPES


class DirectoryObject(BaseModel):
    model_config = _FROZEN

    sid: bytes | None = None
    account_control: int | None = None
    distinguished_name: str | None = None


class LookupOutcome(BaseModel):
    """Three-state answer of a directory resolver."""

    model_config = _FROZEN

    status: LookupStatus
    directory_object: DirectoryObject | None = None
    detail: str | None = None

    @classmethod
    def found(cls, directory_object: DirectoryObject) -> "LookupOutcome":
        return cls(status=LookupStatus.found, directory_object=directory_object)

    @classmethod
    def not_found(cls) -> "LookupOutcome":
        return cls(status=LookupStatus.not_found)

    @classmethod
    def error(cls, detail: str) -> "LookupOutcome":
        return cls(status=LookupStatus.error, detail=detail)


class ValidationOptions(BaseModel):
    """Per-run filter and view options."""

    include_names: set[str] | None = None
    exclude_names: set[str] | None = None
    kind_filter: KindFilter = KindFilter.none
    excluded_domains: set[str] = Field(default_factory=set)
    detailed: bool = False


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

class AccountControlAttributes(BaseModel):
    """Decoded ``userAccountControl`` bits.

    Every field is tri-state: ``None`` means the flags were not available
    (group, lookup failure, SID mismatch), which is distinct from a verified
    ``False``.
    """

    model_config = _FROZEN

    account_not_delegated: bool | None = None
    allow_reversible_password_encryption: bool | None = None
    cannot_change_password: bool | None = None
    password_expired: bool | None = None
    locked_out: bool | None = None
    enabled: bool | None = None
    password_never_expires: bool | None = None
    password_not_required: bool | None = None
    smartcard_logon_required: bool | None = None
    trusted_for_delegation: bool | None = None
    user_account_control: int | None = None


class ValidationResult(BaseModel):
    model_config = _FROZEN

    server: str
    domain: str
    login: str
    kind: PrincipalKind
    found: bool
    status: MatchStatus
    disabled_on_server: bool
    attributes: AccountControlAttributes = Field(
        default_factory=AccountControlAttributes
    )


class Diagnostic(BaseModel):
    """Side-channel event raised while reconciling one principal."""

    model_config = _FROZEN

    kind: MatchStatus
    server: str
    domain: str
    login: str
    message: str
    server_sid: str | None = None
    directory_sid: str | None = None
    distinguished_name: str | None = None
