"""Summary and detailed views of a ``ValidationResult``."""

from __future__ import annotations

from typing import Any

from loginaudit.core.models import ValidationResult

_IDENTITY_FIELDS = ("server", "domain", "login", "kind", "status")

SUMMARY_FIELDS: tuple[str, ...] = _IDENTITY_FIELDS + (
    "found",
    "disabled_on_server",
    "enabled",
    "password_expired",
    "locked_out",
    "password_not_required",
)

DETAILED_FIELDS: tuple[str, ...] = SUMMARY_FIELDS + (
    "account_not_delegated",
    "allow_reversible_password_encryption",
    "cannot_change_password",
    "password_never_expires",
    "smartcard_logon_required",
    "trusted_for_delegation",
)


def project(result: ValidationResult, detailed: bool = False) -> dict[str, Any]:
    """Return a flat view of *result*.

    The raw ``user_account_control`` value is never part of a view.  The
    summary view also leaves out the delegation, password-policy and
    smartcard attributes.
    """
    flat = result.model_dump(mode="json", exclude={"attributes"})
    flat.update(result.attributes.model_dump(exclude={"user_account_control"}))
    fields = DETAILED_FIELDS if detailed else SUMMARY_FIELDS
    return {name: flat[name] for name in fields}
