"""
Selection of the server principals that can be validated against the
directory.

Filtering happens in two stages.  :func:`filter_principals` works on the
principal records alone; domain exclusion needs the parsed domain and is
applied per principal by the reconciliation engine via
:func:`is_domain_excluded`.
"""

from __future__ import annotations

from collections.abc import Iterable

from loginaudit.core.models import KindFilter, PrincipalKind, SecurityPrincipal

DOMAIN_SEPARATOR = "\\"

# Accounts that exist only on the server host and cannot be looked up in a
# directory.  The machine-account prefix ("<HOST>\") is added per server.
RESERVED_PREFIXES: tuple[str, ...] = (
    "NT SERVICE\\",
    "NT AUTHORITY\\",
    "BUILTIN\\",
)

_KIND_FILTERS = {
    KindFilter.users_only: PrincipalKind.user,
    KindFilter.groups_only: PrincipalKind.group,
}


def split_name(name: str) -> tuple[str, str] | None:
    """Split ``DOMAIN\\account`` on the first separator.

    Returns ``None`` for names without a separator, or with an empty domain
    or account part.
    """
    domain, sep, account = name.partition(DOMAIN_SEPARATOR)
    if not sep or not domain or not account:
        return None
    return domain, account


def reserved_prefixes(machine_name: str | None = None) -> tuple[str, ...]:
    """Return the reserved prefixes, upper-cased, for a server host."""
    prefixes = list(RESERVED_PREFIXES)
    if machine_name:
        prefixes.append(f"{machine_name}{DOMAIN_SEPARATOR}")
    return tuple(p.upper() for p in prefixes)


def is_domain_excluded(domain: str, excluded_domains: Iterable[str] | None) -> bool:
    if not excluded_domains:
        return False
    folded = domain.casefold()
    return any(folded == d.casefold() for d in excluded_domains)


def filter_principals(
    principals: Iterable[SecurityPrincipal],
    include_names: Iterable[str] | None = None,
    exclude_names: Iterable[str] | None = None,
    kind_filter: KindFilter = KindFilter.none,
    machine_name: str | None = None,
) -> list[SecurityPrincipal]:
    """Return the in-scope principals, preserving input order.

    Rules, applied in order:

    1. keep directory-backed principals (Windows logins and groups) whose
       name carries a domain part;
    2. drop service, built-in and local machine accounts;
    3. keep only *include_names* when given (exact match);
    4. drop *exclude_names* when given (exact match);
    5. apply *kind_filter*.
    """
    prefixes = reserved_prefixes(machine_name)
    include = set(include_names) if include_names is not None else None
    exclude = set(exclude_names) if exclude_names is not None else None
    wanted_kind = _KIND_FILTERS.get(KindFilter(kind_filter))

    selected: list[SecurityPrincipal] = []
    for principal in principals:
        if not principal.is_directory_backed or split_name(principal.name) is None:
            continue
        if principal.name.upper().startswith(prefixes):
            continue
        if include is not None and principal.name not in include:
            continue
        if exclude is not None and principal.name in exclude:
            continue
        if wanted_kind is not None and principal.kind != wanted_kind:
            continue
        selected.append(principal)
    return selected
