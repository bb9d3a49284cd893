"""
Decoding of the Active Directory ``userAccountControl`` bitmask.

Only the bits registered in :class:`AccountControl` are known to this module;
any other bit in a value is ignored.
"""

from __future__ import annotations

import enum
from types import MappingProxyType

from loginaudit.core.models import AccountControlAttributes

_UINT32_MASK = 0xFFFFFFFF


class AccountControl(enum.IntFlag):
    SCRIPT = 0x0001
    ACCOUNTDISABLE = 0x0002
    HOMEDIR_REQUIRED = 0x0008
    LOCKOUT = 0x0010
    PASSWD_NOTREQD = 0x0020
    PASSWD_CANT_CHANGE = 0x0040
    ENCRYPTED_TEXT_PWD_ALLOWED = 0x0080
    NORMAL_ACCOUNT = 0x0200
    DONT_EXPIRE_PASSWORD = 0x10000
    SMARTCARD_REQUIRED = 0x40000
    TRUSTED_FOR_DELEGATION = 0x80000
    NOT_DELEGATED = 0x100000
    PASSWORD_EXPIRED = 0x800000


# Attribute name -> bit.  ``enabled`` is derived from ACCOUNTDISABLE and is
# handled separately.
_ATTRIBUTE_BITS = MappingProxyType({
    "account_not_delegated": AccountControl.NOT_DELEGATED,
    "allow_reversible_password_encryption": AccountControl.ENCRYPTED_TEXT_PWD_ALLOWED,
    "cannot_change_password": AccountControl.PASSWD_CANT_CHANGE,
    "password_expired": AccountControl.PASSWORD_EXPIRED,
    "locked_out": AccountControl.LOCKOUT,
    "password_never_expires": AccountControl.DONT_EXPIRE_PASSWORD,
    "password_not_required": AccountControl.PASSWD_NOTREQD,
    "smartcard_logon_required": AccountControl.SMARTCARD_REQUIRED,
    "trusted_for_delegation": AccountControl.TRUSTED_FOR_DELEGATION,
})

UNKNOWN_ATTRIBUTES = AccountControlAttributes()


def decode_account_control(flags: int | None) -> AccountControlAttributes:
    """Decode a ``userAccountControl`` value into named attributes.

    Parameters
    ----------
    flags:
        The raw 32-bit value from the directory, or ``None`` when it is not
        available.

    Returns
    -------
    AccountControlAttributes
        All attributes ``None`` when *flags* is ``None``; otherwise every
        attribute is a bool.  The raw value is carried in
        ``user_account_control``.
    """
    if flags is None:
        return UNKNOWN_ATTRIBUTES

    value = int(flags) & _UINT32_MASK
    decoded = {name: bool(value & bit) for name, bit in _ATTRIBUTE_BITS.items()}
    decoded["enabled"] = not (value & AccountControl.ACCOUNTDISABLE)
    return AccountControlAttributes(user_account_control=value, **decoded)


def describe_flags(flags: int | None) -> list[str]:
    """Return the names of the registered bits set in *flags*."""
    if flags is None:
        return []
    value = int(flags) & _UINT32_MASK
    return [member.name for member in AccountControl if value & member]
