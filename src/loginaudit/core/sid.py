"""Security identifier (SID) helpers."""

from __future__ import annotations

import struct


def sid_to_string(sid: bytes | None) -> str | None:
    """Render a binary SID as ``S-1-5-21-...``.

    Malformed values are rendered as hex so they still show up in audit
    messages.
    """
    if not sid:
        return None
    if len(sid) < 8:
        return sid.hex()

    revision = sid[0]
    sub_authority_count = sid[1]
    identifier_authority = int.from_bytes(sid[2:8], byteorder="big")
    if len(sid) != 8 + 4 * sub_authority_count:
        return sid.hex()

    parts = [f"S-{revision}-{identifier_authority}"]
    for i in range(sub_authority_count):
        offset = 8 + i * 4
        parts.append(str(struct.unpack("<I", sid[offset:offset + 4])[0]))
    return "-".join(parts)


def sids_match(server_sid: bytes | None, directory_sid: bytes | None) -> bool:
    """Byte-for-byte SID comparison that fails closed.

    Two missing or empty identifiers never match.
    """
    if not server_sid or not directory_sid:
        return False
    return bytes(server_sid) == bytes(directory_sid)
