"""Shared scalar aliases and the zero address sentinel."""

from __future__ import annotations

# Token, holder and module identities are opaque strings.
type Address = str

# Seconds since the epoch, as reported by a Clock.
type Timestamp = int

ZERO_ADDRESS: Address = "0x" + "0" * 40


def is_zero_address(address: Address) -> bool:
    return address == ZERO_ADDRESS or address == ""
