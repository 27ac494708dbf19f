"""Fixed storage slots reserved for the proxy front.

Logic components lay their fields out sequentially from slot 0. The proxy's own
two values live at hashed slots far away from that range, so both can share
one persistent region. The labels below are part of the storage format: never
reuse or renumber them.
"""

from __future__ import annotations

import hashlib

from proxyfront.abi import WORD_SIZE, to_address
from proxyfront.state import StorageView

IMPLEMENTATION_LABEL = "proxyfront.proxy.implementation"
ADMIN_LABEL = "proxyfront.proxy.admin"


def derive_slot(label: str) -> int:
    """Derive a slot id as sha256(label) - 1.

    The subtraction leaves the slot without a known hash preimage.
    """
    digest = hashlib.sha256(label.encode("utf-8")).digest()
    return int.from_bytes(digest, "big") - 1


IMPLEMENTATION_SLOT = derive_slot(IMPLEMENTATION_LABEL)
ADMIN_SLOT = derive_slot(ADMIN_LABEL)


def get_address(storage: StorageView, slot_id: int) -> str:
    """Read the address stored in a fixed slot (zero address when unset)."""
    word = storage.load(slot_id)
    return to_address(word[WORD_SIZE - 20:])


def set_address(storage: StorageView, slot_id: int, address: str) -> None:
    """Store an address right-aligned in a fixed slot."""
    raw = bytes.fromhex(to_address(address)[2:])
    storage.store(slot_id, b"\x00" * (WORD_SIZE - len(raw)) + raw)
