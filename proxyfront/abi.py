"""Call codec: selectors plus 32-byte word head/tail argument encoding."""

from __future__ import annotations

import hashlib
import re
from typing import Any

WORD_SIZE = 32
SELECTOR_SIZE = 4

ZERO_ADDRESS = "0x" + "0" * 40

STATIC_TYPES = {"address", "uint256", "bool"}
DYNAMIC_TYPES = {"bytes", "string"}

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_SIGNATURE_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\(([a-z0-9,]*)\)$")

MAX_UINT256 = 2**256 - 1


class AbiError(ValueError):
    """Raised when a value or payload cannot be encoded or decoded."""

    pass


def to_address(value: str | bytes) -> str:
    """Normalize an address to lowercase 0x-prefixed hex.

    Args:
        value: Hex string or 20 raw bytes

    Returns:
        Address string in format "0x" + 40 lowercase hex chars
    """
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 20:
            raise AbiError(f"Address must be 20 bytes, got {len(value)}")
        return "0x" + bytes(value).hex()
    if not isinstance(value, str) or not _ADDRESS_RE.match(value):
        raise AbiError(f"Invalid address: {value!r}")
    return value.lower()


def is_zero_address(value: str) -> bool:
    """Check whether an address is the null identifier."""
    return to_address(value) == ZERO_ADDRESS


def selector(signature: str) -> bytes:
    """Compute the 4-byte selector for a canonical signature like 'f(address)'."""
    parse_signature(signature)
    return hashlib.sha256(signature.encode("utf-8")).digest()[:SELECTOR_SIZE]


def parse_signature(signature: str) -> tuple[str, list[str]]:
    """Split a canonical signature into its name and argument types."""
    match = _SIGNATURE_RE.match(signature)
    if not match:
        raise AbiError(f"Malformed signature: {signature!r}")
    name, args = match.groups()
    types = args.split(",") if args else []
    for abi_type in types:
        if abi_type not in STATIC_TYPES and abi_type not in DYNAMIC_TYPES:
            raise AbiError(f"Unsupported type '{abi_type}' in {signature!r}")
    return name, types


def _pad_right(data: bytes) -> bytes:
    remainder = len(data) % WORD_SIZE
    if remainder:
        data += b"\x00" * (WORD_SIZE - remainder)
    return data


def _encode_uint(value: int) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int):
        raise AbiError(f"Expected int, got {type(value).__name__}")
    if value < 0 or value > MAX_UINT256:
        raise AbiError(f"uint256 out of range: {value}")
    return value.to_bytes(WORD_SIZE, "big")


def _encode_static(abi_type: str, value: Any) -> bytes:
    if abi_type == "uint256":
        return _encode_uint(value)
    if abi_type == "bool":
        if not isinstance(value, bool):
            raise AbiError(f"Expected bool, got {type(value).__name__}")
        return _encode_uint(int(value))
    # address
    raw = bytes.fromhex(to_address(value)[2:])
    return b"\x00" * (WORD_SIZE - len(raw)) + raw


def _encode_dynamic(abi_type: str, value: Any) -> bytes:
    if abi_type == "string":
        if not isinstance(value, str):
            raise AbiError(f"Expected str, got {type(value).__name__}")
        raw = value.encode("utf-8")
    else:
        if not isinstance(value, (bytes, bytearray)):
            raise AbiError(f"Expected bytes, got {type(value).__name__}")
        raw = bytes(value)
    return _encode_uint(len(raw)) + _pad_right(raw)


def encode(types: list[str] | tuple[str, ...], values: list[Any] | tuple[Any, ...]) -> bytes:
    """Encode values as a head/tail argument block.

    Static values sit in the head. Dynamic values put their offset in the head
    and a length-prefixed, zero-padded body in the tail.
    """
    if len(types) != len(values):
        raise AbiError(f"Expected {len(types)} values, got {len(values)}")

    head_size = WORD_SIZE * len(types)
    head: list[bytes] = []
    tail: list[bytes] = []
    tail_size = 0

    for abi_type, value in zip(types, values):
        if abi_type in STATIC_TYPES:
            head.append(_encode_static(abi_type, value))
        elif abi_type in DYNAMIC_TYPES:
            body = _encode_dynamic(abi_type, value)
            head.append(_encode_uint(head_size + tail_size))
            tail.append(body)
            tail_size += len(body)
        else:
            raise AbiError(f"Unsupported type: {abi_type}")

    return b"".join(head) + b"".join(tail)


def _read_word(data: bytes, offset: int) -> bytes:
    if offset < 0 or offset + WORD_SIZE > len(data):
        raise AbiError(f"Payload too short: need word at {offset}, have {len(data)} bytes")
    return data[offset:offset + WORD_SIZE]


def _read_uint(data: bytes, offset: int) -> int:
    return int.from_bytes(_read_word(data, offset), "big")


def decode(types: list[str] | tuple[str, ...], data: bytes) -> tuple[Any, ...]:
    """Decode a head/tail argument block produced by encode()."""
    values: list[Any] = []
    for index, abi_type in enumerate(types):
        head_offset = index * WORD_SIZE
        if abi_type == "uint256":
            values.append(_read_uint(data, head_offset))
        elif abi_type == "bool":
            word = _read_uint(data, head_offset)
            if word not in (0, 1):
                raise AbiError(f"Invalid bool word: {word}")
            values.append(bool(word))
        elif abi_type == "address":
            word = _read_word(data, head_offset)
            if any(word[:12]):
                raise AbiError("Address word has non-zero high bytes")
            values.append("0x" + word[12:].hex())
        elif abi_type in DYNAMIC_TYPES:
            offset = _read_uint(data, head_offset)
            length = _read_uint(data, offset)
            start = offset + WORD_SIZE
            if start + length > len(data):
                raise AbiError(f"Dynamic value overruns payload ({length} bytes at {start})")
            raw = data[start:start + length]
            if abi_type == "string":
                try:
                    values.append(raw.decode("utf-8"))
                except UnicodeDecodeError as e:
                    raise AbiError(f"Invalid UTF-8 in string value: {e}") from e
            else:
                values.append(raw)
        else:
            raise AbiError(f"Unsupported type: {abi_type}")
    return tuple(values)


def encode_call(signature: str, *args: Any) -> bytes:
    """Build a call payload: selector followed by encoded arguments.

    Example:
        encode_call("upgradeTo(address)", "0x" + "ab" * 20)
    """
    _, types = parse_signature(signature)
    return selector(signature) + encode(types, args)


def split_call(payload: bytes) -> tuple[bytes, bytes]:
    """Split a payload into (selector, argument block)."""
    if len(payload) < SELECTOR_SIZE:
        raise AbiError(f"Payload shorter than a selector: {len(payload)} bytes")
    return payload[:SELECTOR_SIZE], payload[SELECTOR_SIZE:]


def decode_call(signature: str, payload: bytes) -> tuple[Any, ...]:
    """Decode a payload built by encode_call(), checking its selector."""
    _, types = parse_signature(signature)
    sel, args = split_call(payload)
    if sel != selector(signature):
        raise AbiError(f"Selector mismatch for {signature}")
    return decode(types, args)


def parse_hex(value: str) -> bytes:
    """Parse an optionally 0x-prefixed hex string into bytes."""
    text = value[2:] if value.startswith(("0x", "0X")) else value
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise AbiError(f"Invalid hex payload: {value!r}") from e


def to_hex(data: bytes) -> str:
    """Render bytes as 0x-prefixed hex."""
    return "0x" + data.hex()
