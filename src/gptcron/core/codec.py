"""
Bit-exact encoders and decoders for method payloads and persisted records.

Responsibilities
- Encode primitive values (little-endian integers, 32-byte keys, length-prefixed bytes and
  UTF-8 strings, options, vectors) the way the remote programs serialize them.
- Build method-call payloads: 8-byte selector followed by arguments in declared order.
- Decode and encode records against a RecordLayout from gptcron.core.layouts.

Style
- Zero-IO (stdlib + solders only).
- Decoding is sequential and never reads past the last declared field; trailing bytes
  (forward-compatible tail or unused allocated space) are ignored.

Examples:
    Decode a freshly initialized GptConfig record.

    >>> import struct
    >>> from gptcron.core.codec import decode_record
    >>> from gptcron.core.layouts import GPT_CONFIG_LAYOUT
    >>> raw = bytes(72) + struct.pack("<I", 5) + b"hello" + struct.pack("<I", 0) + b"\\x00"
    >>> rec = decode_record(raw, GPT_CONFIG_LAYOUT, expected_size=86)
    >>> (rec["prompt"], rec["latest_response"])
    ('hello', '')
"""

from __future__ import annotations

import struct
from collections.abc import Callable, Iterable, Mapping
from typing import Any, TypeVar

from solders.pubkey import Pubkey

from .constants import PUBKEY_LEN
from .errors import LayoutMismatchError, TruncatedRecordError
from .hashing import method_selector
from .layouts import FieldSpec, RecordLayout

__all__ = [
    "encode_u8",
    "encode_u16",
    "encode_u32",
    "encode_u64",
    "encode_i64",
    "encode_bool",
    "encode_pubkey",
    "encode_bytes",
    "encode_string",
    "encode_option",
    "encode_vec",
    "encode_field",
    "encode_call",
    "encode_record",
    "decode_record",
    "RecordReader",
]

T = TypeVar("T")

_INT_FORMATS: dict[str, str] = {
    "u8": "<B",
    "u16": "<H",
    "u32": "<I",
    "u64": "<Q",
    "i64": "<q",
}


def _pack_int(kind: str, value: int) -> bytes:
    try:
        return struct.pack(_INT_FORMATS[kind], value)
    except struct.error as exc:
        raise ValueError(f"{value!r} does not fit in {kind}") from exc


def encode_u8(value: int) -> bytes:
    return _pack_int("u8", value)


def encode_u16(value: int) -> bytes:
    return _pack_int("u16", value)


def encode_u32(value: int) -> bytes:
    return _pack_int("u32", value)


def encode_u64(value: int) -> bytes:
    return _pack_int("u64", value)


def encode_i64(value: int) -> bytes:
    return _pack_int("i64", value)


def encode_bool(value: bool) -> bytes:
    return b"\x01" if value else b"\x00"


def encode_pubkey(value: Pubkey) -> bytes:
    raw = bytes(value)
    if len(raw) != PUBKEY_LEN:
        raise ValueError(f"public key must be {PUBKEY_LEN} bytes, got {len(raw)}")
    return raw


def encode_bytes(value: bytes) -> bytes:
    """Length-prefixed raw bytes: u32 little-endian length then payload."""
    value = bytes(value)
    return encode_u32(len(value)) + value


def encode_string(value: str) -> bytes:
    """Length-prefixed UTF-8 string; the prefix counts bytes, not characters."""
    return encode_bytes(value.encode("utf-8"))


def encode_option(value: T | None, encoder: Callable[[T], bytes]) -> bytes:
    """Option tag (0 = None, 1 = Some) followed by the encoded value when present."""
    if value is None:
        return b"\x00"
    return b"\x01" + encoder(value)


def encode_vec(items: Iterable[T], encoder: Callable[[T], bytes]) -> bytes:
    """u32 little-endian element count followed by each encoded element."""
    parts = [encoder(item) for item in items]
    return encode_u32(len(parts)) + b"".join(parts)


def encode_field(spec: FieldSpec, value: Any) -> bytes:
    """
    Encode a single value according to its field spec.

    Raises:
        ValueError: If an integer is out of range or a fixed-width value has the wrong size.
    """
    kind = spec.kind
    if kind in _INT_FORMATS:
        return _pack_int(kind, int(value))
    if kind == "pubkey":
        return encode_pubkey(value)
    if kind == "fixed":
        raw = bytes(value)
        if len(raw) != spec.size:
            raise ValueError(f"field {spec.name!r} must be {spec.size} bytes, got {len(raw)}")
        return raw
    if kind == "string":
        return encode_string(value)
    return encode_bytes(value)


def encode_record(layout: RecordLayout, values: Mapping[str, Any]) -> bytes:
    """
    Serialize a mapping into the layout's byte format, fields in declared order.

    Args:
        layout (RecordLayout): Target layout.
        values (Mapping[str, Any]): Value per declared field name.

    Returns:
        bytes: Encoded record.

    Raises:
        KeyError: If a declared field is missing from ``values``.
    """
    return b"".join(encode_field(f, values[f.name]) for f in layout.fields)


def encode_call(method_name: str, args: bytes = b"") -> bytes:
    """
    Build a method-call payload from a method name and pre-encoded arguments.

    Returns:
        bytes: ``[8B selector][args]``.
    """
    return method_selector(method_name) + bytes(args)


class RecordReader:
    """
    Sequential cursor over a byte buffer.

    Each read checks the remaining length first and raises TruncatedRecordError
    naming the field being read when it would overrun.
    """

    def __init__(self, data: bytes, record_name: str = "record") -> None:
        self.data = bytes(data)
        self.offset = 0
        self.record_name = record_name

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def take(self, n: int, field_name: str) -> bytes:
        if n > self.remaining:
            raise TruncatedRecordError(
                f"{self.record_name}.{field_name}: need {n} bytes at offset {self.offset}, "
                f"only {self.remaining} remain"
            )
        chunk = self.data[self.offset : self.offset + n]
        self.offset += n
        return chunk

    def read_int(self, kind: str, field_name: str) -> int:
        fmt = _INT_FORMATS[kind]
        (value,) = struct.unpack(fmt, self.take(struct.calcsize(fmt), field_name))
        return value

    def read_prefixed(self, field_name: str) -> bytes:
        length = self.read_int("u32", field_name)
        return self.take(length, field_name)

    def read_field(self, spec: FieldSpec) -> Any:
        kind = spec.kind
        if kind in _INT_FORMATS:
            return self.read_int(kind, spec.name)
        if kind == "pubkey":
            return Pubkey.from_bytes(self.take(PUBKEY_LEN, spec.name))
        if kind == "fixed":
            return self.take(spec.size or 0, spec.name)
        raw = self.read_prefixed(spec.name)
        if kind == "string":
            try:
                return raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise LayoutMismatchError(
                    f"{self.record_name}.{spec.name}: not valid UTF-8"
                ) from exc
        return raw


def decode_record(
    data: bytes,
    layout: RecordLayout,
    *,
    expected_size: int | None = None,
    check_discriminator: bool = False,
) -> dict[str, Any]:
    """
    Decode raw bytes into a mapping of field name to value, in declared order.

    Args:
        data (bytes): Raw account or payload bytes.
        layout (RecordLayout): Schema to decode against.
        expected_size (int | None): When given, the number of bytes consumed by the
            declared fields must equal this value.
        check_discriminator (bool): Compare the leading 8 bytes against
            ``layout.discriminator``.

    Returns:
        dict[str, Any]: Decoded values. Integers as int, keys as solders Pubkey,
        strings as str, byte fields as bytes.

    Raises:
        TruncatedRecordError: If remaining bytes are insufficient for a declared field.
        LayoutMismatchError: If the consumed size differs from ``expected_size``, the
            discriminator does not match, or a string field is not UTF-8.

    Notes:
        Bytes after the last declared field are never read.
    """
    if len(data) < layout.min_size:
        raise TruncatedRecordError(
            f"{layout.name}: {len(data)} bytes is shorter than the minimum {layout.min_size}"
        )
    reader = RecordReader(data, layout.name)
    out: dict[str, Any] = {}
    for spec in layout.fields:
        out[spec.name] = reader.read_field(spec)

    if check_discriminator and layout.discriminator is not None:
        found = out.get("discriminator", bytes(data[:8]))
        if found != layout.discriminator:
            raise LayoutMismatchError(
                f"{layout.name}: discriminator {bytes(found).hex()} != "
                f"{layout.discriminator.hex()}"
            )
    if expected_size is not None and reader.offset != expected_size:
        raise LayoutMismatchError(
            f"{layout.name}: consumed {reader.offset} bytes, expected {expected_size}"
        )
    return out
