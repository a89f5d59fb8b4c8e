"""
Core exception types raised by address derivation, the wire codec, and the method table.

Provides typed exceptions for core-domain failures:
- InvalidSeedError for malformed or oversized derivation input.
- CodecError and its subclasses for decode-time schema violations:
    - TruncatedRecordError when a declared field overruns the buffer.
    - LayoutMismatchError when the consumed size or discriminator disagrees with the caller.
- UnknownMethodError for selectors the remote program does not recognise.
- AccountRoleError when the accounts supplied for a method do not match its declared roles.

Notes:
    - This module uses only the Python standard library and has no side effects.
    - Codec errors indicate version skew between this client and the remote program;
      they are never coerced into defaults.

Examples:
    Catch a truncated record.

    >>> from gptcron.core.errors import TruncatedRecordError, CodecError
    >>> issubclass(TruncatedRecordError, CodecError)
    True
"""

from __future__ import annotations

__all__ = [
    "InvalidSeedError",
    "CodecError",
    "TruncatedRecordError",
    "LayoutMismatchError",
    "UnknownMethodError",
    "AccountRoleError",
]


class InvalidSeedError(ValueError):
    """Seed tags are not bytes, too many, or exceed the ledger's maximum seed length."""


class CodecError(ValueError):
    """Base class for wire decode failures."""


class TruncatedRecordError(CodecError):
    """Remaining bytes are insufficient for a declared field."""


class LayoutMismatchError(CodecError):
    """Consumed byte count or record discriminator does not match caller expectations."""


class UnknownMethodError(LookupError):
    """Method name has no entry in the method table, or the remote rejected its selector."""


class AccountRoleError(ValueError):
    """Supplied accounts do not match the method's declared account roles."""
