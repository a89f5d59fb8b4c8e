"""
SHA-256 prefix helpers for method selectors and account discriminators.

Provides the single hashing policy used to tag payloads and records on the wire:
- method selector: ``sha256("global:" + method_name)[:8]``
- account discriminator: ``sha256("account:" + RecordName)[:8]``

This module is zero-IO and uses only the Python standard library.

Notes:
    - Names are hashed as UTF-8; the hash input is the literal prefix plus the name,
      with no separator normalization.
    - The codec cannot tell whether a selector exists remotely. An invalid name hashes
      fine and is only rejected when the remote program sees it.

Examples:
    >>> from gptcron.core.hashing import method_selector
    >>> len(method_selector("initialize"))
    8
"""

from __future__ import annotations

import hashlib

from .constants import SELECTOR_LEN

__all__ = [
    "sha256_prefix",
    "method_selector",
    "account_discriminator",
]


def sha256_prefix(s: str, n: int = SELECTOR_LEN) -> bytes:
    """
    Return the first ``n`` bytes of SHA-256 over the UTF-8 encoding of ``s``.

    Args:
        s (str): Hash input.
        n (int): Prefix length in bytes.

    Returns:
        bytes: Digest prefix.
    """
    return hashlib.sha256(s.encode("utf-8")).digest()[:n]


def method_selector(method_name: str) -> bytes:
    """
    Compute the 8-byte selector identifying a remote method.

    Args:
        method_name (str): Method name as declared by the remote program (snake_case).

    Returns:
        bytes: ``sha256("global:" + method_name)[:8]``.
    """
    return sha256_prefix(f"global:{method_name}")


def account_discriminator(record_name: str) -> bytes:
    """Compute the 8-byte discriminator that prefixes a persisted record of the given kind."""
    return sha256_prefix(f"account:{record_name}")
