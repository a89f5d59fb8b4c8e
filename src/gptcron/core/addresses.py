"""
Deterministic program-derived address helpers.

Provides ``derive`` as the single derivation entry point plus named helpers for every
account this client touches. Derivation is delegated to
``solders.pubkey.Pubkey.find_program_address`` (sha256 over seeds + program id, searching
bumps from 255 down for an off-curve point). This module is zero-IO.

Notes:
    - Seeds are validated up front; solders would otherwise abort with a panic.
    - Seed order and exact bytes matter. ``oracle_context_address`` appends the counter
      as a 4-byte little-endian suffix, not as ASCII digits.

Examples:
    >>> from gptcron.core.addresses import derive, gpt_config_address
    >>> from gptcron.core.constants import GPT_PROGRAM_ID, SEED_GPT_CONFIG
    >>> derive(GPT_PROGRAM_ID, [SEED_GPT_CONFIG]) == gpt_config_address()
    True
"""

from __future__ import annotations

import struct
from collections.abc import Sequence
from dataclasses import dataclass

from solders.pubkey import Pubkey

from .constants import (
    GPT_PROGRAM_ID,
    MAX_SEED_LEN,
    MAX_SEEDS,
    ORACLE_PROGRAM_ID,
    SEED_COUNTER,
    SEED_GPT_CONFIG,
    SEED_IDENTITY,
    SEED_INTERACTION,
    SEED_PAYER,
    SEED_QUEUE_AUTHORITY,
    SEED_TASK,
    SEED_TASK_QUEUE,
    SEED_TASK_QUEUE_AUTHORITY,
    SEED_TASK_QUEUE_NAME_MAPPING,
    SEED_TEST_CONTEXT,
    SEED_TUKTUK_CONFIG,
    SEED_USER,
    TUKTUK_PROGRAM_ID,
)
from .errors import InvalidSeedError
from .hashing import sha256_prefix

__all__ = [
    "DerivedAddress",
    "derive",
    "gpt_config_address",
    "payer_address",
    "queue_authority_address",
    "user_address",
    "oracle_identity_address",
    "oracle_counter_address",
    "oracle_context_address",
    "interaction_address",
    "tuktuk_config_address",
    "task_queue_address",
    "task_queue_name_mapping_address",
    "task_queue_authority_address",
    "task_address",
]


@dataclass(frozen=True)
class DerivedAddress:
    """
    A program-derived address and the bump that takes it off the curve.

    Attributes:
        address (Pubkey): Derived account address.
        bump (int): Auxiliary bump byte in [0, 255].
    """

    address: Pubkey
    bump: int

    def __str__(self) -> str:
        return str(self.address)


def _validate_seeds(seed_tags: Sequence[bytes]) -> list[bytes]:
    seeds: list[bytes] = []
    for i, seed in enumerate(seed_tags):
        if not isinstance(seed, (bytes, bytearray, memoryview)):
            raise InvalidSeedError(f"seed[{i}] must be bytes, got {type(seed).__name__}")
        seed = bytes(seed)
        if len(seed) > MAX_SEED_LEN:
            raise InvalidSeedError(
                f"seed[{i}] is {len(seed)} bytes; the ledger allows at most {MAX_SEED_LEN}"
            )
        seeds.append(seed)
    # One slot is reserved for the bump seed.
    if len(seeds) > MAX_SEEDS - 1:
        raise InvalidSeedError(f"{len(seeds)} seeds given; at most {MAX_SEEDS - 1} allowed")
    return seeds


def derive(owner_program_id: Pubkey, seed_tags: Sequence[bytes]) -> DerivedAddress:
    """
    Derive a program address from ordered seed tags.

    Args:
        owner_program_id (Pubkey): Program that owns the derived account.
        seed_tags (Sequence[bytes]): Seeds in declared order.

    Returns:
        DerivedAddress: Address and bump. Identical inputs always give identical output.

    Raises:
        InvalidSeedError: If a seed is not bytes, exceeds MAX_SEED_LEN, or too many
            seeds are supplied.
    """
    seeds = _validate_seeds(seed_tags)
    address, bump = Pubkey.find_program_address(seeds, owner_program_id)
    return DerivedAddress(address=address, bump=bump)


def gpt_config_address(program_id: Pubkey = GPT_PROGRAM_ID) -> DerivedAddress:
    return derive(program_id, [SEED_GPT_CONFIG])


def payer_address(program_id: Pubkey = GPT_PROGRAM_ID) -> DerivedAddress:
    return derive(program_id, [SEED_PAYER])


def queue_authority_address(program_id: Pubkey = GPT_PROGRAM_ID) -> DerivedAddress:
    return derive(program_id, [SEED_QUEUE_AUTHORITY])


def user_address(owner: Pubkey, program_id: Pubkey = ORACLE_PROGRAM_ID) -> DerivedAddress:
    """Per-wallet user record under the oracle program."""
    return derive(program_id, [SEED_USER, bytes(owner)])


def oracle_identity_address(oracle_program_id: Pubkey = ORACLE_PROGRAM_ID) -> DerivedAddress:
    """Oracle identity PDA; it signs the response callback."""
    return derive(oracle_program_id, [SEED_IDENTITY])


def oracle_counter_address(oracle_program_id: Pubkey = ORACLE_PROGRAM_ID) -> DerivedAddress:
    return derive(oracle_program_id, [SEED_COUNTER])


def oracle_context_address(
    count: int, oracle_program_id: Pubkey = ORACLE_PROGRAM_ID
) -> DerivedAddress:
    """
    Context record address for a given oracle counter value.

    Args:
        count (int): Counter value read from the oracle counter account (u32).
        oracle_program_id (Pubkey): Oracle program id.

    Raises:
        InvalidSeedError: If count does not fit in an unsigned 32-bit integer.
    """
    if not 0 <= count <= 0xFFFFFFFF:
        raise InvalidSeedError(f"context counter {count} does not fit in u32")
    return derive(oracle_program_id, [SEED_TEST_CONTEXT, struct.pack("<I", count)])


def interaction_address(
    payer: Pubkey, context: Pubkey, oracle_program_id: Pubkey = ORACLE_PROGRAM_ID
) -> DerivedAddress:
    """
    In-flight interaction record keyed by (payer, context).

    Notes:
        At most one unresolved interaction exists per key; a second request before the
        callback targets the same address and the oracle program decides the outcome.
    """
    return derive(oracle_program_id, [SEED_INTERACTION, bytes(payer), bytes(context)])


# -----------------------------------------------------------------------------
# Task-queue program
# -----------------------------------------------------------------------------


def tuktuk_config_address(program_id: Pubkey = TUKTUK_PROGRAM_ID) -> DerivedAddress:
    return derive(program_id, [SEED_TUKTUK_CONFIG])


def task_queue_address(
    queue_id: int, config: Pubkey | None = None, program_id: Pubkey = TUKTUK_PROGRAM_ID
) -> DerivedAddress:
    """
    Task queue number ``queue_id`` (u32, little-endian) under the task-queue config.

    Raises:
        InvalidSeedError: If queue_id does not fit in u32.
    """
    if not 0 <= queue_id <= 0xFFFFFFFF:
        raise InvalidSeedError(f"task queue id {queue_id} does not fit in u32")
    config = config or tuktuk_config_address(program_id).address
    return derive(program_id, [SEED_TASK_QUEUE, bytes(config), struct.pack("<I", queue_id)])


def task_queue_name_mapping_address(
    name: str, config: Pubkey | None = None, program_id: Pubkey = TUKTUK_PROGRAM_ID
) -> DerivedAddress:
    """Name -> task queue record; the name enters the seeds as its 32-byte SHA-256."""
    config = config or tuktuk_config_address(program_id).address
    return derive(
        program_id, [SEED_TASK_QUEUE_NAME_MAPPING, bytes(config), sha256_prefix(name, 32)]
    )


def task_queue_authority_address(
    task_queue: Pubkey, queue_authority: Pubkey, program_id: Pubkey = TUKTUK_PROGRAM_ID
) -> DerivedAddress:
    """Grant record allowing ``queue_authority`` to queue tasks on ``task_queue``."""
    return derive(
        program_id, [SEED_TASK_QUEUE_AUTHORITY, bytes(task_queue), bytes(queue_authority)]
    )


def task_address(
    task_queue: Pubkey, task_id: int, program_id: Pubkey = TUKTUK_PROGRAM_ID
) -> DerivedAddress:
    """
    Queued task slot ``task_id`` (u16, little-endian) on ``task_queue``.

    Raises:
        InvalidSeedError: If task_id does not fit in u16.
    """
    if not 0 <= task_id <= 0xFFFF:
        raise InvalidSeedError(f"task id {task_id} does not fit in u16")
    return derive(program_id, [SEED_TASK, bytes(task_queue), struct.pack("<H", task_id)])
