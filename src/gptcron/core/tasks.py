"""
Task-queue wire types: triggers, compiled transactions, and queue-task arguments.

Reproduces the byte format the task-queue program expects when a task carries a
pre-compiled transaction, so a caller can queue method calls (for example ``ask_gpt``)
without going through an SDK.

Notes:
    - compile_transaction orders accounts by (signer, writable) priority:
      rw signers, ro signers, rw non-signers, ro non-signers. Within a priority
      class accounts keep first-appearance order.
    - Remaining-account metas returned alongside the compiled transaction are never
      signers; their writable flag follows the compiled priority classes.
    - Zero-IO.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from .codec import (
    encode_bytes,
    encode_i64,
    encode_option,
    encode_pubkey,
    encode_string,
    encode_u8,
    encode_u16,
    encode_u64,
    encode_vec,
)

__all__ = [
    "QUEUE_TASK_V0_SELECTOR",
    "Trigger",
    "CompiledInstruction",
    "CompiledTransaction",
    "compile_transaction",
    "encode_trigger",
    "encode_compiled_transaction",
    "encode_queue_task_args",
    "encode_queue_task",
]

# queue_task_v0 selector as published in the task-queue program's IDL.
QUEUE_TASK_V0_SELECTOR: bytes = bytes([177, 95, 195, 252, 241, 2, 178, 88])


@dataclass(frozen=True)
class Trigger:
    """
    When a queued task becomes runnable.

    ``Trigger()`` means now; ``Trigger(timestamp=t)`` means at unix time ``t``.
    """

    timestamp: int | None = None

    @classmethod
    def now(cls) -> Trigger:
        return cls()

    @classmethod
    def at(cls, timestamp: int) -> Trigger:
        return cls(timestamp=timestamp)


def encode_trigger(trigger: Trigger) -> bytes:
    """Enum tag 0 for Now, tag 1 followed by i64 little-endian for Timestamp."""
    if trigger.timestamp is None:
        return encode_u8(0)
    return encode_u8(1) + encode_i64(trigger.timestamp)


@dataclass(frozen=True)
class CompiledInstruction:
    program_id_index: int
    accounts: bytes
    data: bytes


@dataclass(frozen=True)
class CompiledTransaction:
    num_rw_signers: int
    num_ro_signers: int
    num_rw: int
    accounts: tuple[Pubkey, ...]
    instructions: tuple[CompiledInstruction, ...]
    signer_seeds: tuple[tuple[bytes, ...], ...] = field(default_factory=tuple)


def _priority(is_signer: bool, is_writable: bool) -> int:
    if is_signer and is_writable:
        return 0
    if is_signer:
        return 1
    if is_writable:
        return 2
    return 3


def compile_transaction(
    instructions: Sequence[Instruction],
    signer_seeds: Sequence[Sequence[bytes]] = (),
) -> tuple[CompiledTransaction, list[AccountMeta]]:
    """
    Compile instructions into an index-based transaction for a queued task.

    Args:
        instructions (Sequence[Instruction]): Instructions to run, in order.
        signer_seeds (Sequence[Sequence[bytes]]): Seed sets the executing program signs
            with (for example ``[[b"payer", bytes([bump])]]``).

    Returns:
        tuple[CompiledTransaction, list[AccountMeta]]: Compiled transaction and the
        remaining-account metas to pass alongside the queue call.

    Raises:
        ValueError: If more than 256 distinct accounts are referenced.
    """
    # pubkey -> [is_signer, is_writable], insertion ordered
    meta: dict[Pubkey, list[bool]] = {}
    for ix in instructions:
        meta.setdefault(ix.program_id, [False, False])
        for acc in ix.accounts:
            entry = meta.setdefault(acc.pubkey, [False, False])
            entry[0] |= acc.is_signer
            entry[1] |= acc.is_writable

    if len(meta) > 256:
        raise ValueError(f"{len(meta)} accounts referenced; a compiled task allows 256")

    ordered = sorted(meta, key=lambda k: _priority(*meta[k]))
    num_rw_signers = sum(1 for k in ordered if meta[k][0] and meta[k][1])
    num_ro_signers = sum(1 for k in ordered if meta[k][0] and not meta[k][1])
    num_rw = sum(1 for k in ordered if not meta[k][0] and meta[k][1])

    index = {k: i for i, k in enumerate(ordered)}
    compiled = tuple(
        CompiledInstruction(
            program_id_index=index[ix.program_id],
            accounts=bytes(index[acc.pubkey] for acc in ix.accounts),
            data=bytes(ix.data),
        )
        for ix in instructions
    )

    rw_signers_end = num_rw_signers
    ro_signers_end = rw_signers_end + num_ro_signers
    rw_end = ro_signers_end + num_rw
    remaining = [
        AccountMeta(
            pubkey=k,
            is_signer=False,
            is_writable=i < rw_signers_end or ro_signers_end <= i < rw_end,
        )
        for i, k in enumerate(ordered)
    ]

    tx = CompiledTransaction(
        num_rw_signers=num_rw_signers,
        num_ro_signers=num_ro_signers,
        num_rw=num_rw,
        accounts=tuple(ordered),
        instructions=compiled,
        signer_seeds=tuple(tuple(bytes(s) for s in seeds) for seeds in signer_seeds),
    )
    return tx, remaining


def _encode_compiled_instruction(ix: CompiledInstruction) -> bytes:
    return encode_u8(ix.program_id_index) + encode_bytes(ix.accounts) + encode_bytes(ix.data)


def encode_compiled_transaction(tx: CompiledTransaction) -> bytes:
    """Serialize in declared field order: counts, accounts, instructions, signer seeds."""
    return (
        encode_u8(tx.num_rw_signers)
        + encode_u8(tx.num_ro_signers)
        + encode_u8(tx.num_rw)
        + encode_vec(tx.accounts, encode_pubkey)
        + encode_vec(tx.instructions, _encode_compiled_instruction)
        + encode_vec(tx.signer_seeds, lambda seeds: encode_vec(seeds, encode_bytes))
    )


def encode_queue_task_args(
    task_id: int,
    trigger: Trigger,
    transaction: CompiledTransaction,
    *,
    crank_reward: int | None = None,
    free_tasks: int = 0,
    description: str = "",
) -> bytes:
    """
    Serialize queue-task arguments carrying a compiled transaction source.

    Notes:
        The transaction source enum is written with tag 0 (compiled); remote
        transaction sources are not produced by this client.
    """
    return (
        encode_u16(task_id)
        + encode_trigger(trigger)
        + encode_u8(0)
        + encode_compiled_transaction(transaction)
        + encode_option(crank_reward, encode_u64)
        + encode_u8(free_tasks)
        + encode_string(description)
    )


def encode_queue_task(
    task_id: int,
    trigger: Trigger,
    transaction: CompiledTransaction,
    **kwargs,
) -> bytes:
    """Full queue_task_v0 payload: selector followed by the encoded arguments."""
    return QUEUE_TASK_V0_SELECTOR + encode_queue_task_args(task_id, trigger, transaction, **kwargs)
