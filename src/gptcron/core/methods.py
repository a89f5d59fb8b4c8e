"""
Typed method table: account roles and argument encoding per remote method.

Each entry maps a method name to the program that serves it, the ordered accounts the
method expects (with their signer/writable role), and how its arguments are encoded.
``build_instruction`` validates caller-supplied accounts against that table and produces a
``solders`` Instruction whose data is ``[8B selector][arguments]``.

Notes:
    - Role.SIGNER marks a signing, writable account (the wallet paying for the call).
    - Accounts may be supplied by name (mapping) or positionally (sequence in declared
      order); either way the count must match the declaration exactly.
    - Zero-IO.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from .codec import (
    encode_bool,
    encode_call,
    encode_option,
    encode_pubkey,
    encode_record,
    encode_string,
    encode_u16,
    encode_u32,
    encode_u64,
    encode_vec,
)
from .constants import GPT_PROGRAM_ID, ORACLE_PROGRAM_ID, TUKTUK_PROGRAM_ID
from .errors import AccountRoleError, UnknownMethodError
from .layouts import FieldSpec, RecordLayout
from .tasks import Trigger, encode_trigger

__all__ = [
    "Role",
    "AccountRole",
    "MethodSpec",
    "get_method",
    "list_methods",
    "account_metas",
    "build_instruction",
]


class Role(str, Enum):
    SIGNER = "signer"
    WRITABLE = "writable"
    READONLY = "readonly"


@dataclass(frozen=True)
class AccountRole:
    name: str
    role: Role

    def meta(self, pubkey: Pubkey) -> AccountMeta:
        return AccountMeta(
            pubkey=pubkey,
            is_signer=self.role is Role.SIGNER,
            is_writable=self.role is not Role.READONLY,
        )


@dataclass(frozen=True)
class MethodSpec:
    """
    Declaration of a remote method.

    Attributes:
        name (str): Method name; the selector is derived from it.
        program_id (Pubkey): Program that serves the method.
        accounts (tuple[AccountRole, ...]): Expected accounts in order.
        args (RecordLayout | None): Argument layout for plain field-by-field encoding.
        arg_encoder (Callable | None): Encoder for arguments that a flat layout cannot
            express (enums, options, vectors). Takes precedence over ``args``.
    """

    name: str
    program_id: Pubkey
    accounts: tuple[AccountRole, ...]
    args: RecordLayout | None = None
    arg_encoder: Callable[[Mapping[str, Any]], bytes] | None = None

    @property
    def account_names(self) -> list[str]:
        return [a.name for a in self.accounts]

    def encode_args(self, values: Mapping[str, Any] | None = None) -> bytes:
        values = values or {}
        if self.arg_encoder is not None:
            return self.arg_encoder(values)
        if self.args is not None:
            return encode_record(self.args, values)
        if values:
            raise ValueError(f"{self.name} takes no arguments, got {sorted(values)}")
        return b""

    def encode(self, values: Mapping[str, Any] | None = None) -> bytes:
        return encode_call(self.name, self.encode_args(values))


def _encode_schedule_args(values: Mapping[str, Any]) -> bytes:
    trigger = values.get("trigger") or Trigger.now()
    return encode_u16(values["task_id"]) + encode_trigger(trigger)


def _encode_task_queue_args(values: Mapping[str, Any]) -> bytes:
    return (
        encode_u64(values.get("min_crank_reward", 0))
        + encode_string(values["name"])
        + encode_u16(values["capacity"])
        + encode_vec(values.get("lookup_tables", ()), encode_pubkey)
        + encode_u32(values["stale_task_age"])
    )


def _encode_oracle_meta(meta: AccountMeta) -> bytes:
    return encode_pubkey(meta.pubkey) + encode_bool(meta.is_signer) + encode_bool(meta.is_writable)


def _encode_interact_args(values: Mapping[str, Any]) -> bytes:
    discriminator = bytes(values["callback_discriminator"])
    if len(discriminator) != 8:
        raise ValueError(f"callback_discriminator must be 8 bytes, got {len(discriminator)}")
    metas = values.get("account_metas")
    return (
        encode_string(values["text"])
        + encode_pubkey(values["callback_program_id"])
        + discriminator
        + encode_option(metas, lambda ms: encode_vec(ms, _encode_oracle_meta))
    )


_S, _W, _R = Role.SIGNER, Role.WRITABLE, Role.READONLY

_METHODS: dict[str, MethodSpec] = {
    m.name: m
    for m in (
        MethodSpec(
            name="initialize",
            program_id=GPT_PROGRAM_ID,
            accounts=(
                AccountRole("admin", _S),
                AccountRole("gpt_config", _W),
                AccountRole("context_account", _R),
                AccountRole("system_program", _R),
            ),
            args=RecordLayout("initialize", (FieldSpec("prompt", "string"),)),
        ),
        MethodSpec(
            name="ask_gpt",
            program_id=GPT_PROGRAM_ID,
            accounts=(
                AccountRole("gpt_config", _R),
                AccountRole("payer", _W),
                AccountRole("interaction", _W),
                AccountRole("context_account", _R),
                AccountRole("oracle_program", _R),
                AccountRole("system_program", _R),
            ),
        ),
        MethodSpec(
            name="schedule",
            program_id=GPT_PROGRAM_ID,
            accounts=(
                AccountRole("admin", _S),
                AccountRole("gpt_config", _R),
                AccountRole("payer_pda", _R),
                AccountRole("queue_authority", _R),
                AccountRole("task_queue_authority", _R),
                AccountRole("task_queue", _W),
                AccountRole("task", _W),
                AccountRole("tuktuk_program", _R),
                AccountRole("system_program", _R),
            ),
            arg_encoder=_encode_schedule_args,
        ),
        MethodSpec(
            name="create_llm_context",
            program_id=ORACLE_PROGRAM_ID,
            accounts=(
                AccountRole("payer", _S),
                AccountRole("counter", _W),
                AccountRole("context_account", _W),
                AccountRole("system_program", _R),
            ),
            args=RecordLayout("create_llm_context", (FieldSpec("text", "string"),)),
        ),
        MethodSpec(
            name="interact_with_llm",
            program_id=ORACLE_PROGRAM_ID,
            accounts=(
                AccountRole("payer", _S),
                AccountRole("interaction", _W),
                AccountRole("context_account", _R),
                AccountRole("system_program", _R),
            ),
            arg_encoder=_encode_interact_args,
        ),
        MethodSpec(
            name="initialize_task_queue_v0",
            program_id=TUKTUK_PROGRAM_ID,
            accounts=(
                AccountRole("payer", _S),
                AccountRole("tuktuk_config", _W),
                AccountRole("update_authority", _R),
                AccountRole("task_queue", _W),
                AccountRole("task_queue_name_mapping", _W),
                AccountRole("system_program", _R),
            ),
            arg_encoder=_encode_task_queue_args,
        ),
        MethodSpec(
            name="add_queue_authority_v0",
            program_id=TUKTUK_PROGRAM_ID,
            accounts=(
                AccountRole("payer", _S),
                AccountRole("update_authority", _S),
                AccountRole("queue_authority", _R),
                AccountRole("task_queue_authority", _W),
                AccountRole("task_queue", _W),
                AccountRole("system_program", _R),
            ),
        ),
    )
}


def get_method(name: str) -> MethodSpec:
    """
    Look up a method declaration.

    Raises:
        UnknownMethodError: If ``name`` is not in the table.
    """
    try:
        return _METHODS[name]
    except KeyError:
        raise UnknownMethodError(f"no method named {name!r}") from None


def list_methods() -> list[MethodSpec]:
    return list(_METHODS.values())


def account_metas(
    spec: MethodSpec, accounts: Mapping[str, Pubkey] | Sequence[Pubkey]
) -> list[AccountMeta]:
    """
    Resolve supplied accounts into ordered metas following the method's roles.

    Raises:
        AccountRoleError: If names are missing or unexpected, or the positional count
            differs from the declaration.
    """
    if isinstance(accounts, Mapping):
        expected = set(spec.account_names)
        missing = [n for n in spec.account_names if n not in accounts]
        extra = sorted(set(accounts) - expected)
        if missing or extra:
            raise AccountRoleError(
                f"{spec.name}: missing accounts {missing}, unexpected accounts {extra}"
            )
        ordered = [accounts[n] for n in spec.account_names]
    else:
        ordered = list(accounts)
        if len(ordered) != len(spec.accounts):
            raise AccountRoleError(
                f"{spec.name}: expects {len(spec.accounts)} accounts, got {len(ordered)}"
            )
    return [role.meta(pk) for role, pk in zip(spec.accounts, ordered)]


def build_instruction(
    method: str | MethodSpec,
    accounts: Mapping[str, Pubkey] | Sequence[Pubkey],
    args: Mapping[str, Any] | bytes | None = None,
    *,
    remaining: Sequence[AccountMeta] = (),
) -> Instruction:
    """
    Build a method-call instruction.

    Args:
        method (str | MethodSpec): Method name or declaration.
        accounts (Mapping[str, Pubkey] | Sequence[Pubkey]): Accounts by role name or in
            declared order.
        args (Mapping[str, Any] | bytes | None): Argument values, or pre-encoded
            argument bytes appended verbatim after the selector.
        remaining (Sequence[AccountMeta]): Accounts appended after the declared ones,
            passed through unchanged.

    Returns:
        Instruction: Instruction addressed to the method's program.

    Raises:
        UnknownMethodError: If the method name is not declared.
        AccountRoleError: If accounts do not match the declared roles.
    """
    spec = method if isinstance(method, MethodSpec) else get_method(method)
    metas = account_metas(spec, accounts)
    if isinstance(args, (bytes, bytearray)):
        data = encode_call(spec.name, bytes(args))
    else:
        data = spec.encode(args)
    return Instruction(spec.program_id, data, metas + list(remaining))
