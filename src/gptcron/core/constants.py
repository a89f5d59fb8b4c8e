"""
Program identifiers, seed tags and size limits shared by the core and chain layers.

Defines the on-ledger program ids this client talks to, the ASCII seed tags used for
address derivation, and the storage limits of the GptConfig record. This module is
zero-IO and has no side effects beyond constructing ``solders`` public keys.

Notes:
    - Seed tags must match the remote programs byte for byte. A wrong tag does not
      fail; it derives an unrelated, empty address.
    - Changes to these constants track releases of the remote programs.
"""

from __future__ import annotations

from solders.pubkey import Pubkey

__all__ = [
    "GPT_PROGRAM_ID",
    "ORACLE_PROGRAM_ID",
    "TUKTUK_PROGRAM_ID",
    "SYSTEM_PROGRAM_ID",
    "SEED_USER",
    "SEED_IDENTITY",
    "SEED_GPT_CONFIG",
    "SEED_PAYER",
    "SEED_COUNTER",
    "SEED_INTERACTION",
    "SEED_TEST_CONTEXT",
    "SEED_QUEUE_AUTHORITY",
    "SEED_TUKTUK_CONFIG",
    "SEED_TASK_QUEUE",
    "SEED_TASK_QUEUE_NAME_MAPPING",
    "SEED_TASK_QUEUE_AUTHORITY",
    "SEED_TASK",
    "MAX_SEED_LEN",
    "MAX_SEEDS",
    "PUBKEY_LEN",
    "SELECTOR_LEN",
    "MAX_PROMPT_LEN",
    "MAX_RESPONSE_LEN",
    "LAMPORTS_PER_SOL",
    "PAYER_MIN_LAMPORTS",
    "PAYER_TOP_UP_LAMPORTS",
]

# Program ids (devnet deployments).
GPT_PROGRAM_ID: Pubkey = Pubkey.from_string("H8Tq9DAw82BcYzeeBpm3BLisK8sQn4Ntyj3AewhNTuvj")
ORACLE_PROGRAM_ID: Pubkey = Pubkey.from_string("LLMrieZMpbJFwN52WgmBNMxYojrpRVYXdC1RCweEbab")
TUKTUK_PROGRAM_ID: Pubkey = Pubkey.from_string("tuktukUrfhXT6ZT77QTU8RQtvgL967uRuVagWF57zVA")
SYSTEM_PROGRAM_ID: Pubkey = Pubkey.from_string("11111111111111111111111111111111")

# Seed tags (ASCII literals).
SEED_USER: bytes = b"user"
SEED_IDENTITY: bytes = b"identity"
SEED_GPT_CONFIG: bytes = b"gpt_config"
SEED_PAYER: bytes = b"payer"
SEED_COUNTER: bytes = b"counter"
SEED_INTERACTION: bytes = b"interaction"
SEED_TEST_CONTEXT: bytes = b"test-context"
SEED_QUEUE_AUTHORITY: bytes = b"queue_authority"

# Task-queue program seed tags.
SEED_TUKTUK_CONFIG: bytes = b"tuktuk_config"
SEED_TASK_QUEUE: bytes = b"task_queue"
SEED_TASK_QUEUE_NAME_MAPPING: bytes = b"task_queue_name_mapping"
SEED_TASK_QUEUE_AUTHORITY: bytes = b"task_queue_authority"
SEED_TASK: bytes = b"task"

# Ledger derivation limits. MAX_SEEDS counts the bump seed appended by the search.
MAX_SEED_LEN: int = 32
MAX_SEEDS: int = 16

PUBKEY_LEN: int = 32
SELECTOR_LEN: int = 8

# GptConfig storage limits (InitSpace max_len on the program side).
MAX_PROMPT_LEN: int = 256
MAX_RESPONSE_LEN: int = 512

LAMPORTS_PER_SOL: int = 1_000_000_000

# Payer funding policy: top up when below 0.01 SOL, transfer 0.05 SOL.
PAYER_MIN_LAMPORTS: int = LAMPORTS_PER_SOL // 100
PAYER_TOP_UP_LAMPORTS: int = LAMPORTS_PER_SOL // 20
