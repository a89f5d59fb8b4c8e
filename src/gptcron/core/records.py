"""
Pydantic v2 models for decoded ledger records.

Responsibilities
- Give typed, immutable views over records decoded with gptcron.core.codec.
- Convert to and from raw bytes through the registered layouts.

Style
- Zero-IO (stdlib + pydantic + solders only).
- Models are frozen; the oracle service is the only writer of ``latest_response``.

References
- layouts: src/gptcron/core/layouts.py
- codec: src/gptcron/core/codec.py
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from solders.pubkey import Pubkey

from .codec import decode_record, encode_record
from .constants import MAX_PROMPT_LEN
from .layouts import GPT_CONFIG_LAYOUT, ORACLE_COUNTER_LAYOUT

__all__ = [
    "GptConfigRecord",
    "OracleCounterRecord",
    "validate_prompt",
]


def validate_prompt(prompt: str) -> str:
    """
    Check a prompt against the record's storage limit.

    Raises:
        ValueError: If the UTF-8 encoding is empty or longer than MAX_PROMPT_LEN bytes.
    """
    n = len(prompt.encode("utf-8"))
    if n == 0:
        raise ValueError("prompt must not be empty")
    if n > MAX_PROMPT_LEN:
        raise ValueError(f"prompt is {n} bytes; the record stores at most {MAX_PROMPT_LEN}")
    return prompt


class GptConfigRecord(BaseModel):
    """
    Oracle job configuration record.

    Attributes:
        discriminator (bytes): 8-byte record-kind tag.
        admin (Pubkey): Wallet that initialized the record.
        context_account (Pubkey): Oracle context record the prompt is sent against.
        prompt (str): Recurring prompt text.
        latest_response (str): Last response written by the oracle callback; empty
            until the first callback lands.
        bump (int): Derivation bump stored by the program.

    Examples:
        >>> from gptcron.core.records import GptConfigRecord
        >>> raw = bytes(72) + b"\\x05\\x00\\x00\\x00hello" + bytes(5)
        >>> rec = GptConfigRecord.from_bytes(raw)
        >>> rec.prompt, rec.latest_response, rec.size
        ('hello', '', 86)
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    discriminator: bytes = GPT_CONFIG_LAYOUT.discriminator or bytes(8)
    admin: Pubkey
    context_account: Pubkey
    prompt: str
    latest_response: str = ""
    bump: int = Field(default=0, ge=0, le=255)

    @field_validator("discriminator")
    @classmethod
    def _discriminator_width(cls, v: bytes) -> bytes:
        if len(v) != 8:
            raise ValueError(f"discriminator must be 8 bytes, got {len(v)}")
        return v

    @classmethod
    def from_bytes(cls, data: bytes, *, check_discriminator: bool = False) -> GptConfigRecord:
        """
        Decode a GptConfig account.

        Raises:
            TruncatedRecordError: If the buffer ends inside a declared field.
            LayoutMismatchError: If ``check_discriminator`` is set and the tag differs.
        """
        return cls(
            **decode_record(data, GPT_CONFIG_LAYOUT, check_discriminator=check_discriminator)
        )

    def to_bytes(self) -> bytes:
        return encode_record(GPT_CONFIG_LAYOUT, self.model_dump())

    @property
    def size(self) -> int:
        """8 + 32 + 32 + (4 + len(prompt)) + (4 + len(response)) + 1, in UTF-8 bytes."""
        return (
            8
            + 32
            + 32
            + 4
            + len(self.prompt.encode("utf-8"))
            + 4
            + len(self.latest_response.encode("utf-8"))
            + 1
        )

    @property
    def has_response(self) -> bool:
        return bool(self.latest_response)


class OracleCounterRecord(BaseModel):
    """Oracle context counter; the next context record is derived from ``count``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    discriminator: bytes = ORACLE_COUNTER_LAYOUT.discriminator or bytes(8)
    count: int = Field(ge=0, le=0xFFFFFFFF)

    @classmethod
    def from_bytes(cls, data: bytes) -> OracleCounterRecord:
        return cls(**decode_record(data, ORACLE_COUNTER_LAYOUT))

    def to_bytes(self) -> bytes:
        return encode_record(ORACLE_COUNTER_LAYOUT, self.model_dump())
