"""
Frozen wire layouts for persisted records and method arguments.

Notes:
    - A layout is an ordered list of fields, each either fixed width or
      length-prefixed (4-byte little-endian length followed by the payload).
    - Offsets are fixed up to the first length-prefixed field; after that each field
      must be read in declared order because every prefix moves the next start.
    - Record layouts carry the discriminator of their record kind; argument layouts
      carry none (the method selector is prepended by the codec).
    - Core is zero-IO; the chain layer fetches bytes and decodes them with these.
"""

from __future__ import annotations

from dataclasses import dataclass

from .hashing import account_discriminator

__all__ = [
    "FIXED_WIDTHS",
    "PREFIXED_KINDS",
    "FieldSpec",
    "RecordLayout",
    "GPT_CONFIG_LAYOUT",
    "ORACLE_COUNTER_LAYOUT",
    "TUKTUK_CONFIG_LAYOUT",
    "TASK_QUEUE_NAME_MAPPING_LAYOUT",
    "get_layout",
    "list_layouts",
]

# kind -> byte width. "fixed" takes its width from FieldSpec.size.
FIXED_WIDTHS: dict[str, int] = {
    "u8": 1,
    "u16": 2,
    "u32": 4,
    "u64": 8,
    "i64": 8,
    "pubkey": 32,
}

# kinds preceded by a u32 little-endian length
PREFIXED_KINDS: frozenset[str] = frozenset({"string", "bytes"})

LENGTH_PREFIX_WIDTH = 4


@dataclass(frozen=True)
class FieldSpec:
    """
    One field of a wire layout.

    Attributes:
        name (str): lower_snake field name; becomes the key in decoded mappings.
        kind (str): One of FIXED_WIDTHS, PREFIXED_KINDS, or "fixed".
        size (int | None): Width in bytes for kind "fixed"; ignored otherwise.
    """

    name: str
    kind: str
    size: int | None = None

    def __post_init__(self) -> None:
        if self.kind == "fixed":
            if self.size is None or self.size < 0:
                raise ValueError(f"field {self.name!r}: kind 'fixed' requires a size >= 0")
        elif self.kind not in FIXED_WIDTHS and self.kind not in PREFIXED_KINDS:
            raise ValueError(f"field {self.name!r}: unknown kind {self.kind!r}")

    @property
    def width(self) -> int | None:
        """Fixed width in bytes, or None for length-prefixed fields."""
        if self.kind == "fixed":
            return self.size
        return FIXED_WIDTHS.get(self.kind)

    @property
    def min_width(self) -> int:
        """Smallest number of bytes this field can occupy."""
        w = self.width
        return LENGTH_PREFIX_WIDTH if w is None else w


@dataclass(frozen=True)
class RecordLayout:
    """
    Ordered field list describing a persisted record or an argument block.

    Attributes:
        name (str): Record kind (PascalCase, as named by the remote program) or
            method name for argument layouts.
        fields (tuple[FieldSpec, ...]): Fields in declared order.
        discriminator (bytes | None): Expected leading 8 bytes for record layouts.

    Examples:
        >>> from gptcron.core.layouts import GPT_CONFIG_LAYOUT
        >>> GPT_CONFIG_LAYOUT.min_size
        81
        >>> GPT_CONFIG_LAYOUT.fixed_size is None
        True
    """

    name: str
    fields: tuple[FieldSpec, ...]
    discriminator: bytes | None = None

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    @property
    def min_size(self) -> int:
        return sum(f.min_width for f in self.fields)

    @property
    def fixed_size(self) -> int | None:
        """Total size when every field is fixed width; None otherwise."""
        widths = [f.width for f in self.fields]
        if any(w is None for w in widths):
            return None
        return sum(w for w in widths if w is not None)


# -----------------------------------------------------------------------------
# Record layouts
# -----------------------------------------------------------------------------

# [8B discriminator][32B admin][32B context][4B len][prompt][4B len][response][1B bump]
GPT_CONFIG_LAYOUT = RecordLayout(
    name="GptConfig",
    fields=(
        FieldSpec("discriminator", "fixed", 8),
        FieldSpec("admin", "pubkey"),
        FieldSpec("context_account", "pubkey"),
        FieldSpec("prompt", "string"),
        FieldSpec("latest_response", "string"),
        FieldSpec("bump", "u8"),
    ),
    discriminator=account_discriminator("GptConfig"),
)

# Oracle counter: [8B discriminator][u32 count], further fields ignored.
ORACLE_COUNTER_LAYOUT = RecordLayout(
    name="Counter",
    fields=(
        FieldSpec("discriminator", "fixed", 8),
        FieldSpec("count", "u32"),
    ),
    discriminator=account_discriminator("Counter"),
)

# Task-queue program config; next_task_queue_id numbers the next queue created.
TUKTUK_CONFIG_LAYOUT = RecordLayout(
    name="TuktukConfigV0",
    fields=(
        FieldSpec("discriminator", "fixed", 8),
        FieldSpec("min_task_queue_id", "u32"),
        FieldSpec("next_task_queue_id", "u32"),
        FieldSpec("authority", "pubkey"),
        FieldSpec("min_deposit", "u64"),
        FieldSpec("bump_seed", "u8"),
    ),
    discriminator=account_discriminator("TuktukConfigV0"),
)

# [8B discriminator][32B task_queue][4B len][name][1B bump]
TASK_QUEUE_NAME_MAPPING_LAYOUT = RecordLayout(
    name="TaskQueueNameMappingV0",
    fields=(
        FieldSpec("discriminator", "fixed", 8),
        FieldSpec("task_queue", "pubkey"),
        FieldSpec("name", "string"),
        FieldSpec("bump_seed", "u8"),
    ),
    discriminator=account_discriminator("TaskQueueNameMappingV0"),
)

# Registry
_LAYOUTS: dict[str, RecordLayout] = {
    GPT_CONFIG_LAYOUT.name: GPT_CONFIG_LAYOUT,
    ORACLE_COUNTER_LAYOUT.name: ORACLE_COUNTER_LAYOUT,
    TUKTUK_CONFIG_LAYOUT.name: TUKTUK_CONFIG_LAYOUT,
    TASK_QUEUE_NAME_MAPPING_LAYOUT.name: TASK_QUEUE_NAME_MAPPING_LAYOUT,
}


def get_layout(name: str) -> RecordLayout:
    """
    Look up a record layout by record kind.

    Raises:
        KeyError: If no layout is registered under ``name``.
    """
    return _LAYOUTS[name]


def list_layouts() -> list[RecordLayout]:
    """Return all registered record layouts in registry order."""
    return list(_LAYOUTS.values())
