"""
Core package aggregator for gptcron contracts (addresses, codec, layouts, records, methods).

## Contracts (single source of truth)
- Constants — program ids, seed tags, storage limits.
- Addresses — deterministic program-derived addresses.
- Hashing/Codec — selectors, discriminators, bit-exact encoders and decoders.
- Layouts/Records — record layouts and typed pydantic views over them.
- Methods — method name to account roles and argument encoding.
- Tasks — compiled-transaction format for queued tasks.

## Notes
- Zero-IO policy: stdlib + pydantic + solders only; no network access.
- Codec failures (TruncatedRecordError, LayoutMismatchError) mean version skew with the
  remote program and are never coerced.

## Downstream usage
- gptcron.chain — fetches account bytes, decodes them with `layouts`/`records`, and submits
  instructions built by `methods`.

## Examples
```python
from gptcron.core.addresses import gpt_config_address, payer_address
from gptcron.core.methods import build_instruction
from gptcron.core.hashing import method_selector

method_selector("ask_gpt").hex()  # 8-byte selector
gpt_config_address().address      # deterministic
```
"""
