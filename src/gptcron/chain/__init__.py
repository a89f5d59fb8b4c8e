"""
gptcron.chain — Ledger-facing layer for the on-chain GPT oracle flow.

## Responsibilities
- Load runtime configuration (env > TOML > defaults) and the admin keypair.
- Wrap the JSON-RPC endpoint behind the LedgerClient protocol and carry it in an explicit ChainContext.
- Provision long-lived resources idempotently (context record, config record, payer balance, task queue, scheduled job).
- Submit method calls, await settlement, and poll for the oracle's asynchronous response.

## Public API
- ChainSettings — Configuration (defaults sourced from gptcron.core.constants).
- ChainContext — Client + admin wallet + settings passed to every component.
- OracleSession — Facade running the request/response round and scheduling.
- ResourceProvisioner, RequestSubmitter, ResponseWatcher, ScheduleManager — the building blocks.
- LedgerScheduler — SchedulerClient over the ledger (task queues and the GPT program's schedule method).

## Source of truth and dependencies
- gptcron.core.addresses derives every address; gptcron.core.methods declares every call.
- gptcron.core.records decodes every account read here.
- Remote rejections are classified only in gptcron.chain.client.

## Import DAG discipline
- Depends on stdlib, solana/solders, python-dotenv, base58 and gptcron.core.*.
- MUST NOT import gptcron.cli.

## Examples
```python
from gptcron.chain import ChainContext, ChainSettings, OracleSession

settings = ChainSettings.load()  # doctest: +SKIP
session = OracleSession(ChainContext.from_settings(settings))  # doctest: +SKIP
result = session.run_round(timeout=60)  # doctest: +SKIP
print(result.response)  # doctest: +SKIP
```

## Notes
- Every submission awaits settlement before a dependent step runs.
- A creation rejected because the account already exists converges to ALREADY_EXISTED.
"""

from __future__ import annotations

from .client import ChainContext, LedgerClient, RpcLedgerClient, SettlementHandle
from .config import ChainSettings, load_env_file, load_keypair
from .errors import (
    AccountNotFoundError,
    ChainError,
    ConfigError,
    ProvisionStateError,
    ResponseTimeoutError,
    TransactionFailedError,
)
from .provisioner import ProvisionOutcome, ProvisionStatus, ResourceKind, ResourceProvisioner
from .scheduler import (
    JobOptions,
    LedgerScheduler,
    QueueOptions,
    ScheduleManager,
    SchedulerClient,
    ScheduleResult,
)
from .session import OracleSession, RoundResult, SessionAddresses, session_addresses
from .submitter import RequestSubmitter
from .watcher import ResponseWatcher, poll_until

__all__ = [
    "ChainSettings",
    "load_env_file",
    "load_keypair",
    "LedgerClient",
    "RpcLedgerClient",
    "SettlementHandle",
    "ChainContext",
    "ChainError",
    "ConfigError",
    "AccountNotFoundError",
    "TransactionFailedError",
    "ProvisionStateError",
    "ResponseTimeoutError",
    "ResourceKind",
    "ProvisionStatus",
    "ProvisionOutcome",
    "ResourceProvisioner",
    "RequestSubmitter",
    "ResponseWatcher",
    "poll_until",
    "QueueOptions",
    "JobOptions",
    "SchedulerClient",
    "LedgerScheduler",
    "ScheduleResult",
    "ScheduleManager",
    "OracleSession",
    "RoundResult",
    "SessionAddresses",
    "session_addresses",
]
