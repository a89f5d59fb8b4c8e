"""
Ledger-client boundary: the protocol the chain layer depends on and its RPC adapter.

Responsibilities
- Declare LedgerClient, the five operations this package needs from the network
  (account bytes, balance, chain-tip blockhash, submit, confirm).
- Adapt ``solana.rpc.api.Client`` to that protocol (RpcLedgerClient).
- Carry the explicit ChainContext (client + signing wallet + settings) that every
  component receives instead of a process-wide default provider.
- Classify remote rejections. This is the only place that inspects error text.

Notes
- Retry policy for transient network failures is not implemented here; errors from the
  RPC client propagate unchanged.
- ``confirm`` returns False only when settlement was not observed. A transaction that
  landed and failed raises TransactionFailedError carrying the ledger error and the
  transaction's log lines, so the classifiers below see on-chain rejections the same way
  they see preflight rejections.
- Every RPC request is bounded by ``rpc_timeout`` seconds.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Commitment
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from .config import ChainSettings, load_keypair
from .errors import TransactionFailedError

__all__ = [
    "LedgerClient",
    "RpcLedgerClient",
    "SettlementHandle",
    "ChainContext",
    "is_already_exists_error",
    "is_unknown_method_error",
]

logger = logging.getLogger(__name__)

_ALREADY_EXISTS_MARKERS = ("already in use", "already exists", "accountalreadyinitialized")
# Anchor error 101 (InstructionFallbackNotFound), reported as custom program error 0x65.
_UNKNOWN_METHOD_MARKERS = ("instructionfallbacknotfound", "custom program error: 0x65")


@runtime_checkable
class LedgerClient(Protocol):
    def get_account_bytes(self, address: Pubkey) -> bytes | None: ...

    def get_balance(self, address: Pubkey) -> int: ...

    def latest_blockhash(self) -> Hash: ...

    def submit_transaction(self, tx: Transaction) -> Signature: ...

    def confirm(self, signature: Signature) -> bool: ...


@dataclass(frozen=True)
class SettlementHandle:
    """
    Result of a submission.

    Attributes:
        signature (Signature): Transaction signature, usable for confirmation lookup.
        confirmed (bool): True once the transaction settled at the configured commitment;
            False when the caller chose not to wait.
    """

    signature: Signature
    confirmed: bool = False

    def __str__(self) -> str:
        return str(self.signature)


class RpcLedgerClient:
    """
    LedgerClient over a JSON-RPC endpoint.

    Notes:
        All reads use the configured commitment. Each request gives up after
        ``timeout`` seconds. Confirmation blocks until the signature reaches that
        commitment or the confirmation window elapses.
    """

    def __init__(
        self,
        rpc_url: str,
        commitment: str = "confirmed",
        *,
        skip_preflight: bool = False,
        timeout: float = 10.0,
        client: Client | None = None,
    ) -> None:
        self.commitment = Commitment(commitment)
        self.skip_preflight = skip_preflight
        self.timeout = timeout
        self._client = client or Client(rpc_url, commitment=self.commitment, timeout=timeout)

    @classmethod
    def from_settings(cls, settings: ChainSettings) -> RpcLedgerClient:
        return cls(
            settings.rpc_url,
            settings.commitment,
            skip_preflight=settings.skip_preflight,
            timeout=settings.rpc_timeout,
        )

    def get_account_bytes(self, address: Pubkey) -> bytes | None:
        account = self._client.get_account_info(address, commitment=self.commitment).value
        if account is None:
            return None
        return bytes(account.data)

    def get_balance(self, address: Pubkey) -> int:
        return int(self._client.get_balance(address, commitment=self.commitment).value)

    def latest_blockhash(self) -> Hash:
        return self._client.get_latest_blockhash(commitment=self.commitment).value.blockhash

    def submit_transaction(self, tx: Transaction) -> Signature:
        opts = TxOpts(skip_preflight=self.skip_preflight, preflight_commitment=self.commitment)
        return self._client.send_raw_transaction(bytes(tx), opts=opts).value

    def confirm(self, signature: Signature) -> bool:
        """
        Wait for ``signature`` to settle.

        Returns:
            bool: True once settled, False if settlement was not observed.

        Raises:
            TransactionFailedError: The transaction landed with an error; ``error`` and
                ``logs`` carry the ledger's report.
        """
        statuses = self._client.confirm_transaction(signature, commitment=self.commitment).value
        status = statuses[0] if statuses else None
        if status is None:
            return False
        if status.err is not None:
            logger.warning("Transaction %s failed: %s", signature, status.err)
            try:
                logs = self.transaction_logs(signature)
            except SolanaRpcException as exc:
                logger.warning("Could not fetch logs for %s: %s", signature, exc)
                logs = []
            raise TransactionFailedError(signature, error=status.err, logs=logs)
        return True

    def transaction_logs(self, signature: Signature) -> list[str]:
        """Program log lines of a landed transaction; empty if it is not retrievable."""
        # getTransaction does not serve "processed"
        commitment = self.commitment
        if commitment == "processed":
            commitment = Commitment("confirmed")
        resp = self._client.get_transaction(
            signature, commitment=commitment, max_supported_transaction_version=0
        )
        tx = resp.value
        meta = tx.transaction.meta if tx is not None else None
        if meta is None or meta.log_messages is None:
            return []
        return [str(line) for line in meta.log_messages]


@dataclass(frozen=True)
class ChainContext:
    """
    Explicit connection + wallet passed to every chain component.

    Attributes:
        client (LedgerClient): Network boundary.
        payer (Keypair): Admin wallet; pays fees and signs submissions.
        settings (ChainSettings): Funding policy, scheduling names, polling defaults.
    """

    client: LedgerClient
    payer: Keypair
    settings: ChainSettings

    @classmethod
    def from_settings(cls, settings: ChainSettings) -> ChainContext:
        """
        Build a context with an RPC client and the configured admin keypair.

        Raises:
            ConfigError: If the admin keypair cannot be loaded.
        """
        return cls(
            client=RpcLedgerClient.from_settings(settings),
            payer=load_keypair(settings),
            settings=settings,
        )

    @property
    def wallet(self) -> Pubkey:
        return self.payer.pubkey()


def _error_texts(exc: BaseException) -> Iterator[str]:
    yield str(exc)
    logs = getattr(exc, "logs", None)
    if logs:
        yield from (str(line) for line in logs)
    for arg in exc.args:
        data = getattr(arg, "data", None)
        for line in getattr(data, "logs", None) or ():
            yield str(line)
    if exc.__cause__ is not None:
        yield from _error_texts(exc.__cause__)


def _matches(exc: BaseException, markers: tuple[str, ...]) -> bool:
    return any(m in text.lower() for text in _error_texts(exc) for m in markers)


def is_already_exists_error(exc: BaseException) -> bool:
    """True if a creation call was rejected because the target account already exists."""
    return _matches(exc, _ALREADY_EXISTS_MARKERS)


def is_unknown_method_error(exc: BaseException) -> bool:
    """True if the remote program rejected the call's selector."""
    return _matches(exc, _UNKNOWN_METHOD_MARKERS)
