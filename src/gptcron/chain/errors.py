"""
Custom exceptions for the gptcron.chain module.

Purpose
- Provide chain-layer error types for configuration, provisioning, and response polling.
- Keep gptcron.core as the source of truth for codec, derivation, and method-table errors
  (see gptcron.core.errors).

Boundaries
- Network and submission failures from the ledger client propagate unchanged; they are not
  wrapped here.
- A creation call rejected because the resource already exists is not an error; the
  provisioner reports it as ProvisionStatus.ALREADY_EXISTED.
"""

from __future__ import annotations


class ChainError(Exception):
    """
    Base class for chain-layer errors in gptcron.chain.

    Notes:
        Use this as a catch-all for chain-layer failures, distinct from gptcron.core errors.
    """


class ConfigError(ChainError):
    """
    Raised when configuration is invalid or a required credential cannot be loaded.

    Examples:
        - ADMIN_SECRET_KEY is neither a JSON byte array nor base58
        - Poll interval <= 0
    """


class AccountNotFoundError(ChainError):
    """Raised when an account that a step depends on does not exist on the ledger."""


class TransactionFailedError(ChainError):
    """
    Raised when a submitted transaction is reported as failed or unconfirmed at settlement.

    Attributes:
        signature: Signature of the failed transaction.
        error: Ledger-reported transaction error, or None when settlement was not observed.
        logs (tuple[str, ...]): Program log lines of the failed transaction, if fetched.
    """

    def __init__(
        self,
        signature: object,
        message: str = "",
        *,
        error: object = None,
        logs: list[str] | tuple[str, ...] | None = None,
    ) -> None:
        self.signature = signature
        self.error = error
        self.logs = tuple(logs or ())
        if not message:
            if error is None:
                message = f"transaction {signature} did not settle"
            else:
                message = f"transaction {signature} failed: {error}"
        super().__init__(message)


class ProvisionStateError(ChainError):
    """Raised on an illegal transition of the provisioning state machine."""


class ResponseTimeoutError(ChainError, TimeoutError):
    """
    Raised when a watched field did not reach a qualifying value before the deadline.

    Notes:
        Distinct from codec errors: a timeout means the write has not landed yet, a
        codec error means the record does not match its layout.
    """
