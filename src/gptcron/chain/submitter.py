"""
Build, sign and submit method-call transactions.

RequestSubmitter turns a method name, its accounts and its arguments into a signed
transaction against the current chain-tip blockhash, hands it to the ledger client and,
when asked, waits for settlement.

Failure modes
- UnknownMethodError: the method is not declared locally, or the remote rejected its
  selector (classified at the ledger-client boundary).
- TransactionFailedError: the transaction was submitted but failed or did not settle.
- Anything else raised by the ledger client propagates unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from gptcron.core.errors import UnknownMethodError
from gptcron.core.methods import build_instruction

from .client import ChainContext, SettlementHandle, is_unknown_method_error
from .errors import TransactionFailedError

__all__ = ["RequestSubmitter"]

logger = logging.getLogger(__name__)


class RequestSubmitter:
    """Submits instructions signed by the context wallet plus any extra signers."""

    def __init__(self, context: ChainContext) -> None:
        self.context = context

    def submit(
        self,
        method: str,
        accounts: Mapping[str, Pubkey] | Sequence[Pubkey],
        args: Mapping[str, Any] | bytes | None = None,
        *,
        signers: Sequence[Keypair] = (),
        remaining: Sequence[AccountMeta] = (),
        wait: bool = True,
    ) -> SettlementHandle:
        """
        Submit one method call.

        Args:
            method (str): Declared method name.
            accounts: Accounts by role name or in declared order.
            args: Argument values or pre-encoded argument bytes.
            signers (Sequence[Keypair]): Signers besides the context wallet.
            remaining (Sequence[AccountMeta]): Extra accounts after the declared ones.
            wait (bool): Block until settlement.

        Returns:
            SettlementHandle: Signature and whether settlement was observed.

        Raises:
            UnknownMethodError: Method not declared, or selector rejected remotely
                (in preflight or on-chain).
            AccountRoleError: Accounts do not match the method's roles.
            TransactionFailedError: Submitted but failed or not settled (only when
                ``wait``); carries the ledger error and logs when it landed.
        """
        ix = build_instruction(method, accounts, args, remaining=remaining)
        try:
            return self.submit_instructions([ix], signers=signers, wait=wait)
        except Exception as exc:
            if is_unknown_method_error(exc):
                raise UnknownMethodError(f"remote program rejected method {method!r}") from exc
            raise

    def submit_instructions(
        self,
        instructions: Sequence[Instruction],
        *,
        signers: Sequence[Keypair] = (),
        wait: bool = True,
    ) -> SettlementHandle:
        """Sign pre-built instructions with the context wallet and submit them."""
        ctx = self.context
        blockhash = ctx.client.latest_blockhash()
        message = Message.new_with_blockhash(list(instructions), ctx.wallet, blockhash)
        tx = Transaction([ctx.payer, *signers], message, blockhash)

        signature = ctx.client.submit_transaction(tx)
        logger.debug("Submitted %s", signature)
        if not wait:
            return SettlementHandle(signature=signature, confirmed=False)

        if not ctx.client.confirm(signature):
            raise TransactionFailedError(signature)
        logger.debug("Settled %s", signature)
        return SettlementHandle(signature=signature, confirmed=True)
