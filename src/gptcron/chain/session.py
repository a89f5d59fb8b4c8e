"""
OracleSession facade for the end-to-end request/response flow.

Binds an explicit ChainContext and runs the provisioning and request steps in order,
each awaiting settlement before the next dependent step:

1. ensure_context: oracle context record (reused from an existing config when present)
2. ensure_config: GptConfig record holding the recurring prompt
3. ensure_payer_funded: payer PDA balance above the minimum
4. ask: ask_gpt, which forwards the prompt to the oracle
5. wait_for_response: poll GptConfig.latest_response for the callback

``schedule`` wraps the ask_gpt instruction into a scheduled job through ScheduleManager,
backed by LedgerScheduler unless another SchedulerClient is supplied.

Source of truth
- Addresses: gptcron.core.addresses
- Methods/account roles: gptcron.core.methods
- Record layouts: gptcron.core.layouts / gptcron.core.records
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer

from gptcron.core.addresses import (
    gpt_config_address,
    interaction_address,
    oracle_context_address,
    oracle_counter_address,
    oracle_identity_address,
    payer_address,
)
from gptcron.core.constants import ORACLE_PROGRAM_ID, SYSTEM_PROGRAM_ID
from gptcron.core.methods import build_instruction
from gptcron.core.records import GptConfigRecord, OracleCounterRecord, validate_prompt

from .client import ChainContext, SettlementHandle
from .errors import AccountNotFoundError
from .provisioner import ProvisionOutcome, ResourceKind, ResourceProvisioner
from .scheduler import LedgerScheduler, ScheduleManager, ScheduleResult
from .submitter import RequestSubmitter
from .watcher import ResponseWatcher

__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "DEFAULT_PROMPT",
    "SessionAddresses",
    "session_addresses",
    "RoundResult",
    "OracleSession",
]

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful on-chain oracle. Give very short answers (under 100 chars)."
)
DEFAULT_PROMPT = "What is the current sentiment of Solana ecosystem in one sentence?"


@dataclass(frozen=True)
class SessionAddresses:
    gpt_config: Pubkey
    payer: Pubkey
    oracle_counter: Pubkey
    oracle_identity: Pubkey


def session_addresses() -> SessionAddresses:
    """Addresses the session touches; derivation only, no network access."""
    return SessionAddresses(
        gpt_config=gpt_config_address().address,
        payer=payer_address().address,
        oracle_counter=oracle_counter_address().address,
        oracle_identity=oracle_identity_address().address,
    )


@dataclass(frozen=True)
class RoundResult:
    """Outcome of one full request/response round."""

    context: ProvisionOutcome[Pubkey]
    config: ProvisionOutcome[GptConfigRecord]
    payer: ProvisionOutcome[int]
    request: SettlementHandle
    response: str


class OracleSession:
    """
    Facade bound to a ChainContext.

    Notes:
        - Construction performs no network calls.
        - Components may be injected; by default they are built from the context.
    """

    def __init__(
        self,
        context: ChainContext,
        *,
        provisioner: ResourceProvisioner | None = None,
        submitter: RequestSubmitter | None = None,
        watcher: ResponseWatcher | None = None,
    ) -> None:
        self.context = context
        self.provisioner = provisioner or ResourceProvisioner()
        self.submitter = submitter or RequestSubmitter(context)
        self.watcher = watcher or ResponseWatcher(context)

    # ---------------------------------------------------------------------
    # Addresses and reads
    # ---------------------------------------------------------------------
    def addresses(self) -> SessionAddresses:
        return session_addresses()

    def read_config(self) -> GptConfigRecord | None:
        """Decode the GptConfig account, or None if it does not exist yet."""
        raw = self.context.client.get_account_bytes(gpt_config_address().address)
        return None if raw is None else GptConfigRecord.from_bytes(raw)

    def read_counter(self) -> OracleCounterRecord:
        """
        Decode the oracle counter.

        Raises:
            AccountNotFoundError: If the oracle counter is not deployed on this network.
        """
        address = oracle_counter_address().address
        raw = self.context.client.get_account_bytes(address)
        if raw is None:
            raise AccountNotFoundError(f"oracle counter {address} not found")
        return OracleCounterRecord.from_bytes(raw)

    def require_config(self) -> GptConfigRecord:
        config = self.read_config()
        if config is None:
            raise AccountNotFoundError("GptConfig not initialized; run setup first")
        return config

    # ---------------------------------------------------------------------
    # Provisioning
    # ---------------------------------------------------------------------
    def ensure_context(self, system_prompt: str = DEFAULT_SYSTEM_PROMPT) -> ProvisionOutcome[Pubkey]:
        """
        Ensure an oracle context record exists.

        Notes:
            An initialized GptConfig pins its context; that one is reused. Otherwise the
            next context address is derived from the current oracle counter value.
        """
        client = self.context.client
        config = self.read_config()
        if config is not None:
            target = config.context_account
        else:
            count = self.read_counter().count
            logger.info("Oracle counter: %d", count)
            target = oracle_context_address(count).address

        def lookup() -> Pubkey | None:
            return target if client.get_account_bytes(target) is not None else None

        def create() -> SettlementHandle:
            return self.submitter.submit(
                "create_llm_context",
                {
                    "payer": self.context.wallet,
                    "counter": oracle_counter_address().address,
                    "context_account": target,
                    "system_program": SYSTEM_PROGRAM_ID,
                },
                {"text": system_prompt},
            )

        return self.provisioner.ensure(
            ResourceKind.CONTEXT_RECORD, str(target), lookup, create, after_create=lambda: target
        )

    def ensure_config(
        self, context_account: Pubkey, prompt: str = DEFAULT_PROMPT
    ) -> ProvisionOutcome[GptConfigRecord]:
        """
        Ensure the GptConfig record exists, initializing it with ``prompt``.

        Raises:
            ValueError: If the prompt is empty or exceeds the record's storage limit.
        """
        validate_prompt(prompt)
        config = gpt_config_address().address

        def create() -> SettlementHandle:
            return self.submitter.submit(
                "initialize",
                {
                    "admin": self.context.wallet,
                    "gpt_config": config,
                    "context_account": context_account,
                    "system_program": SYSTEM_PROGRAM_ID,
                },
                {"prompt": prompt},
            )

        return self.provisioner.ensure(
            ResourceKind.CONFIG_RECORD, str(config), self.read_config, create
        )

    def ensure_payer_funded(self) -> ProvisionOutcome[int]:
        settings = self.context.settings
        wallet = self.context.wallet

        def send(to: Pubkey, lamports: int) -> SettlementHandle:
            ix = transfer(TransferParams(from_pubkey=wallet, to_pubkey=to, lamports=lamports))
            return self.submitter.submit_instructions([ix])

        return self.provisioner.ensure_funded(
            payer_address().address,
            balance=self.context.client.get_balance,
            transfer=send,
            minimum=settings.payer_min_lamports,
            top_up=settings.payer_top_up_lamports,
        )

    # ---------------------------------------------------------------------
    # Request / response
    # ---------------------------------------------------------------------
    def ask_gpt_accounts(self, context_account: Pubkey) -> dict[str, Pubkey]:
        payer = payer_address().address
        return {
            "gpt_config": gpt_config_address().address,
            "payer": payer,
            "interaction": interaction_address(payer, context_account).address,
            "context_account": context_account,
            "oracle_program": ORACLE_PROGRAM_ID,
            "system_program": SYSTEM_PROGRAM_ID,
        }

    def ask_gpt_instruction(self, context_account: Pubkey | None = None) -> Instruction:
        """
        Build the ask_gpt instruction, reading the context from GptConfig when not given.

        Raises:
            AccountNotFoundError: If ``context_account`` is None and GptConfig is missing.
        """
        if context_account is None:
            context_account = self.require_config().context_account
        return build_instruction("ask_gpt", self.ask_gpt_accounts(context_account))

    def ask(self, *, wait: bool = True) -> SettlementHandle:
        """Submit ask_gpt against the context recorded in GptConfig."""
        context_account = self.require_config().context_account
        accounts = self.ask_gpt_accounts(context_account)
        logger.info("Interaction PDA: %s", accounts["interaction"])
        handle = self.submitter.submit("ask_gpt", accounts, wait=wait)
        logger.info("ask_gpt sent, tx: %s", handle)
        return handle

    def wait_for_response(
        self,
        *,
        timeout: float | None = None,
        interval: float | None = None,
        previous: str | None = None,
    ) -> str:
        return self.watcher.wait_for_response(
            gpt_config_address().address,
            timeout=timeout,
            interval=interval,
            previous=previous,
        )

    def run_round(
        self,
        *,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        prompt: str = DEFAULT_PROMPT,
        timeout: float | None = None,
    ) -> RoundResult:
        """
        Provision everything, ask once, and wait for the callback.

        Raises:
            ResponseTimeoutError: If no new response lands before ``timeout``.
            Exception: The original failure of any provisioning or submission step;
                later steps do not run.
        """
        context = self.ensure_context(system_prompt)
        context_account = context.unwrap()
        if context_account is None:
            raise AccountNotFoundError("oracle context account could not be resolved")
        config = self.ensure_config(context_account, prompt)
        record = config.unwrap()
        payer = self.ensure_payer_funded()
        payer.unwrap()

        previous = record.latest_response if record is not None else None
        request = self.ask()
        logger.info("Oracle will process off-chain and write the response back")
        response = self.wait_for_response(timeout=timeout, previous=previous or None)
        return RoundResult(
            context=context, config=config, payer=payer, request=request, response=response
        )

    # ---------------------------------------------------------------------
    # Scheduling
    # ---------------------------------------------------------------------
    def schedule(
        self,
        manager: ScheduleManager | None = None,
        *,
        queue_name: str | None = None,
        job_name: str | None = None,
        schedule: str | None = None,
    ) -> ScheduleResult:
        """
        Register ask_gpt as a scheduled job; the wallet becomes a queue authority.

        Raises:
            AccountNotFoundError: If GptConfig is missing (the job needs its context).
        """
        settings = self.context.settings
        if manager is None:
            manager = ScheduleManager(
                LedgerScheduler(self.context, self.submitter), self.provisioner
            )
        return manager.ensure_scheduled(
            queue_name or settings.task_queue_name,
            job_name or settings.cron_job_name,
            schedule or settings.cron_schedule,
            [self.ask_gpt_instruction()],
            authorities=[self.context.wallet],
        )

