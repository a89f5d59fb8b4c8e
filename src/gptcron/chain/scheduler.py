"""
Provision a recurring trigger (task queue + scheduled job) for pre-built method calls.

ScheduleManager only makes sure the queue and the job exist; firing the job on its
schedule is the scheduling executor's responsibility. The task-queue side is reached
through the SchedulerClient protocol.

LedgerScheduler is the SchedulerClient shipped here. It talks to the ledger directly:
- queues are looked up through their name-mapping record and created with
  ``initialize_task_queue_v0``;
- authorities are granted with ``add_queue_authority_v0``;
- the job is an ask_gpt task queued through the GPT program's own ``schedule`` method,
  which compiles the queued transaction on-chain and signs for the payer.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from gptcron.core.addresses import (
    gpt_config_address,
    payer_address,
    queue_authority_address,
    task_address,
    task_queue_address,
    task_queue_authority_address,
    task_queue_name_mapping_address,
    tuktuk_config_address,
)
from gptcron.core.codec import decode_record
from gptcron.core.constants import (
    GPT_PROGRAM_ID,
    SEED_PAYER,
    SYSTEM_PROGRAM_ID,
    TUKTUK_PROGRAM_ID,
)
from gptcron.core.hashing import method_selector
from gptcron.core.layouts import TASK_QUEUE_NAME_MAPPING_LAYOUT, TUKTUK_CONFIG_LAYOUT
from gptcron.core.tasks import Trigger, compile_transaction

from .client import ChainContext, is_already_exists_error
from .errors import AccountNotFoundError
from .provisioner import ProvisionOutcome, ResourceKind, ResourceProvisioner
from .submitter import RequestSubmitter

__all__ = [
    "QueueOptions",
    "JobOptions",
    "SchedulerClient",
    "LedgerScheduler",
    "queued_task_accounts",
    "ScheduleResult",
    "ScheduleManager",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueOptions:
    capacity: int = 100
    min_crank_reward: int = 0
    stale_task_age: int = 3600


@dataclass(frozen=True)
class JobOptions:
    free_tasks_per_transaction: int = 0
    num_tasks_per_queue_call: int = 1


@runtime_checkable
class SchedulerClient(Protocol):
    def get_task_queue(self, name: str) -> Pubkey | None: ...

    def create_task_queue(self, name: str, options: QueueOptions) -> object: ...

    def add_queue_authority(self, task_queue: Pubkey, authority: Pubkey) -> object: ...

    def get_cron_job(self, task_queue: Pubkey, name: str) -> Pubkey | None: ...

    def create_cron_job(
        self,
        task_queue: Pubkey,
        name: str,
        schedule: str,
        instructions: Sequence[Instruction],
        options: JobOptions,
    ) -> object: ...


@dataclass(frozen=True)
class ScheduleResult:
    queue: ProvisionOutcome[Pubkey]
    job: ProvisionOutcome[Pubkey]

    @property
    def task_queue(self) -> Pubkey | None:
        return self.queue.value

    @property
    def cron_job(self) -> Pubkey | None:
        return self.job.value


class ScheduleManager:
    """Idempotently provisions a task queue and a scheduled job bound to it."""

    def __init__(
        self,
        scheduler: SchedulerClient,
        provisioner: ResourceProvisioner | None = None,
        *,
        queue_options: QueueOptions | None = None,
        job_options: JobOptions | None = None,
    ) -> None:
        self.scheduler = scheduler
        self.provisioner = provisioner or ResourceProvisioner()
        self.queue_options = queue_options or QueueOptions()
        self.job_options = job_options or JobOptions()

    def ensure_scheduled(
        self,
        queue_name: str,
        job_name: str,
        schedule: str,
        instructions: Sequence[Instruction],
        *,
        authorities: Sequence[Pubkey] = (),
    ) -> ScheduleResult:
        """
        Ensure ``queue_name`` and ``job_name`` exist, the job running ``instructions``.

        Args:
            queue_name (str): Task queue name.
            job_name (str): Scheduled job name.
            schedule (str): Cron expression.
            instructions (Sequence[Instruction]): Method calls the job re-submits, in order.
            authorities (Sequence[Pubkey]): Queue authorities granted after the queue is
                freshly created.

        Returns:
            ScheduleResult: Queue and job outcomes.

        Raises:
            ValueError: If ``instructions`` is empty.
            Exception: The original creation failure of the queue, an authority grant,
                or the job; a failed step aborts the remaining steps.
        """
        if not instructions:
            raise ValueError("a scheduled job needs at least one instruction")

        sched = self.scheduler
        queue = self.provisioner.ensure(
            ResourceKind.TASK_QUEUE,
            queue_name,
            lambda: sched.get_task_queue(queue_name),
            lambda: sched.create_task_queue(queue_name, self.queue_options),
        )
        task_queue = queue.unwrap()
        if task_queue is None:
            raise LookupError(f"task queue {queue_name!r} not found after creation")

        if queue.created:
            for authority in authorities:
                sched.add_queue_authority(task_queue, authority)
                logger.info("Added %s as queue authority on %s", authority, task_queue)

        job = self.provisioner.ensure(
            ResourceKind.SCHEDULED_JOB,
            job_name,
            lambda: sched.get_cron_job(task_queue, job_name),
            lambda: sched.create_cron_job(
                task_queue, job_name, schedule, list(instructions), self.job_options
            ),
        )
        job.unwrap()
        logger.info("Job %s on queue %s: %s", job_name, queue_name, job.status.value)
        return ScheduleResult(queue=queue, job=job)


class LedgerScheduler:
    """
    SchedulerClient backed by the ledger.

    Notes:
        - The job occupies task slot ``task_id`` on the queue and exists while that task
          is pending. Once the executor runs it, the slot is free and the next
          ``ensure_scheduled`` queues it again.
        - The GPT program builds the queued ask_gpt itself, so the only job accepted is a
          single ask_gpt call. The task fires on ``trigger``; the cron expression is kept
          for the caller's records and is not sent.
        - Before queueing, the GPT program's queue-authority PDA is granted on the queue
          if it is not already.
    """

    def __init__(
        self,
        context: ChainContext,
        submitter: RequestSubmitter | None = None,
        *,
        task_id: int | None = None,
        trigger: Trigger | None = None,
    ) -> None:
        self.context = context
        self.submitter = submitter or RequestSubmitter(context)
        self.task_id = context.settings.task_id if task_id is None else task_id
        self.trigger = trigger or Trigger.now()

    def get_task_queue(self, name: str) -> Pubkey | None:
        mapping = task_queue_name_mapping_address(name).address
        raw = self.context.client.get_account_bytes(mapping)
        if raw is None:
            return None
        return decode_record(raw, TASK_QUEUE_NAME_MAPPING_LAYOUT)["task_queue"]

    def create_task_queue(self, name: str, options: QueueOptions) -> Pubkey:
        """
        Create the queue numbered by the config's ``next_task_queue_id``.

        Raises:
            AccountNotFoundError: If the task-queue program is not configured on this network.
        """
        config = tuktuk_config_address().address
        raw = self.context.client.get_account_bytes(config)
        if raw is None:
            raise AccountNotFoundError(f"task-queue config {config} not found")
        queue_id = decode_record(raw, TUKTUK_CONFIG_LAYOUT)["next_task_queue_id"]
        task_queue = task_queue_address(queue_id, config).address
        wallet = self.context.wallet
        self.submitter.submit(
            "initialize_task_queue_v0",
            {
                "payer": wallet,
                "tuktuk_config": config,
                "update_authority": wallet,
                "task_queue": task_queue,
                "task_queue_name_mapping": task_queue_name_mapping_address(name).address,
                "system_program": SYSTEM_PROGRAM_ID,
            },
            {
                "name": name,
                "min_crank_reward": options.min_crank_reward,
                "capacity": options.capacity,
                "lookup_tables": [],
                "stale_task_age": options.stale_task_age,
            },
        )
        return task_queue

    def add_queue_authority(self, task_queue: Pubkey, authority: Pubkey) -> Pubkey:
        """Grant ``authority`` on ``task_queue``; an existing grant is left as is."""
        grant = task_queue_authority_address(task_queue, authority).address
        if self.context.client.get_account_bytes(grant) is not None:
            return grant
        wallet = self.context.wallet
        try:
            self.submitter.submit(
                "add_queue_authority_v0",
                {
                    "payer": wallet,
                    "update_authority": wallet,
                    "queue_authority": authority,
                    "task_queue_authority": grant,
                    "task_queue": task_queue,
                    "system_program": SYSTEM_PROGRAM_ID,
                },
            )
        except Exception as exc:
            if not is_already_exists_error(exc):
                raise
            logger.info("Queue authority %s was granted concurrently", authority)
        return grant

    def get_cron_job(self, task_queue: Pubkey, name: str) -> Pubkey | None:
        task = task_address(task_queue, self.task_id).address
        return task if self.context.client.get_account_bytes(task) is not None else None

    def create_cron_job(
        self,
        task_queue: Pubkey,
        name: str,
        schedule: str,
        instructions: Sequence[Instruction],
        options: JobOptions,
    ) -> Pubkey:
        """
        Queue ask_gpt as task ``task_id`` through the GPT program's ``schedule`` method.

        Raises:
            ValueError: If ``instructions`` is anything but a single ask_gpt call.
        """
        if len(instructions) != 1 or not _is_ask_gpt(instructions[0]):
            raise ValueError(f"job {name!r}: the GPT program only queues a single ask_gpt call")

        queue_authority = queue_authority_address().address
        self.add_queue_authority(task_queue, queue_authority)

        task = task_address(task_queue, self.task_id).address
        self.submitter.submit(
            "schedule",
            {
                "admin": self.context.wallet,
                "gpt_config": gpt_config_address().address,
                "payer_pda": payer_address().address,
                "queue_authority": queue_authority,
                "task_queue_authority": task_queue_authority_address(
                    task_queue, queue_authority
                ).address,
                "task_queue": task_queue,
                "task": task,
                "tuktuk_program": TUKTUK_PROGRAM_ID,
                "system_program": SYSTEM_PROGRAM_ID,
            },
            {"task_id": self.task_id, "trigger": self.trigger},
            remaining=queued_task_accounts(instructions[0]),
        )
        logger.info(
            "Queued %s as task %d on %s (%s); cron expression %r not sent",
            name,
            self.task_id,
            task_queue,
            "now" if self.trigger.timestamp is None else f"at {self.trigger.timestamp}",
            schedule,
        )
        return task


def _is_ask_gpt(ix: Instruction) -> bool:
    return ix.program_id == GPT_PROGRAM_ID and bytes(ix.data) == method_selector("ask_gpt")


def queued_task_accounts(ask: Instruction) -> list[AccountMeta]:
    """
    Accounts the GPT program forwards when it queues ``ask``.

    The program compiles ask_gpt with the payer PDA as a seed signer; the resulting
    account list has to travel with the ``schedule`` call so the nested queue call can
    reach every account the task references.
    """
    payer = payer_address()
    metas = [
        AccountMeta(m.pubkey, m.is_signer or m.pubkey == payer.address, m.is_writable)
        for m in ask.accounts
    ]
    signed = Instruction(ask.program_id, bytes(ask.data), metas)
    _, remaining = compile_transaction([signed], [[SEED_PAYER, bytes([payer.bump])]])
    return remaining
