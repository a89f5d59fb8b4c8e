from __future__ import annotations

import struct
from collections.abc import Callable, Sequence

import pytest
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from gptcron.chain.client import ChainContext
from gptcron.chain.config import ChainSettings
from gptcron.chain.errors import TransactionFailedError
from gptcron.chain.scheduler import JobOptions, QueueOptions
from gptcron.core.addresses import tuktuk_config_address
from gptcron.core.codec import encode_record
from gptcron.core.constants import SYSTEM_PROGRAM_ID
from gptcron.core.hashing import method_selector
from gptcron.core.layouts import TASK_QUEUE_NAME_MAPPING_LAYOUT, TUKTUK_CONFIG_LAYOUT


class FakeLedger:
    """In-memory LedgerClient: accounts, balances, and a hook run on every submission."""

    def __init__(self) -> None:
        self.accounts: dict[Pubkey, bytes] = {}
        self.balances: dict[Pubkey, int] = {}
        self.sent: list[Transaction] = []
        self.handlers: dict[bytes, Callable[[Transaction], None]] = {}
        self.fail_with: Exception | None = None
        self.settles = True
        # log lines of the next transaction that lands with an error
        self.fail_logs: list[str] = []
        self.confirm_calls = 0

    def get_account_bytes(self, address: Pubkey) -> bytes | None:
        return self.accounts.get(address)

    def get_balance(self, address: Pubkey) -> int:
        return self.balances.get(address, 0)

    def latest_blockhash(self) -> Hash:
        return Hash.default()

    def submit_transaction(self, tx: Transaction) -> Signature:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(tx)
        for ix in tx.message.instructions:
            program = tx.message.account_keys[ix.program_id_index]
            if program == SYSTEM_PROGRAM_ID:
                # system transfer: u32 tag 2, u64 lamports; accounts [from, to]
                _, lamports = struct.unpack("<IQ", bytes(ix.data))
                to = tx.message.account_keys[ix.accounts[1]]
                self.balances[to] = self.balances.get(to, 0) + lamports
                continue
            handler = self.handlers.get(bytes(ix.data)[:8])
            if handler is not None:
                handler(tx)
        return tx.signatures[0]

    def confirm(self, signature: Signature) -> bool:
        self.confirm_calls += 1
        if self.fail_logs:
            logs, self.fail_logs = self.fail_logs, []
            raise TransactionFailedError(signature, error="InstructionError", logs=logs)
        return self.settles

    def on(self, method: str, handler: Callable[[Transaction], None]) -> None:
        self.handlers[method_selector(method)] = handler

    def methods_sent(self) -> list[bytes]:
        return [bytes(ix.data)[:8] for tx in self.sent for ix in tx.message.instructions]


class FakeScheduler:
    """In-memory SchedulerClient keyed by name."""

    def __init__(self) -> None:
        self.queues: dict[str, Pubkey] = {}
        self.jobs: dict[str, Pubkey] = {}
        self.authorities: list[tuple[Pubkey, Pubkey]] = []
        self.job_instructions: dict[str, list[Instruction]] = {}
        self.queue_calls = 0
        self.job_calls = 0
        self.fail_queue: Exception | None = None
        self.fail_job: Exception | None = None

    def get_task_queue(self, name: str) -> Pubkey | None:
        return self.queues.get(name)

    def create_task_queue(self, name: str, options: QueueOptions) -> Pubkey:
        self.queue_calls += 1
        if self.fail_queue is not None:
            raise self.fail_queue
        self.queues[name] = Pubkey.new_unique()
        return self.queues[name]

    def add_queue_authority(self, task_queue: Pubkey, authority: Pubkey) -> None:
        self.authorities.append((task_queue, authority))

    def get_cron_job(self, task_queue: Pubkey, name: str) -> Pubkey | None:
        return self.jobs.get(name)

    def create_cron_job(
        self,
        task_queue: Pubkey,
        name: str,
        schedule: str,
        instructions: Sequence[Instruction],
        options: JobOptions,
    ) -> Pubkey:
        self.job_calls += 1
        if self.fail_job is not None:
            raise self.fail_job
        self.jobs[name] = Pubkey.new_unique()
        self.job_instructions[name] = list(instructions)
        return self.jobs[name]


def find_instruction(tx: Transaction, method: str) -> tuple[list[Pubkey], bytes]:
    """Accounts and data of the first instruction in ``tx`` calling ``method``."""
    selector = method_selector(method)
    keys = tx.message.account_keys
    for ix in tx.message.instructions:
        data = bytes(ix.data)
        if data[:8] == selector:
            return [keys[i] for i in ix.accounts], data
    raise LookupError(method)


class FakeTaskQueueProgram:
    """Task-queue program (and the GPT program's schedule method) simulated on a FakeLedger."""

    def __init__(self, ledger: FakeLedger, next_queue_id: int = 4) -> None:
        self.ledger = ledger
        self.config = tuktuk_config_address().address
        self.next_queue_id = next_queue_id
        self.queues: list[Pubkey] = []
        self.grants: list[tuple[Pubkey, Pubkey]] = []
        self.tasks: list[tuple[Pubkey, bytes]] = []
        self._write_config()
        ledger.on("initialize_task_queue_v0", self._create_queue)
        ledger.on("add_queue_authority_v0", self._grant)
        ledger.on("schedule", self._queue_task)

    def _write_config(self) -> None:
        self.ledger.accounts[self.config] = encode_record(
            TUKTUK_CONFIG_LAYOUT,
            {
                "discriminator": TUKTUK_CONFIG_LAYOUT.discriminator,
                "min_task_queue_id": 0,
                "next_task_queue_id": self.next_queue_id,
                "authority": Pubkey.default(),
                "min_deposit": 0,
                "bump_seed": 255,
            },
        )

    def _create_queue(self, tx: Transaction) -> None:
        accounts, data = find_instruction(tx, "initialize_task_queue_v0")
        queue, mapping = accounts[3], accounts[4]
        # args: u64 min_crank_reward, then the length-prefixed name
        (length,) = struct.unpack_from("<I", data, 16)
        name = data[20 : 20 + length].decode("utf-8")
        self.ledger.accounts[queue] = b"queue"
        self.ledger.accounts[mapping] = encode_record(
            TASK_QUEUE_NAME_MAPPING_LAYOUT,
            {
                "discriminator": TASK_QUEUE_NAME_MAPPING_LAYOUT.discriminator,
                "task_queue": queue,
                "name": name,
                "bump_seed": 254,
            },
        )
        self.queues.append(queue)
        self.next_queue_id += 1
        self._write_config()

    def _grant(self, tx: Transaction) -> None:
        accounts, _ = find_instruction(tx, "add_queue_authority_v0")
        authority, grant, queue = accounts[2], accounts[3], accounts[4]
        self.ledger.accounts[grant] = b"grant"
        self.grants.append((queue, authority))

    def _queue_task(self, tx: Transaction) -> None:
        accounts, data = find_instruction(tx, "schedule")
        task = accounts[6]
        self.ledger.accounts[task] = b"task"
        self.tasks.append((task, data[8:]))


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def settings() -> ChainSettings:
    return ChainSettings(rpc_url="http://localhost:8899", poll_interval=0.01, poll_timeout=1.0)


@pytest.fixture
def context(ledger: FakeLedger, settings: ChainSettings) -> ChainContext:
    return ChainContext(client=ledger, payer=Keypair(), settings=settings)


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def task_queue_program(ledger: FakeLedger) -> FakeTaskQueueProgram:
    return FakeTaskQueueProgram(ledger)
