from __future__ import annotations

import pytest
from solders.instruction import Instruction
from solders.pubkey import Pubkey

from gptcron.chain.provisioner import ProvisionStatus
from gptcron.chain.scheduler import QueueOptions, ScheduleManager, SchedulerClient


def _instructions() -> list[Instruction]:
    return [Instruction(Pubkey.new_unique(), b"\x01", [])]


def test_fake_scheduler_satisfies_protocol(scheduler) -> None:
    assert isinstance(scheduler, SchedulerClient)


def test_ensure_scheduled_twice_creates_one_queue_and_one_job(scheduler) -> None:
    manager = ScheduleManager(scheduler)
    admin = Pubkey.new_unique()

    first = manager.ensure_scheduled(
        "queue", "job", "0 */5 * * * * *", _instructions(), authorities=[admin]
    )
    second = manager.ensure_scheduled(
        "queue", "job", "0 */5 * * * * *", _instructions(), authorities=[admin]
    )

    assert first.queue.status is ProvisionStatus.CREATED
    assert first.job.status is ProvisionStatus.CREATED
    assert second.queue.status is ProvisionStatus.ALREADY_EXISTED
    assert second.job.status is ProvisionStatus.ALREADY_EXISTED
    assert scheduler.queue_calls == 1
    assert scheduler.job_calls == 1
    assert len(scheduler.queues) == 1
    assert len(scheduler.jobs) == 1
    assert first.task_queue == second.task_queue
    assert first.cron_job == second.cron_job
    # authority granted once, on the fresh queue only
    assert scheduler.authorities == [(first.task_queue, admin)]


def test_job_creation_race_is_success(scheduler) -> None:
    winner = Pubkey.new_unique()

    def racing_create(task_queue, name, schedule, instructions, options):
        scheduler.jobs[name] = winner
        raise RuntimeError("Transaction simulation failed: account already in use")

    scheduler.create_cron_job = racing_create
    result = ScheduleManager(scheduler).ensure_scheduled("q", "j", "* * * * * * *", _instructions())
    assert result.job.status is ProvisionStatus.ALREADY_EXISTED
    assert result.cron_job == winner


def test_queue_failure_aborts_before_job(scheduler) -> None:
    scheduler.fail_queue = RuntimeError("insufficient funds")
    with pytest.raises(RuntimeError, match="insufficient funds"):
        ScheduleManager(scheduler).ensure_scheduled("q", "j", "* * * * * * *", _instructions())
    assert scheduler.job_calls == 0


def test_job_failure_propagates(scheduler) -> None:
    scheduler.fail_job = RuntimeError("bad schedule")
    with pytest.raises(RuntimeError, match="bad schedule"):
        ScheduleManager(scheduler).ensure_scheduled("q", "j", "nope", _instructions())


def test_empty_instruction_list_rejected(scheduler) -> None:
    with pytest.raises(ValueError):
        ScheduleManager(scheduler).ensure_scheduled("q", "j", "* * * * * * *", [])


def test_queue_options_passed_through(scheduler) -> None:
    seen = []
    original = scheduler.create_task_queue

    def spy(name, options):
        seen.append(options)
        return original(name, options)

    scheduler.create_task_queue = spy
    opts = QueueOptions(capacity=10)
    ScheduleManager(scheduler, queue_options=opts).ensure_scheduled(
        "q", "j", "* * * * * * *", _instructions()
    )
    assert seen == [opts]
