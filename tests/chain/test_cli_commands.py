from __future__ import annotations

from pathlib import Path

import pytest
from solders.pubkey import Pubkey

from gptcron import cli
from gptcron.chain.session import OracleSession
from gptcron.core.addresses import gpt_config_address, task_address, task_queue_address
from gptcron.core.hashing import method_selector
from gptcron.core.records import GptConfigRecord


@pytest.fixture
def patched_session(monkeypatch, tmp_path: Path, context):
    monkeypatch.chdir(tmp_path)
    session = OracleSession(context)
    monkeypatch.setattr(cli, "_build_session", lambda settings: session, raising=True)
    return session


def _seed_config(ledger, response: str = "") -> None:
    ledger.accounts[gpt_config_address().address] = GptConfigRecord(
        admin=Pubkey.new_unique(),
        context_account=Pubkey.new_unique(),
        prompt="What now?",
        latest_response=response,
    ).to_bytes()


def test_main_without_args_prints_help(capsys) -> None:
    cli.main([])
    assert "gptcron" in capsys.readouterr().out


def test_unknown_command_exits_2() -> None:
    with pytest.raises(SystemExit) as ei:
        cli.main(["bogus"])
    assert ei.value.code == 2


def test_addresses_needs_no_network(capsys) -> None:
    with pytest.raises(SystemExit) as ei:
        cli.main(["addresses", "--no-env"])
    assert ei.value.code == 0
    assert str(gpt_config_address().address) in capsys.readouterr().out


def test_show_without_config(patched_session, capsys) -> None:
    with pytest.raises(SystemExit) as ei:
        cli.main(["show", "--no-env"])
    assert ei.value.code == 1
    assert "not initialized" in capsys.readouterr().out


def test_show_prints_record(patched_session, ledger, capsys) -> None:
    _seed_config(ledger, "Calm seas")
    with pytest.raises(SystemExit) as ei:
        cli.main(["show", "--no-env"])
    assert ei.value.code == 0
    out = capsys.readouterr().out
    assert "What now?" in out
    assert "Calm seas" in out


def test_show_marks_missing_response(patched_session, ledger, capsys) -> None:
    _seed_config(ledger)
    with pytest.raises(SystemExit) as ei:
        cli.main(["show", "--no-env"])
    assert ei.value.code == 0
    assert "<empty>" in capsys.readouterr().out


def test_ask_and_wait(patched_session, ledger, capsys) -> None:
    _seed_config(ledger)
    address = gpt_config_address().address

    def respond(tx) -> None:
        current = GptConfigRecord.from_bytes(ledger.accounts[address])
        ledger.accounts[address] = current.model_copy(
            update={"latest_response": "Optimistic"}
        ).to_bytes()

    ledger.on("ask_gpt", respond)
    with pytest.raises(SystemExit) as ei:
        cli.main(["ask", "--no-env", "--wait", "1"])
    assert ei.value.code == 0
    assert capsys.readouterr().out.strip() == "Optimistic"


def test_chain_errors_exit_1(patched_session, ledger) -> None:
    ledger.accounts[gpt_config_address().address] = bytes(10)
    with pytest.raises(SystemExit) as ei:
        cli.main(["show", "--no-env"])
    assert ei.value.code == 1


def test_schedule_queues_ask_gpt(patched_session, ledger, task_queue_program, capsys) -> None:
    _seed_config(ledger)
    with pytest.raises(SystemExit) as ei:
        cli.main(["schedule", "--no-env", "--task-id", "3"])
    assert ei.value.code == 0
    queue = task_queue_address(4).address
    out = capsys.readouterr().out
    assert f"{task_address(queue, 3).address} (created)" in out
    assert method_selector("schedule") in ledger.methods_sent()

    with pytest.raises(SystemExit) as ei:
        cli.main(["schedule", "--no-env", "--task-id", "3"])
    assert ei.value.code == 0
    assert "already_existed" in capsys.readouterr().out


def test_schedule_without_task_queue_program_exits_1(patched_session, ledger) -> None:
    _seed_config(ledger)
    with pytest.raises(SystemExit) as ei:
        cli.main(["schedule", "--no-env"])
    assert ei.value.code == 1
    assert ledger.sent == []
