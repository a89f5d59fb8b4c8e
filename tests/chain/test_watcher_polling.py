from __future__ import annotations

import threading

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from gptcron.chain.client import ChainContext
from gptcron.chain.errors import ResponseTimeoutError
from gptcron.chain.watcher import ResponseWatcher, poll_until
from gptcron.core.errors import TruncatedRecordError
from gptcron.core.records import GptConfigRecord


def _config(response: str = "") -> bytes:
    return GptConfigRecord(
        admin=Pubkey.new_unique(),
        context_account=Pubkey.new_unique(),
        prompt="hello",
        latest_response=response,
    ).to_bytes()


def test_poll_until_returns_first_accepted_value() -> None:
    values = iter([0, 0, 3])
    assert poll_until(lambda: next(values), bool, timeout=5, interval=0.001) == 3


def test_poll_until_zero_timeout_probes_once() -> None:
    calls = []

    def probe() -> int:
        calls.append(1)
        return 0

    with pytest.raises(ResponseTimeoutError):
        poll_until(probe, bool, timeout=0, interval=1)
    assert calls == [1]


def test_poll_until_cancelled() -> None:
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(ResponseTimeoutError, match="cancelled"):
        poll_until(lambda: 0, bool, timeout=30, interval=10, cancel=cancel)


def test_poll_until_probe_errors_propagate() -> None:
    def probe() -> int:
        raise ConnectionError("rpc down")

    with pytest.raises(ConnectionError):
        poll_until(probe, bool, timeout=5)


@pytest.mark.parametrize(
    "kwargs",
    [{"interval": 0}, {"timeout": -1}, {"backoff": 0.5}],
)
def test_poll_until_argument_validation(kwargs) -> None:
    params = {"timeout": 1, "interval": 0.1, "backoff": 1.0, **kwargs}
    with pytest.raises(ValueError):
        poll_until(lambda: 1, bool, **params)


def test_timeout_is_a_builtin_timeout() -> None:
    assert issubclass(ResponseTimeoutError, TimeoutError)


def test_empty_response_with_zero_deadline_times_out(context, ledger) -> None:
    address = Pubkey.new_unique()
    ledger.accounts[address] = _config("")
    with pytest.raises(ResponseTimeoutError):
        ResponseWatcher(context).wait_for_response(address, timeout=0)


def test_absent_then_present(context, ledger) -> None:
    address = Pubkey.new_unique()
    reads = {"n": 0}
    original = ledger.get_account_bytes

    def get_account_bytes(addr: Pubkey) -> bytes | None:
        reads["n"] += 1
        if reads["n"] == 2:
            ledger.accounts[address] = _config("")
        if reads["n"] == 4:
            ledger.accounts[address] = _config("Bullish")
        return original(addr)

    ledger.get_account_bytes = get_account_bytes
    assert ResponseWatcher(context).wait_for_response(address, timeout=5) == "Bullish"
    assert reads["n"] == 4


def test_stale_response_is_not_mistaken_for_new(context, ledger) -> None:
    address = Pubkey.new_unique()
    ledger.accounts[address] = _config("old answer")
    watcher = ResponseWatcher(context)
    with pytest.raises(ResponseTimeoutError):
        watcher.wait_for_response(address, timeout=0.05, previous="old answer")
    assert watcher.wait_for_response(address, timeout=0) == "old answer"


def test_undecodable_account_is_fatal(context, ledger) -> None:
    address = Pubkey.new_unique()
    ledger.accounts[address] = bytes(10)
    with pytest.raises(TruncatedRecordError):
        ResponseWatcher(context).wait_for_response(address, timeout=5)


def test_watcher_uses_settings_defaults(ledger, settings) -> None:
    ctx = ChainContext(client=ledger, payer=Keypair(), settings=settings)
    address = Pubkey.new_unique()
    ledger.accounts[address] = _config("ready")
    assert ResponseWatcher(ctx).wait_for_response(address) == "ready"
