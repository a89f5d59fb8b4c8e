from __future__ import annotations

from types import SimpleNamespace

import pytest
from solders.pubkey import Pubkey
from solders.signature import Signature

from gptcron.chain.client import (
    LedgerClient,
    RpcLedgerClient,
    SettlementHandle,
    is_already_exists_error,
    is_unknown_method_error,
)
from gptcron.chain.config import ChainSettings
from gptcron.chain.errors import TransactionFailedError
from gptcron.chain.submitter import RequestSubmitter
from gptcron.core.constants import SYSTEM_PROGRAM_ID
from gptcron.core.errors import UnknownMethodError
from gptcron.core.hashing import method_selector


def _ask_accounts() -> dict[str, Pubkey]:
    return {
        "gpt_config": Pubkey.new_unique(),
        "payer": Pubkey.new_unique(),
        "interaction": Pubkey.new_unique(),
        "context_account": Pubkey.new_unique(),
        "oracle_program": Pubkey.new_unique(),
        "system_program": SYSTEM_PROGRAM_ID,
    }


def test_fake_ledger_satisfies_protocol(ledger) -> None:
    assert isinstance(ledger, LedgerClient)


def test_submit_signs_and_waits(context, ledger) -> None:
    handle = RequestSubmitter(context).submit("ask_gpt", _ask_accounts())
    assert isinstance(handle, SettlementHandle)
    assert handle.confirmed
    assert ledger.confirm_calls == 1
    tx = ledger.sent[0]
    assert tx.message.account_keys[0] == context.wallet
    assert handle.signature == tx.signatures[0]
    assert ledger.methods_sent() == [method_selector("ask_gpt")]


def test_submit_without_wait(context, ledger) -> None:
    handle = RequestSubmitter(context).submit("ask_gpt", _ask_accounts(), wait=False)
    assert not handle.confirmed
    assert ledger.confirm_calls == 0


def test_unsettled_transaction_raises(context, ledger) -> None:
    ledger.settles = False
    with pytest.raises(TransactionFailedError) as ei:
        RequestSubmitter(context).submit("ask_gpt", _ask_accounts())
    assert ei.value.signature == ledger.sent[0].signatures[0]


def test_remote_selector_rejection_becomes_unknown_method(context, ledger) -> None:
    ledger.fail_with = RuntimeError("Program failed: custom program error: 0x65")
    with pytest.raises(UnknownMethodError):
        RequestSubmitter(context).submit("ask_gpt", _ask_accounts())


def test_other_remote_errors_propagate_unchanged(context, ledger) -> None:
    boom = ConnectionError("rpc down")
    ledger.fail_with = boom
    with pytest.raises(ConnectionError) as ei:
        RequestSubmitter(context).submit("ask_gpt", _ask_accounts())
    assert ei.value is boom


def test_unknown_local_method_is_not_submitted(context, ledger) -> None:
    with pytest.raises(UnknownMethodError):
        RequestSubmitter(context).submit("receive", [])
    assert ledger.sent == []


def test_error_classification_reads_logs() -> None:
    exc = RuntimeError("Transaction simulation failed")
    exc.logs = ["Program 111 invoke [1]", "Allocate: account already in use"]  # type: ignore[attr-defined]
    assert is_already_exists_error(exc)
    assert not is_unknown_method_error(exc)

    nested = RuntimeError(SimpleNamespace(data=SimpleNamespace(logs=["InstructionFallbackNotFound"])))
    assert is_unknown_method_error(nested)
    assert not is_already_exists_error(RuntimeError("insufficient funds"))


class _StubRpc:
    def __init__(self, account=None, balance=0) -> None:
        self.account = account
        self.balance = balance

    def get_account_info(self, address, commitment=None):
        return SimpleNamespace(value=self.account)

    def get_balance(self, address, commitment=None):
        return SimpleNamespace(value=self.balance)


def test_rpc_adapter_reads() -> None:
    absent = RpcLedgerClient("http://unused", client=_StubRpc())
    assert absent.get_account_bytes(Pubkey.new_unique()) is None

    present = RpcLedgerClient(
        "http://unused", client=_StubRpc(account=SimpleNamespace(data=b"\x01\x02"), balance=7)
    )
    assert present.get_account_bytes(Pubkey.new_unique()) == b"\x01\x02"
    assert present.get_balance(Pubkey.new_unique()) == 7


def test_onchain_selector_rejection_becomes_unknown_method(context, ledger) -> None:
    ledger.fail_logs = [
        "Program H8Tq9DAw82BcYzeeBpm3BLisK8sQn4Ntyj3AewhNTuvj invoke [1]",
        "Program H8Tq9DAw82BcYzeeBpm3BLisK8sQn4Ntyj3AewhNTuvj failed: custom program error: 0x65",
    ]
    with pytest.raises(UnknownMethodError) as ei:
        RequestSubmitter(context).submit("ask_gpt", _ask_accounts())
    assert isinstance(ei.value.__cause__, TransactionFailedError)


def test_onchain_failure_without_known_marker_propagates(context, ledger) -> None:
    ledger.fail_logs = ["Program log: insufficient lamports"]
    with pytest.raises(TransactionFailedError) as ei:
        RequestSubmitter(context).submit("ask_gpt", _ask_accounts())
    assert ei.value.logs == ("Program log: insufficient lamports",)
    assert ei.value.error == "InstructionError"


class _StubConfirmRpc:
    def __init__(self, err=None, logs=None) -> None:
        self.err = err
        self.logs = logs
        self.log_requests = 0

    def confirm_transaction(self, signature, commitment=None):
        return SimpleNamespace(value=[SimpleNamespace(err=self.err)])

    def get_transaction(self, signature, commitment=None, max_supported_transaction_version=None):
        self.log_requests += 1
        meta = SimpleNamespace(log_messages=self.logs)
        return SimpleNamespace(value=SimpleNamespace(transaction=SimpleNamespace(meta=meta)))


def test_rpc_confirm_attaches_error_and_logs() -> None:
    logs = ["Allocate: account Address { address: 7x.. } already in use"]
    stub = _StubConfirmRpc(err="InstructionError(0, Custom(0))", logs=logs)
    rpc = RpcLedgerClient("http://unused", client=stub)
    with pytest.raises(TransactionFailedError) as ei:
        rpc.confirm(Signature.default())
    assert stub.log_requests == 1
    assert ei.value.error == "InstructionError(0, Custom(0))"
    assert ei.value.logs == tuple(logs)
    assert is_already_exists_error(ei.value)


def test_rpc_confirm_success_skips_log_fetch() -> None:
    stub = _StubConfirmRpc()
    assert RpcLedgerClient("http://unused", client=stub).confirm(Signature.default())
    assert stub.log_requests == 0


def test_rpc_timeout_comes_from_settings() -> None:
    rpc = RpcLedgerClient.from_settings(ChainSettings(rpc_url="http://localhost:8899", rpc_timeout=3.5))
    assert rpc.timeout == 3.5
