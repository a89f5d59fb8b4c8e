from __future__ import annotations

import json
import os
from pathlib import Path

import base58
import pytest
from solders.keypair import Keypair

from gptcron.chain.config import ChainSettings, load_env_file, load_keypair
from gptcron.chain.errors import ConfigError
from gptcron.core.constants import PAYER_MIN_LAMPORTS, PAYER_TOP_UP_LAMPORTS

_ENV_KEYS = [
    "GPTCRON_RPC_URL",
    "GPTCRON_COMMITMENT",
    "GPTCRON_ADMIN_SECRET_KEY",
    "GPTCRON_KEYPAIR_PATH",
    "GPTCRON_TASK_QUEUE_NAME",
    "GPTCRON_CRON_JOB_NAME",
    "GPTCRON_CRON_SCHEDULE",
    "GPTCRON_PAYER_MIN_LAMPORTS",
    "GPTCRON_PAYER_TOP_UP_LAMPORTS",
    "GPTCRON_POLL_INTERVAL",
    "GPTCRON_POLL_TIMEOUT",
    "GPTCRON_SKIP_PREFLIGHT",
    "GPTCRON_RPC_TIMEOUT",
    "GPTCRON_TASK_ID",
    "RPC_URL",
    "ADMIN_SECRET_KEY",
    "TASK_QUEUE_NAME",
    "CRON_SCHEDULE",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def _write_toml(tmp: Path, content: str, name: str = "gptcron.toml") -> Path:
    p = tmp / name
    p.write_text(content)
    return p


def test_defaults() -> None:
    s = ChainSettings()
    assert s.rpc_url == "https://api.devnet.solana.com"
    assert s.task_queue_name == "solana-gpt-tuktuk"
    assert s.cron_job_name == "ask-gpt"
    assert s.cron_schedule == "0 */5 * * * * *"
    assert s.payer_min_lamports == PAYER_MIN_LAMPORTS == 10_000_000
    assert s.payer_top_up_lamports == PAYER_TOP_UP_LAMPORTS == 50_000_000
    assert s.skip_preflight is False
    assert s.rpc_timeout == 10.0
    assert s.task_id == 0


def test_chain_settings_precedence_env_over_toml(tmp_path: Path, monkeypatch) -> None:
    _write_toml(
        tmp_path,
        """
        [chain]
        rpc_url = "http://toml:8899"
        task_queue_name = "toml-queue"
        poll_interval = 5
        """.strip(),
    )
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("GPTCRON_RPC_URL", "http://env:8899")
    monkeypatch.setenv("GPTCRON_POLL_INTERVAL", "0.5")

    s = ChainSettings.load()

    assert s.rpc_url == "http://env:8899"
    assert s.poll_interval == 0.5
    assert s.task_queue_name == "toml-queue"  # untouched by env


def test_chain_settings_from_pyproject_tool_table(tmp_path: Path, monkeypatch) -> None:
    _write_toml(
        tmp_path,
        """
        [tool.gptcron]
        cron_schedule = "0 0 * * * * *"
        skip_preflight = true
        """.strip(),
        name="pyproject.toml",
    )
    monkeypatch.chdir(tmp_path)
    s = ChainSettings.load()
    assert s.cron_schedule == "0 0 * * * * *"
    assert s.skip_preflight is True


def test_legacy_unprefixed_env_names(monkeypatch) -> None:
    monkeypatch.setenv("RPC_URL", "http://legacy:8899")
    monkeypatch.setenv("TASK_QUEUE_NAME", "legacy-queue")
    s = ChainSettings.from_env()
    assert s.rpc_url == "http://legacy:8899"
    assert s.task_queue_name == "legacy-queue"

    monkeypatch.setenv("GPTCRON_RPC_URL", "http://prefixed:8899")
    assert ChainSettings.from_env().rpc_url == "http://prefixed:8899"


def test_invalid_values_raise_config_error(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("GPTCRON_POLL_TIMEOUT", "soon")
    with pytest.raises(ConfigError):
        ChainSettings.from_env()
    with pytest.raises(ConfigError):
        ChainSettings(poll_interval=0)
    with pytest.raises(ConfigError):
        ChainSettings(commitment="eventually")  # type: ignore[arg-type]
    bad = _write_toml(tmp_path, "rpc_url = ")
    with pytest.raises(ConfigError):
        ChainSettings.from_toml(bad)


def test_rpc_timeout_and_task_id_from_env(monkeypatch) -> None:
    monkeypatch.setenv("GPTCRON_RPC_TIMEOUT", "2.5")
    monkeypatch.setenv("GPTCRON_TASK_ID", "7")
    s = ChainSettings.from_env()
    assert s.rpc_timeout == 2.5
    assert s.task_id == 7
    with pytest.raises(ConfigError):
        ChainSettings(rpc_timeout=0)
    with pytest.raises(ConfigError):
        ChainSettings(task_id=70_000)


def test_secret_not_in_repr() -> None:
    s = ChainSettings(admin_secret_key="supersecret")
    assert "supersecret" not in repr(s)


def test_load_env_file_does_not_override(tmp_path: Path, monkeypatch) -> None:
    env = tmp_path / ".env"
    env.write_text("GPTCRON_RPC_URL=http://dotenv:8899\nGPTCRON_CRON_JOB_NAME=dotenv-job\n")
    monkeypatch.setenv("GPTCRON_RPC_URL", "http://shell:8899")
    try:
        assert load_env_file(env) is True
        s = ChainSettings.from_env()
        assert s.rpc_url == "http://shell:8899"
        assert s.cron_job_name == "dotenv-job"
    finally:
        os.environ.pop("GPTCRON_CRON_JOB_NAME", None)


def test_load_keypair_json_and_base58() -> None:
    kp = Keypair()
    as_json = ChainSettings(admin_secret_key=json.dumps(list(bytes(kp))))
    as_b58 = ChainSettings(admin_secret_key=base58.b58encode(bytes(kp)).decode())
    assert load_keypair(as_json).pubkey() == kp.pubkey()
    assert load_keypair(as_b58).pubkey() == kp.pubkey()


def test_load_keypair_bad_secret() -> None:
    with pytest.raises(ConfigError):
        load_keypair(ChainSettings(admin_secret_key="0OIl-not-base58"))


def test_load_keypair_file(tmp_path: Path) -> None:
    kp = Keypair()
    path = tmp_path / "id.json"
    path.write_text(json.dumps(list(bytes(kp))))
    assert load_keypair(ChainSettings(keypair_path=str(path))).pubkey() == kp.pubkey()
    with pytest.raises(ConfigError):
        load_keypair(ChainSettings(keypair_path=str(tmp_path / "missing.json")))
