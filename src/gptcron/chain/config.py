"""
Configuration for the gptcron.chain module.

Defines ChainSettings, a frozen dataclass carrying the network endpoint, admin credential,
scheduling names, payer funding policy and polling defaults. Defaults are
sourced from gptcron.core.constants (the single source of truth).

Source of truth
- gptcron.core.constants.PAYER_MIN_LAMPORTS, PAYER_TOP_UP_LAMPORTS

Precedence
- environment > TOML > defaults. ``.env`` files are loaded into the environment with
  python-dotenv and never override variables that are already set.
- Unprefixed legacy names (RPC_URL, ADMIN_SECRET_KEY, TASK_QUEUE_NAME, CRON_SCHEDULE)
  are honoured when the GPTCRON_* variable is absent.

Notes
- admin_secret_key is excluded from repr.
"""

from __future__ import annotations

import json
import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Literal

import base58
from dotenv import load_dotenv
from solders.keypair import Keypair

from gptcron.core.constants import (
    PAYER_MIN_LAMPORTS,
    PAYER_TOP_UP_LAMPORTS,
)

from .errors import ConfigError

__all__ = [
    "Commitment",
    "ChainSettings",
    "load_env_file",
    "load_keypair",
]

Commitment = Literal["processed", "confirmed", "finalized"]
_COMMITMENTS = ("processed", "confirmed", "finalized")

# env suffix -> field name
_ENV_FIELDS: dict[str, str] = {
    "RPC_URL": "rpc_url",
    "COMMITMENT": "commitment",
    "ADMIN_SECRET_KEY": "admin_secret_key",
    "KEYPAIR_PATH": "keypair_path",
    "TASK_QUEUE_NAME": "task_queue_name",
    "CRON_JOB_NAME": "cron_job_name",
    "CRON_SCHEDULE": "cron_schedule",
    "PAYER_MIN_LAMPORTS": "payer_min_lamports",
    "PAYER_TOP_UP_LAMPORTS": "payer_top_up_lamports",
    "POLL_INTERVAL": "poll_interval",
    "POLL_TIMEOUT": "poll_timeout",
    "SKIP_PREFLIGHT": "skip_preflight",
    "RPC_TIMEOUT": "rpc_timeout",
    "TASK_ID": "task_id",
}

_LEGACY_ENV: tuple[str, ...] = ("RPC_URL", "ADMIN_SECRET_KEY", "TASK_QUEUE_NAME", "CRON_SCHEDULE")


def _bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return bool(v)
    if isinstance(v, str):
        return v.strip().lower() in {"1", "true", "t", "yes", "y", "on"}
    return False


@dataclass(frozen=True)
class ChainSettings:
    """
    Runtime settings for the gptcron.chain layer.

    Attributes:
        rpc_url (str): JSON-RPC endpoint.
        commitment (Commitment): Commitment level for reads and confirmations.
        admin_secret_key (str | None): Admin secret as a JSON byte array or base58.
        keypair_path (str): Keypair file used when no secret is configured.
        task_queue_name (str): Task queue that hosts the scheduled job.
        cron_job_name (str): Scheduled job name.
        cron_schedule (str): Cron expression (seconds field first).
        payer_min_lamports (int): Payer balance below which a top-up is sent.
        payer_top_up_lamports (int): Amount transferred per top-up.
        poll_interval (float): Seconds between response polls.
        poll_timeout (float): Seconds before a response wait gives up.
        skip_preflight (bool): Submit without simulation. Simulation logs are what
            surface "already in use" rejections, so the default leaves simulation on.
        rpc_timeout (float): Seconds before a single RPC request gives up. Bounds how far
            one poll can run past the watcher deadline.
        task_id (int): Task slot on the task queue used for the scheduled ask_gpt.

    Examples:
        >>> from gptcron.chain.config import ChainSettings
        >>> ChainSettings(rpc_url="http://localhost:8899")  # doctest: +ELLIPSIS
        ChainSettings(...)
    """

    rpc_url: str = "https://api.devnet.solana.com"
    commitment: Commitment = "confirmed"
    admin_secret_key: str | None = field(default=None, repr=False)
    keypair_path: str = "~/.config/solana/id.json"
    task_queue_name: str = "solana-gpt-tuktuk"
    cron_job_name: str = "ask-gpt"
    cron_schedule: str = "0 */5 * * * * *"
    payer_min_lamports: int = PAYER_MIN_LAMPORTS
    payer_top_up_lamports: int = PAYER_TOP_UP_LAMPORTS
    poll_interval: float = 2.0
    poll_timeout: float = 60.0
    skip_preflight: bool = False
    rpc_timeout: float = 10.0
    task_id: int = 0

    def __post_init__(self) -> None:
        if self.commitment not in _COMMITMENTS:
            raise ConfigError(f"commitment must be one of {_COMMITMENTS}, got {self.commitment!r}")
        if self.poll_interval <= 0:
            raise ConfigError(f"poll_interval must be > 0, got {self.poll_interval}")
        if self.poll_timeout < 0:
            raise ConfigError(f"poll_timeout must be >= 0, got {self.poll_timeout}")
        if self.payer_min_lamports < 0 or self.payer_top_up_lamports < 0:
            raise ConfigError("payer lamport amounts must be non-negative")
        if self.rpc_timeout <= 0:
            raise ConfigError(f"rpc_timeout must be > 0, got {self.rpc_timeout}")
        if not 0 <= self.task_id <= 0xFFFF:
            raise ConfigError(f"task_id must fit in u16, got {self.task_id}")

    # Configuration loaders (env/TOML) with precedence: env > TOML > defaults.

    @classmethod
    def _apply_mapping(cls, base: ChainSettings, cfg: dict[str, Any] | None) -> ChainSettings:
        """Apply a loose config mapping onto ChainSettings, returning a new instance."""
        if not isinstance(cfg, dict):
            return base

        updates: dict[str, Any] = {}
        for key in ("rpc_url", "commitment", "admin_secret_key", "keypair_path",
                    "task_queue_name", "cron_job_name", "cron_schedule"):
            if key in cfg and isinstance(cfg[key], str):
                updates[key] = cfg[key]
        if isinstance(updates.get("commitment"), str):
            updates["commitment"] = updates["commitment"].strip().lower()

        for key, conv in (
            ("payer_min_lamports", int),
            ("payer_top_up_lamports", int),
            ("poll_interval", float),
            ("poll_timeout", float),
            ("rpc_timeout", float),
            ("task_id", int),
        ):
            if key in cfg:
                try:
                    updates[key] = conv(cfg[key])
                except (TypeError, ValueError) as exc:
                    raise ConfigError(f"{key}: cannot parse {cfg[key]!r}") from exc

        if "skip_preflight" in cfg:
            updates["skip_preflight"] = _bool(cfg["skip_preflight"])

        return replace(base, **updates) if updates else base

    @classmethod
    def from_env(
        cls, base: ChainSettings | None = None, prefix: str = "GPTCRON_"
    ) -> ChainSettings:
        """
        Build ChainSettings from environment variables. Precedence is env > base > defaults.

        Recognized variables (each also readable without prefix where marked *):
            - GPTCRON_RPC_URL *
            - GPTCRON_COMMITMENT
            - GPTCRON_ADMIN_SECRET_KEY *
            - GPTCRON_KEYPAIR_PATH
            - GPTCRON_TASK_QUEUE_NAME *
            - GPTCRON_CRON_JOB_NAME
            - GPTCRON_CRON_SCHEDULE *
            - GPTCRON_PAYER_MIN_LAMPORTS / GPTCRON_PAYER_TOP_UP_LAMPORTS
            - GPTCRON_POLL_INTERVAL / GPTCRON_POLL_TIMEOUT
            - GPTCRON_SKIP_PREFLIGHT (1/0/true/false/yes/no/on/off)
            - GPTCRON_RPC_TIMEOUT
            - GPTCRON_TASK_ID
        """
        s = base or cls()

        def get(name: str) -> str | None:
            v = os.getenv(prefix + name)
            if not v and name in _LEGACY_ENV:
                v = os.getenv(name)
            return v or None

        mapping: dict[str, Any] = {}
        for suffix, key in _ENV_FIELDS.items():
            v = get(suffix)
            if v is not None:
                mapping[key] = v
        return cls._apply_mapping(s, mapping)

    @classmethod
    def from_toml(cls, path: str | os.PathLike[str] | None = None) -> ChainSettings:
        """
        Build ChainSettings from a TOML file.

        Search order when `path` is None:
            1) ./gptcron.toml (with either a [chain] table or top-level keys)
            2) ./pyproject.toml under [tool.gptcron]

        Returns defaults if no file is present.

        Raises:
            ConfigError: If an explicit ``path`` is given but cannot be parsed.
        """
        s = cls()

        cand: list[Path] = []
        if path is not None:
            cand.append(Path(path))
        else:
            cand.append(Path.cwd() / "gptcron.toml")
            cand.append(Path.cwd() / "pyproject.toml")

        cfg: dict[str, Any] | None = None
        for p in cand:
            if not p.exists():
                continue
            try:
                with p.open("rb") as fh:
                    data = tomllib.load(fh)
            except tomllib.TOMLDecodeError as exc:
                raise ConfigError(f"cannot parse {p}: {exc}") from exc
            if p.name == "pyproject.toml":
                tool = data.get("tool", {})
                cfg = tool.get("gptcron") if isinstance(tool, dict) else None
            elif isinstance(data.get("chain"), dict):
                cfg = data["chain"]
            else:
                cfg = data
            if cfg:
                break

        return cls._apply_mapping(s, cfg)

    @classmethod
    def load(cls, path: str | os.PathLike[str] | None = None) -> ChainSettings:
        """
        Load ChainSettings applying precedence: environment > TOML > defaults.

        Args:
            path: Optional explicit TOML path. If None, search defaults
                (gptcron.toml, pyproject.toml).
        """
        s = cls.from_toml(path)
        s = cls.from_env(base=s)
        return s


def load_env_file(env_path: str | os.PathLike[str] | None = None) -> bool:
    """
    Load a .env file into os.environ without overriding variables already set.

    Returns:
        bool: True if a file was found and at least one variable was read.
    """
    return load_dotenv(env_path, override=False)


def load_keypair(settings: ChainSettings) -> Keypair:
    """
    Load the admin keypair.

    The secret is tried as a JSON byte array, then as base58. Without a configured
    secret the keypair file at ``settings.keypair_path`` is read.

    Raises:
        ConfigError: If the secret or the keypair file cannot be decoded.
    """
    secret = settings.admin_secret_key
    if secret:
        secret = secret.strip()
        if secret.startswith("["):
            try:
                return Keypair.from_bytes(bytes(json.loads(secret)))
            except ValueError as exc:
                raise ConfigError("admin secret is not a valid JSON keypair byte array") from exc
        try:
            return Keypair.from_bytes(base58.b58decode(secret))
        except ValueError as exc:
            raise ConfigError("admin secret is neither a JSON byte array nor base58") from exc

    path = Path(settings.keypair_path).expanduser()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return Keypair.from_bytes(bytes(raw))
    except FileNotFoundError as exc:
        raise ConfigError(f"no admin secret configured and no keypair file at {path}") from exc
    except ValueError as exc:
        raise ConfigError(f"keypair file {path} is not a JSON byte array") from exc
