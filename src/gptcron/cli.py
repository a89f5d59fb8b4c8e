from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Callable
from pathlib import Path

from gptcron.chain.client import ChainContext
from gptcron.chain.config import ChainSettings, load_env_file
from gptcron.chain.errors import ChainError
from gptcron.chain.scheduler import LedgerScheduler, ScheduleManager
from gptcron.chain.session import (
    DEFAULT_PROMPT,
    DEFAULT_SYSTEM_PROMPT,
    OracleSession,
    session_addresses,
)
from gptcron.core.errors import UnknownMethodError
from gptcron.core.tasks import Trigger

logger = logging.getLogger("gptcron")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )


def _common_parser(prog: str, description: str) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog=prog, description=description)
    p.add_argument("--config", type=str, default="", help="Path to a gptcron TOML file.")
    p.add_argument(
        "--no-env",
        action="store_true",
        help="Do not auto-load .env (by default, .env is loaded if present).",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return p


def _load_settings(args: argparse.Namespace) -> ChainSettings:
    """Resolve settings (env > TOML > defaults), loading .env first unless disabled."""
    if not args.no_env:
        if load_env_file(Path(".env")):
            logger.info("Loaded .env from %s", Path(".env").resolve())
    return ChainSettings.load(args.config or None)


def _build_session(settings: ChainSettings) -> OracleSession:
    context = ChainContext.from_settings(settings)
    logger.info("RPC: %s", settings.rpc_url)
    logger.info("Admin: %s", context.wallet)
    return OracleSession(context)


def _cmd_addresses(argv: list[str]) -> int:
    p = _common_parser("addresses", description="Print the derived program addresses.")
    args = p.parse_args(argv)
    _configure_logging(args.verbose)

    addrs = session_addresses()
    print(f"gpt_config       {addrs.gpt_config}")
    print(f"payer            {addrs.payer}")
    print(f"oracle_counter   {addrs.oracle_counter}")
    print(f"oracle_identity  {addrs.oracle_identity}")
    return 0


def _cmd_setup(argv: list[str]) -> int:
    p = _common_parser(
        "setup", description="Create the oracle context, the GptConfig and fund the payer."
    )
    p.add_argument("--system-prompt", type=str, default=DEFAULT_SYSTEM_PROMPT)
    p.add_argument("--prompt", type=str, default=DEFAULT_PROMPT)
    args = p.parse_args(argv)
    _configure_logging(args.verbose)

    session = _build_session(_load_settings(args))
    context = session.ensure_context(args.system_prompt)
    context_account = context.unwrap()
    logger.info("Context account: %s (%s)", context_account, context.status.value)
    config = session.ensure_config(context_account, args.prompt)
    config.unwrap()
    logger.info("GptConfig: %s", config.status.value)
    payer = session.ensure_payer_funded()
    logger.info("Payer balance: %s lamports (%s)", payer.unwrap(), payer.status.value)
    return 0


def _cmd_ask(argv: list[str]) -> int:
    p = _common_parser("ask", description="Submit ask_gpt once.")
    p.add_argument(
        "--wait",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Wait up to SECONDS for a new response after asking.",
    )
    args = p.parse_args(argv)
    _configure_logging(args.verbose)

    session = _build_session(_load_settings(args))
    before = session.require_config().latest_response
    session.ask()
    if args.wait is not None:
        response = session.wait_for_response(timeout=args.wait, previous=before or None)
        print(response)
    return 0


def _cmd_show(argv: list[str]) -> int:
    p = _common_parser("show", description="Show the GptConfig record.")
    args = p.parse_args(argv)
    _configure_logging(args.verbose)

    session = _build_session(_load_settings(args))
    config = session.read_config()
    if config is None:
        print("GptConfig not initialized")
        return 1
    print(f"admin            {config.admin}")
    print(f"context_account  {config.context_account}")
    print(f"prompt           {config.prompt}")
    print(f"latest_response  {config.latest_response if config.has_response else '<empty>'}")
    return 0


def _cmd_run(argv: list[str]) -> int:
    p = _common_parser("run", description="Set up, ask once and wait for the response.")
    p.add_argument("--system-prompt", type=str, default=DEFAULT_SYSTEM_PROMPT)
    p.add_argument("--prompt", type=str, default=DEFAULT_PROMPT)
    p.add_argument("--timeout", type=float, default=None, help="Seconds to wait for the response.")
    args = p.parse_args(argv)
    _configure_logging(args.verbose)

    session = _build_session(_load_settings(args))
    result = session.run_round(
        system_prompt=args.system_prompt, prompt=args.prompt, timeout=args.timeout
    )
    print(result.response)
    return 0


def _cmd_schedule(argv: list[str]) -> int:
    p = _common_parser(
        "schedule",
        description="Queue ask_gpt on the task queue, creating the queue if absent.",
    )
    p.add_argument("--queue", type=str, default=None, help="Task queue name.")
    p.add_argument("--job", type=str, default=None, help="Scheduled job name.")
    p.add_argument("--schedule", type=str, default=None, help="Cron expression (recorded).")
    p.add_argument("--task-id", type=int, default=None, help="Task slot on the queue.")
    p.add_argument(
        "--at",
        type=int,
        default=None,
        metavar="UNIX_TS",
        help="Fire at this unix time instead of as soon as possible.",
    )
    args = p.parse_args(argv)
    _configure_logging(args.verbose)

    session = _build_session(_load_settings(args))
    trigger = Trigger.now() if args.at is None else Trigger.at(args.at)
    scheduler = LedgerScheduler(
        session.context, session.submitter, task_id=args.task_id, trigger=trigger
    )
    result = session.schedule(
        ScheduleManager(scheduler, session.provisioner),
        queue_name=args.queue,
        job_name=args.job,
        schedule=args.schedule,
    )
    print(f"task_queue       {result.task_queue} ({result.queue.status.value})")
    print(f"task             {result.cron_job} ({result.job.status.value})")
    return 0


_COMMANDS: dict[str, Callable[[list[str]], int]] = {
    "addresses": _cmd_addresses,
    "setup": _cmd_setup,
    "ask": _cmd_ask,
    "show": _cmd_show,
    "run": _cmd_run,
    "schedule": _cmd_schedule,
}


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="gptcron", description="On-chain GPT oracle utilities CLI.")
    sub = p.add_subparsers(dest="cmd", required=True)
    for name in _COMMANDS:
        sub.add_parser(name)
    return p


def main(argv: list[str] | None = None) -> None:
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv:
        build_argparser().print_help()
        return
    cmd, rest = argv[0], argv[1:]
    handler = _COMMANDS.get(cmd)
    if handler is None:
        print(f"Unknown command: {cmd}", file=sys.stderr)
        code = 2
    else:
        try:
            code = handler(rest)
        except (ChainError, UnknownMethodError, ValueError) as exc:
            logger.error("%s", exc)
            code = 1
    raise SystemExit(code)


if __name__ == "__main__":
    main()
