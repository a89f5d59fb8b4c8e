"""
Deadline-aware polling for asynchronously written account fields.

Responsibilities
- ``poll_until``: a blocking, cancellable poll primitive (probe + predicate + deadline)
  built on ``threading.Event`` so it never sleeps past the deadline and can be woken early.
- ResponseWatcher: polls an account, decodes it against a record layout, and returns the
  extracted field once it qualifies.

Error policy
- Account absent: transient, keep polling (not initialized yet).
- Account present but undecodable: fatal, raised immediately (layout mismatch, not a
  pending write).
- Deadline elapsed: ResponseTimeoutError, distinct from codec errors.

Deadline bound
- The deadline is checked between reads. A read already in flight is bounded by the
  ledger client's own request timeout (``ChainSettings.rpc_timeout`` for the RPC
  adapter), so a wait can overrun ``timeout`` by at most one such request.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any, TypeVar

from solders.pubkey import Pubkey

from gptcron.core.codec import decode_record
from gptcron.core.layouts import GPT_CONFIG_LAYOUT, RecordLayout

from .client import ChainContext
from .errors import ResponseTimeoutError

__all__ = [
    "poll_until",
    "ResponseWatcher",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PENDING = object()


def poll_until(
    probe: Callable[[], T],
    predicate: Callable[[T], bool],
    *,
    timeout: float,
    interval: float = 1.0,
    backoff: float = 1.0,
    max_interval: float | None = None,
    cancel: threading.Event | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """
    Call ``probe`` until ``predicate`` accepts its result or the deadline passes.

    Args:
        probe: Returns the current observation. Exceptions propagate immediately.
        predicate: Accepts or rejects an observation.
        timeout (float): Seconds from now until the deadline. 0 probes exactly once.
        interval (float): Initial wait between probes.
        backoff (float): Multiplier applied to the interval after each miss (>= 1).
        max_interval (float | None): Upper bound on the interval.
        cancel (threading.Event | None): Set to stop waiting early.
        clock: Monotonic clock, injectable for tests.

    Returns:
        T: The first observation the predicate accepted.

    Raises:
        ResponseTimeoutError: If the deadline passes or ``cancel`` is set first.
        ValueError: If interval <= 0, timeout < 0, or backoff < 1.
    """
    if interval <= 0:
        raise ValueError(f"interval must be > 0, got {interval}")
    if timeout < 0:
        raise ValueError(f"timeout must be >= 0, got {timeout}")
    if backoff < 1:
        raise ValueError(f"backoff must be >= 1, got {backoff}")

    waiter = cancel or threading.Event()
    deadline = clock() + timeout
    attempts = 0
    wait = interval
    while True:
        attempts += 1
        observed = probe()
        if predicate(observed):
            return observed

        remaining = deadline - clock()
        if remaining <= 0:
            raise ResponseTimeoutError(f"no qualifying value after {attempts} attempt(s)")
        if waiter.wait(min(wait, remaining)):
            raise ResponseTimeoutError(f"polling cancelled after {attempts} attempt(s)")
        wait = wait * backoff
        if max_interval is not None:
            wait = min(wait, max_interval)


class ResponseWatcher:
    """Waits for a field of a decoded account to be populated."""

    def __init__(self, context: ChainContext) -> None:
        self.context = context

    def wait_for(
        self,
        address: Pubkey,
        layout: RecordLayout,
        extractor: Callable[[dict[str, Any]], T],
        *,
        timeout: float | None = None,
        interval: float | None = None,
        backoff: float = 1.0,
        max_interval: float | None = None,
        predicate: Callable[[T], bool] = bool,
        cancel: threading.Event | None = None,
    ) -> T:
        """
        Poll ``address`` until ``predicate(extractor(decoded))`` holds.

        Args:
            address (Pubkey): Account to watch.
            layout (RecordLayout): Layout used to decode the account.
            extractor: Picks the watched value from the decoded mapping.
            timeout (float | None): Seconds to wait; defaults to settings.poll_timeout.
            interval (float | None): Seconds between polls; defaults to settings.poll_interval.
            backoff (float): Interval multiplier after each miss.
            max_interval (float | None): Upper bound on the interval.
            predicate: Qualifies the extracted value; non-empty by default.
            cancel (threading.Event | None): Set to stop waiting early.

        Returns:
            T: The qualifying value.

        Raises:
            ResponseTimeoutError: The deadline passed first.
            TruncatedRecordError, LayoutMismatchError: The account exists but does not
                decode against ``layout``.
        """
        settings = self.context.settings
        client = self.context.client

        def probe() -> Any:
            raw = client.get_account_bytes(address)
            if raw is None:
                logger.debug("%s not found yet", address)
                return _PENDING
            return extractor(decode_record(raw, layout))

        def accept(value: Any) -> bool:
            return value is not _PENDING and predicate(value)

        return poll_until(
            probe,
            accept,
            timeout=settings.poll_timeout if timeout is None else timeout,
            interval=settings.poll_interval if interval is None else interval,
            backoff=backoff,
            max_interval=max_interval,
            cancel=cancel,
        )

    def wait_for_response(
        self,
        config_address: Pubkey,
        *,
        timeout: float | None = None,
        interval: float | None = None,
        previous: str | None = None,
    ) -> str:
        """
        Wait for the GptConfig ``latest_response`` to be non-empty.

        Args:
            previous (str | None): When given, wait for a response different from this
                one, so a stale answer from an earlier round is not mistaken for the
                reply to the current request.
        """
        def fresh(text: str) -> bool:
            return bool(text) and text != previous

        return self.wait_for(
            config_address,
            GPT_CONFIG_LAYOUT,
            lambda rec: rec["latest_response"],
            timeout=timeout,
            interval=interval,
            predicate=fresh,
        )
