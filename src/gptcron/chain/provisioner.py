"""
Idempotent create-if-absent provisioning for long-lived resources.

Each ``ensure`` call drives one resource through a small state machine:

    UNKNOWN -> CHECKED -> EXISTS
                       -> CREATING -> EXISTS
                                   -> CREATE_FAILED

and returns a typed ProvisionOutcome instead of raising for the "already exists" race:
a creation rejected because another actor created the resource first converges to
ALREADY_EXISTED. Every other creation failure is reported as FAILED carrying the original
exception, which ``unwrap`` re-raises verbatim. Nothing is retried.

For the payer resource "absent" means "balance below the minimum"; provisioning is a
top-up transfer, skipped once the threshold is met.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

from solders.pubkey import Pubkey

from .client import is_already_exists_error
from .errors import ProvisionStateError

__all__ = [
    "ResourceKind",
    "ProvisionState",
    "ProvisionStatus",
    "ProvisionOutcome",
    "ResourceProvisioner",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResourceKind(str, Enum):
    CONTEXT_RECORD = "context_record"
    CONFIG_RECORD = "config_record"
    PAYER_RESOURCE = "payer_resource"
    TASK_QUEUE = "task_queue"
    SCHEDULED_JOB = "scheduled_job"


class ProvisionState(str, Enum):
    UNKNOWN = "unknown"
    CHECKED = "checked"
    CREATING = "creating"
    EXISTS = "exists"
    CREATE_FAILED = "create_failed"


_TRANSITIONS: dict[ProvisionState, frozenset[ProvisionState]] = {
    ProvisionState.UNKNOWN: frozenset({ProvisionState.CHECKED}),
    ProvisionState.CHECKED: frozenset({ProvisionState.EXISTS, ProvisionState.CREATING}),
    ProvisionState.CREATING: frozenset({ProvisionState.EXISTS, ProvisionState.CREATE_FAILED}),
    ProvisionState.EXISTS: frozenset(),
    ProvisionState.CREATE_FAILED: frozenset(),
}


class ProvisionStatus(str, Enum):
    CREATED = "created"
    ALREADY_EXISTED = "already_existed"
    FAILED = "failed"


@dataclass
class ProvisionOutcome(Generic[T]):
    """
    Result of provisioning one resource.

    Attributes:
        kind (ResourceKind): Resource kind.
        name (str): Human-readable name or address of the resource.
        status (ProvisionStatus): CREATED, ALREADY_EXISTED or FAILED.
        value (T | None): Whatever the lookup or creation produced (usually an address).
        error (BaseException | None): Original failure when status is FAILED.
        history (list[ProvisionState]): States visited, in order.
    """

    kind: ResourceKind
    name: str
    status: ProvisionStatus = ProvisionStatus.FAILED
    value: T | None = None
    error: BaseException | None = None
    history: list[ProvisionState] = field(default_factory=lambda: [ProvisionState.UNKNOWN])

    @property
    def state(self) -> ProvisionState:
        return self.history[-1]

    @property
    def ok(self) -> bool:
        return self.status is not ProvisionStatus.FAILED

    @property
    def created(self) -> bool:
        return self.status is ProvisionStatus.CREATED

    def advance(self, new: ProvisionState) -> None:
        if new not in _TRANSITIONS[self.state]:
            raise ProvisionStateError(
                f"{self.kind.value} {self.name}: illegal transition {self.state.value} -> {new.value}"
            )
        self.history.append(new)

    def unwrap(self) -> T | None:
        """Return ``value``, re-raising the original creation failure if there was one."""
        if self.error is not None:
            raise self.error
        return self.value


class ResourceProvisioner:
    """
    Generic create-if-absent driver.

    Notes:
        Lookups run before every create. The provisioner keeps no state between calls;
        the ledger is the source of truth.
    """

    def ensure(
        self,
        kind: ResourceKind,
        name: str,
        lookup: Callable[[], T | None],
        create: Callable[[], object],
        *,
        after_create: Callable[[], T | None] | None = None,
    ) -> ProvisionOutcome[T]:
        """
        Ensure a resource exists.

        Args:
            kind (ResourceKind): Resource kind (for logging and outcome).
            name (str): Resource name or address.
            lookup: Returns the existing resource, or None if absent. Lookup errors
                propagate; they are not creation failures.
            create: Issues the creation call.
            after_create: Optional re-lookup after a successful or raced create; its
                result becomes the outcome value. Defaults to ``lookup``.

        Returns:
            ProvisionOutcome[T]: CREATED, ALREADY_EXISTED, or FAILED with the error.
        """
        outcome: ProvisionOutcome[T] = ProvisionOutcome(kind=kind, name=name)
        existing = lookup()
        outcome.advance(ProvisionState.CHECKED)
        if existing is not None:
            logger.info("%s %s already exists, skipping creation", kind.value, name)
            outcome.advance(ProvisionState.EXISTS)
            outcome.status = ProvisionStatus.ALREADY_EXISTED
            outcome.value = existing
            return outcome

        logger.info("Creating %s %s", kind.value, name)
        outcome.advance(ProvisionState.CREATING)
        try:
            create()
        except Exception as exc:
            if not is_already_exists_error(exc):
                logger.error("Creating %s %s failed: %s", kind.value, name, exc)
                outcome.advance(ProvisionState.CREATE_FAILED)
                outcome.status = ProvisionStatus.FAILED
                outcome.error = exc
                return outcome
            logger.info("%s %s was created concurrently", kind.value, name)
            outcome.status = ProvisionStatus.ALREADY_EXISTED
        else:
            outcome.status = ProvisionStatus.CREATED

        outcome.advance(ProvisionState.EXISTS)
        outcome.value = (after_create or lookup)()
        return outcome

    def ensure_funded(
        self,
        address: Pubkey,
        *,
        balance: Callable[[Pubkey], int],
        transfer: Callable[[Pubkey, int], object],
        minimum: int,
        top_up: int,
    ) -> ProvisionOutcome[int]:
        """
        Top up ``address`` by ``top_up`` when its balance is below ``minimum``.

        Returns:
            ProvisionOutcome[int]: ALREADY_EXISTED when the balance meets the minimum,
            CREATED after a transfer; ``value`` is the balance observed afterwards.
        """

        def funded() -> int | None:
            current = balance(address)
            logger.info("Payer %s balance: %d lamports", address, current)
            return current if current >= minimum else None

        def fund() -> None:
            logger.info("Funding payer %s with %d lamports", address, top_up)
            transfer(address, top_up)

        return self.ensure(
            ResourceKind.PAYER_RESOURCE,
            str(address),
            funded,
            fund,
            after_create=lambda: balance(address),
        )
